# =============================================================================
# models/json_rpc.py
# =============================================================================
# 目的：
# 此模組定義 JSON-RPC 2.0 的基礎信封（envelope）與 A2A 協議的錯誤分類。
#
# - JSONRPCRequest / JSONRPCResponse：所有請求與回應共用的外層格式
# - JSONRPCError 及其子類別：固定錯誤碼與預設訊息
#
# 回應信封的規則：result 與 error 只能擇一，不可同時存在。
# =============================================================================

from typing import Any, Literal
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator


# -----------------------------------------------------------------------------
# 基礎訊息：所有 JSON-RPC 訊息都帶有版本與關聯 ID
# -----------------------------------------------------------------------------

class JSONRPCMessage(BaseModel):
    jsonrpc: Literal["2.0"] = "2.0"
    # 關聯 ID：回應必須帶回與請求相同的 id；解析失敗時可能為 None
    id: int | str | None = Field(default_factory=lambda: uuid4().hex)


class JSONRPCRequest(JSONRPCMessage):
    method: str
    params: dict[str, Any] | None = None


# -----------------------------------------------------------------------------
# 錯誤物件
# -----------------------------------------------------------------------------

class JSONRPCError(BaseModel):
    code: int
    message: str
    data: Any | None = None


class JSONParseError(JSONRPCError):
    code: int = -32700
    message: str = "Invalid JSON payload"


class InvalidRequestError(JSONRPCError):
    code: int = -32600
    message: str = "Request payload validation error"


class MethodNotFoundError(JSONRPCError):
    code: int = -32601
    message: str = "Method not found"


class InvalidParamsError(JSONRPCError):
    code: int = -32602
    message: str = "Invalid parameters"


class InternalError(JSONRPCError):
    code: int = -32603
    message: str = "Internal error"


class TaskNotFoundError(JSONRPCError):
    code: int = -32001
    message: str = "Task not found"


class TaskNotCancelableError(JSONRPCError):
    code: int = -32002
    message: str = "Task cannot be canceled"


# -----------------------------------------------------------------------------
# 回應信封
# -----------------------------------------------------------------------------

class JSONRPCResponse(JSONRPCMessage):
    id: int | str | None = None
    result: Any | None = None
    error: JSONRPCError | None = None

    @model_validator(mode="after")
    def _result_xor_error(self):
        # result 為 None 是合法的（例如查無推播設定），但不可與 error 並存
        if self.error is not None and self.result is not None:
            raise ValueError("JSON-RPC 回應不可同時包含 result 與 error")
        return self

    def to_wire(self) -> dict[str, Any]:
        """
        轉為線上格式的 dict。

        成功回應一定帶有 `result` 鍵（即使其值為 null），
        錯誤回應則只帶 `error`。
        """
        body: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            body["error"] = self.error.model_dump(mode="json", exclude_none=True)
        else:
            result = self.result
            if isinstance(result, BaseModel):
                result = result.model_dump(mode="json", exclude_none=True)
            body["result"] = result
        return body


# -----------------------------------------------------------------------------
# 協議層例外：解碼失敗時攜帶錯誤物件與（可能讀到的）請求 ID
# -----------------------------------------------------------------------------

class A2AProtocolError(Exception):
    def __init__(self, error: JSONRPCError, request_id: int | str | None = None):
        super().__init__(error.message)
        self.error = error
        self.request_id = request_id

    def to_response(self) -> JSONRPCResponse:
        return JSONRPCResponse(id=self.request_id, error=self.error)
