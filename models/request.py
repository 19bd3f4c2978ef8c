# =============================================================================
# models/request.py
# =============================================================================
# 目的：
# 此模組定義 A2A（Agent2Agent）協議中使用的結構化請求與回應模型。
#
# 每個請求都遵循 JSON-RPC 2.0 格式，並以 `method` 欄位區分型別。
# `A2ARequest` 是一個封閉的判別聯集（discriminated union），
# `decode_request()` 是唯一的解碼步驟：原始內容 → 具體的請求型別。
#
# 包含模型：
# - GetTaskRequest / SendTaskRequest / SendTaskStreamingRequest
# - CancelTaskRequest
# - SetTaskPushNotificationRequest / GetTaskPushNotificationRequest
# - TaskResubscriptionRequest
# - 各請求對應的回應模型
# =============================================================================

# -----------------------------------------------------------------------------
# 匯入
# -----------------------------------------------------------------------------

import json
from typing import Annotated, Any, Literal, Union

from pydantic import Field, ValidationError
from pydantic.type_adapter import TypeAdapter      # 執行時判別聯集解析

# JSON-RPC 請求與回應的基礎模型
from models.json_rpc import (
    A2AProtocolError,
    InvalidParamsError,
    InvalidRequestError,
    JSONParseError,
    JSONRPCRequest,
    JSONRPCResponse,
    MethodNotFoundError,
)

# 任務相關的參數與回傳模型
from models.task import (
    Task,
    TaskArtifactUpdateEvent,
    TaskIdParams,
    TaskPushNotificationConfig,
    TaskQueryParams,
    TaskSendParams,
    TaskStatusUpdateEvent,
)


# -----------------------------------------------------------------------------
# 請求模型
# -----------------------------------------------------------------------------

class GetTaskRequest(JSONRPCRequest):
    method: Literal["tasks/get"] = "tasks/get"
    params: TaskQueryParams


class SendTaskRequest(JSONRPCRequest):
    method: Literal["tasks/send"] = "tasks/send"
    params: TaskSendParams


class SendTaskStreamingRequest(JSONRPCRequest):
    method: Literal["tasks/sendSubscribe"] = "tasks/sendSubscribe"
    params: TaskSendParams


class CancelTaskRequest(JSONRPCRequest):
    method: Literal["tasks/cancel"] = "tasks/cancel"
    params: TaskIdParams


class SetTaskPushNotificationRequest(JSONRPCRequest):
    method: Literal["tasks/pushNotification/set"] = "tasks/pushNotification/set"
    params: TaskPushNotificationConfig


class GetTaskPushNotificationRequest(JSONRPCRequest):
    method: Literal["tasks/pushNotification/get"] = "tasks/pushNotification/get"
    params: TaskIdParams


class TaskResubscriptionRequest(JSONRPCRequest):
    method: Literal["tasks/resubscribe"] = "tasks/resubscribe"
    params: TaskQueryParams


# -----------------------------------------------------------------------------
# A2ARequest：支援的請求型別判別聯集
# -----------------------------------------------------------------------------

_REQUEST_TYPES = (
    GetTaskRequest,
    SendTaskRequest,
    SendTaskStreamingRequest,
    CancelTaskRequest,
    SetTaskPushNotificationRequest,
    GetTaskPushNotificationRequest,
    TaskResubscriptionRequest,
)

A2ARequest = TypeAdapter(
    Annotated[
        Union[_REQUEST_TYPES],
        Field(discriminator="method"),
    ]
)

# 封閉的方法集合，不在其中的一律回 MethodNotFound
METHODS = frozenset(cls.model_fields["method"].default for cls in _REQUEST_TYPES)

# 回應為事件串流的方法
STREAMING_METHODS = frozenset({
    SendTaskStreamingRequest.model_fields["method"].default,
    TaskResubscriptionRequest.model_fields["method"].default,
})


# -----------------------------------------------------------------------------
# 回應模型
# -----------------------------------------------------------------------------

class GetTaskResponse(JSONRPCResponse):
    result: Task | None = None


class SendTaskResponse(JSONRPCResponse):
    result: Task | None = None


class CancelTaskResponse(JSONRPCResponse):
    result: Task | None = None


class SetTaskPushNotificationResponse(JSONRPCResponse):
    result: TaskPushNotificationConfig | None = None


class GetTaskPushNotificationResponse(JSONRPCResponse):
    result: TaskPushNotificationConfig | None = None


class SendTaskStreamingResponse(JSONRPCResponse):
    result: TaskStatusUpdateEvent | TaskArtifactUpdateEvent | None = None


# -----------------------------------------------------------------------------
# decode_request()：原始請求 → 具體請求型別
# -----------------------------------------------------------------------------

def _read_request_id(body: dict[str, Any]) -> int | str | None:
    request_id = body.get("id")
    if isinstance(request_id, bool) or not isinstance(request_id, (int, str)):
        return None
    return request_id


def decode_request(payload: bytes | str | dict[str, Any]):
    """
    將原始請求內容解碼為 A2A 請求物件。

    參數：
        payload: HTTP body（bytes/str）或已解析的 dict

    回傳：
        `A2ARequest` 聯集中的其中一種請求

    例外：
        A2AProtocolError: 內含對應的 JSON-RPC 錯誤
            - 無法解析的 JSON → JSONParseError (-32700)
            - 不是 JSON-RPC 2.0 物件 → InvalidRequestError (-32600)
            - 未知的 method → MethodNotFoundError (-32601)
            - params 驗證失敗 → InvalidParamsError (-32602)
    """
    if isinstance(payload, (bytes, bytearray, str)):
        try:
            body = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise A2AProtocolError(JSONParseError(data=str(e))) from e
    else:
        body = payload

    if not isinstance(body, dict):
        raise A2AProtocolError(InvalidRequestError())

    request_id = _read_request_id(body)
    if "id" in body and body["id"] is not None and request_id is None:
        raise A2AProtocolError(InvalidRequestError(data="id 必須是字串或整數"))

    method = body.get("method")
    if body.get("jsonrpc") != "2.0" or not isinstance(method, str):
        raise A2AProtocolError(InvalidRequestError(), request_id)
    if method not in METHODS:
        raise A2AProtocolError(MethodNotFoundError(data={"method": method}), request_id)

    if "id" not in body:
        # 缺少 id 時保持為 None，不使用客戶端建立請求時的隨機預設值
        body = {**body, "id": None}

    try:
        return A2ARequest.validate_python(body)
    except ValidationError as e:
        details = [
            {"loc": [str(part) for part in err["loc"]], "msg": err["msg"]}
            for err in e.errors()
        ]
        raise A2AProtocolError(InvalidParamsError(data=details), request_id) from e
