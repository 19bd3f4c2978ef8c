# =============================================================================
# client/client.py
# =============================================================================
# 目的：
# 此檔案定義了一個可重複使用、非同步的 Python client，用於與 Agent2Agent (A2A) 伺服器互動。
#
# 支援：
# - 發送任務並接收回應（tasks/send）
# - 查詢、取消任務（tasks/get、tasks/cancel）
# - 設定 / 查詢推播通知（tasks/pushNotification/set|get）
# - 以 SSE 串流接收任務事件（tasks/sendSubscribe、tasks/resubscribe）
# - 取得代理的 AgentCard
# =============================================================================

# -----------------------------------------------------------------------------
# 匯入
# -----------------------------------------------------------------------------

import json
from typing import Any, AsyncIterator

import httpx                                # 非同步 HTTP client，用於發送網路請求
from httpx_sse import aconnect_sse          # httpx 的 SSE 擴充，用於串流回應

# 支援的請求型別
from models.request import (
    CancelTaskRequest,
    GetTaskPushNotificationRequest,
    GetTaskRequest,
    SendTaskRequest,
    SendTaskStreamingRequest,
    SendTaskStreamingResponse,
    SetTaskPushNotificationRequest,
    TaskResubscriptionRequest,
)

# JSON-RPC 2.0 的基礎請求格式與錯誤物件
from models.json_rpc import JSONRPCError, JSONRPCRequest

# 任務結果與代理身份的模型
from models.agent import AgentCard
from models.task import Task, TaskPushNotificationConfig


# -----------------------------------------------------------------------------
# 自訂錯誤類別
# -----------------------------------------------------------------------------

class A2AClientHTTPError(Exception):
    """當 HTTP 請求失敗（如伺服器回應異常）時拋出"""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"HTTP Error {status_code}: {message}")
        self.status_code = status_code


class A2AClientJSONError(Exception):
    """當回應不是有效的 JSON 時拋出"""


class A2AClientRPCError(Exception):
    """當伺服器回傳 JSON-RPC 錯誤時拋出"""

    def __init__(self, error: JSONRPCError):
        super().__init__(f"JSON-RPC Error {error.code}: {error.message}")
        self.error = error


# -----------------------------------------------------------------------------
# A2AClient：與 A2A 代理溝通的主要介面
# -----------------------------------------------------------------------------

class A2AClient:
    def __init__(
        self,
        agent_card: AgentCard | None = None,
        url: str | None = None,
        timeout: float = 30.0,
        httpx_client: httpx.AsyncClient | None = None,
    ):
        """
        使用 agent card 或直接 URL 初始化 client。
        兩者必須擇一提供。

        httpx_client 可由外部提供（例如共用連線池，或測試時注入 MockTransport）。
        """
        if agent_card:
            self.url = agent_card.url
        elif url:
            self.url = url
        else:
            raise ValueError("必須提供 agent_card 或 url 其中之一")
        self.timeout = timeout
        self.httpx_client = httpx_client

    # -------------------------------------------------------------------------
    # send_task：發送新任務（或延續既有任務）給代理
    # -------------------------------------------------------------------------
    async def send_task(self, payload: dict[str, Any]) -> Task:
        request = SendTaskRequest(params=payload)
        response = await self._send_request(request)
        return Task.model_validate(self._result(response))

    # -------------------------------------------------------------------------
    # get_task：查詢先前發送任務的狀態或歷史
    # -------------------------------------------------------------------------
    async def get_task(self, payload: dict[str, Any]) -> Task:
        request = GetTaskRequest(params=payload)
        response = await self._send_request(request)
        return Task.model_validate(self._result(response))

    async def cancel_task(self, payload: dict[str, Any]) -> Task:
        request = CancelTaskRequest(params=payload)
        response = await self._send_request(request)
        return Task.model_validate(self._result(response))

    # -------------------------------------------------------------------------
    # 推播通知設定
    # -------------------------------------------------------------------------
    async def set_task_callback(self, payload: dict[str, Any]) -> TaskPushNotificationConfig:
        request = SetTaskPushNotificationRequest(params=payload)
        response = await self._send_request(request)
        return TaskPushNotificationConfig.model_validate(self._result(response))

    async def get_task_callback(self, payload: dict[str, Any]) -> TaskPushNotificationConfig | None:
        request = GetTaskPushNotificationRequest(params=payload)
        response = await self._send_request(request)
        result = self._result(response)
        return TaskPushNotificationConfig.model_validate(result) if result is not None else None

    # -------------------------------------------------------------------------
    # 串流：每個 SSE 事件是一個 SendTaskStreamingResponse
    # -------------------------------------------------------------------------
    async def send_task_streaming(self, payload: dict[str, Any]) -> AsyncIterator[SendTaskStreamingResponse]:
        request = SendTaskStreamingRequest(params=payload)
        async for response in self._stream_request(request):
            yield response

    async def resubscribe(self, payload: dict[str, Any]) -> AsyncIterator[SendTaskStreamingResponse]:
        request = TaskResubscriptionRequest(params=payload)
        async for response in self._stream_request(request):
            yield response

    # -------------------------------------------------------------------------
    # get_agent_card：讀取 /.well-known/agent.json
    # -------------------------------------------------------------------------
    async def get_agent_card(self) -> AgentCard:
        url = self.url.rstrip("/") + "/.well-known/agent.json"
        async with self._client() as client:
            try:
                response = await client.get(url, timeout=self.timeout)
                response.raise_for_status()
                return AgentCard.model_validate(response.json())
            except httpx.HTTPStatusError as e:
                raise A2AClientHTTPError(e.response.status_code, str(e)) from e
            except json.JSONDecodeError as e:
                raise A2AClientJSONError(str(e)) from e

    # -------------------------------------------------------------------------
    # 內部輔助函式
    # -------------------------------------------------------------------------
    def _client(self):
        if self.httpx_client is not None:
            return _Borrowed(self.httpx_client)
        return httpx.AsyncClient()

    @staticmethod
    def _result(response: dict[str, Any]) -> Any:
        if response.get("error") is not None:
            raise A2AClientRPCError(JSONRPCError.model_validate(response["error"]))
        return response.get("result")

    async def _send_request(self, request: JSONRPCRequest) -> dict[str, Any]:
        async with self._client() as client:
            try:
                response = await client.post(
                    self.url,
                    json=request.model_dump(mode="json", exclude_none=True),  # 將 Pydantic 模型轉為 JSON
                    timeout=self.timeout,
                )
                response.raise_for_status()     # 若狀態碼為 4xx/5xx 則拋出錯誤
                return response.json()          # 回傳解析後的 dict

            except httpx.HTTPStatusError as e:
                raise A2AClientHTTPError(e.response.status_code, str(e)) from e

            except json.JSONDecodeError as e:
                raise A2AClientJSONError(str(e)) from e

    async def _stream_request(self, request: JSONRPCRequest) -> AsyncIterator[SendTaskStreamingResponse]:
        async with self._client() as client:
            try:
                async with aconnect_sse(
                    client,
                    "POST",
                    self.url,
                    json=request.model_dump(mode="json", exclude_none=True),
                    timeout=None,
                ) as event_source:
                    response = event_source.response
                    response.raise_for_status()
                    # 請求在解碼階段就被拒絕時，伺服器回傳一般的 JSON 錯誤回應
                    if "text/event-stream" not in response.headers.get("content-type", ""):
                        await response.aread()
                        yield SendTaskStreamingResponse.model_validate(response.json())
                        return
                    async for sse in event_source.aiter_sse():
                        yield SendTaskStreamingResponse.model_validate(json.loads(sse.data))
            except httpx.HTTPStatusError as e:
                raise A2AClientHTTPError(e.response.status_code, str(e)) from e
            except json.JSONDecodeError as e:
                raise A2AClientJSONError(str(e)) from e


class _Borrowed:
    """讓外部提供的 httpx client 也能用 `async with`，但離開時不關閉。"""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def __aenter__(self) -> httpx.AsyncClient:
        return self.client

    async def __aexit__(self, *exc_info) -> None:
        return None
