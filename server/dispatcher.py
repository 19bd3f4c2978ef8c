# =============================================================================
# server/dispatcher.py
# =============================================================================
# 目的：
# 協議分派：原始請求 → decode_request() → 對應的 TaskManager 方法 → 回應信封。
#
# - 一般方法回傳 JSONRPCResponse
# - tasks/sendSubscribe 與 tasks/resubscribe 回傳事件串流（async iterator）
# - 協議錯誤只透過回應信封傳達，與傳輸層的狀態碼無關
# =============================================================================

import logging
from typing import Any, AsyncIterator, Union

from models.json_rpc import A2AProtocolError, InternalError, JSONRPCResponse
from models.request import (
    CancelTaskRequest,
    GetTaskPushNotificationRequest,
    GetTaskRequest,
    SendTaskRequest,
    SendTaskStreamingRequest,
    SendTaskStreamingResponse,
    SetTaskPushNotificationRequest,
    TaskResubscriptionRequest,
    decode_request,
)
from server.task_manager import TaskManager

logger = logging.getLogger(__name__)

DispatchResult = Union[JSONRPCResponse, AsyncIterator[SendTaskStreamingResponse]]


class A2ADispatcher:
    def __init__(self, task_manager: TaskManager):
        self.task_manager = task_manager

    async def handle(self, payload: bytes | str | dict[str, Any]) -> DispatchResult:
        """解碼並分派一個原始請求；任何失敗都會轉為錯誤回應。"""
        try:
            request = decode_request(payload)
        except A2AProtocolError as e:
            logger.warning(f"Rejected request: {e.error.code} {e.error.message}")
            return e.to_response()
        return await self.dispatch(request)

    async def dispatch(self, request) -> DispatchResult:
        manager = self.task_manager
        try:
            if isinstance(request, GetTaskRequest):
                return await manager.on_get_task(request)
            if isinstance(request, SendTaskRequest):
                return await manager.on_send_task(request)
            if isinstance(request, SendTaskStreamingRequest):
                return await manager.on_send_task_subscribe(request)
            if isinstance(request, CancelTaskRequest):
                return await manager.on_cancel_task(request)
            if isinstance(request, SetTaskPushNotificationRequest):
                return await manager.on_set_task_push_notification(request)
            if isinstance(request, GetTaskPushNotificationRequest):
                return await manager.on_get_task_push_notification(request)
            if isinstance(request, TaskResubscriptionRequest):
                return await manager.on_resubscribe_to_task(request)
            raise TypeError(f"Unexpected request type: {type(request).__name__}")
        except Exception:
            # 不洩漏內部細節給呼叫端
            logger.exception(f"Unhandled error while dispatching {getattr(request, 'method', '?')}")
            return JSONRPCResponse(id=getattr(request, "id", None), error=InternalError())


def is_stream(result: DispatchResult) -> bool:
    return not isinstance(result, JSONRPCResponse)
