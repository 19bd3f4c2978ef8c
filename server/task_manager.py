# =============================================================================
# server/task_manager.py
# =============================================================================
# 目的：
# 任務生命週期管理：建立 / 更新 / 查詢 / 取消任務、截斷歷史、觸發推播通知，
# 以及透過 SubscriberRegistry 將串流事件分送給所有訂閱者。
#
# 每個 on_* 方法對外都是「完整的」：不會讓例外穿出 manager，
# 所有失敗都會轉成 JSON-RPC 錯誤回應。
#
# 同一個任務 ID 的 tasks/send 與 tasks/sendSubscribe 會依序執行（per-task 鎖），
# 不同任務 ID 之間互不阻塞。
# =============================================================================

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator

from models.json_rpc import (
    InternalError,
    TaskNotCancelableError,
    TaskNotFoundError,
)
from models.request import (
    CancelTaskRequest,
    CancelTaskResponse,
    GetTaskPushNotificationRequest,
    GetTaskPushNotificationResponse,
    GetTaskRequest,
    GetTaskResponse,
    SendTaskRequest,
    SendTaskResponse,
    SendTaskStreamingRequest,
    SendTaskStreamingResponse,
    SetTaskPushNotificationRequest,
    SetTaskPushNotificationResponse,
    TaskResubscriptionRequest,
)
from models.task import (
    Task,
    TaskArtifactUpdateEvent,
    TaskPushNotificationConfig,
    TaskSendParams,
    TaskState,
    TaskStatus,
    TaskStatusUpdateEvent,
)
from server.fanout import SubscriberRegistry, Subscription
from server.notifications import NotificationPublisher
from server.storage.base import TaskNotFoundException, TaskStorage
from server.storage.memory import InMemoryTaskStorage
from server.task_handler import TaskHandler, run_handler

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# TaskManager：協議層呼叫的抽象介面
# -----------------------------------------------------------------------------

class TaskManager(ABC):
    @abstractmethod
    async def on_get_task(self, request: GetTaskRequest) -> GetTaskResponse:
        pass

    @abstractmethod
    async def on_send_task(self, request: SendTaskRequest) -> SendTaskResponse:
        pass

    @abstractmethod
    async def on_send_task_subscribe(
        self, request: SendTaskStreamingRequest
    ) -> AsyncIterator[SendTaskStreamingResponse]:
        pass

    @abstractmethod
    async def on_cancel_task(self, request: CancelTaskRequest) -> CancelTaskResponse:
        pass

    @abstractmethod
    async def on_set_task_push_notification(
        self, request: SetTaskPushNotificationRequest
    ) -> SetTaskPushNotificationResponse:
        pass

    @abstractmethod
    async def on_get_task_push_notification(
        self, request: GetTaskPushNotificationRequest
    ) -> GetTaskPushNotificationResponse:
        pass

    @abstractmethod
    async def on_resubscribe_to_task(
        self, request: TaskResubscriptionRequest
    ) -> AsyncIterator[SendTaskStreamingResponse]:
        pass

    async def aclose(self) -> None:
        pass


# -----------------------------------------------------------------------------
# 輔助函式
# -----------------------------------------------------------------------------

def truncate_history(task: Task, history_length: int | None) -> Task:
    """
    回傳只保留最後 `history_length` 則歷史訊息的任務副本。

    history_length 為 None 或大於等於歷史長度時，原樣回傳。
    儲存中的任務永遠不會被截斷。
    """
    if history_length is None or len(task.history) <= history_length:
        return task
    kept = task.history[len(task.history) - history_length:] if history_length > 0 else []
    return task.model_copy(update={"history": kept})


class _TaskLocks:
    """依任務 ID 配發 asyncio.Lock；沒有人持有或等待時即釋放。"""

    def __init__(self):
        self._entries: dict[str, list] = {}     # task_id -> [lock, 參考數]

    async def acquire(self, task_id: str) -> None:
        entry = self._entries.setdefault(task_id, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            await entry[0].acquire()
        except BaseException:
            self._drop(task_id)
            raise

    def release(self, task_id: str) -> None:
        self._entries[task_id][0].release()
        self._drop(task_id)

    def _drop(self, task_id: str) -> None:
        entry = self._entries[task_id]
        entry[1] -= 1
        if entry[1] == 0:
            del self._entries[task_id]

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._entries


async def _single(response: SendTaskStreamingResponse) -> AsyncIterator[SendTaskStreamingResponse]:
    yield response


# -----------------------------------------------------------------------------
# BasicTaskManager：以注入的 storage / handler / publisher 實作 TaskManager
# -----------------------------------------------------------------------------

class BasicTaskManager(TaskManager):
    """
    參數：
        task_handler: 實際處理任務的商業邏輯
        storage: 任務儲存後端；預設為記憶體後端
        notification_publisher: 推播通知發送器；None 表示不發送
        subscribers: 串流事件的分送註冊表
    """

    def __init__(
        self,
        task_handler: TaskHandler,
        storage: TaskStorage | None = None,
        notification_publisher: NotificationPublisher | None = None,
        subscribers: SubscriberRegistry | None = None,
    ):
        self.task_handler = task_handler
        self.storage = storage if storage is not None else InMemoryTaskStorage()
        self.notification_publisher = notification_publisher
        self.subscribers = subscribers if subscribers is not None else SubscriberRegistry()
        self._task_locks = _TaskLocks()
        self._flows: set[asyncio.Task] = set()

    # -------------------------------------------------------------------------
    # tasks/get
    # -------------------------------------------------------------------------
    async def on_get_task(self, request: GetTaskRequest) -> GetTaskResponse:
        params = request.params
        logger.info(f"Getting task {params.id}")
        try:
            task = await self.storage.fetch(params.id)
        except Exception:
            logger.exception(f"Error while getting task {params.id}")
            return GetTaskResponse(id=request.id, error=InternalError())

        if task is None:
            return GetTaskResponse(id=request.id, error=TaskNotFoundError())
        return GetTaskResponse(id=request.id, result=truncate_history(task, params.historyLength))

    # -------------------------------------------------------------------------
    # tasks/send
    # -------------------------------------------------------------------------
    async def on_send_task(self, request: SendTaskRequest) -> SendTaskResponse:
        params = request.params
        logger.info(f"Sending task {params.id}")

        await self._task_locks.acquire(params.id)
        try:
            # 1. 建立或更新 Task（附加訊息後立即儲存）
            task = await self.upsert_task(params)
            # 2. 儲存推播設定
            if params.pushNotification is not None:
                await self.storage.store_notification_config(params.id, params.pushNotification)
            # 3. 交給 handler 處理；失敗時儲存維持在處理前的狀態
            handled = await self._handle(task)
            # 4. 以 handler 的結果取代先前的狀態
            await self.storage.store(handled)
            # 5. 推播通知（失敗只記錄）
            await self._send_notification(handled)
            return SendTaskResponse(id=request.id, result=truncate_history(handled, params.historyLength))
        except Exception:
            logger.exception(f"Error while sending task {params.id}")
            return SendTaskResponse(id=request.id, error=InternalError())
        finally:
            self._task_locks.release(params.id)

    # -------------------------------------------------------------------------
    # tasks/sendSubscribe
    # -------------------------------------------------------------------------
    async def on_send_task_subscribe(
        self, request: SendTaskStreamingRequest
    ) -> AsyncIterator[SendTaskStreamingResponse]:
        params = request.params
        logger.info(f"Sending task with subscription {params.id}")

        await self._task_locks.acquire(params.id)
        try:
            task = await self.upsert_task(params)
            if params.pushNotification is not None:
                await self.storage.store_notification_config(params.id, params.pushNotification)
            # 先訂閱再開始發送事件，確保不漏掉第一個狀態事件
            subscription = self.subscribers.subscribe(params.id)
        except Exception:
            self._task_locks.release(params.id)
            logger.exception(f"Error while setting up task subscription {params.id}")
            return _single(SendTaskStreamingResponse(id=request.id, error=InternalError()))

        # 鎖會由背景流程在結束時釋放
        flow = asyncio.create_task(self._run_streaming_flow(task))
        self._flows.add(flow)
        flow.add_done_callback(self._flows.discard)
        return self._stream_events(request.id, subscription)

    async def _run_streaming_flow(self, task: Task) -> None:
        task_id = task.id
        try:
            await self.subscribers.deliver(
                task_id, TaskStatusUpdateEvent(id=task_id, status=task.status, final=False)
            )

            handled = await self._handle(task)
            # 不論有多少訂閱者，最終狀態只儲存一次
            await self.storage.store(handled)
            await self._send_notification(handled)

            for artifact in handled.artifacts or []:
                await self.subscribers.deliver(task_id, TaskArtifactUpdateEvent(id=task_id, artifact=artifact))

            await self.subscribers.deliver(
                task_id, TaskStatusUpdateEvent(id=task_id, status=handled.status, final=True)
            )
            self.subscribers.complete(task_id)
        except asyncio.CancelledError:
            self.subscribers.complete(task_id, InternalError())
            raise
        except Exception:
            logger.exception(f"Error while streaming task {task_id}")
            self.subscribers.complete(task_id, InternalError())
        finally:
            self._task_locks.release(task_id)

    async def _stream_events(
        self,
        request_id: int | str | None,
        subscription: Subscription,
        initial: TaskStatusUpdateEvent | None = None,
    ) -> AsyncIterator[SendTaskStreamingResponse]:
        try:
            if initial is not None:
                yield SendTaskStreamingResponse(id=request_id, result=initial)
            async for event in subscription:
                yield SendTaskStreamingResponse(id=request_id, result=event)
            if subscription.error is not None:
                yield SendTaskStreamingResponse(id=request_id, error=subscription.error)
        finally:
            # 連線中斷或正常結束都要取消訂閱
            await subscription.aclose()

    # -------------------------------------------------------------------------
    # tasks/cancel
    # -------------------------------------------------------------------------
    async def on_cancel_task(self, request: CancelTaskRequest) -> CancelTaskResponse:
        params = request.params
        logger.info(f"Cancelling task {params.id}")
        try:
            task = await self.storage.fetch(params.id)
        except Exception:
            logger.exception(f"Error while cancelling task {params.id}")
            return CancelTaskResponse(id=request.id, error=InternalError())

        if task is None:
            return CancelTaskResponse(id=request.id, error=TaskNotFoundError())
        # 任務一律不可取消
        return CancelTaskResponse(id=request.id, error=TaskNotCancelableError())

    # -------------------------------------------------------------------------
    # tasks/pushNotification/set, tasks/pushNotification/get
    # -------------------------------------------------------------------------
    async def on_set_task_push_notification(
        self, request: SetTaskPushNotificationRequest
    ) -> SetTaskPushNotificationResponse:
        params = request.params
        logger.info(f"Setting task push notification {params.id}")
        try:
            await self.storage.store_notification_config(params.id, params.pushNotificationConfig)
        except TaskNotFoundException:
            return SetTaskPushNotificationResponse(id=request.id, error=TaskNotFoundError())
        except Exception:
            logger.exception(f"Error setting push notification for task {params.id}")
            return SetTaskPushNotificationResponse(id=request.id, error=InternalError())
        return SetTaskPushNotificationResponse(id=request.id, result=params)

    async def on_get_task_push_notification(
        self, request: GetTaskPushNotificationRequest
    ) -> GetTaskPushNotificationResponse:
        params = request.params
        logger.info(f"Getting task push notification {params.id}")
        try:
            config = await self.storage.fetch_notification_config(params.id)
        except Exception:
            logger.exception(f"Error while getting push notification info for task {params.id}")
            return GetTaskPushNotificationResponse(id=request.id, error=InternalError())

        if config is None:
            return GetTaskPushNotificationResponse(id=request.id, result=None)
        return GetTaskPushNotificationResponse(
            id=request.id,
            result=TaskPushNotificationConfig(id=params.id, pushNotificationConfig=config),
        )

    # -------------------------------------------------------------------------
    # tasks/resubscribe
    # -------------------------------------------------------------------------
    async def on_resubscribe_to_task(
        self, request: TaskResubscriptionRequest
    ) -> AsyncIterator[SendTaskStreamingResponse]:
        params = request.params
        logger.info(f"Resubscribing to task {params.id}")
        try:
            task = await self.storage.fetch(params.id)
        except Exception:
            logger.exception(f"Error while resubscribing to task {params.id}")
            return _single(SendTaskStreamingResponse(id=request.id, error=InternalError()))

        if task is None:
            return _single(SendTaskStreamingResponse(id=request.id, error=TaskNotFoundError()))

        subscription = self.subscribers.subscribe(params.id)
        current = TaskStatusUpdateEvent(id=task.id, status=task.status, final=False)
        # 目前狀態只送給這個新的訂閱者，之後的事件來自同任務的其他流程
        return self._stream_events(request.id, subscription, initial=current)

    # -------------------------------------------------------------------------
    # 內部輔助
    # -------------------------------------------------------------------------
    async def upsert_task(self, params: TaskSendParams) -> Task:
        """
        建立或更新任務並立即儲存。

        - 新任務：狀態為 SUBMITTED，歷史只有這一則訊息
        - 既有任務：保留狀態與 artifacts，把訊息附加到歷史最後
        """
        existing = await self.storage.fetch(params.id)
        if existing is None:
            task = Task(
                id=params.id,
                sessionId=params.sessionId,
                status=TaskStatus(state=TaskState.SUBMITTED),
                history=[params.message],
                metadata=params.metadata,
            )
        else:
            update = {"history": [*existing.history, params.message]}
            # sessionId 未明確提供時沿用既有的值
            if "sessionId" in params.model_fields_set or existing.sessionId is None:
                update["sessionId"] = params.sessionId
            if params.metadata is not None:
                update["metadata"] = params.metadata
            task = existing.model_copy(update=update)

        await self.storage.store(task)
        return task

    async def _handle(self, task: Task) -> Task:
        # 傳副本給 handler，避免 handler 修改到呼叫端持有的物件
        handled = await run_handler(self.task_handler, task.model_copy(deep=True))
        if handled.id != task.id:
            raise ValueError(f"TaskHandler changed task id from {task.id} to {handled.id}")
        return handled

    async def _send_notification(self, task: Task) -> None:
        if self.notification_publisher is None:
            return
        try:
            config = await self.storage.fetch_notification_config(task.id)
            if config is not None:
                self.notification_publisher.publish(task, config)
        except Exception:
            logger.exception(f"Error while publishing notification for task {task.id}")

    async def aclose(self) -> None:
        """等待進行中的串流流程結束，再關閉推播發送器與儲存後端。"""
        if self._flows:
            await asyncio.gather(*list(self._flows), return_exceptions=True)
        if self.notification_publisher is not None:
            await self.notification_publisher.aclose()
        await self.storage.close()
