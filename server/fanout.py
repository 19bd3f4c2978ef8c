# =============================================================================
# server/fanout.py
# =============================================================================
# 目的：
# 每個任務 ID 對應一個多播頻道，將串流事件依發佈順序送給所有目前的訂閱者。
#
# - subscribe()：為任務 ID 建立訂閱（Subscription），可用 `async for` 讀取事件
# - unsubscribe()：移除訂閱；最後一個訂閱者離開時釋放頻道
# - publish()：把事件送給所有訂閱者；沒有頻道時直接忽略
# - deliver()：publish() 的 async 版本，緩衝區已滿時先短暫等待訂閱者讀取
# - complete()：結束該任務 ID 的所有訂閱（可附帶終止錯誤）
#
# 註冊表由事件迴圈獨佔：除了 deliver() 的等待之外，所有方法都不會在中途交出控制權，
# 因此在同一個迴圈內的並行流程之間操作天然是原子的。
# =============================================================================

import asyncio
import logging

from models.json_rpc import InternalError, JSONRPCError
from models.task import TaskEvent

logger = logging.getLogger(__name__)

DEFAULT_MAX_BUFFER = 256
DEFAULT_OVERFLOW_GRACE = 1.0

# 佇列中的結束標記
_END = object()


class Subscription:
    """
    單一訂閱者的事件來源。

    事件放在該訂閱者自己的佇列中，因此慢速的訂閱者不會拖慢其他人；
    佇列累積超過 `max_buffer` 筆尚未讀取的事件時，此訂閱會被中斷，
    讀完已緩衝的事件後以 `error` 結束。
    """

    def __init__(self, registry: "SubscriberRegistry", task_id: str, max_buffer: int):
        self.task_id = task_id
        self.error: JSONRPCError | None = None
        self._registry = registry
        self._max_buffer = max_buffer
        self._queue: asyncio.Queue = asyncio.Queue()
        # 每讀走一筆事件就設定，讓等待中的發佈者知道有空間了
        self._space = asyncio.Event()
        self._closed = False
        self._done = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def full(self) -> bool:
        return self._queue.qsize() >= self._max_buffer

    async def _wait_for_space(self, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not self._closed and self.full:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return
            self._space.clear()
            try:
                await asyncio.wait_for(self._space.wait(), remaining)
            except asyncio.TimeoutError:
                return

    def _offer(self, event: TaskEvent) -> bool:
        if self._closed:
            return False
        if self.full:
            return False
        self._queue.put_nowait(event)
        return True

    def _close(self, error: JSONRPCError | None = None) -> None:
        if self._closed:
            return
        self._closed = True
        self.error = error
        self._queue.put_nowait(_END)
        self._space.set()

    def __aiter__(self):
        return self

    async def __anext__(self) -> TaskEvent:
        if self._done:
            raise StopAsyncIteration
        item = await self._queue.get()
        self._space.set()
        if item is _END:
            self._done = True
            self._registry.unsubscribe(self.task_id, self)
            raise StopAsyncIteration
        return item

    async def aclose(self) -> None:
        """訂閱者主動離開（例如連線中斷）。"""
        self._done = True
        self._closed = True
        self._space.set()
        self._registry.unsubscribe(self.task_id, self)


class SubscriberRegistry:
    """
    參數：
        max_buffer: 每個訂閱者最多可累積的未讀事件數
        overflow_grace: deliver() 遇到緩衝區已滿的訂閱者時，最多等待幾秒再中斷它
    """

    def __init__(self, max_buffer: int = DEFAULT_MAX_BUFFER, overflow_grace: float = DEFAULT_OVERFLOW_GRACE):
        if max_buffer < 1:
            raise ValueError("max_buffer 必須大於 0")
        self.max_buffer = max_buffer
        self.overflow_grace = overflow_grace
        self._channels: dict[str, list[Subscription]] = {}

    def subscribe(self, task_id: str) -> Subscription:
        subscription = Subscription(self, task_id, self.max_buffer)
        self._channels.setdefault(task_id, []).append(subscription)
        logger.info(f"Added subscriber for task {task_id}")
        return subscription

    def unsubscribe(self, task_id: str, subscription: Subscription) -> None:
        subscribers = self._channels.get(task_id)
        if not subscribers or subscription not in subscribers:
            # complete() 已經釋放過頻道，或重複呼叫
            logger.debug(f"Subscriber for task {task_id} already detached")
            return
        subscribers.remove(subscription)
        logger.info(f"Removed subscriber for task {task_id}")
        if not subscribers:
            del self._channels[task_id]
            logger.info(f"Released channel for task {task_id}")

    def publish(self, task_id: str, event: TaskEvent) -> int:
        """
        將事件送給該任務 ID 的所有訂閱者。

        回傳：
            int: 成功放入緩衝區的訂閱者數量
        """
        subscribers = self._channels.get(task_id)
        if not subscribers:
            logger.debug(f"No subscribers for task {task_id}, dropping {type(event).__name__}")
            return 0

        delivered = 0
        # 以快照迭代，避免中斷慢速訂閱者時修改到正在走訪的列表
        for subscription in list(subscribers):
            if subscription._offer(event):
                delivered += 1
                continue
            if subscription.closed:
                continue
            logger.warning(
                f"Subscriber for task {task_id} fell {self.max_buffer} events behind, disconnecting"
            )
            subscription._close(InternalError(message="Subscriber buffer overflow"))
            self.unsubscribe(task_id, subscription)
        logger.debug(f"Sent {type(event).__name__} to {delivered} subscribers for task {task_id}")
        return delivered

    async def deliver(self, task_id: str, event: TaskEvent) -> int:
        """
        供長時間產生事件的流程使用的 publish()。

        先讓出控制權給訂閱者讀取；緩衝區已滿的訂閱者最多等待 `overflow_grace` 秒，
        仍然沒有空間才會在 publish() 中被中斷。
        """
        await asyncio.sleep(0)
        for subscription in list(self._channels.get(task_id, [])):
            if subscription.full:
                await subscription._wait_for_space(self.overflow_grace)
        return self.publish(task_id, event)

    def complete(self, task_id: str, error: JSONRPCError | None = None) -> None:
        """結束目前附加在此任務 ID 上的所有訂閱，並釋放頻道。"""
        subscribers = self._channels.pop(task_id, [])
        for subscription in subscribers:
            subscription._close(error)
        if subscribers:
            logger.info(f"Completed {len(subscribers)} subscribers for task {task_id}")

    def has_channel(self, task_id: str) -> bool:
        return task_id in self._channels

    def subscriber_count(self, task_id: str) -> int:
        return len(self._channels.get(task_id, []))
