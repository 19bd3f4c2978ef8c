# =============================================================================
# server/notifications.py
# =============================================================================
# 目的：
# 推播通知：任務更新後，以 HTTP POST 將完整的任務內容送到客戶端提供的 webhook。
#
# 傳送是盡力而為（best-effort）：
# - 在背景執行，不阻塞 tasks/send 的回應
# - 失敗只記錄日誌，不重試，也不會回報給呼叫端
# =============================================================================

import asyncio
import logging
from abc import ABC, abstractmethod

import httpx

from models.task import PushNotificationConfig, Task

logger = logging.getLogger(__name__)


class NotificationPublisher(ABC):
    @abstractmethod
    def publish(self, task: Task, config: PushNotificationConfig) -> None:
        """排程送出通知後立即返回。"""

    async def aclose(self) -> None:
        pass


class HttpNotificationPublisher(NotificationPublisher):
    """
    以 httpx 非同步送出 webhook。

    參數：
        client: 共用的 httpx.AsyncClient；未提供時自行建立並在 aclose() 時關閉
        timeout: 每次請求的逾時秒數
    """

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 10.0):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.timeout = timeout
        # 保留背景工作的參考，避免被垃圾回收
        self._pending: set[asyncio.Task] = set()

    def publish(self, task: Task, config: PushNotificationConfig) -> None:
        delivery = asyncio.create_task(self._deliver(task, config))
        self._pending.add(delivery)
        delivery.add_done_callback(self._pending.discard)

    async def _deliver(self, task: Task, config: PushNotificationConfig) -> None:
        headers = {"Content-Type": "application/json"}
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"

        try:
            response = await self.client.post(
                config.url,
                json=task.model_dump(mode="json", exclude_none=True),
                headers=headers,
                timeout=self.timeout,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            # InvalidURL 不是 HTTPError 的子類別，webhook URL 格式錯誤時會由它拋出
            logger.error(f"Error sending notification for task {task.id} to {config.url}: {e}")
            return
        except Exception:
            # 背景工作中的例外沒有人會取回，至少留下紀錄
            logger.exception(f"Unexpected error sending notification for task {task.id} to {config.url}")
            return

        if response.is_success:
            logger.info(f"Successfully sent notification for task {task.id} to {config.url}")
        else:
            logger.warning(
                f"Failed to send notification for task {task.id} to {config.url}. "
                f"Status code: {response.status_code}, Response: {response.text[:200]}"
            )

    async def wait_pending(self) -> None:
        """等待目前排程中的通知全部送出（或失敗）。"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.wait_pending()
        if self._owns_client:
            await self.client.aclose()
