# =============================================================================
# server/storage/base.py
# =============================================================================
# 目的：
# 定義任務儲存的契約（TaskStorage）與啟動時選擇後端的方式。
#
# - TaskStorage：upsert / 查詢任務，以及每個任務的推播通知設定
# - TaskStorageProvider：依環境決定是否能提供某種後端
# - load_task_storage()：依序詢問 provider，第一個非 None 的結果勝出，
#   全部落空時退回記憶體後端
# =============================================================================

import logging
from abc import ABC, abstractmethod
from typing import Iterable

from models.task import PushNotificationConfig, Task

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# 例外
# -----------------------------------------------------------------------------

class TaskNotFoundException(LookupError):
    """找不到任務（例如替不存在的任務設定推播通知）。"""

    def __init__(self, task_id: str):
        super().__init__(f"Task not found for {task_id}")
        self.task_id = task_id


class StorageError(RuntimeError):
    """後端失敗，例如網路錯誤或資料無法反序列化。"""


# -----------------------------------------------------------------------------
# 儲存契約
# -----------------------------------------------------------------------------

class TaskStorage(ABC):
    """
    任務儲存契約。實作必須能被多個並行的請求同時呼叫；
    同一個 key 採 last-write-wins。
    """

    @abstractmethod
    async def store(self, task: Task) -> None:
        """依 task.id upsert 任務。"""

    @abstractmethod
    async def fetch(self, task_id: str) -> Task | None:
        """取得任務；不存在時回傳 None。"""

    @abstractmethod
    async def store_notification_config(self, task_id: str, config: PushNotificationConfig) -> None:
        """
        儲存任務的推播通知設定。

        例外：
            TaskNotFoundException: 該任務 ID 尚未存在
        """

    @abstractmethod
    async def fetch_notification_config(self, task_id: str) -> PushNotificationConfig | None:
        """取得推播通知設定；未設定時回傳 None。"""

    async def close(self) -> None:
        pass


class TaskStorageProvider(ABC):
    @abstractmethod
    def provide(self) -> TaskStorage | None:
        """回傳可用的儲存後端；條件不足時回傳 None。"""


def load_task_storage(providers: Iterable[TaskStorageProvider] = ()) -> TaskStorage:
    """
    依序詢問 provider，回傳第一個可用的儲存後端。
    全部都無法提供時，使用記憶體後端（重啟後資料不保留）。
    """
    for provider in providers:
        storage = provider.provide()
        if storage is not None:
            logger.info(f"Using task storage {type(storage).__name__} from {type(provider).__name__}")
            return storage

    from server.storage.memory import InMemoryTaskStorage

    logger.info("No task storage provider available, falling back to InMemoryTaskStorage")
    return InMemoryTaskStorage()
