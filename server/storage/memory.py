# =============================================================================
# server/storage/memory.py
# =============================================================================
# 記憶體型的任務儲存：單一行程內有效，重啟後資料不保留。
# =============================================================================

import asyncio

from models.task import PushNotificationConfig, Task
from server.storage.base import TaskNotFoundException, TaskStorage


class InMemoryTaskStorage(TaskStorage):
    def __init__(self):
        self.tasks: dict[str, Task] = {}
        self.push_notification_infos: dict[str, PushNotificationConfig] = {}
        self.lock = asyncio.Lock()

    # 存入與取出都做深拷貝，呼叫端修改物件不會影響已儲存的狀態
    async def store(self, task: Task) -> None:
        async with self.lock:
            self.tasks[task.id] = task.model_copy(deep=True)

    async def fetch(self, task_id: str) -> Task | None:
        async with self.lock:
            task = self.tasks.get(task_id)
            return task.model_copy(deep=True) if task is not None else None

    async def store_notification_config(self, task_id: str, config: PushNotificationConfig) -> None:
        async with self.lock:
            if task_id not in self.tasks:
                raise TaskNotFoundException(task_id)
            self.push_notification_infos[task_id] = config.model_copy(deep=True)

    async def fetch_notification_config(self, task_id: str) -> PushNotificationConfig | None:
        async with self.lock:
            config = self.push_notification_infos.get(task_id)
            return config.model_copy(deep=True) if config is not None else None
