# =============================================================================
# server/task_handler.py
# =============================================================================
# 目的：
# 定義 TaskHandler：由使用者提供的商業邏輯，給定一個任務，回傳更新後的任務。
#
# 同步的 handler 會在工作執行緒中執行，避免阻塞事件迴圈；
# 回傳 coroutine 的 handler 則直接 await。
# =============================================================================

import asyncio
import inspect
from typing import Awaitable, Protocol, runtime_checkable

from models.task import Task


@runtime_checkable
class TaskHandler(Protocol):
    def handle(self, task: Task) -> Task | Awaitable[Task]:
        ...


async def run_handler(handler: TaskHandler, task: Task) -> Task:
    if inspect.iscoroutinefunction(handler.handle):
        result = await handler.handle(task)
    else:
        result = await asyncio.to_thread(handler.handle, task)
        # 在執行緒中執行的函式也可能回傳 awaitable
        if inspect.isawaitable(result):
            result = await result

    if not isinstance(result, Task):
        raise TypeError(f"TaskHandler must return a Task, got {type(result).__name__}")
    return result
