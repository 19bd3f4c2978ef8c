# =============================================================================
# server/storage/redis_store.py
# =============================================================================
# 目的：
# 以 Redis 作為持久化的任務儲存後端。
#
# - 任務存於 `task:<id>`，推播設定存於 `notification:<id>`，值為 JSON
# - 網路錯誤與資料損毀一律轉為 StorageError
# - EnvRedisStorageProvider 依環境變數決定是否建立連線
# =============================================================================

import logging
import os

import redis.asyncio as redis
from pydantic import ValidationError
from redis.exceptions import RedisError

from models.task import PushNotificationConfig, Task
from server.storage.base import StorageError, TaskNotFoundException, TaskStorage, TaskStorageProvider

logger = logging.getLogger(__name__)

TASK_PREFIX = "task:"
NOTIFICATION_PREFIX = "notification:"


class RedisTaskStorage(TaskStorage):
    """
    Redis 任務儲存。

    參數：
        client: `redis.asyncio.Redis` 連線（或相容物件）
        key_prefix: 所有 key 前面的命名空間，方便多個代理共用同一個 Redis
    """

    def __init__(self, client: redis.Redis, key_prefix: str = ""):
        self.client = client
        self.key_prefix = key_prefix
        logger.info("RedisTaskStorage initialized")

    def _task_key(self, task_id: str) -> str:
        return f"{self.key_prefix}{TASK_PREFIX}{task_id}"

    def _notification_key(self, task_id: str) -> str:
        return f"{self.key_prefix}{NOTIFICATION_PREFIX}{task_id}"

    async def _get(self, key: str) -> str | None:
        try:
            value = await self.client.get(key)
        except RedisError as e:
            raise StorageError(f"Failed to read {key}") from e
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def _set(self, key: str, value: str) -> None:
        try:
            await self.client.set(key, value)
        except RedisError as e:
            raise StorageError(f"Failed to write {key}") from e

    async def store(self, task: Task) -> None:
        await self._set(self._task_key(task.id), task.model_dump_json(exclude_none=True))
        logger.debug(f"Stored task with ID: {task.id}")

    async def fetch(self, task_id: str) -> Task | None:
        raw = await self._get(self._task_key(task_id))
        if raw is None:
            logger.debug(f"Task not found with ID: {task_id}")
            return None
        try:
            return Task.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Failed to deserialize task: {task_id}")
            raise StorageError(f"Failed to deserialize task {task_id}") from e

    async def store_notification_config(self, task_id: str, config: PushNotificationConfig) -> None:
        if await self.fetch(task_id) is None:
            raise TaskNotFoundException(task_id)
        await self._set(self._notification_key(task_id), config.model_dump_json(exclude_none=True))
        logger.debug(f"Stored notification config for task ID: {task_id}")

    async def fetch_notification_config(self, task_id: str) -> PushNotificationConfig | None:
        raw = await self._get(self._notification_key(task_id))
        if raw is None:
            return None
        try:
            return PushNotificationConfig.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Failed to deserialize notification config for task: {task_id}")
            raise StorageError(f"Failed to deserialize notification config {task_id}") from e

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("RedisTaskStorage closed")


# -----------------------------------------------------------------------------
# EnvRedisStorageProvider：從環境變數建立 Redis 後端
# -----------------------------------------------------------------------------

REDIS_HOST_ENV = "A2A_STORAGE_REDIS_HOST"
REDIS_PORT_ENV = "A2A_STORAGE_REDIS_PORT"
REDIS_USERNAME_ENV = "A2A_STORAGE_REDIS_USERNAME"
REDIS_PASSWORD_ENV = "A2A_STORAGE_REDIS_PASSWORD"
REDIS_SSL_ENV = "A2A_STORAGE_REDIS_SSL"
REDIS_TLS_ENV = "A2A_STORAGE_REDIS_TLS"
REDIS_PREFIX_ENV = "A2A_STORAGE_REDIS_PREFIX"


def _is_true(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes")


class EnvRedisStorageProvider(TaskStorageProvider):
    def __init__(self, environ: dict[str, str] | None = None):
        # 測試時可傳入自訂的環境變數 dict
        self.environ = environ

    def _get(self, name: str, default: str | None = None) -> str | None:
        source = self.environ if self.environ is not None else os.environ
        value = source.get(name)
        return value if value else default

    def provide(self) -> TaskStorage | None:
        host = self._get(REDIS_HOST_ENV)
        if not host:
            logger.info("No Redis host specified, not creating Redis task storage")
            return None

        port = self._get(REDIS_PORT_ENV, "6379")
        try:
            port_number = int(port)
        except ValueError:
            logger.error(f"Invalid {REDIS_PORT_ENV} value: {port}")
            return None

        use_ssl = _is_true(self._get(REDIS_SSL_ENV)) or _is_true(self._get(REDIS_TLS_ENV))

        logger.info(f"Creating Redis connection to {host}:{port_number}")
        client = redis.Redis(
            host=host,
            port=port_number,
            username=self._get(REDIS_USERNAME_ENV),
            password=self._get(REDIS_PASSWORD_ENV),
            ssl=use_ssl,
            decode_responses=True,
        )
        return RedisTaskStorage(client, key_prefix=self._get(REDIS_PREFIX_ENV, ""))
