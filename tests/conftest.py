"""Shared fixtures and in-test fakes for the A2A task server tests."""

import asyncio

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from agents.echo_agent.task_handler import EchoTaskHandler
from models.task import Message, Task, TaskState, TaskStatus, TextPart
from server.fanout import SubscriberRegistry
from server.notifications import NotificationPublisher
from server.storage.memory import InMemoryTaskStorage
from server.task_manager import BasicTaskManager


# --- Fakes ---

class FakeRedis:
    """Minimal async stand-in for redis.asyncio.Redis (get/set/aclose)."""

    def __init__(self, fail: bool = False):
        self.data: dict[str, str | bytes] = {}
        self.fail = fail
        self.closed = False

    async def get(self, key):
        if self.fail:
            raise RedisConnectionError("connection refused")
        return self.data.get(key)

    async def set(self, key, value):
        if self.fail:
            raise RedisConnectionError("connection refused")
        self.data[key] = value
        return True

    async def aclose(self):
        self.closed = True


class RecordingPublisher(NotificationPublisher):
    def __init__(self):
        self.published = []
        self.closed = False

    def publish(self, task, config):
        self.published.append((task, config))

    async def aclose(self):
        self.closed = True


class FailingHandler:
    def handle(self, task: Task) -> Task:
        raise RuntimeError("handler exploded")


class GatedHandler:
    """Async handler that blocks until `release` is set; records every task it sees."""

    def __init__(self):
        self.release = asyncio.Event()
        self.seen: list[Task] = []

    async def handle(self, task: Task) -> Task:
        self.seen.append(task)
        await self.release.wait()
        reply = Message(role="agent", parts=[TextPart(text=f"done {len(task.history)}")])
        return task.model_copy(update={
            "status": TaskStatus(state=TaskState.COMPLETED, message=reply),
            "history": [*task.history, reply],
        })


# --- Fixtures ---

@pytest.fixture
def storage():
    return InMemoryTaskStorage()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def registry():
    return SubscriberRegistry()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def manager(storage, publisher, registry):
    return BasicTaskManager(
        task_handler=EchoTaskHandler(),
        storage=storage,
        notification_publisher=publisher,
        subscribers=registry,
    )


@pytest.fixture
def failing_manager(storage, publisher, registry):
    return BasicTaskManager(
        task_handler=FailingHandler(),
        storage=storage,
        notification_publisher=publisher,
        subscribers=registry,
    )


@pytest.fixture
def gated_handler():
    return GatedHandler()


@pytest.fixture
def gated_manager(storage, registry, gated_handler):
    return BasicTaskManager(task_handler=gated_handler, storage=storage, subscribers=registry)
