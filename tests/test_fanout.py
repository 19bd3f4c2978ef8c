"""SubscriberRegistry: per-task multicast, channel lifecycle and slow-subscriber policy."""

import asyncio

import pytest

from models.json_rpc import InternalError
from models.task import (
    Artifact,
    TaskArtifactUpdateEvent,
    TaskState,
    TaskStatus,
    TaskStatusUpdateEvent,
    TextPart,
)
from server.fanout import SubscriberRegistry


def _status(task_id: str = "t1", state: TaskState = TaskState.WORKING, final: bool = False):
    return TaskStatusUpdateEvent(id=task_id, status=TaskStatus(state=state), final=final)


def _artifact(task_id: str = "t1", text: str = "chunk"):
    return TaskArtifactUpdateEvent(id=task_id, artifact=Artifact(parts=[TextPart(text=text)]))


async def _drain(subscription) -> list:
    return [event async for event in subscription]


def test_max_buffer_must_be_positive():
    with pytest.raises(ValueError):
        SubscriberRegistry(max_buffer=0)


async def test_events_reach_every_subscriber_in_publish_order(registry):
    first = registry.subscribe("t1")
    second = registry.subscribe("t1")
    events = [_status(), _artifact(), _status(state=TaskState.COMPLETED, final=True)]

    for event in events:
        assert registry.publish("t1", event) == 2
    registry.complete("t1")

    assert await _drain(first) == events
    assert await _drain(second) == events
    assert first.error is None


async def test_channels_are_isolated_per_task(registry):
    one = registry.subscribe("t1")
    two = registry.subscribe("t2")

    registry.publish("t1", _status("t1"))
    registry.complete("t1")
    registry.complete("t2")

    assert len(await _drain(one)) == 1
    assert await _drain(two) == []


def test_publish_without_channel_is_noop(registry):
    assert registry.publish("nobody", _status("nobody")) == 0
    assert not registry.has_channel("nobody")


def test_last_unsubscribe_frees_channel(registry):
    first = registry.subscribe("t1")
    second = registry.subscribe("t1")

    registry.unsubscribe("t1", first)
    assert registry.subscriber_count("t1") == 1

    registry.unsubscribe("t1", second)
    assert not registry.has_channel("t1")
    assert registry.publish("t1", _status()) == 0


def test_unsubscribe_twice_is_harmless(registry):
    subscription = registry.subscribe("t1")
    registry.unsubscribe("t1", subscription)
    registry.unsubscribe("t1", subscription)
    assert not registry.has_channel("t1")


async def test_aclose_detaches_subscription(registry):
    subscription = registry.subscribe("t1")
    await subscription.aclose()

    assert subscription.closed
    assert not registry.has_channel("t1")
    assert await _drain(subscription) == []


async def test_complete_with_error_marks_every_subscription(registry):
    subscriptions = [registry.subscribe("t1") for _ in range(2)]
    registry.publish("t1", _status())
    registry.complete("t1", InternalError())

    for subscription in subscriptions:
        assert len(await _drain(subscription)) == 1
        assert subscription.error.code == -32603
    assert not registry.has_channel("t1")


async def test_subscriber_joining_later_misses_earlier_events(registry):
    early = registry.subscribe("t1")
    registry.publish("t1", _status())
    late = registry.subscribe("t1")
    registry.publish("t1", _artifact())
    registry.complete("t1")

    assert len(await _drain(early)) == 2
    assert [type(e) for e in await _drain(late)] == [TaskArtifactUpdateEvent]


async def test_slow_subscriber_is_disconnected_without_blocking_others(caplog):
    registry = SubscriberRegistry(max_buffer=2)
    slow = registry.subscribe("t1")
    fast = registry.subscribe("t1")

    received = []
    for i in range(3):
        registry.publish("t1", _artifact(text=str(i)))
        # the fast subscriber keeps up
        received.append(await fast.__anext__())

    assert registry.subscriber_count("t1") == 1
    assert slow.closed
    assert slow.error.message == "Subscriber buffer overflow"
    assert "fell 2 events behind" in caplog.text

    # the slow subscriber still drains what it had buffered before ending
    assert [e.artifact.parts[0].text for e in await _drain(slow)] == ["0", "1"]

    registry.complete("t1")
    assert [e.artifact.parts[0].text for e in received] == ["0", "1", "2"]
    assert await _drain(fast) == []


async def test_deliver_waits_for_a_subscriber_that_is_still_reading():
    registry = SubscriberRegistry(max_buffer=1, overflow_grace=1.0)
    subscription = registry.subscribe("t1")

    assert await registry.deliver("t1", _artifact(text="0")) == 1
    pending = asyncio.create_task(registry.deliver("t1", _artifact(text="1")))
    await asyncio.sleep(0.01)
    assert not pending.done()

    first = await subscription.__anext__()
    assert await pending == 1
    second = await subscription.__anext__()

    assert [first.artifact.parts[0].text, second.artifact.parts[0].text] == ["0", "1"]
    assert not subscription.closed


async def test_deliver_disconnects_a_stalled_subscriber_after_the_grace_period():
    registry = SubscriberRegistry(max_buffer=1, overflow_grace=0.01)
    stalled = registry.subscribe("t1")

    await registry.deliver("t1", _status())
    assert await registry.deliver("t1", _status()) == 0

    assert stalled.error.message == "Subscriber buffer overflow"
    assert not registry.has_channel("t1")
