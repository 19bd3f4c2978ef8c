"""EchoAgent and its TaskHandler bridge."""

import pytest

from agents.echo_agent.__main__ import build_agent_card
from agents.echo_agent.agent import EchoAgent
from agents.echo_agent.task_handler import EchoTaskHandler, get_text
from models.task import DataPart, Message, Task, TaskState, TaskStatus, TextPart
from server.config import ServerSettings


def _task(*texts: str) -> Task:
    return Task(
        id="t1",
        sessionId="s1",
        status=TaskStatus(state=TaskState.SUBMITTED),
        history=[Message(role="user", parts=[TextPart(text=t)]) for t in texts],
    )


def test_agent_echoes_and_shouts():
    assert EchoAgent().invoke("hi") == "Echo: hi"
    assert EchoAgent(shout=True, prefix="").invoke("hi") == "HI"


def test_get_text_skips_non_text_parts():
    message = Message(role="user", parts=[TextPart(text="a"), DataPart(data={"x": 1}), TextPart(text="b")])
    assert get_text(message) == "ab"


def test_handler_completes_task_with_reply_and_artifact():
    task = _task("earlier", "latest")
    handled = EchoTaskHandler().handle(task)

    assert handled.id == "t1"
    assert handled.status.state is TaskState.COMPLETED
    assert handled.status.message.parts[0].text == "Echo: latest"
    assert [m.role for m in handled.history] == ["user", "user", "agent"]
    assert handled.artifacts[0].name == "agent-response"
    assert handled.artifacts[0].lastChunk is True
    # the input task is left untouched
    assert len(task.history) == 2


def test_handler_rejects_task_without_history():
    with pytest.raises(ValueError):
        EchoTaskHandler().handle(Task(id="t1", status=TaskStatus(state=TaskState.SUBMITTED)))


def test_agent_card_reflects_settings():
    settings = ServerSettings(host="localhost", port=7000, endpoint="/a2a", agent_name="Echo")
    card = build_agent_card(settings)

    assert card.name == "Echo"
    assert card.url == "http://localhost:7000/a2a"
    assert card.capabilities.streaming is True
    assert card.skills[0].id == "echo"
