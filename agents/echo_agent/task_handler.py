# =============================================================================
# agents/echo_agent/task_handler.py
# =============================================================================
# Purpose:
# Bridges the EchoAgent to the task manager. Given a task, it reads the latest
# user message, asks the agent for a reply and returns the completed task with
# the reply appended to history and exposed as a text artifact.
# =============================================================================

import logging

from models.task import Artifact, Message, Task, TaskState, TaskStatus, TextPart

from .agent import EchoAgent

logger = logging.getLogger(__name__)


def get_text(message: Message) -> str:
    """Concatenate the text parts of a message; file and data parts are skipped."""
    return "".join(part.text for part in message.parts if isinstance(part, TextPart))


class EchoTaskHandler:
    """Synchronous TaskHandler; the task manager runs it in a worker thread."""

    def __init__(self, agent: EchoAgent | None = None):
        self.agent = agent or EchoAgent()

    def handle(self, task: Task) -> Task:
        if not task.history:
            raise ValueError("Task has no history")

        # The manager always appends the incoming message last
        query = get_text(task.history[-1])
        logger.info(f"EchoTaskHandler received task {task.id}")
        response_text = self.agent.invoke(query, task.sessionId)

        reply = Message(role="agent", parts=[TextPart(text=response_text)])
        artifact = Artifact(name="agent-response", parts=[TextPart(text=response_text)], lastChunk=True)

        return task.model_copy(update={
            "status": TaskStatus(state=TaskState.COMPLETED, message=reply),
            "history": [*task.history, reply],
            "artifacts": [artifact],
        })
