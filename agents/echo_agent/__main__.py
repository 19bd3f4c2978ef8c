# =============================================================================
# agents/echo_agent/__main__.py
# =============================================================================
# Purpose:
# This file starts the A2A-compatible echo agent server.
# It loads settings, picks a task storage backend, wires the task handler,
# task manager and notification publisher, and launches the FastAPI server.
# =============================================================================

# -----------------------------------------------------------------------------
# Imports
# -----------------------------------------------------------------------------
import logging

import click                   # Helps define command-line interface for running the server

from models.agent import AgentCapabilities, AgentCard, AgentSkill
from server.config import ServerSettings
from server.fanout import SubscriberRegistry
from server.notifications import HttpNotificationPublisher
from server.server import A2AServer
from server.storage.base import load_task_storage
from server.storage.redis_store import EnvRedisStorageProvider
from server.task_manager import BasicTaskManager

from .agent import EchoAgent
from .task_handler import EchoTaskHandler

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Main entry point to launch the agent server
# -----------------------------------------------------------------------------
@click.command()
@click.option("--host", "host", default=None, help="Host to bind (overrides A2A_SERVER_HOST)")
@click.option("--port", "port", default=None, type=int, help="Port to listen on (overrides A2A_SERVER_PORT)")
@click.option("--shout", is_flag=True, help="Reply in upper case")
def main(host: str | None, port: int | None, shout: bool):
    """
    Launches the EchoAgent A2A server.

    Args:
        host (str): Hostname or IP to bind to
        port (int): TCP port to listen on
        shout (bool): Whether the agent replies in upper case
    """
    settings = ServerSettings.from_env().with_overrides(host=host, port=port)
    logging.basicConfig(level=settings.log_level.upper())

    # Storage is chosen once at startup: Redis when configured, memory otherwise
    storage = load_task_storage([EnvRedisStorageProvider()])

    task_manager = BasicTaskManager(
        task_handler=EchoTaskHandler(EchoAgent(shout=shout)),
        storage=storage,
        notification_publisher=HttpNotificationPublisher(),
        subscribers=SubscriberRegistry(max_buffer=settings.stream_buffer),
    )

    print(f"\n🚀 Starting EchoAgent on http://{settings.host}:{settings.port}{settings.endpoint}\n")

    server = A2AServer(
        host=settings.host,
        port=settings.port,
        endpoint=settings.endpoint,
        agent_card=build_agent_card(settings),
        task_manager=task_manager,
    )
    server.start(log_level=settings.log_level)


# -----------------------------------------------------------------------------
# Defines the metadata card for this agent
# -----------------------------------------------------------------------------
def build_agent_card(settings: ServerSettings) -> AgentCard:
    return AgentCard(
        name=settings.agent_name,
        description=settings.agent_description,
        url=f"http://{settings.host}:{settings.port}{settings.endpoint}",
        version="1.0.0",
        capabilities=AgentCapabilities(streaming=True, pushNotifications=True),
        defaultInputModes=EchoAgent.SUPPORTED_CONTENT_TYPES,
        defaultOutputModes=EchoAgent.SUPPORTED_CONTENT_TYPES,
        skills=[
            AgentSkill(
                id="echo",
                name="Echo",
                description="Replies with the text it receives.",
                tags=["echo", "test"],
                examples=["Hello", "Repeat after me"],
            )
        ],
    )


# -----------------------------------------------------------------------------
# This ensures the server starts when you run `python3 -m agents.echo_agent`
# -----------------------------------------------------------------------------
if __name__ == "__main__":
    main()
