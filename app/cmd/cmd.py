# =============================================================================
# cmd.py
# =============================================================================
# Purpose:
# This file is a command-line interface (CLI) that lets users interact with
# any agent running on an A2A server.
#
# This version supports:
# - task sending via tasks/send, or streaming via tasks/sendSubscribe
# - session reuse (every prompt continues the same task)
# - optional task history printing
# =============================================================================

import asyncclick as click        # click is a CLI tool; asyncclick supports async functions
from uuid import uuid4            # Used to generate unique task and session IDs
import httpx                      # Async HTTP client
import json                       # 用於 JSON 格式化

from client.client import (
    A2AClient,
    A2AClientHTTPError,
    A2AClientJSONError,
    A2AClientRPCError,
)
from models.task import Task, TaskArtifactUpdateEvent, TaskStatusUpdateEvent, TextPart


def _text_of(parts) -> str:
    return "".join(part.text for part in parts if isinstance(part, TextPart))


# -----------------------------------------------------------------------------
# @click.command(): Turns the function below into a command-line command
# -----------------------------------------------------------------------------
@click.command()
@click.option("--agent", default="http://localhost:5000", help="Base URL of the A2A agent server")
@click.option("--session", default=0, help="Session ID (use 0 to generate a new one)")
@click.option("--history", is_flag=True, help="Print full task history after receiving a response")
@click.option("--stream", is_flag=True, help="Use tasks/sendSubscribe and print events as they arrive")
async def cli(agent: str, session: str, history: bool, stream: bool):
    """
    CLI to send user messages to an A2A agent and display its responses.

    Args:
        agent (str): The base URL of the agent server (e.g., http://localhost:5000)
        session (str): Either a string session ID or 0 to generate one
        history (bool): If true, prints the full task history
        stream (bool): If true, streams task events instead of waiting for the result
    """
    client = A2AClient(url=agent)

    # Generate a new session ID if not provided (user passed 0)
    session_id = uuid4().hex if str(session) == "0" else str(session)
    # One task per CLI run; every prompt is appended to its history
    task_id = uuid4().hex
    print(f"🔗 使用 Session ID: {session_id}，Task ID: {task_id}")

    try:
        card = await client.get_agent_card()
        print(f"✅ 連接成功！代理: {card.name}")
    except (httpx.HTTPError, A2AClientHTTPError, A2AClientJSONError) as e:
        print(f"❌ 連接測試失敗: {e}")
        print("   請確認代理是否正在運行")
        return

    while True:
        prompt = click.prompt("\n🤖 請輸入您的請求，或輸入 ':q' / 'quit' 退出")

        if prompt.strip().lower() in [":q", "quit"]:
            print("👋 再見！")
            break

        payload = {
            "id": task_id,
            "sessionId": session_id,
            "message": {
                "role": "user",
                "parts": [{"type": "text", "text": prompt}],
            },
        }

        try:
            if stream:
                await _stream_task(client, payload)
            else:
                task = await client.send_task(payload)
                _print_task(task)

            if history:
                task = await client.get_task({"id": task_id})
                print(f"\n📚 完整對話歷史 ({len(task.history)} 條訊息):")
                for i, msg in enumerate(task.history):
                    print(f"  {i + 1}. [{msg.role}]: {_text_of(msg.parts)}")
                print("\n🔍 詳細回應資料：")
                print(json.dumps(task.model_dump(mode="json", exclude_none=True), indent=2, ensure_ascii=False))

        except A2AClientRPCError as e:
            print(f"\n❌ 代理返回錯誤: {e.error.code} {e.error.message}")
        except httpx.ConnectError as e:
            print(f"\n❌ 無法連接到代理 ({agent})")
            print(f"   詳細錯誤: {e}")
        except httpx.TimeoutException as e:
            print("\n⏰ 請求超時，代理可能正在處理複雜任務")
            print(f"   詳細錯誤: {e}")
        except A2AClientHTTPError as e:
            print(f"\n❌ HTTP 錯誤: {e.status_code}")
        except (httpx.RequestError, A2AClientJSONError) as e:
            print(f"\n❌ 請求錯誤: {e}")


async def _stream_task(client: A2AClient, payload: dict):
    async for response in client.send_task_streaming(payload):
        if response.error is not None:
            print(f"\n❌ 串流錯誤: {response.error.code} {response.error.message}")
            return
        event = response.result
        if isinstance(event, TaskStatusUpdateEvent):
            marker = "🏁" if event.final else "⏳"
            print(f"{marker} 任務狀態: {event.status.state.value}")
        elif isinstance(event, TaskArtifactUpdateEvent):
            print(f"📦 [{event.artifact.name}] {_text_of(event.artifact.parts)}")


def _print_task(task: Task):
    print(f"\n📝 任務 ID: {task.id}")
    print(f"📝 任務狀態: {task.status.state.value}")
    agent_response = "".join(_text_of(artifact.parts) for artifact in task.artifacts or [])
    if agent_response:
        print(f"\n🏠 代理回應: {agent_response}")
    else:
        print("\n⚠️  未收到有效回應")


# -----------------------------------------------------------------------------
# Entrypoint: This ensures the CLI only runs when executing `python cmd.py`
# -----------------------------------------------------------------------------

if __name__ == "__main__":
    # asyncclick runs the async `cli()` function inside its own event loop
    cli()
