"""HttpNotificationPublisher: best-effort webhook delivery over httpx."""

import json
import logging

import httpx

from models.task import PushNotificationConfig, Task, TaskState, TaskStatus
from server.notifications import HttpNotificationPublisher


def _task() -> Task:
    return Task(id="t1", sessionId="s1", status=TaskStatus(state=TaskState.COMPLETED))


def _publisher(handler) -> HttpNotificationPublisher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpNotificationPublisher(client=client)


async def test_posts_task_json_with_bearer_token():
    seen = []

    def handler(request: httpx.Request):
        seen.append(request)
        return httpx.Response(200)

    publisher = _publisher(handler)
    publisher.publish(_task(), PushNotificationConfig(url="https://hook.example.com/a2a", token="s3cr3t"))
    await publisher.wait_pending()

    assert len(seen) == 1
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://hook.example.com/a2a"
    assert request.headers["Authorization"] == "Bearer s3cr3t"
    body = json.loads(request.content)
    assert body["id"] == "t1"
    assert body["status"]["state"] == "completed"
    await publisher.client.aclose()


async def test_no_authorization_header_without_token():
    seen = []

    def handler(request: httpx.Request):
        seen.append(request)
        return httpx.Response(204)

    publisher = _publisher(handler)
    publisher.publish(_task(), PushNotificationConfig(url="https://hook.example.com"))
    await publisher.wait_pending()

    assert "Authorization" not in seen[0].headers
    await publisher.client.aclose()


async def test_non_success_status_is_logged_not_raised(caplog):
    publisher = _publisher(lambda request: httpx.Response(503, text="unavailable"))

    with caplog.at_level(logging.WARNING, logger="server.notifications"):
        publisher.publish(_task(), PushNotificationConfig(url="https://hook.example.com"))
        await publisher.wait_pending()

    assert "Status code: 503" in caplog.text
    await publisher.client.aclose()


async def test_transport_error_is_logged_not_raised(caplog):
    def handler(request: httpx.Request):
        raise httpx.ConnectError("connection refused", request=request)

    publisher = _publisher(handler)
    with caplog.at_level(logging.ERROR, logger="server.notifications"):
        publisher.publish(_task(), PushNotificationConfig(url="https://hook.example.com", token="s3cr3t"))
        await publisher.wait_pending()

    assert "Error sending notification for task t1" in caplog.text
    assert "s3cr3t" not in caplog.text
    await publisher.client.aclose()


async def test_malformed_webhook_url_is_logged_not_raised(caplog):
    seen = []
    publisher = _publisher(lambda request: seen.append(request) or httpx.Response(200))

    with caplog.at_level(logging.ERROR, logger="server.notifications"):
        publisher.publish(_task(), PushNotificationConfig(url="http://[::1"))
        await publisher.wait_pending()

    assert seen == []
    assert "Error sending notification for task t1 to http://[::1" in caplog.text
    assert not publisher._pending
    await publisher.client.aclose()


async def test_unexpected_error_in_background_delivery_is_logged(caplog):
    def handler(request: httpx.Request):
        raise RuntimeError("transport bug")

    publisher = _publisher(handler)
    with caplog.at_level(logging.ERROR, logger="server.notifications"):
        publisher.publish(_task(), PushNotificationConfig(url="https://hook.example.com"))
        await publisher.wait_pending()

    assert "Unexpected error sending notification for task t1" in caplog.text
    assert "transport bug" in caplog.text
    await publisher.client.aclose()


async def test_aclose_keeps_injected_client_open():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
    publisher = HttpNotificationPublisher(client=client)
    await publisher.aclose()

    assert not client.is_closed
    await client.aclose()


async def test_aclose_closes_owned_client():
    publisher = HttpNotificationPublisher()
    await publisher.aclose()
    assert publisher.client.is_closed
