"""A2ADispatcher: raw payload in, response envelope or event stream out."""

import json

from models.json_rpc import JSONRPCResponse
from models.request import GetTaskRequest, GetTaskResponse
from server.dispatcher import A2ADispatcher, is_stream
from server.task_manager import BasicTaskManager


def _body(method: str, params: dict, request_id=1) -> bytes:
    return json.dumps({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}).encode()


SEND_PARAMS = {"id": "t1", "sessionId": "s1", "message": {"role": "user", "parts": [{"type": "text", "text": "hello"}]}}


async def test_send_then_get(manager):
    dispatcher = A2ADispatcher(manager)

    sent = await dispatcher.handle(_body("tasks/send", SEND_PARAMS))
    fetched = await dispatcher.handle(_body("tasks/get", {"id": "t1"}, request_id="g"))

    assert not is_stream(sent)
    assert sent.result.id == "t1"
    assert fetched.id == "g"
    assert [m.parts[0].text for m in fetched.result.history] == ["hello", "Echo: hello"]


async def test_missing_task_scenario(manager):
    response = await A2ADispatcher(manager).handle(_body("tasks/get", {"id": "missing"}))
    assert response.to_wire()["error"]["code"] == -32001


async def test_decode_errors_become_envelopes(manager):
    dispatcher = A2ADispatcher(manager)

    parse = await dispatcher.handle(b"{oops")
    unknown = await dispatcher.handle(_body("tasks/explode", {}, request_id=12))

    assert isinstance(parse, JSONRPCResponse)
    assert parse.id is None and parse.error.code == -32700
    assert unknown.id == 12 and unknown.error.code == -32601


async def test_request_without_id_is_answered_with_null_id(manager):
    body = json.dumps({"jsonrpc": "2.0", "method": "tasks/send", "params": SEND_PARAMS}).encode()
    response = await A2ADispatcher(manager).handle(body)

    wire = response.to_wire()
    assert wire["id"] is None
    assert wire["result"]["id"] == "t1"


async def test_streaming_methods_return_event_stream(manager):
    dispatcher = A2ADispatcher(manager)
    result = await dispatcher.handle(_body("tasks/sendSubscribe", SEND_PARAMS, request_id="st"))

    assert is_stream(result)
    responses = [item async for item in result]
    assert [r.id for r in responses] == ["st", "st", "st"]
    assert responses[-1].result.final is True


async def test_unexpected_manager_failure_is_internal_error(manager):
    class Exploding(BasicTaskManager):
        async def on_get_task(self, request: GetTaskRequest) -> GetTaskResponse:
            raise RuntimeError("kaboom")

    dispatcher = A2ADispatcher(Exploding(task_handler=manager.task_handler))
    response = await dispatcher.handle(_body("tasks/get", {"id": "t1"}, request_id="x"))

    assert response.id == "x"
    assert response.error.code == -32603
    assert "kaboom" not in json.dumps(response.to_wire())
