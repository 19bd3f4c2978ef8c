"""decode_request(): raw payload -> concrete request type, or a typed protocol error."""

import json

import pytest

from models.json_rpc import A2AProtocolError
from models.request import (
    CancelTaskRequest,
    GetTaskPushNotificationRequest,
    GetTaskRequest,
    METHODS,
    STREAMING_METHODS,
    SendTaskRequest,
    SendTaskStreamingRequest,
    SetTaskPushNotificationRequest,
    TaskResubscriptionRequest,
    decode_request,
)

MESSAGE = {"role": "user", "parts": [{"type": "text", "text": "hello"}]}


def _error_of(payload):
    with pytest.raises(A2AProtocolError) as info:
        decode_request(payload)
    return info.value


@pytest.mark.parametrize(
    "method, params, expected",
    [
        ("tasks/get", {"id": "t1", "historyLength": 2}, GetTaskRequest),
        ("tasks/send", {"id": "t1", "message": MESSAGE}, SendTaskRequest),
        ("tasks/sendSubscribe", {"id": "t1", "message": MESSAGE}, SendTaskStreamingRequest),
        ("tasks/cancel", {"id": "t1"}, CancelTaskRequest),
        (
            "tasks/pushNotification/set",
            {"id": "t1", "pushNotificationConfig": {"url": "https://hook.example.com"}},
            SetTaskPushNotificationRequest,
        ),
        ("tasks/pushNotification/get", {"id": "t1"}, GetTaskPushNotificationRequest),
        ("tasks/resubscribe", {"id": "t1"}, TaskResubscriptionRequest),
    ],
)
def test_each_method_decodes_to_its_request_type(method, params, expected):
    body = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
    request = decode_request(json.dumps(body).encode())
    assert type(request) is expected
    assert request.id == 1


def test_method_sets():
    assert len(METHODS) == 7
    assert STREAMING_METHODS == {"tasks/sendSubscribe", "tasks/resubscribe"}


def test_accepts_already_parsed_dict():
    request = decode_request({"jsonrpc": "2.0", "id": "x", "method": "tasks/cancel", "params": {"id": "t1"}})
    assert isinstance(request, CancelTaskRequest)
    assert request.params.id == "t1"


def test_missing_id_stays_none():
    request = decode_request(json.dumps({"jsonrpc": "2.0", "method": "tasks/get", "params": {"id": "t1"}}))
    assert isinstance(request, GetTaskRequest)
    assert request.id is None


def test_client_built_request_still_gets_an_id():
    assert GetTaskRequest(params={"id": "t1"}).id is not None


def test_unparseable_payload_is_parse_error():
    error = _error_of(b"{not json")
    assert error.error.code == -32700
    assert error.request_id is None


def test_invalid_utf8_is_parse_error():
    assert _error_of(b"{\"id\": \"\x80\"}").error.code == -32700


def test_non_object_payload_is_invalid_request():
    assert _error_of("[1, 2, 3]").error.code == -32600


def test_wrong_version_is_invalid_request_with_id():
    error = _error_of({"jsonrpc": "1.0", "id": 5, "method": "tasks/get", "params": {"id": "t1"}})
    assert error.error.code == -32600
    assert error.request_id == 5


def test_boolean_id_is_invalid_request():
    error = _error_of({"jsonrpc": "2.0", "id": True, "method": "tasks/get", "params": {"id": "t1"}})
    assert error.error.code == -32600


def test_unknown_method_is_method_not_found():
    error = _error_of({"jsonrpc": "2.0", "id": "r1", "method": "tasks/delete", "params": {}})
    assert error.error.code == -32601
    assert error.error.data == {"method": "tasks/delete"}
    assert error.request_id == "r1"


def test_missing_params_field_is_invalid_params():
    error = _error_of({"jsonrpc": "2.0", "id": 3, "method": "tasks/send", "params": {"id": "t1"}})
    assert error.error.code == -32602
    assert error.request_id == 3
    assert any("message" in detail["loc"] for detail in error.error.data)


def test_negative_history_length_is_invalid_params():
    error = _error_of({
        "jsonrpc": "2.0", "id": 3, "method": "tasks/get", "params": {"id": "t1", "historyLength": -2},
    })
    assert error.error.code == -32602


def test_bad_part_variant_is_invalid_params():
    bad_message = {"role": "user", "parts": [{"type": "text"}]}
    error = _error_of({
        "jsonrpc": "2.0", "id": 3, "method": "tasks/send", "params": {"id": "t1", "message": bad_message},
    })
    assert error.error.code == -32602
