from __future__ import annotations

import base64

import pytest

from gremlin_driver.messages import RequestMessage, ResponseFrame, authentication_message


def test_from_mapping_reads_nested_server_shape() -> None:
    frame = ResponseFrame.from_mapping(
        {
            "requestId": "abc",
            "status": {"code": 597, "message": "boom", "attributes": {"exceptions": ["x"]}},
            "result": {"data": [1, 2], "meta": {}},
        }
    )
    assert frame == ResponseFrame("abc", 597, [1, 2], "boom", {"exceptions": ["x"]})


def test_from_mapping_reads_flat_shape() -> None:
    frame = ResponseFrame.from_mapping({"request_id": "r1", "status": 206, "payload": ["v"]})
    assert frame.request_id == "r1"
    assert frame.status_code == 206
    assert frame.payload_items() == ["v"]


@pytest.mark.parametrize("data", [{"request_id": "r1"}, {"status": 200}])
def test_from_mapping_rejects_incomplete_frames(data: dict) -> None:
    with pytest.raises(ValueError):
        ResponseFrame.from_mapping(data)


def test_payload_normalization() -> None:
    assert ResponseFrame("r", 200).payload_items() == []
    assert not ResponseFrame("r", 200, []).has_payload
    assert ResponseFrame("r", 200, {"id": 1}).payload_items() == [{"id": 1}]
    assert ResponseFrame("r", 206, (1, 2)).payload_items() == [1, 2]


def test_with_request_id_keeps_everything_else() -> None:
    message = RequestMessage("r1", op="bytecode", processor="traversal", args={"gremlin": "g.V()"})
    moved = message.with_request_id("r2")
    assert moved.request_id == "r2"
    assert (moved.op, moved.processor, moved.args) == ("bytecode", "traversal", {"gremlin": "g.V()"})
    assert message.request_id == "r1"


def test_authentication_message_uses_sasl_plain() -> None:
    message = authentication_message("r1", "stephen", "password")
    assert message.request_id == "r1"
    assert message.is_authentication
    assert message.args["saslMechanism"] == "PLAIN"
    assert base64.b64decode(message.args["sasl"]) == b"\0stephen\0password"
