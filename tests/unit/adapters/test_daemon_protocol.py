"""Unit tests for the daemon wire protocol."""

import json
import socket
from unittest.mock import MagicMock

import pytest

from shared_memory.adapters.daemon.protocol import (
    InvalidRequest,
    LineReader,
    ProtocolError,
    Request,
    Response,
    receive_response,
    send_message,
)


def _sock_with_chunks(*chunks: bytes) -> MagicMock:
    """Mock socket whose recv() yields the given chunks, then EOF."""
    sock = MagicMock(spec=socket.socket)
    sock.recv.side_effect = [*chunks, b""]
    return sock


class TestRequest:
    def test_serializes_one_line_with_version(self) -> None:
        line = Request(method="ping", params={}, request_id="r1").to_json()

        assert line.endswith("\n")
        assert line.count("\n") == 1
        assert json.loads(line) == {
            "jsonrpc": "2.0",
            "id": "r1",
            "method": "ping",
            "params": {},
        }

    def test_generates_id_when_missing(self) -> None:
        a = Request(method="ping")
        b = Request(method="ping")
        assert a.id and b.id and a.id != b.id

    def test_keeps_explicit_zero_id(self) -> None:
        assert Request(method="ping", request_id=0).id == 0

    def test_parse(self) -> None:
        req = Request.from_json('{"id": 7, "method": "search", "params": {"query": "q"}}')
        assert req.id == 7
        assert req.method == "search"
        assert req.params == {"query": "q"}

    def test_parse_missing_params_is_empty(self) -> None:
        assert Request.from_json('{"id": 1, "method": "ping"}').params == {}

    @pytest.mark.parametrize(
        "line",
        [
            "not json",
            "[1, 2]",
            '{"id": 1}',
            '{"id": 1, "method": 5}',
            '{"id": 1, "method": "ping", "params": [1]}',
        ],
    )
    def test_parse_rejects_malformed(self, line: str) -> None:
        with pytest.raises(ProtocolError):
            Request.from_json(line)

    @pytest.mark.parametrize(
        ("line", "code"),
        [
            ('{"id": 1}', -32601),
            ('{"id": "a", "method": 5}', -32601),
            ('{"id": 2, "method": "ping", "params": "x"}', -32602),
        ],
    )
    def test_invalid_request_with_id_can_be_answered(self, line: str, code: int) -> None:
        with pytest.raises(InvalidRequest) as excinfo:
            Request.from_json(line)

        response = excinfo.value.to_response()
        assert response.error_code == code
        assert response.id == json.loads(line)["id"]

    @pytest.mark.parametrize("line", ['{"method": 5}', '{"params": []}', "[1]"])
    def test_invalid_request_without_id_is_plain_protocol_error(self, line: str) -> None:
        with pytest.raises(ProtocolError) as excinfo:
            Request.from_json(line)
        assert not isinstance(excinfo.value, InvalidRequest)


class TestResponse:
    def test_success_has_no_error_key(self) -> None:
        data = json.loads(Response.success({"pong": True}, request_id="r").to_json())
        assert data == {"jsonrpc": "2.0", "id": "r", "result": {"pong": True}}

    def test_failure_has_no_result_key(self) -> None:
        data = json.loads(Response.failure(-32001, "nope", request_id="r").to_json())
        assert data == {
            "jsonrpc": "2.0",
            "id": "r",
            "error": {"code": -32001, "message": "nope"},
        }

    def test_null_result_still_serialized(self) -> None:
        data = json.loads(Response.success(None, request_id=1).to_json())
        assert "result" in data and data["result"] is None

    def test_error_accessors(self) -> None:
        resp = Response.from_json('{"id": 1, "error": {"code": -32602, "message": "bad"}}')
        assert resp.is_error()
        assert resp.error_code == -32602
        assert resp.error_message == "bad"

    def test_success_accessors(self) -> None:
        resp = Response.from_json('{"id": 1, "result": 3}')
        assert not resp.is_error()
        assert resp.error_code is None
        assert resp.error_message == ""

    def test_non_object_error_rejected(self) -> None:
        with pytest.raises(ProtocolError):
            Response.from_json('{"id": 1, "error": "boom"}')


class TestLineReader:
    """Tests for newline framing over a byte stream."""

    def test_splits_multiple_frames_in_one_chunk(self) -> None:
        reader = LineReader(_sock_with_chunks(b"one\ntwo\n"))
        assert list(reader) == [b"one", b"two"]

    def test_joins_frame_split_across_chunks(self) -> None:
        reader = LineReader(_sock_with_chunks(b'{"a":', b' 1}\n'))
        assert reader.read_line() == b'{"a": 1}'

    def test_partial_frame_at_eof_discarded(self) -> None:
        reader = LineReader(_sock_with_chunks(b"whole\npart"))
        assert reader.read_line() == b"whole"
        assert reader.read_line() is None

    def test_empty_stream(self) -> None:
        assert LineReader(_sock_with_chunks()).read_line() is None

    def test_transport_error_propagates(self) -> None:
        sock = MagicMock(spec=socket.socket)
        sock.recv.side_effect = ConnectionResetError("reset")
        with pytest.raises(OSError):
            LineReader(sock).read_line()


class TestSendReceive:
    def test_send_message_encodes_line(self) -> None:
        sock = MagicMock(spec=socket.socket)
        send_message(sock, Request(method="ping", request_id=1))
        sent = sock.sendall.call_args[0][0]
        assert sent.endswith(b"\n")
        assert json.loads(sent)["method"] == "ping"

    def test_send_failure_becomes_protocol_error(self) -> None:
        sock = MagicMock(spec=socket.socket)
        sock.sendall.side_effect = BrokenPipeError("gone")
        with pytest.raises(ProtocolError, match="send"):
            send_message(sock, Request(method="ping"))

    def test_receive_response_on_closed_connection(self) -> None:
        with pytest.raises(ProtocolError, match="closed"):
            receive_response(_sock_with_chunks(), "r1")

    def test_receive_response_rejects_invalid_utf8(self) -> None:
        with pytest.raises(ProtocolError, match="UTF-8"):
            receive_response(_sock_with_chunks(b"\xff\xfe\n"), "r1")

    def test_receive_response_skips_other_ids(self) -> None:
        sock = _sock_with_chunks(
            b'{"id": "other", "result": 1}\n{"id": "mine", "result": 2}\n'
        )
        assert receive_response(sock, "mine").result == 2

    def test_receive_response_closed_before_answer(self) -> None:
        sock = _sock_with_chunks(b'{"id": "other", "result": 1}\n')
        with pytest.raises(ProtocolError, match="closed"):
            receive_response(sock, "mine")
