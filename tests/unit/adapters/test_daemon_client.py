"""Unit tests for the daemon client (connect-or-spawn and calls)."""

import errno
import json
import os
import socket
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from shared_memory.adapters.daemon.client import (
    DaemonError,
    DaemonUnreachable,
    MemoryClient,
    RemoteCallError,
    connect_or_spawn,
)
from shared_memory.adapters.daemon.timeouts import DaemonTimeouts
from shared_memory.domain.config import BackendDefaults, DaemonConfig, MemoryConfig


def _oserror(code: int) -> OSError:
    return OSError(code, os.strerror(code))


class TestConnectOrSpawn:
    """Tests for discovery, spawn-on-demand and linear backoff."""

    def test_connects_without_spawning_when_daemon_is_up(self, tmp_path: Path) -> None:
        spawn = MagicMock()
        sleeps: list[float] = []
        sock = MagicMock()

        with patch("shared_memory.adapters.daemon.client._connect", return_value=sock):
            result = connect_or_spawn(tmp_path / "s", spawn=spawn, sleep=sleeps.append)

        assert result is sock
        spawn.assert_not_called()
        assert sleeps == []

    def test_spawns_once_then_backs_off_linearly(self, tmp_path: Path) -> None:
        spawn = MagicMock()
        sleeps: list[float] = []
        sock = MagicMock()
        outcomes = [
            _oserror(errno.ENOENT),
            _oserror(errno.ECONNREFUSED),
            _oserror(errno.ECONNREFUSED),
            sock,
        ]

        def fake_connect(path, timeout):
            outcome = outcomes.pop(0)
            if isinstance(outcome, OSError):
                raise outcome
            return outcome

        with patch("shared_memory.adapters.daemon.client._connect", side_effect=fake_connect):
            result = connect_or_spawn(
                tmp_path / "s", spawn=spawn, backoff_step=0.3, sleep=sleeps.append
            )

        assert result is sock
        spawn.assert_called_once()
        assert sleeps == pytest.approx([0.3, 0.6, 0.9])

    def test_gives_up_after_max_attempts(self, tmp_path: Path) -> None:
        spawn = MagicMock()
        sleeps: list[float] = []

        with patch(
            "shared_memory.adapters.daemon.client._connect",
            side_effect=_oserror(errno.ENOENT),
        ) as connect:
            with pytest.raises(DaemonUnreachable, match="10 attempts"):
                connect_or_spawn(tmp_path / "s", spawn=spawn, sleep=sleeps.append)

        assert connect.call_count == 10
        spawn.assert_called_once()
        assert len(sleeps) == 10

    def test_other_errors_are_not_retried(self, tmp_path: Path) -> None:
        spawn = MagicMock()

        with patch(
            "shared_memory.adapters.daemon.client._connect",
            side_effect=_oserror(errno.EACCES),
        ) as connect:
            with pytest.raises(DaemonError) as excinfo:
                connect_or_spawn(tmp_path / "s", spawn=spawn, sleep=lambda s: None)

        assert not isinstance(excinfo.value, DaemonUnreachable)
        assert connect.call_count == 1
        spawn.assert_not_called()

    def test_real_missing_socket_spawns(self, short_socket_path: Path) -> None:
        spawn = MagicMock()
        with pytest.raises(DaemonUnreachable):
            connect_or_spawn(
                short_socket_path,
                spawn=spawn,
                max_attempts=2,
                sleep=lambda s: None,
            )
        spawn.assert_called_once()


class _FakeDaemonSocket:
    """Socket double that answers the request it receives."""

    def __init__(self, respond):
        self.respond = respond
        self.sent: list[dict] = []
        self._reply = b""
        self.closed = False

    def sendall(self, data: bytes) -> None:
        request = json.loads(data)
        self.sent.append(request)
        self._reply += (json.dumps(self.respond(request)) + "\n").encode()

    def recv(self, size: int) -> bytes:
        chunk, self._reply = self._reply[:size], self._reply[size:]
        return chunk

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def client() -> MemoryClient:
    config = MemoryConfig(
        daemon=DaemonConfig(socket_path=Path("/tmp/unused.sock")),
        backend=BackendDefaults(
            qdrant_url="http://q:6333",
            qdrant_api_key="secret",
            collection_name="team",
            default_agent="cursor",
            default_project="api",
        ),
    )
    return MemoryClient(config=config, spawn=MagicMock())


def _serve(respond) -> tuple[_FakeDaemonSocket, object]:
    fake = _FakeDaemonSocket(respond)
    return fake, patch(
        "shared_memory.adapters.daemon.client.connect_or_spawn", return_value=fake
    )


class TestMemoryClient:
    def test_every_call_carries_backend_params(self, client: MemoryClient) -> None:
        fake, patcher = _serve(lambda req: {"id": req["id"], "result": {"pong": True}})
        with patcher:
            client.ping()

        params = fake.sent[0]["params"]
        assert params == {
            "qdrantUrl": "http://q:6333",
            "qdrantApiKey": "secret",
            "collectionName": "team",
            "defaultAgent": "cursor",
            "defaultProject": "api",
        }
        assert fake.closed

    def test_none_params_are_omitted(self, client: MemoryClient) -> None:
        fake, patcher = _serve(lambda req: {"id": req["id"], "result": {"id": "m1"}})
        with patcher:
            assert client.store("hello") == "m1"

        params = fake.sent[0]["params"]
        assert params["text"] == "hello"
        assert "agent" not in params
        assert "tags" not in params

    def test_overrides_take_precedence(self) -> None:
        client = MemoryClient(collection_name="override", spawn=MagicMock())
        assert client.backend_params()["collectionName"] == "override"
        assert "qdrantApiKey" not in client.backend_params()

    def test_error_response_raises_remote_error(self, client: MemoryClient) -> None:
        fake, patcher = _serve(
            lambda req: {
                "id": req["id"],
                "error": {"code": -32001, "message": "Memory not found: x"},
            }
        )
        with patcher:
            with pytest.raises(RemoteCallError) as excinfo:
                client.update("x", "text")

        assert excinfo.value.message == "Memory not found: x"
        assert excinfo.value.code == -32001

    def test_search_returns_results(self, client: MemoryClient) -> None:
        hit = {"id": "m1", "score": 0.9, "text": "t"}
        fake, patcher = _serve(lambda req: {"id": req["id"], "result": {"results": [hit]}})
        with patcher:
            assert client.search("q", limit=3, tags=("a", "b")) == [hit]

        assert fake.sent[0]["method"] == "search"
        assert fake.sent[0]["params"]["tags"] == ["a", "b"]
        assert fake.sent[0]["params"]["limit"] == 3

    def test_connection_closed_without_answer(self, client: MemoryClient) -> None:
        sock = MagicMock(spec=socket.socket)
        sock.recv.return_value = b""
        with patch(
            "shared_memory.adapters.daemon.client.connect_or_spawn", return_value=sock
        ):
            with pytest.raises(DaemonError, match="closed"):
                client.ping()
        sock.close.assert_called_once()

    def test_default_spawn_uses_lifecycle(self) -> None:
        client = MemoryClient()
        with patch(
            "shared_memory.adapters.daemon.lifecycle.DaemonLifecycle.spawn"
        ) as spawn:
            client._spawn_daemon()
        spawn.assert_called_once()


class TestRequestTimeout:
    def test_calls_allow_time_for_a_cold_model_load(self, client: MemoryClient) -> None:
        fake, patcher = _serve(lambda req: {"id": req["id"], "result": {"pong": True}})
        with patcher as connect:
            client.ping()

        timeout = connect.call_args.kwargs["timeout"]
        assert timeout == DaemonTimeouts.REQUEST_RESPONSE
        assert timeout > DaemonTimeouts.SOCKET_OPERATION

    def test_request_timeout_is_configurable(self) -> None:
        client = MemoryClient(spawn=MagicMock(), request_timeout=5.0)
        fake, patcher = _serve(lambda req: {"id": req["id"], "result": {"pong": True}})
        with patcher as connect:
            client.ping()

        assert connect.call_args.kwargs["timeout"] == 5.0
