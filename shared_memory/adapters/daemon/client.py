"""Client for the shared memory daemon.

Each call finds the daemon (spawning it if nothing is listening), sends one
request, reads the matching response and closes the connection.
"""

import contextlib
import errno
import logging
import socket
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from shared_memory.adapters.daemon.protocol import (
    ProtocolError,
    Request,
    Response,
    receive_response,
    send_message,
)
from shared_memory.adapters.daemon.timeouts import DaemonTimeouts
from shared_memory.domain.config import MemoryConfig

logger = logging.getLogger(__name__)

# connect() errors meaning "daemon not started yet"
NO_LISTENER_ERRNOS = {errno.ENOENT, errno.ECONNREFUSED}


class DaemonError(Exception):
    """Base exception for daemon-related errors."""

    pass


class DaemonUnreachable(DaemonError):
    """Raised when no daemon accepted a connection within the retry budget."""

    pass


class RemoteCallError(DaemonError):
    """Raised when the daemon answers a request with an error response.

    Attributes:
        code: Error code from the response
        message: Error message from the response, unchanged
    """

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


# ============================================================================
# Socket Connection Management
# ============================================================================


def _connect(socket_path: Path, timeout: float) -> socket.socket:
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.settimeout(timeout)
    try:
        sock.connect(str(socket_path))
    except BaseException:
        sock.close()
        raise
    return sock


@contextmanager
def daemon_socket_connection(
    socket_path: Path,
    timeout: float = DaemonTimeouts.SOCKET_OPERATION,
) -> Iterator[socket.socket]:
    """Context manager for daemon socket connections.

    Args:
        socket_path: Path to the Unix domain socket.
        timeout: Socket operation timeout in seconds.

    Yields:
        Connected socket ready for communication.

    Raises:
        ConnectionRefusedError: If daemon is not accepting connections.
        FileNotFoundError: If socket file doesn't exist.
        TimeoutError: If connection times out.
        OSError: For other socket-related errors.
    """
    sock = _connect(socket_path, timeout)
    try:
        yield sock
    finally:
        with contextlib.suppress(OSError):
            sock.close()


def connect_or_spawn(
    socket_path: Path,
    spawn: Callable[[], None],
    max_attempts: int = DaemonTimeouts.CONNECT_MAX_ATTEMPTS,
    backoff_step: float = DaemonTimeouts.CONNECT_BACKOFF_STEP,
    timeout: float = DaemonTimeouts.SOCKET_OPERATION,
    sleep: Callable[[float], None] = time.sleep,
) -> socket.socket:
    """Connect to the daemon, spawning it after the first failed attempt.

    Attempt ``n`` (0-based) that finds nobody listening sleeps
    ``(n + 1) * backoff_step`` before the next one. The daemon is spawned
    once, fire-and-forget; this function never waits on the process.

    Args:
        socket_path: Well-known daemon socket
        spawn: Launches the daemon detached
        max_attempts: Attempts before giving up
        backoff_step: Backoff step in seconds
        timeout: Timeout set on the returned socket
        sleep: Sleep function (tests)

    Returns:
        Connected socket

    Raises:
        DaemonUnreachable: If every attempt found nobody listening
        DaemonError: On any other connection failure (not retried)
    """
    for attempt in range(max_attempts):
        try:
            return _connect(socket_path, timeout)
        except OSError as e:
            if e.errno not in NO_LISTENER_ERRNOS:
                raise DaemonError(f"Cannot connect to daemon at {socket_path}: {e}") from e
            if attempt == 0:
                logger.info("Daemon not running, starting...")
                spawn()
            delay = backoff_step * (attempt + 1)
            logger.debug(f"Daemon not ready (attempt {attempt + 1}), retrying in {delay:.1f}s")
            sleep(delay)

    raise DaemonUnreachable(
        f"Failed to connect to daemon at {socket_path} after {max_attempts} attempts"
    )


def round_trip(sock: socket.socket, request: Request) -> Response:
    """Send one request and read the response that answers it.

    Raises:
        DaemonError: If the exchange fails at the transport or framing level
    """
    try:
        send_message(sock, request)
        return receive_response(sock, request.id)
    except ProtocolError as e:
        raise DaemonError(f"Daemon communication failed: {e}") from e


class MemoryClient:
    """Short-lived client for the shared memory daemon.

    Every call carries the backend selection (Qdrant URL, API key,
    collection) and the default labels, so one daemon can serve clients
    configured for different backends.
    """

    def __init__(
        self,
        config: MemoryConfig | None = None,
        qdrant_url: str | None = None,
        qdrant_api_key: str | None = None,
        collection_name: str | None = None,
        default_agent: str | None = None,
        default_project: str | None = None,
        spawn: Callable[[], None] | None = None,
        request_timeout: float = DaemonTimeouts.REQUEST_RESPONSE,
    ):
        """Initialize the client.

        Args:
            config: Loaded configuration (default: built-in defaults)
            qdrant_url: Override for the backend URL
            qdrant_api_key: Override for the backend API key
            collection_name: Override for the collection
            default_agent: Override for the agent label
            default_project: Override for the project label
            spawn: Daemon launcher (default: DaemonLifecycle.spawn)
            request_timeout: Seconds to wait for the daemon to answer a call
        """
        self.config = config or MemoryConfig.default()
        backend = self.config.backend
        self.qdrant_url = qdrant_url or backend.qdrant_url
        self.qdrant_api_key = qdrant_api_key or backend.qdrant_api_key
        self.collection_name = collection_name or backend.collection_name
        self.default_agent = default_agent or backend.default_agent
        self.default_project = default_project or backend.default_project
        self._spawn = spawn
        self.request_timeout = request_timeout

    @property
    def socket_path(self) -> Path:
        return self.config.daemon.socket_path

    def _spawn_daemon(self) -> None:
        if self._spawn is not None:
            self._spawn()
            return

        from shared_memory.adapters.daemon.lifecycle import DaemonLifecycle

        DaemonLifecycle(self.config.daemon).spawn()

    def backend_params(self) -> dict[str, Any]:
        """Backend selection and context labels sent with every call."""
        params = {
            "qdrantUrl": self.qdrant_url,
            "qdrantApiKey": self.qdrant_api_key,
            "collectionName": self.collection_name,
            "defaultAgent": self.default_agent,
            "defaultProject": self.default_project,
        }
        return {k: v for k, v in params.items() if v is not None}

    def call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Perform one request/response round trip.

        Args:
            method: Daemon method name
            params: Method parameters; None values are omitted

        Returns:
            The response's result

        Raises:
            RemoteCallError: If the daemon answered with an error
            DaemonUnreachable: If the daemon could not be reached or started
            DaemonError: On other transport failures
        """
        own_params = {k: v for k, v in (params or {}).items() if v is not None}
        request = Request(method=method, params={**self.backend_params(), **own_params})

        sock = connect_or_spawn(
            self.socket_path,
            spawn=self._spawn_daemon,
            max_attempts=self.config.daemon.connect_attempts,
            backoff_step=self.config.daemon.connect_backoff,
            timeout=self.request_timeout,
        )
        try:
            response = round_trip(sock, request)
        finally:
            with contextlib.suppress(OSError):
                sock.close()

        if response.is_error():
            raise RemoteCallError(response.error_message, code=response.error_code)
        return response.result

    # Convenience methods

    def store(
        self,
        text: str,
        agent: str | None = None,
        project: str | None = None,
        tags: Sequence[str] | None = None,
    ) -> str:
        """Store a memory and return its id."""
        result = self.call(
            "store",
            {"text": text, "agent": agent, "project": project, "tags": _list(tags)},
        )
        return result["id"]

    def search(
        self,
        query: str,
        limit: int | None = None,
        agent: str | None = None,
        project: str | None = None,
        tags: Sequence[str] | None = None,
    ) -> list[dict[str, Any]]:
        """Semantic search; returns result dicts, best match first."""
        result = self.call(
            "search",
            {
                "query": query,
                "limit": limit,
                "agent": agent,
                "project": project,
                "tags": _list(tags),
            },
        )
        return result["results"]

    def list_recent(
        self,
        limit: int | None = None,
        days: int | None = None,
        project: str | None = None,
    ) -> list[dict[str, Any]]:
        """Recent memories, newest first."""
        result = self.call("list_recent", {"limit": limit, "days": days, "project": project})
        return result["results"]

    def update(self, memory_id: str, text: str, project: str | None = None) -> bool:
        """Replace a memory's text."""
        result = self.call("update", {"id": memory_id, "text": text, "project": project})
        return bool(result["success"])

    def delete(self, memory_id: str) -> bool:
        """Delete a memory. Succeeds for unknown ids."""
        result = self.call("delete", {"id": memory_id})
        return bool(result["success"])

    def get_config(self) -> dict[str, Any]:
        """Effective configuration as seen by the daemon."""
        return self.call("get_config")

    def ping(self) -> dict[str, Any]:
        """Liveness and model readiness."""
        return self.call("ping")


def _list(tags: Sequence[str] | None) -> list[str] | None:
    return list(tags) if tags is not None else None


def ping_daemon(
    socket_path: Path, timeout: float = DaemonTimeouts.HEALTH_CHECK
) -> dict[str, Any] | None:
    """Ping the daemon without spawning it.

    Returns:
        The ping result, or None if the daemon is not available
    """
    try:
        with daemon_socket_connection(socket_path, timeout=timeout) as sock:
            response = round_trip(sock, Request(method="ping"))
    except (OSError, DaemonError):
        return None

    if response.is_error() or not isinstance(response.result, dict):
        return None
    return response.result


def is_daemon_running(socket_path: Path) -> bool:
    """Check if daemon is running and responding."""
    return ping_daemon(socket_path) is not None


def get_daemon_pid(socket_path: Path) -> int | None:
    """Get the daemon PID from a ping.

    Allows recovering the PID when the PID file is missing.
    """
    result = ping_daemon(socket_path)
    if result is None:
        return None
    pid = result.get("pid")
    return pid if isinstance(pid, int) else None
