"""JSON-RPC protocol for daemon communication.

JSON-RPC-style messages over a Unix socket, one UTF-8 JSON object per
newline-terminated line, no length prefix.
"""

import json
import logging
import socket
import uuid
from collections.abc import Iterator
from typing import Any

from shared_memory.adapters.daemon.timeouts import DaemonTimeouts
from shared_memory.domain.exceptions import UnknownMethod, ValidationError

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2.0"


class ProtocolError(Exception):
    """Raised when a frame cannot be decoded or a socket fails mid-message."""

    pass


class InvalidRequest(ProtocolError):
    """A decodable frame that is not a valid request but names an id.

    Unlike other malformed frames this one can be answered, so it carries
    the error code and the id to reply to.
    """

    def __init__(self, message: str, code: int, request_id: str | int):
        super().__init__(message)
        self.message = message
        self.code = code
        self.request_id = request_id

    def to_response(self) -> "Response":
        return Response.failure(
            code=self.code, message=self.message, request_id=self.request_id
        )


def new_request_id() -> str:
    """Generate a correlation id for a request."""
    return str(uuid.uuid4())


class Request:
    """JSON-RPC request message."""

    def __init__(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        request_id: str | int | None = None,
    ):
        """Create a request.

        Args:
            method: Method name (e.g., "store")
            params: Method parameters
            request_id: Correlation id echoed in the response (generated if None)
        """
        self.method = method
        self.params = params or {}
        self.id = request_id if request_id is not None else new_request_id()

    def to_json(self) -> str:
        """Serialize to JSON string with newline."""
        data = {
            "jsonrpc": PROTOCOL_VERSION,
            "id": self.id,
            "method": self.method,
            "params": self.params,
        }
        return json.dumps(data) + "\n"

    @classmethod
    def from_json(cls, line: str) -> "Request":
        """Deserialize from JSON string.

        Args:
            line: JSON string (with or without newline)

        Returns:
            Request object

        Raises:
            ProtocolError: If JSON is invalid or missing required fields
        """
        try:
            data = json.loads(line.strip())
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ProtocolError("Request must be a JSON object")

        request_id = data.get("id")

        method = data.get("method")
        if not isinstance(method, str):
            if request_id is not None:
                raise InvalidRequest(
                    f"Unknown method: {method}", UnknownMethod.code, request_id
                )
            raise ProtocolError("Request missing 'method' field")

        params = data.get("params")
        if params is None:
            params = {}
        if not isinstance(params, dict):
            if request_id is not None:
                raise InvalidRequest(
                    "'params' must be a JSON object", ValidationError.code, request_id
                )
            raise ProtocolError("Request 'params' must be a JSON object")

        return cls(method=method, params=params, request_id=request_id)


class Response:
    """JSON-RPC response message. Carries a result or an error, never both."""

    def __init__(
        self,
        result: Any = None,
        error: dict[str, Any] | None = None,
        request_id: str | int | None = None,
    ):
        """Create a response.

        Args:
            result: Result value (if success)
            error: Error dict with 'code' and 'message' (if failure)
            request_id: Id of the request being answered
        """
        self.result = result
        self.error = error
        self.id = request_id

    def to_json(self) -> str:
        """Serialize to JSON string with newline."""
        data: dict[str, Any] = {"jsonrpc": PROTOCOL_VERSION, "id": self.id}
        if self.error is not None:
            data["error"] = self.error
        else:
            data["result"] = self.result
        return json.dumps(data) + "\n"

    @classmethod
    def from_json(cls, line: str) -> "Response":
        """Deserialize from JSON string.

        Raises:
            ProtocolError: If JSON is invalid
        """
        try:
            data = json.loads(line.strip())
        except json.JSONDecodeError as e:
            raise ProtocolError(f"Invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise ProtocolError("Response must be a JSON object")

        error = data.get("error")
        if error is not None and not isinstance(error, dict):
            raise ProtocolError("Response 'error' must be a JSON object")

        return cls(
            result=data.get("result"),
            error=error,
            request_id=data.get("id"),
        )

    @classmethod
    def success(cls, result: Any, request_id: str | int | None = None) -> "Response":
        """Create a success response."""
        return cls(result=result, error=None, request_id=request_id)

    @classmethod
    def failure(
        cls, code: int, message: str, request_id: str | int | None = None
    ) -> "Response":
        """Create an error response."""
        return cls(
            result=None,
            error={"code": code, "message": message},
            request_id=request_id,
        )

    def is_error(self) -> bool:
        """Check if this response is an error."""
        return self.error is not None

    @property
    def error_message(self) -> str:
        """Error message, or empty string for a success response."""
        if self.error is None:
            return ""
        return str(self.error.get("message", "Unknown error"))

    @property
    def error_code(self) -> int | None:
        """Error code, or None for a success response."""
        if self.error is None:
            return None
        code = self.error.get("code")
        return code if isinstance(code, int) else None


def send_message(sock: socket.socket, message: Request | Response) -> None:
    """Send a message over a socket.

    Args:
        sock: Socket to send on
        message: Request or Response to send

    Raises:
        ProtocolError: If send fails
    """
    try:
        sock.sendall(message.to_json().encode("utf-8"))
    except OSError as e:
        raise ProtocolError(f"Failed to send message: {e}") from e


class LineReader:
    """Splits a socket byte stream into newline-terminated frames.

    Bytes after the last newline are buffered until the rest of the line
    arrives, so frames split across recv() calls and several frames in
    one recv() are both handled.
    """

    def __init__(
        self,
        sock: socket.socket,
        buffer_size: int = DaemonTimeouts.SERVER_RECV_BUFFER,
    ):
        self.sock = sock
        self.buffer_size = buffer_size
        self._buffer = b""

    def read_line(self) -> bytes | None:
        """Return the next complete line without its newline.

        Returns:
            Line bytes, or None if the peer closed the connection. A partial
            line pending at close is discarded.

        Raises:
            OSError: On transport errors (reset, timeout).
        """
        while b"\n" not in self._buffer:
            chunk = self.sock.recv(self.buffer_size)
            if not chunk:
                if self._buffer:
                    logger.debug(
                        f"Discarding {len(self._buffer)} bytes of incomplete frame"
                    )
                    self._buffer = b""
                return None
            self._buffer += chunk

        line, self._buffer = self._buffer.split(b"\n", 1)
        return line

    def __iter__(self) -> Iterator[bytes]:
        while True:
            line = self.read_line()
            if line is None:
                return
            yield line


def receive_response(sock: socket.socket, request_id: str | int) -> Response:
    """Read responses until the one answering ``request_id`` arrives.

    Responses with other ids are logged and skipped.

    Raises:
        ProtocolError: If the connection closes first or a frame is invalid
    """
    reader = LineReader(sock)
    while True:
        try:
            line = reader.read_line()
        except OSError as e:
            raise ProtocolError(f"Failed to receive message: {e}") from e
        if line is None:
            raise ProtocolError("Connection closed before response")

        try:
            response = Response.from_json(line.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise ProtocolError(f"Frame is not valid UTF-8: {e}") from e

        if response.id == request_id:
            return response
        logger.warning(f"Skipping response for unexpected id {response.id!r}")
