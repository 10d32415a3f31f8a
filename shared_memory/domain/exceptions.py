"""Domain exceptions for the shared memory service.

These exceptions represent failures a caller of the memory service can act
on. Each carries a stable integer ``code`` so the daemon can put it in an
error response without knowing the concrete exception type, and the client
can surface the original message verbatim.
"""


class MemoryServiceError(Exception):
    """Base exception for all memory service errors.

    Attributes:
        message: User-facing error message.
        hint: Optional actionable suggestion.
        code: Error code carried in error responses.
    """

    code: int = -32000

    def __init__(self, message: str, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint


class ValidationError(MemoryServiceError):
    """Raised when a required field is missing or a parameter is malformed."""

    code = -32602


class NotFoundError(MemoryServiceError):
    """Raised when a referenced memory does not exist."""

    code = -32001


class BackendUnavailable(MemoryServiceError):
    """Raised when the vector store cannot be reached or rejects a call.

    The daemon never retries backend calls itself; the error goes straight
    back to the caller.
    """

    code = -32002


class UnknownMethod(MemoryServiceError):
    """Raised when a request names a method the router does not serve."""

    code = -32601
