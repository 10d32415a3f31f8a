"""Port interface for daemon management.

Defines protocols for managing daemon lifecycle.
"""

from typing import Any, Protocol


class DaemonManager(Protocol):
    """Protocol for managing daemon lifecycle.

    This protocol defines the interface for managing the background daemon
    process that keeps the embedding model and backend clients warm.
    """

    def is_running(self) -> bool:
        """Check if daemon is running and answering pings."""
        ...

    def spawn(self) -> None:
        """Launch the daemon detached and return without waiting for it."""
        ...

    def start(self) -> bool:
        """Start the daemon and wait until it answers.

        Returns:
            True if started successfully

        Raises:
            RuntimeError: If start fails
        """
        ...

    def stop(self, timeout: int = 10) -> bool:
        """Stop the daemon gracefully.

        Args:
            timeout: Seconds to wait for graceful shutdown

        Returns:
            True if stopped successfully
        """
        ...

    def run_foreground(self) -> None:
        """Run the daemon in the current process until it exits."""
        ...

    def status(self) -> dict[str, Any]:
        """Describe the daemon state."""
        ...
