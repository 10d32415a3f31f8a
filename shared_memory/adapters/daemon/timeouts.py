"""Centralized timeout configuration for daemon operations.

All daemon-related timeout values are defined here so they can be tuned
in one place and so each one documents what it bounds.
"""


class DaemonTimeouts:
    """Centralized timeout configuration for daemon operations.

    All values are in seconds unless otherwise noted.

    Groups:
        SOCKET_*: Client socket operation timeouts
        CONNECT_*: Client discover-or-spawn retry budget
        PROBE_*: Daemon single-instance probe
        SERVER_*: Server-side timeouts
        SIGTERM_* / SIGKILL_*: Lifecycle stop timeouts
    """

    # =========================================================================
    # Socket Operation Timeouts
    # =========================================================================

    SOCKET_OPERATION: float = 60.0
    """Timeout for client socket send/receive once connected.

    Covers short exchanges such as pings from lifecycle tooling.
    """

    REQUEST_RESPONSE: float = 900.0
    """Timeout for a memory request made by MemoryClient.

    The first request after a cold start waits for the embedding model,
    which may include downloading it, and for a first-time collection check
    against the backend.
    """

    # =========================================================================
    # Client Connect / Spawn
    # =========================================================================

    CONNECT_MAX_ATTEMPTS: int = 10
    """Connection attempts before the client gives up with DaemonUnreachable."""

    CONNECT_BACKOFF_STEP: float = 0.3
    """Backoff step. Attempt ``n`` (0-based) sleeps ``(n + 1) * step``.

    With the defaults the client waits at most 16.5s in total, enough for
    a cold daemon to bind its socket. The daemon binds before loading the
    model, so model load time does not count against this budget.
    """

    # =========================================================================
    # Single-Instance Probe
    # =========================================================================

    PROBE_CONNECT: float = 1.0
    """Timeout for the daemon's connect-probe of the well-known socket."""

    HEALTH_CHECK: float = 2.0
    """Timeout for ping requests used by is_daemon_running() and status."""

    # =========================================================================
    # Server-Side Timeouts
    # =========================================================================

    SERVER_ACCEPT: float = 1.0
    """Timeout for server accept() calls.

    The accept loop wakes at this interval to notice shutdown requests and
    to run due idle checks.
    """

    SERVER_CONNECTION_READ: float = 300.0
    """Maximum wait for the next frame on an accepted connection.

    Bounds how long a stalled client can hold a handler thread.
    """

    SERVER_RECV_BUFFER: int = 4096
    """Bytes per recv() call when reading frames."""

    # =========================================================================
    # Lifecycle Start / Stop
    # =========================================================================

    READY_WAIT: float = 20.0
    """Maximum wait for a spawned daemon to answer a ping."""

    READY_CHECK_INTERVAL: float = 0.25
    """Interval between pings while waiting for readiness."""

    SIGTERM_WAIT: int = 10
    """Time to wait for graceful shutdown after SIGTERM before SIGKILL."""

    SIGKILL_WAIT: float = 2.5
    """Time to wait for the process to disappear after SIGKILL."""

    DEATH_CHECK_INTERVAL: float = 0.5
    """Interval between liveness checks while waiting for process death."""
