"""Config domain models for shared-memory.

Configuration comes from built-in defaults, an optional global config.toml
and environment variables. This module defines the domain models that
represent validated configuration state.
"""

import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any


def _runtime_dir() -> Path:
    return Path(tempfile.gettempdir())


@dataclass(frozen=True)
class DaemonConfig:
    """Configuration for the background daemon and its clients.

    Attributes:
        socket_path: Well-known Unix socket path shared by all clients
        pid_file: File the daemon writes its PID to after binding
        log_file: Daemon log file
        idle_timeout: Seconds without requests before self-shutdown (0 = never)
        idle_check_interval: Seconds between idle checks
        connect_attempts: Client connection attempts before giving up
        connect_backoff: Seconds of backoff per attempt index

    Raises:
        ValueError: If any numeric value is out of range.
    """

    socket_path: Path = field(default_factory=lambda: _runtime_dir() / "shared-memory.sock")
    pid_file: Path = field(
        default_factory=lambda: _runtime_dir() / "shared-memory-daemon.pid"
    )
    log_file: Path = field(
        default_factory=lambda: _runtime_dir() / "shared-memory-daemon.log"
    )
    idle_timeout: int = 7200  # 2 hours
    idle_check_interval: float = 60.0
    connect_attempts: int = 10
    connect_backoff: float = 0.3

    def __post_init__(self) -> None:
        """Validate daemon config after initialization."""
        if self.idle_timeout < 0:
            raise ValueError(f"idle_timeout cannot be negative, got {self.idle_timeout}")
        if self.idle_check_interval <= 0:
            raise ValueError(
                f"idle_check_interval must be positive, got {self.idle_check_interval}"
            )
        if self.connect_attempts <= 0:
            raise ValueError(
                f"connect_attempts must be positive, got {self.connect_attempts}"
            )
        if self.connect_backoff < 0:
            raise ValueError(
                f"connect_backoff cannot be negative, got {self.connect_backoff}"
            )


@dataclass(frozen=True)
class BackendDefaults:
    """Defaults used when a client call does not name its backend or context.

    Attributes:
        qdrant_url: Vector database URL
        qdrant_api_key: Optional API key
        collection_name: Collection holding the memories
        default_agent: Agent label for stored memories
        default_project: Project label for stored memories

    Raises:
        ValueError: If the URL or collection name is empty.
    """

    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: str | None = None
    collection_name: str = "shared_agent_memory"
    default_agent: str = "unknown"
    default_project: str = "default"

    def __post_init__(self) -> None:
        """Validate backend defaults after initialization."""
        if not self.qdrant_url:
            raise ValueError("qdrant_url must not be empty")
        if not self.collection_name:
            raise ValueError("collection_name must not be empty")


@dataclass(frozen=True)
class MemoryConfig:
    """Complete shared-memory configuration.

    Attributes:
        daemon: Daemon and client connection settings
        backend: Backend and labelling defaults
    """

    daemon: DaemonConfig = field(default_factory=DaemonConfig)
    backend: BackendDefaults = field(default_factory=BackendDefaults)

    @staticmethod
    def default() -> "MemoryConfig":
        """Create a config with all default values."""
        return MemoryConfig(daemon=DaemonConfig(), backend=BackendDefaults())

    @staticmethod
    def from_partial(base: "MemoryConfig", partial: dict[str, Any]) -> "MemoryConfig":
        """Overlay a partial config mapping onto an existing config.

        Sections missing from ``partial`` keep their values from ``base``.
        Path-valued daemon fields accept strings.

        Args:
            base: Config to start from
            partial: Mapping with optional "daemon" and "backend" sections

        Returns:
            New validated MemoryConfig

        Raises:
            ValueError: If a section is not a table or a value fails validation.
            TypeError: If a section names an unknown field.
        """
        daemon_data = partial.get("daemon", {})
        backend_data = partial.get("backend", {})
        if not isinstance(daemon_data, dict) or not isinstance(backend_data, dict):
            raise ValueError("config sections must be tables")

        daemon_data = dict(daemon_data)
        for key in ("socket_path", "pid_file", "log_file"):
            if key in daemon_data:
                daemon_data[key] = Path(daemon_data[key]).expanduser()

        return MemoryConfig(
            daemon=replace(base.daemon, **daemon_data),
            backend=replace(base.backend, **backend_data),
        )
