"""Configuration I/O utilities for reading and writing TOML config files.

This module handles serialization/deserialization of MemoryConfig to/from
TOML format.
"""

import os
import platform
import tomllib
from pathlib import Path
from typing import Any

import tomli_w

from shared_memory.domain.config import MemoryConfig


def get_global_config_path() -> Path:
    """Get the path to the global config file.

    The location is platform-dependent:
    - Linux/macOS: $XDG_CONFIG_HOME/shared-memory/config.toml or
      ~/.config/shared-memory/config.toml
    - Windows: %APPDATA%/shared-memory/config.toml

    Returns:
        Path to the global config file (may not exist)
    """
    if platform.system() == "Windows":
        appdata = os.environ.get("APPDATA", "")
        if appdata:
            return Path(appdata) / "shared-memory" / "config.toml"
        return Path.home() / ".config" / "shared-memory" / "config.toml"

    xdg_config = os.environ.get("XDG_CONFIG_HOME", "")
    if xdg_config:
        return Path(xdg_config) / "shared-memory" / "config.toml"
    return Path.home() / ".config" / "shared-memory" / "config.toml"


def load_config_data(path: Path) -> dict[str, Any]:
    """Load raw TOML data from a config file.

    Args:
        path: Path to config.toml file

    Returns:
        Dictionary with parsed TOML data

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is malformed
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in config file: {e}") from e


def config_to_data(config: MemoryConfig) -> dict[str, Any]:
    """Convert a MemoryConfig to TOML-serializable data.

    The API key is left out: it belongs in the environment, not on disk.
    """
    daemon = config.daemon
    backend = config.backend
    return {
        "daemon": {
            "socket_path": str(daemon.socket_path),
            "pid_file": str(daemon.pid_file),
            "log_file": str(daemon.log_file),
            "idle_timeout": daemon.idle_timeout,
            "idle_check_interval": daemon.idle_check_interval,
            "connect_attempts": daemon.connect_attempts,
            "connect_backoff": daemon.connect_backoff,
        },
        "backend": {
            "qdrant_url": backend.qdrant_url,
            "collection_name": backend.collection_name,
            "default_agent": backend.default_agent,
            "default_project": backend.default_project,
        },
    }


def save_config(config: MemoryConfig, path: Path) -> None:
    """Save configuration to a TOML file.

    Args:
        config: MemoryConfig to save
        path: Destination path for config.toml
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as f:
        tomli_w.dump(config_to_data(config), f)
