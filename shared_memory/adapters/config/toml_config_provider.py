"""TOML-based configuration provider with environment overrides.

Config loading priority (highest to lowest):
1. Environment variables (QDRANT_URL, COLLECTION_NAME, ...)
2. Global: ~/.config/shared-memory/config.toml
3. Built-in defaults
"""

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from shared_memory.domain.config import MemoryConfig
from shared_memory.shared.config_io import get_global_config_path, load_config_data

logger = logging.getLogger(__name__)

# Environment variable -> (section, field, converter)
ENV_OVERRIDES: dict[str, tuple[str, str, type]] = {
    "QDRANT_URL": ("backend", "qdrant_url", str),
    "QDRANT_API_KEY": ("backend", "qdrant_api_key", str),
    "COLLECTION_NAME": ("backend", "collection_name", str),
    "DEFAULT_AGENT": ("backend", "default_agent", str),
    "DEFAULT_PROJECT": ("backend", "default_project", str),
    "DAEMON_IDLE_TIMEOUT": ("daemon", "idle_timeout", int),
    "SHARED_MEMORY_SOCKET": ("daemon", "socket_path", str),
}


def env_overrides(environ: Mapping[str, str]) -> dict[str, dict[str, Any]]:
    """Collect config overrides from environment variables.

    Empty variables are ignored. Values that fail conversion are skipped
    with a warning.

    Args:
        environ: Environment mapping (usually os.environ)

    Returns:
        Partial config mapping with "daemon" and/or "backend" sections
    """
    partial: dict[str, dict[str, Any]] = {}
    for var, (section, key, convert) in ENV_OVERRIDES.items():
        raw = environ.get(var, "")
        if not raw:
            continue
        try:
            value = convert(raw)
        except ValueError:
            logger.warning("Ignoring invalid %s=%r", var, raw)
            continue
        partial.setdefault(section, {})[key] = value
    return partial


class TomlConfigProvider:
    """Configuration provider that loads from TOML and the environment.

    Gracefully handles missing or invalid configs with warnings.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        """Initialize the provider.

        Args:
            config_path: Config file (default: global config path)
            environ: Environment mapping (default: os.environ)
        """
        self.config_path = config_path
        self.environ = environ

    def load(self) -> MemoryConfig:
        """Load configuration with file and environment overrides.

        Returns:
            MemoryConfig with merged values or defaults
        """
        path = self.config_path or get_global_config_path()
        environ = self.environ if self.environ is not None else os.environ

        config = MemoryConfig.default()

        if path.exists():
            try:
                config = MemoryConfig.from_partial(config, load_config_data(path))
                logger.debug("Loaded config from %s", path)
            except (FileNotFoundError, ValueError, TypeError) as e:
                logger.warning(
                    "Failed to parse config at %s: %s. Using default configuration.",
                    path,
                    e,
                )

        # Each override is validated alone so one bad value keeps the rest
        for section, values in env_overrides(environ).items():
            for key, value in values.items():
                try:
                    config = MemoryConfig.from_partial(config, {section: {key: value}})
                except (ValueError, TypeError) as e:
                    logger.warning(
                        "Invalid %s.%s in environment: %s. Ignoring this override.",
                        section,
                        key,
                        e,
                    )

        return config
