"""Unit tests for config domain models."""

import tempfile
from pathlib import Path

import pytest

from shared_memory.domain.config import BackendDefaults, DaemonConfig, MemoryConfig


class TestDaemonConfig:
    """Tests for DaemonConfig validation and defaults."""

    def test_defaults(self) -> None:
        config = DaemonConfig()
        tmp = Path(tempfile.gettempdir())
        assert config.socket_path == tmp / "shared-memory.sock"
        assert config.log_file == tmp / "shared-memory-daemon.log"
        assert config.idle_timeout == 7200
        assert config.idle_check_interval == 60.0
        assert config.connect_attempts == 10
        assert config.connect_backoff == 0.3

    def test_zero_idle_timeout_allowed(self) -> None:
        assert DaemonConfig(idle_timeout=0).idle_timeout == 0

    def test_negative_idle_timeout_rejected(self) -> None:
        with pytest.raises(ValueError, match="idle_timeout"):
            DaemonConfig(idle_timeout=-1)

    def test_non_positive_check_interval_rejected(self) -> None:
        with pytest.raises(ValueError, match="idle_check_interval"):
            DaemonConfig(idle_check_interval=0)

    def test_non_positive_connect_attempts_rejected(self) -> None:
        with pytest.raises(ValueError, match="connect_attempts"):
            DaemonConfig(connect_attempts=0)

    def test_negative_backoff_rejected(self) -> None:
        with pytest.raises(ValueError, match="connect_backoff"):
            DaemonConfig(connect_backoff=-0.1)


class TestBackendDefaults:
    def test_defaults(self) -> None:
        defaults = BackendDefaults()
        assert defaults.qdrant_url == "http://localhost:6333"
        assert defaults.qdrant_api_key is None
        assert defaults.collection_name == "shared_agent_memory"
        assert defaults.default_agent == "unknown"
        assert defaults.default_project == "default"

    def test_empty_url_rejected(self) -> None:
        with pytest.raises(ValueError, match="qdrant_url"):
            BackendDefaults(qdrant_url="")

    def test_empty_collection_rejected(self) -> None:
        with pytest.raises(ValueError, match="collection_name"):
            BackendDefaults(collection_name="")


class TestFromPartial:
    """Tests for overlaying partial config data."""

    def test_empty_partial_keeps_base(self) -> None:
        base = MemoryConfig.default()
        assert MemoryConfig.from_partial(base, {}) == base

    def test_overrides_only_named_fields(self) -> None:
        base = MemoryConfig.default()
        config = MemoryConfig.from_partial(
            base,
            {"backend": {"collection_name": "team"}, "daemon": {"idle_timeout": 60}},
        )
        assert config.backend.collection_name == "team"
        assert config.backend.qdrant_url == base.backend.qdrant_url
        assert config.daemon.idle_timeout == 60
        assert config.daemon.socket_path == base.daemon.socket_path

    def test_path_fields_accept_strings(self) -> None:
        config = MemoryConfig.from_partial(
            MemoryConfig.default(), {"daemon": {"socket_path": "/tmp/x.sock"}}
        )
        assert config.daemon.socket_path == Path("/tmp/x.sock")

    def test_non_table_section_rejected(self) -> None:
        with pytest.raises(ValueError, match="tables"):
            MemoryConfig.from_partial(MemoryConfig.default(), {"daemon": "oops"})

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(TypeError):
            MemoryConfig.from_partial(MemoryConfig.default(), {"backend": {"nope": 1}})

    def test_invalid_value_rejected(self) -> None:
        with pytest.raises(ValueError):
            MemoryConfig.from_partial(
                MemoryConfig.default(), {"daemon": {"idle_timeout": -5}}
            )
