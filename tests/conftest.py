"""Pytest configuration and shared fixtures."""

import shutil
import tempfile
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import patch

import pytest

from tests.helpers.fakes import FakeEmbedder, InMemoryVectorStore


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    """Deterministic embedder that loads instantly."""
    return FakeEmbedder()


@pytest.fixture
def memory_store() -> InMemoryVectorStore:
    """Empty in-memory vector store."""
    return InMemoryVectorStore()


@pytest.fixture
def short_socket_path() -> Iterator[Path]:
    """Socket path under /tmp.

    AF_UNIX paths are limited to ~104 chars on macOS and pytest's tmp_path
    can exceed that.
    """
    short_tmp = tempfile.mkdtemp(prefix="shm_", dir="/tmp")
    yield Path(short_tmp) / "d.sock"
    shutil.rmtree(short_tmp, ignore_errors=True)


@pytest.fixture
def no_global_config(tmp_path: Path):
    """Point the global config path at a file that does not exist.

    Keeps tests from reading the user's ~/.config/shared-memory/config.toml.
    """
    nonexistent = tmp_path / "nonexistent_global" / "config.toml"
    with patch(
        "shared_memory.adapters.config.toml_config_provider.get_global_config_path",
        return_value=nonexistent,
    ):
        yield nonexistent
