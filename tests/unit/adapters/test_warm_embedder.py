"""Unit tests for WarmEmbedder one-time initialization."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from shared_memory.adapters.daemon.warm_embedder import WarmEmbedder
from tests.helpers.fakes import FakeEmbedder


class TestInitialize:
    def test_not_ready_before_initialize(self, fake_embedder: FakeEmbedder) -> None:
        assert WarmEmbedder(fake_embedder).ready is False

    def test_ready_after_initialize(self, fake_embedder: FakeEmbedder) -> None:
        warm = WarmEmbedder(fake_embedder)
        warm.initialize()
        assert warm.ready is True
        assert fake_embedder.load_calls == 1

    def test_repeated_initialize_loads_once(self, fake_embedder: FakeEmbedder) -> None:
        warm = WarmEmbedder(fake_embedder)
        warm.initialize()
        warm.initialize()
        warm.embed("hello")
        assert fake_embedder.load_calls == 1

    def test_concurrent_callers_share_one_load(self) -> None:
        release = threading.Event()
        embedder = FakeEmbedder(release=release)
        warm = WarmEmbedder(embedder)

        with ThreadPoolExecutor(max_workers=8) as pool:
            futures = [pool.submit(warm.embed, f"text {i}") for i in range(8)]
            assert embedder.load_started.wait(timeout=5)
            assert warm.ready is False
            release.set()
            vectors = [f.result(timeout=5) for f in futures]

        assert embedder.load_calls == 1
        assert len(vectors) == 8
        assert warm.ready is True

    def test_failure_reaches_waiter_and_allows_retry(self) -> None:
        release = threading.Event()
        embedder = FakeEmbedder(release=release, fail_loads=1)
        warm = WarmEmbedder(embedder)

        with ThreadPoolExecutor(max_workers=2) as pool:
            owner = pool.submit(warm.initialize)
            assert embedder.load_started.wait(timeout=5)
            # The load is in flight, so this caller waits on it
            waiter = pool.submit(warm.initialize)
            time.sleep(0.2)
            release.set()
            with pytest.raises(RuntimeError, match="weights"):
                owner.result(timeout=5)
            with pytest.raises(RuntimeError, match="weights"):
                waiter.result(timeout=5)

        assert embedder.load_calls == 1
        assert warm.ready is False

        warm.initialize()
        assert warm.ready is True
        assert embedder.load_calls == 2


def test_exposes_name_and_dim(fake_embedder: FakeEmbedder) -> None:
    warm = WarmEmbedder(fake_embedder)
    assert warm.name == fake_embedder.name
    assert warm.dim == fake_embedder.dim


def test_embed_returns_single_vector(fake_embedder: FakeEmbedder) -> None:
    vector = WarmEmbedder(fake_embedder).embed("hello world")
    assert len(vector) == fake_embedder.dim
