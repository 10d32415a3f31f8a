"""Cache of initialized vector store clients, one per backend.

One daemon serves clients pointing at different Qdrant servers or
collections. Each distinct BackendConfig gets exactly one client, created
and initialized (collection verified or created) on first use and kept for
the lifetime of the daemon. There is no eviction.
"""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass

from shared_memory.domain.entities import BackendConfig
from shared_memory.ports.vector_store import VectorStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedClient:
    """An initialized vector store and the backend it was built for."""

    config: BackendConfig
    store: VectorStore


StoreFactory = Callable[[BackendConfig], VectorStore]


def default_store_factory(config: BackendConfig) -> VectorStore:
    """Build a Qdrant-backed store for a backend config."""
    from shared_memory.adapters.qdrant.vector_store import QdrantVectorStore

    return QdrantVectorStore(config)


class ResourceCache:
    """Maps backend fingerprints to initialized store clients.

    The lock only guards the "is this fingerprint cached or being built"
    decision. Building a client happens outside it, so a slow backend
    does not hold up requests for other backends. Callers that arrive while
    a fingerprint is being built wait on the builder's future.
    """

    def __init__(
        self, dimension: int, store_factory: StoreFactory = default_store_factory
    ):
        """Initialize the cache.

        Args:
            dimension: Vector width for collections created on first use
            store_factory: Builds an uninitialized store for a config
        """
        self.dimension = dimension
        self._store_factory = store_factory
        self._lock = threading.Lock()
        self._entries: dict[str, CachedClient] = {}
        self._pending: dict[str, Future[CachedClient]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def resolve(self, config: BackendConfig) -> CachedClient:
        """Return the cached client for a backend, building it on first use.

        Args:
            config: Backend identity

        Returns:
            The single CachedClient for this config's fingerprint

        Raises:
            BackendUnavailable: If initialization fails. Nothing is cached,
                so a later call retries.
        """
        key = config.fingerprint
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                return entry
            future = self._pending.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._pending[key] = future

        if not owner:
            logger.debug(f"Waiting for in-flight initialization of {config.describe()}")
            return future.result()

        try:
            entry = self._build(config)
        except BaseException as e:
            with self._lock:
                del self._pending[key]
            future.set_exception(e)
            raise

        with self._lock:
            self._entries[key] = entry
            del self._pending[key]
        future.set_result(entry)
        return entry

    def _build(self, config: BackendConfig) -> CachedClient:
        logger.info(f"Initializing backend {config.describe()}")
        store = self._store_factory(config)
        store.ensure_collection(self.dimension)
        return CachedClient(config=config, store=store)

    def close(self) -> None:
        """Close every cached client that supports it and empty the cache."""
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
        for entry in entries:
            close = getattr(entry.store, "close", None)
            if close is not None:
                close()
