"""Process-wide embedder with one-time, shared initialization.

The daemon accepts connections before the model has loaded. Requests that
need an embedding while loading is in flight wait on the same
initialization future instead of loading the model a second time.
"""

import logging
import threading
import time
from concurrent.futures import Future

from shared_memory.ports.embedders import Embedder

logger = logging.getLogger(__name__)


class WarmEmbedder:
    """Wraps an Embedder so that it is loaded at most once per process."""

    def __init__(self, embedder: Embedder):
        self._embedder = embedder
        self._lock = threading.Lock()
        self._init_future: Future[None] | None = None

    @property
    def name(self) -> str:
        return self._embedder.name

    @property
    def dim(self) -> int:
        return self._embedder.dim

    @property
    def ready(self) -> bool:
        """True once initialization has completed successfully."""
        future = self._init_future
        return (
            future is not None
            and future.done()
            and not future.cancelled()
            and future.exception() is None
        )

    def initialize(self) -> None:
        """Load the model, or wait for the load already in progress.

        Safe to call from any number of threads. A failed load is reported
        to every waiter and cleared, so the next call tries again.

        Raises:
            RuntimeError: If the model fails to load.
        """
        with self._lock:
            future = self._init_future
            owner = future is None
            if owner:
                future = Future()
                self._init_future = future

        if not owner:
            future.result()
            return

        logger.info(f"Loading embedding model: {self._embedder.name}...")
        start = time.time()
        try:
            self._embedder.ensure_loaded()
        except BaseException as e:
            with self._lock:
                self._init_future = None
            future.set_exception(e)
            raise
        future.set_result(None)
        logger.info(f"Model {self._embedder.name} loaded in {time.time() - start:.2f}s")

    def embed(self, text: str) -> list[float]:
        """Embed one text, blocking until the model is loaded."""
        self.initialize()
        return self._embedder.embed_texts([text])[0]
