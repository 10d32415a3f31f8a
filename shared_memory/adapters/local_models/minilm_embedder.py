"""MiniLM embedder adapter for lightweight embedding.

Uses sentence-transformers/all-MiniLM-L6-v2 via sentence-transformers.
Small enough (~100MB RAM, 22M params) to keep resident in the daemon.
"""

import os
from typing import TYPE_CHECKING

# Lazy import - only load when actually needed
if TYPE_CHECKING:
    from sentence_transformers import SentenceTransformer


class MiniLMEmbedder:
    """Embedder using all-MiniLM-L6-v2 model.

    Implements the Embedder protocol with mean pooling and L2-normalized
    384-dimensional output. Loading is not synchronized here; wrap the
    embedder in WarmEmbedder before sharing it between threads.
    """

    MODEL_NAME = "sentence-transformers/all-MiniLM-L6-v2"
    MODEL_DIM = 384
    DEFAULT_MAX_SEQ_LENGTH = 256
    DEFAULT_BATCH_SIZE = 32

    def __init__(
        self,
        max_seq_length: int = DEFAULT_MAX_SEQ_LENGTH,
        batch_size: int = DEFAULT_BATCH_SIZE,
        device: str | None = None,
    ):
        """Initialize the MiniLM Embedder.

        Args:
            max_seq_length: Maximum sequence length for tokenization (1-256).
            batch_size: Batch size for encoding.
            device: Device to run on ('cpu', 'cuda', 'mps', or None for auto).
        """
        self._max_seq_length = max_seq_length
        self._batch_size = batch_size
        self._device = device
        self._model: SentenceTransformer | None = None

    def _ensure_model_loaded(self) -> "SentenceTransformer":
        """Lazy-load the model on first use.

        Not safe to call from several threads at once: two callers can both
        see no model and load it twice. The daemon only reaches this through
        WarmEmbedder, which serializes the first load.

        Returns:
            Loaded SentenceTransformer model.

        Raises:
            RuntimeError: If model fails to load.
        """
        if self._model is None:
            # Must be set before tokenizers is imported
            os.environ.setdefault("TOKENIZERS_PARALLELISM", "false")

            from sentence_transformers import SentenceTransformer

            try:
                # Prefer the local cache so a slow or unreachable hub does not
                # stall daemon startup
                try:
                    model = SentenceTransformer(
                        self.MODEL_NAME,
                        device=self._device,
                        local_files_only=True,
                    )
                except (OSError, ValueError):
                    model = SentenceTransformer(self.MODEL_NAME, device=self._device)

                model.max_seq_length = self._max_seq_length
                self._model = model
            except Exception as e:
                raise RuntimeError(f"Failed to load {self.MODEL_NAME}: {e}") from e
        return self._model

    @property
    def name(self) -> str:
        """Model name."""
        return self.MODEL_NAME

    @property
    def dim(self) -> int:
        """Embedding dimension."""
        return self.MODEL_DIM

    def ensure_loaded(self) -> None:
        """Load the model now instead of on the first embedding call."""
        self._ensure_model_loaded()

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts into vectors.

        Args:
            texts: List of text strings to embed.

        Returns:
            List of embedding vectors (one per input text).

        Raises:
            RuntimeError: If model fails to load or embed.
        """
        if not texts:
            return []

        model = self._ensure_model_loaded()
        try:
            embeddings = model.encode(
                texts,
                batch_size=self._batch_size,
                show_progress_bar=False,
                convert_to_numpy=True,
                normalize_embeddings=True,
            )
            return [emb.tolist() for emb in embeddings]
        except Exception as e:
            raise RuntimeError(f"Failed to embed {len(texts)} texts: {e}") from e
