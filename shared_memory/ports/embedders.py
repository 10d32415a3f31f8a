"""Embedder port interface for text embedding models.

Defines abstract interface for embedding text into vector representations.
"""

from typing import Protocol


class Embedder(Protocol):
    """Protocol for text embedding models."""

    @property
    def name(self) -> str:
        """Model name (e.g., 'sentence-transformers/all-MiniLM-L6-v2')."""
        ...

    @property
    def dim(self) -> int:
        """Embedding dimension (e.g., 384).

        Must be known without loading the model, since collections are
        created with this width before the first embedding is computed.
        """
        ...

    def ensure_loaded(self) -> None:
        """Load the model into memory if it is not loaded yet.

        Raises:
            RuntimeError: If the model fails to load.
        """
        ...

    def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts into unit-normalized vectors.

        Args:
            texts: List of text strings to embed.

        Returns:
            List of embedding vectors (one per input text).
            Each vector is a list of floats of length self.dim.

        Raises:
            RuntimeError: If model fails to load or embed.
        """
        ...
