"""Vector store port interface.

Defines the capability the memory service needs from a vector database:
one keyed collection of (vector, payload) points with filtered
nearest-neighbour queries and filtered scrolls.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from shared_memory.domain.entities import StoredPoint


@dataclass(frozen=True)
class PointFilter:
    """AND-combined filter over memory payload fields.

    Attributes:
        agent: Exact match on the agent label
        project: Exact match on the project label
        tags: Every listed tag must be present on the record
        created_after: Inclusive lower bound on created_at
    """

    agent: str | None = None
    project: str | None = None
    tags: tuple[str, ...] = ()
    created_after: datetime | None = None

    def is_empty(self) -> bool:
        """True if the filter places no restriction."""
        return (
            self.agent is None
            and self.project is None
            and not self.tags
            and self.created_after is None
        )


class VectorStore(Protocol):
    """Protocol for a single-collection vector store."""

    @property
    def collection(self) -> str:
        """Name of the collection this store reads and writes."""
        ...

    def ensure_collection(self, dimension: int) -> bool:
        """Create the collection if it does not exist.

        Args:
            dimension: Vector width (the embedder's output dimension).

        Returns:
            True if the collection was created, False if it already existed.

        Raises:
            BackendUnavailable: If the backend cannot be reached.
        """
        ...

    def upsert(self, point_id: str, vector: list[float], payload: dict[str, Any]) -> None:
        """Insert or replace one point."""
        ...

    def query(
        self, vector: list[float], limit: int, point_filter: PointFilter | None = None
    ) -> list[StoredPoint]:
        """Nearest-neighbour query, best match first."""
        ...

    def scroll(
        self, point_filter: PointFilter | None = None, limit: int = 10
    ) -> list[StoredPoint]:
        """Filtered range scan. Order is unspecified."""
        ...

    def retrieve(self, point_id: str) -> StoredPoint | None:
        """Fetch one point by id, or None if it does not exist."""
        ...

    def delete(self, point_id: str) -> None:
        """Delete one point. Deleting a missing id is not an error."""
        ...
