"""Memory operations over one vector store.

MemoryService implements store, search, list_recent, update and delete on
top of an embedder and a single-collection vector store. It holds no state
of its own: the daemon builds one per request around a cached store.
"""

import logging
import uuid
from collections.abc import Sequence
from datetime import timedelta
from typing import Protocol

from shared_memory.domain.entities import MemoryRecord, SearchResult, utc_now
from shared_memory.domain.exceptions import NotFoundError, ValidationError
from shared_memory.ports.vector_store import PointFilter, VectorStore

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
DEFAULT_DAYS = 30


class TextEmbedder(Protocol):
    """Single-text embedding capability used by the service."""

    def embed(self, text: str) -> list[float]: ...


def _require_text(value: object, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"'{field_name}' is required and must be a non-empty string")
    return value


def _normalize_tags(tags: Sequence[str] | None) -> tuple[str, ...]:
    if tags is None:
        return ()
    if not isinstance(tags, (list, tuple)) or not all(isinstance(t, str) for t in tags):
        raise ValidationError("'tags' must be a list of strings")
    # Preserve first-seen order, drop duplicates
    return tuple(dict.fromkeys(t for t in tags if t))


def _positive_int(value: object, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"'{field_name}' must be a positive integer")
    return value


class MemoryService:
    """Memory operations bound to one embedder and one vector store."""

    def __init__(
        self,
        embedder: TextEmbedder,
        store: VectorStore,
        default_agent: str = "unknown",
        default_project: str = "default",
    ):
        """Initialize the service.

        Args:
            embedder: Embedder used for memory text and queries
            store: Vector store for the target collection
            default_agent: Agent label when a store call omits one
            default_project: Project label when a store call omits one
        """
        self.embedder = embedder
        self.store = store
        self.default_agent = default_agent
        self.default_project = default_project

    def store_memory(
        self,
        text: str,
        agent: str | None = None,
        project: str | None = None,
        tags: Sequence[str] | None = None,
    ) -> str:
        """Embed and persist a new memory.

        Returns:
            The new memory's identifier.

        Raises:
            ValidationError: If text is missing or empty, or tags are malformed.
        """
        text = _require_text(text, "text")
        record = MemoryRecord(
            id=str(uuid.uuid4()),
            text=text,
            agent=agent or self.default_agent,
            project=project or self.default_project,
            tags=_normalize_tags(tags),
            created_at=utc_now(),
        )
        vector = self.embedder.embed(text)
        self.store.upsert(record.id, vector, record.to_payload())
        logger.debug(f"Stored memory {record.id} in {self.store.collection}")
        return record.id

    def search(
        self,
        query: str,
        limit: int = DEFAULT_LIMIT,
        agent: str | None = None,
        project: str | None = None,
        tags: Sequence[str] | None = None,
    ) -> list[SearchResult]:
        """Semantic search restricted by agent, project and tags.

        All filters are AND-combined; a record must carry every listed tag.

        Raises:
            ValidationError: If query is empty or limit is not positive.
        """
        query = _require_text(query, "query")
        limit = _positive_int(limit, "limit")
        point_filter = PointFilter(
            agent=agent or None,
            project=project or None,
            tags=_normalize_tags(tags),
        )
        vector = self.embedder.embed(query)
        points = self.store.query(vector, limit, point_filter)
        return [
            SearchResult(
                record=MemoryRecord.from_payload(p.id, p.payload),
                score=p.score if p.score is not None else 0.0,
            )
            for p in points
        ]

    def list_recent(
        self,
        limit: int = DEFAULT_LIMIT,
        days: int = DEFAULT_DAYS,
        project: str | None = None,
    ) -> list[SearchResult]:
        """Memories created in the last ``days`` days, newest first.

        The backend scroll is unordered, so results are sorted here. Every
        result has score 1.0.

        Raises:
            ValidationError: If limit or days is not positive.
        """
        limit = _positive_int(limit, "limit")
        days = _positive_int(days, "days")
        cutoff = utc_now() - timedelta(days=days)
        point_filter = PointFilter(project=project or None, created_after=cutoff)

        records = [
            MemoryRecord.from_payload(p.id, p.payload)
            for p in self.store.scroll(point_filter, limit)
        ]
        # Backends may compare timestamps loosely; enforce the cutoff here too
        records = [r for r in records if r.created_at >= cutoff]
        records.sort(key=lambda r: r.created_at, reverse=True)
        return [SearchResult(record=r, score=1.0) for r in records[:limit]]

    def update(self, memory_id: str, text: str, project: str | None = None) -> None:
        """Replace a memory's text and vector, keeping its identifier.

        Agent, tags and creation time are preserved. The project is changed
        only when given.

        Raises:
            ValidationError: If id or text is missing.
            NotFoundError: If no memory has this id.
        """
        memory_id = _require_text(memory_id, "id")
        text = _require_text(text, "text")

        existing = self.store.retrieve(memory_id)
        if existing is None:
            raise NotFoundError(f"Memory not found: {memory_id}")

        current = MemoryRecord.from_payload(existing.id, existing.payload)
        updated = MemoryRecord(
            id=current.id,
            text=text,
            agent=current.agent,
            project=project or current.project,
            tags=current.tags,
            created_at=current.created_at,
            updated_at=utc_now(),
        )
        vector = self.embedder.embed(text)
        self.store.upsert(memory_id, vector, updated.to_payload())
        logger.debug(f"Updated memory {memory_id} in {self.store.collection}")

    def delete(self, memory_id: str) -> None:
        """Delete a memory. Deleting an unknown id succeeds.

        Raises:
            ValidationError: If id is missing.
        """
        memory_id = _require_text(memory_id, "id")
        self.store.delete(memory_id)
        logger.debug(f"Deleted memory {memory_id} from {self.store.collection}")
