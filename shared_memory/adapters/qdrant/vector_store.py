"""Qdrant adapter for the VectorStore port.

Wraps a qdrant_client.QdrantClient bound to one collection. Every client
error is converted to BackendUnavailable so the daemon can report it to
the caller without knowing about Qdrant.
"""

import logging
import uuid
from collections.abc import Callable
from typing import Any, TypeVar

from qdrant_client import QdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from qdrant_client.models import (
    DatetimeRange,
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    PointIdsList,
    PointStruct,
    VectorParams,
)

from shared_memory.domain.entities import BackendConfig, StoredPoint
from shared_memory.domain.exceptions import BackendUnavailable
from shared_memory.ports.vector_store import PointFilter

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors raised by qdrant-client for transport, auth and server failures
BACKEND_ERRORS = (UnexpectedResponse, ResponseHandlingException, OSError, TimeoutError)


def build_filter(point_filter: PointFilter | None) -> Filter | None:
    """Translate a PointFilter into a Qdrant filter.

    Each tag becomes its own ``must`` condition, so a point has to carry
    every tag to match.

    Args:
        point_filter: Domain filter, or None

    Returns:
        Qdrant Filter, or None if there is nothing to filter on
    """
    if point_filter is None or point_filter.is_empty():
        return None

    must: list[FieldCondition] = []
    if point_filter.agent is not None:
        must.append(FieldCondition(key="agent", match=MatchValue(value=point_filter.agent)))
    if point_filter.project is not None:
        must.append(
            FieldCondition(key="project", match=MatchValue(value=point_filter.project))
        )
    for tag in point_filter.tags:
        must.append(FieldCondition(key="tags", match=MatchValue(value=tag)))
    if point_filter.created_after is not None:
        must.append(
            FieldCondition(
                key="created_at", range=DatetimeRange(gte=point_filter.created_after)
            )
        )
    return Filter(must=must)


def is_valid_point_id(point_id: str) -> bool:
    """Qdrant accepts UUIDs and unsigned integers as point ids."""
    if point_id.isdigit():
        return True
    try:
        uuid.UUID(point_id)
    except ValueError:
        return False
    return True


class QdrantVectorStore:
    """VectorStore backed by one Qdrant collection."""

    def __init__(
        self,
        config: BackendConfig,
        client: QdrantClient | None = None,
        timeout: int = 30,
    ):
        """Initialize the store.

        Args:
            config: Backend identity (URL, API key, collection)
            client: Pre-built client (tests); created from config if None
            timeout: Request timeout in seconds for a created client
        """
        self.config = config
        self.client = client or QdrantClient(
            url=config.endpoint,
            api_key=config.credential,
            timeout=timeout,
        )

    @property
    def collection(self) -> str:
        """Collection name."""
        return self.config.namespace

    def _call(self, operation: str, func: Callable[[], T]) -> T:
        try:
            return func()
        except BACKEND_ERRORS as e:
            raise BackendUnavailable(
                f"Vector store {operation} failed for {self.config.endpoint}: {e}",
                hint="Check that Qdrant is running and the API key is valid",
            ) from e

    def ensure_collection(self, dimension: int) -> bool:
        """Create the collection with cosine distance if it is missing."""
        exists = self._call(
            "collection check", lambda: self.client.collection_exists(self.collection)
        )
        if exists:
            logger.debug(f"Using existing collection: {self.collection}")
            return False

        self._call(
            "collection create",
            lambda: self.client.create_collection(
                collection_name=self.collection,
                vectors_config=VectorParams(size=dimension, distance=Distance.COSINE),
            ),
        )
        logger.info(f"Created collection: {self.collection} (dim={dimension})")
        return True

    def upsert(self, point_id: str, vector: list[float], payload: dict[str, Any]) -> None:
        """Insert or replace one point and wait for it to be indexed."""
        self._call(
            "upsert",
            lambda: self.client.upsert(
                collection_name=self.collection,
                wait=True,
                points=[PointStruct(id=point_id, vector=vector, payload=payload)],
            ),
        )

    def query(
        self, vector: list[float], limit: int, point_filter: PointFilter | None = None
    ) -> list[StoredPoint]:
        """Nearest-neighbour query, best match first."""
        response = self._call(
            "query",
            lambda: self.client.query_points(
                collection_name=self.collection,
                query=vector,
                limit=limit,
                query_filter=build_filter(point_filter),
                with_payload=True,
            ),
        )
        return [
            StoredPoint(id=str(p.id), payload=p.payload or {}, score=p.score)
            for p in response.points
        ]

    def scroll(
        self, point_filter: PointFilter | None = None, limit: int = 10
    ) -> list[StoredPoint]:
        """Filtered scan of up to ``limit`` points, in backend order."""
        points, _next_offset = self._call(
            "scroll",
            lambda: self.client.scroll(
                collection_name=self.collection,
                scroll_filter=build_filter(point_filter),
                limit=limit,
                with_payload=True,
                with_vectors=False,
            ),
        )
        return [StoredPoint(id=str(p.id), payload=p.payload or {}) for p in points]

    def retrieve(self, point_id: str) -> StoredPoint | None:
        """Fetch one point by id."""
        if not is_valid_point_id(point_id):
            return None
        points = self._call(
            "retrieve",
            lambda: self.client.retrieve(
                collection_name=self.collection,
                ids=[point_id],
                with_payload=True,
                with_vectors=False,
            ),
        )
        if not points:
            return None
        return StoredPoint(id=str(points[0].id), payload=points[0].payload or {})

    def delete(self, point_id: str) -> None:
        """Delete one point; unknown or malformed ids are a no-op."""
        if not is_valid_point_id(point_id):
            logger.debug(f"Ignoring delete of non-point id: {point_id}")
            return
        self._call(
            "delete",
            lambda: self.client.delete(
                collection_name=self.collection,
                points_selector=PointIdsList(points=[point_id]),
                wait=True,
            ),
        )

    def close(self) -> None:
        """Release the underlying HTTP connections."""
        try:
            self.client.close()
        except BACKEND_ERRORS as e:
            logger.debug(f"Error closing Qdrant client: {e}")
