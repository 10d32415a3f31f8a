"""Core domain entities for the shared memory service.

Entities are immutable value objects. They carry no I/O and are shared by
the daemon, the client and the storage adapters.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render a datetime as the ISO-8601 string stored in record payloads."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 payload timestamp back into an aware datetime.

    Raises:
        ValueError: If the string is not a valid ISO-8601 timestamp.
    """
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class BackendConfig:
    """Identity of one vector database collection.

    Two configs with the same fingerprint refer to the same backend and
    must share a single client instance inside the daemon.

    Attributes:
        endpoint: Vector database URL (e.g., "http://localhost:6333").
        credential: Optional API key.
        namespace: Collection name.
    """

    endpoint: str
    credential: str | None
    namespace: str

    def __post_init__(self) -> None:
        """Validate backend identity."""
        if not self.endpoint:
            raise ValueError("endpoint must not be empty")
        if not self.namespace:
            raise ValueError("namespace must not be empty")

    @property
    def fingerprint(self) -> str:
        """Deterministic cache key derived from endpoint, credential and namespace.

        Hashed so the credential never shows up in cache keys or logs.
        """
        parts = [self.endpoint, self.credential or "", self.namespace]
        return hashlib.sha256("\x1f".join(parts).encode("utf-8")).hexdigest()

    def describe(self) -> str:
        """Log-safe description (no credential)."""
        return f"{self.endpoint}/{self.namespace} [{self.fingerprint[:8]}]"


@dataclass(frozen=True)
class MemoryRecord:
    """A single stored memory.

    Attributes:
        id: Unique identifier (UUID string).
        text: Memory content.
        agent: Agent that stored the memory (e.g., "claude-code").
        project: Project the memory is scoped to.
        tags: Tags used for conjunctive filtering.
        created_at: Creation time (UTC).
        updated_at: Time of the last text update, if any.
    """

    id: str
    text: str
    agent: str
    project: str
    tags: tuple[str, ...] = ()
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime | None = None

    def to_payload(self) -> dict[str, Any]:
        """Serialize to the payload stored alongside the vector."""
        payload: dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "agent": self.agent,
            "project": self.project,
            "tags": list(self.tags),
            "created_at": format_timestamp(self.created_at),
        }
        if self.updated_at is not None:
            payload["updated_at"] = format_timestamp(self.updated_at)
        return payload

    @classmethod
    def from_payload(cls, point_id: str, payload: dict[str, Any]) -> "MemoryRecord":
        """Rebuild a record from a stored payload.

        Missing fields fall back to neutral values so records written by
        older clients still load.
        """
        created_raw = payload.get("created_at")
        updated_raw = payload.get("updated_at")
        return cls(
            id=str(payload.get("id") or point_id),
            text=payload.get("text", ""),
            agent=payload.get("agent", "unknown"),
            project=payload.get("project", "default"),
            tags=tuple(payload.get("tags") or ()),
            created_at=parse_timestamp(created_raw) if created_raw else utc_now(),
            updated_at=parse_timestamp(updated_raw) if updated_raw else None,
        )


@dataclass(frozen=True)
class SearchResult:
    """A memory returned by search or list_recent, with its ranking score.

    For list_recent the score is always 1.0: ranking is by recency, not
    similarity.
    """

    record: MemoryRecord
    score: float

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the wire."""
        return {
            "id": self.record.id,
            "score": self.score,
            "text": self.record.text,
            "agent": self.record.agent,
            "project": self.record.project,
            "tags": list(self.record.tags),
            "created_at": format_timestamp(self.record.created_at),
        }


@dataclass(frozen=True)
class StoredPoint:
    """A point as returned by a vector store query or scroll."""

    id: str
    payload: dict[str, Any]
    score: float | None = None
