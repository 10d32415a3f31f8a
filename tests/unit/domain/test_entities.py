"""Unit tests for domain entities."""

from datetime import datetime, timedelta, timezone

import pytest

from shared_memory.domain.entities import (
    BackendConfig,
    MemoryRecord,
    SearchResult,
    format_timestamp,
    parse_timestamp,
)


class TestTimestamps:
    def test_format_uses_z_suffix(self) -> None:
        value = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
        assert format_timestamp(value) == "2024-05-01T12:30:00Z"

    def test_format_treats_naive_as_utc(self) -> None:
        assert format_timestamp(datetime(2024, 5, 1, 12, 30)) == "2024-05-01T12:30:00Z"

    def test_format_converts_other_zones_to_utc(self) -> None:
        value = datetime(2024, 5, 1, 14, 30, tzinfo=timezone(timedelta(hours=2)))
        assert format_timestamp(value) == "2024-05-01T12:30:00Z"

    def test_parse_accepts_z_suffix(self) -> None:
        parsed = parse_timestamp("2024-05-01T12:30:00Z")
        assert parsed == datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)

    def test_parse_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")


class TestBackendConfig:
    """Tests for backend identity and fingerprinting."""

    def test_equal_configs_share_fingerprint(self) -> None:
        a = BackendConfig("http://localhost:6333", "key", "memories")
        b = BackendConfig("http://localhost:6333", "key", "memories")
        assert a.fingerprint == b.fingerprint

    @pytest.mark.parametrize(
        "other",
        [
            BackendConfig("http://remote:6333", "key", "memories"),
            BackendConfig("http://localhost:6333", "other-key", "memories"),
            BackendConfig("http://localhost:6333", None, "memories"),
            BackendConfig("http://localhost:6333", "key", "other"),
        ],
    )
    def test_any_differing_part_changes_fingerprint(self, other: BackendConfig) -> None:
        base = BackendConfig("http://localhost:6333", "key", "memories")
        assert base.fingerprint != other.fingerprint

    def test_parts_cannot_collide_by_concatenation(self) -> None:
        a = BackendConfig("http://a", "bc", "d")
        b = BackendConfig("http://ab", "c", "d")
        assert a.fingerprint != b.fingerprint

    def test_describe_does_not_leak_credential(self) -> None:
        config = BackendConfig("http://localhost:6333", "s3cret", "memories")
        description = config.describe()
        assert "s3cret" not in description
        assert "memories" in description

    def test_empty_endpoint_rejected(self) -> None:
        with pytest.raises(ValueError, match="endpoint"):
            BackendConfig("", None, "memories")

    def test_empty_namespace_rejected(self) -> None:
        with pytest.raises(ValueError, match="namespace"):
            BackendConfig("http://localhost:6333", None, "")


class TestMemoryRecord:
    """Tests for payload serialization."""

    def test_payload_round_trip(self) -> None:
        created = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        record = MemoryRecord(
            id="abc",
            text="remember this",
            agent="claude-code",
            project="web",
            tags=("api", "auth"),
            created_at=created,
        )

        payload = record.to_payload()

        assert payload == {
            "id": "abc",
            "text": "remember this",
            "agent": "claude-code",
            "project": "web",
            "tags": ["api", "auth"],
            "created_at": "2024-01-02T03:04:05Z",
        }
        assert MemoryRecord.from_payload("abc", payload) == record

    def test_updated_at_only_serialized_when_set(self) -> None:
        record = MemoryRecord(
            id="abc",
            text="t",
            agent="a",
            project="p",
            updated_at=datetime(2024, 2, 1, tzinfo=timezone.utc),
        )
        assert record.to_payload()["updated_at"] == "2024-02-01T00:00:00Z"

    def test_from_payload_fills_missing_fields(self) -> None:
        record = MemoryRecord.from_payload("point-1", {"text": "bare"})
        assert record.id == "point-1"
        assert record.agent == "unknown"
        assert record.project == "default"
        assert record.tags == ()
        assert record.updated_at is None


class TestSearchResult:
    def test_to_dict_shape(self) -> None:
        record = MemoryRecord(
            id="abc",
            text="t",
            agent="a",
            project="p",
            tags=("x",),
            created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        assert SearchResult(record=record, score=0.5).to_dict() == {
            "id": "abc",
            "score": 0.5,
            "text": "t",
            "agent": "a",
            "project": "p",
            "tags": ["x"],
            "created_at": "2024-01-01T00:00:00Z",
        }
