"""Tests for the JSONL pattern archive and the row mapping."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from reasonbank.core.result import Err, Ok, PersistenceError
from reasonbank.memory.models import (
    LONG_TERM_NAMESPACE,
    SHORT_TERM_NAMESPACE,
    Pattern,
    StoredEntry,
    entry_to_pattern,
    pattern_to_entry,
)
from reasonbank.memory.store import JsonlPatternBackend, load_entries, write_entries


def entry(key: str, namespace: str = SHORT_TERM_NAMESPACE, **metadata: object) -> StoredEntry:
    return StoredEntry(
        key=key,
        namespace=namespace,
        content=f"strategy {key}",
        embedding=[1.0, 0.0],
        tags=["general", "short_term"],
        metadata=dict(metadata),
    )


@pytest.fixture
def archive(tmp_path: Path) -> Path:
    return tmp_path / "archive" / "patterns.jsonl"


class TestArchiveFile:
    def test_missing_file_loads_empty(self, archive: Path) -> None:
        assert load_entries(archive) == []

    def test_write_then_load(self, archive: Path) -> None:
        write_entries(archive, [entry("a"), entry("b", LONG_TERM_NAMESPACE)])

        loaded = load_entries(archive)

        assert [row.key for row in loaded] == ["a", "b"]
        assert loaded[1].namespace == LONG_TERM_NAMESPACE
        assert not archive.with_suffix(".tmp").exists()

    def test_corrupt_lines_are_skipped(self, archive: Path) -> None:
        write_entries(archive, [entry("a")])
        with archive.open("a", encoding="utf-8") as fh:
            fh.write("{not json\n\n")
            fh.write('{"namespace": "x"}\n')
        write_back = load_entries(archive)
        assert [row.key for row in write_back] == ["a"]

    def test_load_respects_limit(self, archive: Path) -> None:
        write_entries(archive, [entry(str(i)) for i in range(5)])
        assert len(load_entries(archive, max_entries=3)) == 3


class TestJsonlPatternBackend:
    @pytest.mark.asyncio
    async def test_store_and_query_by_namespace(self, archive: Path) -> None:
        backend = JsonlPatternBackend(archive)

        assert await backend.store(entry("s1")) == Ok(None)
        assert await backend.store(entry("l1", LONG_TERM_NAMESPACE)) == Ok(None)

        match await backend.query(SHORT_TERM_NAMESPACE, 10):
            case Ok(rows):
                assert [row.key for row in rows] == ["s1"]
            case Err(err):
                pytest.fail(f"query failed: {err}")

    @pytest.mark.asyncio
    async def test_store_replaces_existing_key(self, archive: Path) -> None:
        backend = JsonlPatternBackend(archive)
        await backend.store(entry("p1"))
        await backend.store(entry("p1", LONG_TERM_NAMESPACE))

        rows = load_entries(archive)

        assert len(rows) == 1
        assert rows[0].namespace == LONG_TERM_NAMESPACE

    @pytest.mark.asyncio
    async def test_update_merges_metadata(self, archive: Path) -> None:
        backend = JsonlPatternBackend(archive)
        await backend.store(entry("p1", agent="coder", usageCount=1))

        assert await backend.update("p1", {"usageCount": 2}) == Ok(None)

        [row] = load_entries(archive)
        assert row.metadata == {"agent": "coder", "usageCount": 2}

    @pytest.mark.asyncio
    async def test_update_unknown_key_is_err(self, archive: Path) -> None:
        result = await JsonlPatternBackend(archive).update("ghost", {"quality": 1.0})

        assert isinstance(result, Err)
        assert isinstance(result.error, PersistenceError)

    @pytest.mark.asyncio
    async def test_delete(self, archive: Path) -> None:
        backend = JsonlPatternBackend(archive)
        await backend.store(entry("p1"))

        assert await backend.delete("p1") == Ok(None)
        assert await backend.delete("p1") == Ok(None)
        assert load_entries(archive) == []

    @pytest.mark.asyncio
    async def test_writes_keep_rows_past_query_cap(self, archive: Path) -> None:
        backend = JsonlPatternBackend(archive, max_entries=3)
        for i in range(5):
            await backend.store(entry(f"k{i}"))
        await backend.update("k4", {"usageCount": 2})
        await backend.delete("k0")

        assert [row.key for row in load_entries(archive)] == ["k1", "k2", "k3", "k4"]
        assert load_entries(archive)[-1].metadata == {"usageCount": 2}
        queried = (await backend.query(SHORT_TERM_NAMESPACE, 10)).unwrap()
        assert [row.key for row in queried] == ["k1", "k2", "k3"]

    @pytest.mark.asyncio
    async def test_unwritable_path_is_err(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory", encoding="utf-8")
        backend = JsonlPatternBackend(blocker / "patterns.jsonl")

        result = await backend.store(entry("p1"))

        assert isinstance(result, Err)
        assert "Failed to store pattern" in str(result.error)


class TestRowMapping:
    def test_pattern_survives_a_row(self) -> None:
        created = datetime(2025, 1, 1, tzinfo=UTC)
        pattern = Pattern(
            id="p1",
            strategy="Use fixtures",
            domain="testing",
            embedding=[0.6, 0.8],
            quality=0.7,
            usage_count=3,
            success_count=2,
            created_at=created,
            updated_at=created,
            metadata={"agent": "test-architect"},
        )

        row = pattern_to_entry(pattern, "long_term")

        assert row.namespace == LONG_TERM_NAMESPACE
        assert row.tags == ["testing", "long_term"]
        assert row.metadata["usageCount"] == 3
        assert entry_to_pattern(row) == pattern

    def test_missing_counters_get_defaults(self) -> None:
        now = datetime(2025, 1, 1, tzinfo=UTC)
        row = StoredEntry(key="p1", namespace=SHORT_TERM_NAMESPACE, content="x", embedding=[1.0])

        pattern = entry_to_pattern(row, now=now)

        assert (pattern.quality, pattern.usage_count, pattern.success_count) == (0.5, 1, 0)
        assert pattern.domain == "general"
        assert pattern.created_at == now
        assert pattern.metadata == {}
