from __future__ import annotations

import math
import sys
from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest
from rich.console import Console
from typer.testing import CliRunner

ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from reasonbank.core.config import EngineSettings  # noqa: E402
from reasonbank.core.result import (  # noqa: E402
    Err,
    Ok,
    PersistenceError,
    ReasonBankError,
    Result,
    VectorIndexError,
)
from reasonbank.memory.engine import ReasoningBank  # noqa: E402
from reasonbank.memory.models import Pattern, StoredEntry  # noqa: E402

# -----------------------------------------------------------------------------
# Fake collaborators
# -----------------------------------------------------------------------------


def _cosine(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b, strict=False))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class ExactIndex:
    """Vector index doing an exact cosine scan, optionally failing on demand."""

    def __init__(
        self, *, fail_search: bool = False, fail_add: bool = False, fail_remove: bool = False
    ) -> None:
        self.points: dict[str, list[float]] = {}
        self.fail_search = fail_search
        self.fail_add = fail_add
        self.fail_remove = fail_remove
        self.searches = 0

    async def add_point(self, point_id: str, vector: Sequence[float]) -> None:
        if self.fail_add:
            raise VectorIndexError("index is read-only")
        self.points[point_id] = list(vector)

    async def remove_point(self, point_id: str) -> None:
        if self.fail_remove:
            raise VectorIndexError("index is read-only")
        self.points.pop(point_id, None)

    async def search(
        self, vector: Sequence[float], k: int, ef_search: int
    ) -> list[tuple[str, float]]:
        self.searches += 1
        if self.fail_search:
            raise VectorIndexError("index unavailable")
        scored = [(pid, 1.0 - _cosine(vector, vec)) for pid, vec in self.points.items()]
        scored.sort(key=lambda item: item[1])
        return scored[:k]


class ScriptedIndex:
    """Vector index that returns whatever the test puts in ``results``."""

    def __init__(self, results: list[tuple[str, float]] | None = None) -> None:
        self.results = results or []
        self.added: list[str] = []
        self.removed: list[str] = []

    async def add_point(self, point_id: str, vector: Sequence[float]) -> None:
        self.added.append(point_id)

    async def remove_point(self, point_id: str) -> None:
        self.removed.append(point_id)

    async def search(
        self, vector: Sequence[float], k: int, ef_search: int
    ) -> list[tuple[str, float]]:
        return self.results[:k]


class MemoryBackend:
    """PatternBackend keeping rows in a dict and logging every call."""

    def __init__(self, *, fail: bool = False) -> None:
        self.rows: dict[str, StoredEntry] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail = fail

    def _err(self, action: str) -> Err[ReasonBankError]:
        return Err(PersistenceError(f"{action} failed"))

    async def store(self, entry: StoredEntry) -> Result[None, ReasonBankError]:
        self.calls.append(("store", entry.key))
        if self.fail:
            return self._err("store")
        self.rows[entry.key] = entry
        return Ok(None)

    async def update(
        self, key: str, metadata: Mapping[str, Any]
    ) -> Result[None, ReasonBankError]:
        self.calls.append(("update", key))
        if self.fail:
            return self._err("update")
        if key not in self.rows:
            return Err(PersistenceError("missing", context={"key": key}))
        self.rows[key].metadata = {**self.rows[key].metadata, **metadata}
        return Ok(None)

    async def delete(self, key: str) -> Result[None, ReasonBankError]:
        self.calls.append(("delete", key))
        if self.fail:
            return self._err("delete")
        self.rows.pop(key, None)
        return Ok(None)

    async def query(self, namespace: str, limit: int) -> Result[list[StoredEntry], ReasonBankError]:
        self.calls.append(("query", namespace))
        if self.fail:
            return self._err("query")
        return Ok([row for row in self.rows.values() if row.namespace == namespace][:limit])


class RaisingBackend:
    """PatternBackend whose every call raises."""

    async def store(self, entry: StoredEntry) -> Result[None, ReasonBankError]:
        raise OSError("disk on fire")

    async def update(
        self, key: str, metadata: Mapping[str, Any]
    ) -> Result[None, ReasonBankError]:
        raise OSError("disk on fire")

    async def delete(self, key: str) -> Result[None, ReasonBankError]:
        raise OSError("disk on fire")

    async def query(self, namespace: str, limit: int) -> Result[list[StoredEntry], ReasonBankError]:
        raise OSError("disk on fire")


class FrozenClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 15, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now = self.now + timedelta(**delta)


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def isolate_config(tmp_path: Path, monkeypatch: Any) -> Path:
    """Point config and the pattern archive at temp paths so tests don't touch user state."""
    cfg_path = tmp_path / "config.toml"
    monkeypatch.setenv("REASONBANK_CONFIG", str(cfg_path))
    monkeypatch.setenv("RB_STORAGE__STORE_PATH", str(tmp_path / "store" / "patterns.jsonl"))
    monkeypatch.setenv("RB_EMBEDDING__USE_SEMANTIC_SEARCH", "false")
    return cfg_path


@pytest.fixture(autouse=True)
def capture_console(monkeypatch: Any) -> Console:
    """Use an in-memory Rich console during tests."""
    test_console = Console(record=True, width=200)
    import reasonbank.commands.memory as memory_cmd
    import reasonbank.core.console as core_console
    import reasonbank.main as rb_main

    monkeypatch.setattr(core_console, "console", test_console)
    monkeypatch.setattr(rb_main, "console", test_console)
    monkeypatch.setattr(memory_cmd, "console", test_console)
    return test_console


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def make_engine(clock: FrozenClock) -> Callable[..., ReasoningBank]:
    """Build an engine with small defaults; keyword arguments pass through."""

    def _make(
        dimensions: int = 64, settings: EngineSettings | None = None, **kwargs: Any
    ) -> ReasoningBank:
        kwargs.setdefault("clock", clock)
        return ReasoningBank(settings or EngineSettings(dimensions=dimensions), **kwargs)

    return _make


@pytest.fixture
def make_pattern(clock: FrozenClock) -> Callable[..., Pattern]:
    """Build a Pattern with an explicit embedding for seeding via import."""

    def _make(
        pattern_id: str,
        embedding: list[float],
        *,
        strategy: str | None = None,
        quality: float = 0.5,
        usage_count: int = 1,
        success_count: int = 0,
        age_hours: float = 0.0,
        metadata: dict[str, Any] | None = None,
    ) -> Pattern:
        created = clock.now - timedelta(hours=age_hours)
        return Pattern(
            id=pattern_id,
            strategy=strategy or f"strategy {pattern_id}",
            domain="general",
            embedding=embedding,
            quality=quality,
            usage_count=usage_count,
            success_count=success_count,
            created_at=created,
            updated_at=created,
            metadata=metadata or {},
        )

    return _make


@pytest.fixture
def exact_index() -> ExactIndex:
    return ExactIndex()


@pytest.fixture
def memory_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def fakes() -> Any:
    """Expose the fake collaborator classes to tests that need custom instances."""

    class _Fakes:
        ExactIndex = ExactIndex
        ScriptedIndex = ScriptedIndex
        MemoryBackend = MemoryBackend
        RaisingBackend = RaisingBackend
        FrozenClock = FrozenClock

    return _Fakes
