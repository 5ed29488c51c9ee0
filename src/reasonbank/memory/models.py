"""Memory data models and protocol definitions.

This module contains the core dataclasses and the collaborator protocols
used throughout the memory subsystem: the optional model service, the
optional accelerated vector index and the optional persistence backend.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal, Protocol

from reasonbank.core.result import ReasonBankError, Result
from reasonbank.guidance.classifier import AgentSuggestion

SHORT_TERM_NAMESPACE = "patterns:short_term"
LONG_TERM_NAMESPACE = "patterns:long_term"

Tier = Literal["short_term", "long_term"]
StoreAction = Literal["created", "updated"]


# -----------------------------------------------------------------------------
# Core Data Models
# -----------------------------------------------------------------------------


@dataclass
class Pattern:
    """A strategy learned from a prior execution, stored with its embedding.

    ``quality`` is fixed at 0.5 on creation and recomputed as
    ``0.3 + 0.7 * success_count / usage_count`` on every later update.
    """

    id: str
    strategy: str
    domain: str
    embedding: list[float]
    quality: float
    usage_count: int
    success_count: int
    created_at: datetime
    updated_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        return self.success_count / max(self.usage_count, 1)


@dataclass(frozen=True)
class SearchHit:
    pattern: Pattern
    similarity: float


@dataclass(frozen=True)
class StoreResult:
    id: str
    action: StoreAction


@dataclass(frozen=True)
class ConsolidationReport:
    duplicates_removed: int = 0
    patterns_pruned: int = 0
    patterns_promoted: int = 0


@dataclass
class EngineMetrics:
    """Counters accumulated by the engine. Times are milliseconds."""

    patterns_stored: int = 0
    patterns_retrieved: int = 0
    search_count: int = 0
    total_search_time: float = 0.0
    promotions: int = 0
    index_search_time: float = 0.0
    brute_force_search_time: float = 0.0


@dataclass(frozen=True)
class EngineStats:
    short_term_count: int
    long_term_count: int
    metrics: EngineMetrics
    avg_search_time: float
    use_real_backend: bool
    index_speedup: float

    @property
    def total_patterns(self) -> int:
        return self.short_term_count + self.long_term_count


@dataclass
class PatternSnapshot:
    """Both tiers, as produced by export and consumed by import."""

    short_term: list[Pattern] = field(default_factory=list)
    long_term: list[Pattern] = field(default_factory=list)


# -----------------------------------------------------------------------------
# Guidance / Routing Models
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class AgentAlternative:
    agent: str
    confidence: int


@dataclass(frozen=True)
class HistoricalPerformance:
    success_rate: float
    avg_quality: float
    task_count: int


@dataclass(frozen=True)
class GuidanceResult:
    patterns: list[SearchHit]
    context: str
    recommendations: list[str]
    agent_suggestion: AgentSuggestion | None
    search_time_ms: float


@dataclass(frozen=True)
class RoutingResult:
    agent: str
    confidence: int
    alternatives: list[AgentAlternative]
    reasoning: str
    historical_performance: HistoricalPerformance | None = None


# -----------------------------------------------------------------------------
# Persistence Records
# -----------------------------------------------------------------------------


@dataclass
class StoredEntry:
    """A row as exchanged with the persistence backend."""

    key: str
    namespace: str
    content: str
    embedding: list[float]
    tags: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)


_LIFECYCLE_KEYS = ("quality", "usageCount", "successCount", "createdAt", "updatedAt")


def _parse_timestamp(raw: object, default: datetime) -> datetime:
    if isinstance(raw, datetime):
        return raw if raw.tzinfo else raw.replace(tzinfo=UTC)
    if isinstance(raw, (int, float)):
        # Epoch milliseconds
        return datetime.fromtimestamp(float(raw) / 1000.0, tz=UTC)
    if isinstance(raw, str) and raw:
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return default
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return default


def lifecycle_metadata(pattern: Pattern) -> dict[str, Any]:
    """Counters and timestamps in the persisted metadata layout."""
    return {
        "quality": pattern.quality,
        "usageCount": pattern.usage_count,
        "successCount": pattern.success_count,
        "createdAt": pattern.created_at.isoformat(),
        "updatedAt": pattern.updated_at.isoformat(),
    }


def pattern_to_entry(pattern: Pattern, tier: Tier) -> StoredEntry:
    """Map a pattern to its persisted row."""
    namespace = LONG_TERM_NAMESPACE if tier == "long_term" else SHORT_TERM_NAMESPACE
    return StoredEntry(
        key=pattern.id,
        namespace=namespace,
        content=pattern.strategy,
        embedding=list(pattern.embedding),
        tags=[pattern.domain, tier],
        metadata={**pattern.metadata, **lifecycle_metadata(pattern)},
    )


def entry_to_pattern(entry: StoredEntry, *, now: datetime | None = None) -> Pattern:
    """Map a persisted row back to a pattern, defaulting missing counters."""
    fallback = now or datetime.now(UTC)
    meta = dict(entry.metadata)
    created_at = _parse_timestamp(meta.get("createdAt"), fallback)
    updated_at = _parse_timestamp(meta.get("updatedAt"), created_at)
    extra = {key: value for key, value in meta.items() if key not in _LIFECYCLE_KEYS}
    return Pattern(
        id=entry.key,
        strategy=entry.content,
        domain=entry.tags[0] if entry.tags else "general",
        embedding=[float(value) for value in entry.embedding],
        quality=float(meta.get("quality") or 0.5),
        usage_count=int(meta.get("usageCount") or 1),
        success_count=int(meta.get("successCount") or 0),
        created_at=created_at,
        updated_at=max(updated_at, created_at),
        metadata=extra,
    )


def pattern_to_dict(pattern: Pattern) -> dict[str, Any]:
    """JSON-ready representation used by export files."""
    return {
        "id": pattern.id,
        "strategy": pattern.strategy,
        "domain": pattern.domain,
        "embedding": list(pattern.embedding),
        "quality": pattern.quality,
        "usageCount": pattern.usage_count,
        "successCount": pattern.success_count,
        "createdAt": pattern.created_at.isoformat(),
        "updatedAt": pattern.updated_at.isoformat(),
        "metadata": dict(pattern.metadata),
    }


def pattern_from_dict(data: Mapping[str, Any]) -> Pattern:
    now = datetime.now(UTC)
    created_at = _parse_timestamp(data.get("createdAt"), now)
    return Pattern(
        id=str(data["id"]),
        strategy=str(data["strategy"]),
        domain=str(data.get("domain") or "general"),
        embedding=[float(value) for value in data.get("embedding", [])],
        quality=float(data.get("quality", 0.5)),
        usage_count=int(data.get("usageCount", 1)),
        success_count=int(data.get("successCount", 0)),
        created_at=created_at,
        updated_at=_parse_timestamp(data.get("updatedAt"), created_at),
        metadata=dict(data.get("metadata") or {}),
    )


def snapshot_to_dict(snapshot: PatternSnapshot) -> dict[str, list[dict[str, Any]]]:
    return {
        "shortTerm": [pattern_to_dict(p) for p in snapshot.short_term],
        "longTerm": [pattern_to_dict(p) for p in snapshot.long_term],
    }


def snapshot_from_dict(data: Mapping[str, Any]) -> PatternSnapshot:
    """Parse an export document. Raises KeyError/TypeError/ValueError on bad rows."""
    return PatternSnapshot(
        short_term=[pattern_from_dict(row) for row in data.get("shortTerm") or []],
        long_term=[pattern_from_dict(row) for row in data.get("longTerm") or []],
    )


# -----------------------------------------------------------------------------
# Collaborator Protocols
# -----------------------------------------------------------------------------


class ModelService(Protocol):
    """A real embedding model. Must be initialized before ``embed``."""

    async def initialize(self) -> None: ...

    async def embed(self, text: str) -> Sequence[float]: ...


class VectorIndex(Protocol):
    """Accelerated nearest-neighbour index using the cosine metric."""

    async def add_point(self, point_id: str, vector: Sequence[float]) -> None: ...

    async def remove_point(self, point_id: str) -> None: ...

    async def search(
        self, vector: Sequence[float], k: int, ef_search: int
    ) -> Sequence[tuple[str, float]]: ...


class PatternBackend(Protocol):
    """Persistence collaborator. Failures come back as ``Err`` values."""

    async def store(self, entry: StoredEntry) -> Result[None, ReasonBankError]: ...

    async def update(
        self, key: str, metadata: Mapping[str, Any]
    ) -> Result[None, ReasonBankError]: ...

    async def delete(self, key: str) -> Result[None, ReasonBankError]: ...

    async def query(
        self, namespace: str, limit: int
    ) -> Result[list[StoredEntry], ReasonBankError]: ...


__all__ = [
    "AgentAlternative",
    "ConsolidationReport",
    "EngineMetrics",
    "EngineStats",
    "GuidanceResult",
    "HistoricalPerformance",
    "LONG_TERM_NAMESPACE",
    "ModelService",
    "Pattern",
    "PatternBackend",
    "PatternSnapshot",
    "RoutingResult",
    "SHORT_TERM_NAMESPACE",
    "SearchHit",
    "StoreAction",
    "StoreResult",
    "StoredEntry",
    "Tier",
    "VectorIndex",
    "entry_to_pattern",
    "lifecycle_metadata",
    "pattern_from_dict",
    "pattern_to_dict",
    "pattern_to_entry",
    "snapshot_from_dict",
    "snapshot_to_dict",
]
