"""The pattern engine.

``ReasoningBank`` owns two in-memory tiers of learned patterns:

- short-term: every newly created pattern lands here
- long-term: patterns that proved useful (enough usage at enough quality)

Every state change is forwarded to an optional persistence backend, every
new or removed pattern to an optional vector index. Both collaborators are
allowed to fail; the in-memory tiers stay authoritative and failures are
logged.
"""

from __future__ import annotations

import importlib.util
import secrets
import time
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Literal

from reasonbank.core.config import AppConfig, EmbeddingSettings, EngineSettings
from reasonbank.core.console import get_logger
from reasonbank.core.result import Err, ReasonBankError, Result, ValidationError
from reasonbank.guidance.classifier import (
    DEFAULT_AGENT,
    detect_domains,
    domain_recommendations,
    rank_alternatives,
    suggest_agent,
)
from reasonbank.guidance.hooks import HookContext

from .embedding import EmbeddingChain, ModelEmbedder, ProcessEmbedder, SentenceTransformerService
from .models import (
    LONG_TERM_NAMESPACE,
    SHORT_TERM_NAMESPACE,
    AgentAlternative,
    ConsolidationReport,
    EngineMetrics,
    EngineStats,
    GuidanceResult,
    HistoricalPerformance,
    ModelService,
    Pattern,
    PatternBackend,
    PatternSnapshot,
    RoutingResult,
    SearchHit,
    StoreResult,
    Tier,
    VectorIndex,
    entry_to_pattern,
    lifecycle_metadata,
    pattern_to_entry,
)
from .retrieval import brute_force_search, duplicate_pairs
from .store import JsonlPatternBackend

if TYPE_CHECKING:
    from collections.abc import Awaitable

logger = get_logger(__name__)

EngineEvent = Literal[
    "initialized",
    "pattern:stored",
    "pattern:promoted",
    "outcome:recorded",
    "consolidated",
    "shutdown",
]
ENGINE_EVENTS: tuple[str, ...] = (
    "initialized",
    "pattern:stored",
    "pattern:promoted",
    "outcome:recorded",
    "consolidated",
    "shutdown",
)

EventListener = Callable[[dict[str, Any]], None]
Clock = Callable[[], datetime]

CREATION_QUALITY = 0.5
GUIDANCE_SEARCH_K = 5
GUIDANCE_PATTERN_LINES = 3
ROUTING_SEARCH_K = 10


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


def compute_quality(usage_count: int, success_count: int) -> float:
    """Quality after an update: ``0.3 + 0.7 * success_rate``, 0.5 when unused."""
    if usage_count <= 0:
        return CREATION_QUALITY
    return 0.3 + 0.7 * (success_count / usage_count)


def new_pattern_id(now: datetime) -> str:
    return f"pat_{int(now.timestamp() * 1000)}_{secrets.token_hex(3)}"


def _copy_pattern(pattern: Pattern) -> Pattern:
    return replace(pattern, embedding=list(pattern.embedding), metadata=dict(pattern.metadata))


class ReasoningBank:
    """Stores, retrieves, scores and consolidates learned patterns.

    The engine is owned by its caller; there is no module-level instance.
    Public operations initialize lazily, so constructing one and calling
    ``search_patterns`` straight away is fine.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        *,
        model_service: ModelService | None = None,
        vector_index: VectorIndex | None = None,
        persistence: PatternBackend | None = None,
        embedding_command: Sequence[str] | None = None,
        embedding_timeout: float = 10.0,
        embedding_settings: EmbeddingSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        embed_cfg = embedding_settings or EmbeddingSettings()
        cache_options = {
            "cache_key_chars": embed_cfg.cache_key_chars,
            "cache_size": embed_cfg.cache_size,
        }
        dims = self.settings.dimensions

        model = ModelEmbedder(model_service, dims, **cache_options) if model_service else None
        process = (
            ProcessEmbedder(
                embedding_command,
                dims,
                timeout=embedding_timeout,
                max_input_chars=embed_cfg.max_input_chars,
                **cache_options,
            )
            if embedding_command
            else None
        )
        self.embedder = EmbeddingChain(dims, model=model, process=process, **cache_options)

        self._index = vector_index
        # False once an add or remove failed; search then stays on brute force
        self._index_complete = True
        self._persistence = persistence
        self._clock: Clock = clock or _utc_now
        self._short_term: dict[str, Pattern] = {}
        self._long_term: dict[str, Pattern] = {}
        self._listeners: dict[str, list[EventListener]] = {}
        self._initialized = False
        self._use_real_backend = False
        self.metrics = EngineMetrics()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def short_term(self) -> dict[str, Pattern]:
        return self._short_term

    @property
    def long_term(self) -> dict[str, Pattern]:
        return self._long_term

    async def initialize(self) -> None:
        """Bring up the embedder and load persisted patterns. Never raises."""
        if self._initialized:
            return

        await self.embedder.initialize()
        backend = self._persistence
        if backend is not None:
            await self._load_tier(
                backend, LONG_TERM_NAMESPACE, "long_term", self.settings.max_long_term
            )
            await self._load_tier(
                backend, SHORT_TERM_NAMESPACE, "short_term", self.settings.max_short_term
            )

        self._use_real_backend = self._persistence is not None and self._index is not None
        self._initialized = True
        self._emit(
            "initialized",
            {
                "short_term": len(self._short_term),
                "long_term": len(self._long_term),
                "use_real_backend": self._use_real_backend,
            },
        )

    async def shutdown(self) -> None:
        """End the engine lifecycle. In-memory tiers are kept for a later reload."""
        if not self._initialized:
            return
        self._initialized = False
        self._emit("shutdown", {"metrics": replace(self.metrics)})

    async def __aenter__(self) -> ReasoningBank:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.initialize()

    async def _load_tier(
        self, backend: PatternBackend, namespace: str, tier: Tier, limit: int
    ) -> None:
        try:
            result = await backend.query(namespace, limit)
        except Exception as exc:
            logger.warning("Could not load %s patterns, continuing in memory: %s", tier, exc)
            return
        match result:
            case Err(err):
                logger.warning("Could not load %s patterns, continuing in memory: %s", tier, err)
                return
            case _:
                entries = result.unwrap()

        now = self._clock()
        loaded = 0
        for entry in entries:
            try:
                pattern = entry_to_pattern(entry, now=now)
            except (TypeError, ValueError, OverflowError) as exc:
                logger.warning("Skipping unreadable persisted pattern %s: %s", entry.key, exc)
                continue
            if len(pattern.embedding) != self.settings.dimensions:
                logger.warning(
                    "Skipping persisted pattern %s: embedding has %d dimensions, expected %d",
                    pattern.id,
                    len(pattern.embedding),
                    self.settings.dimensions,
                )
                continue
            if pattern.id in self._short_term or pattern.id in self._long_term:
                continue
            self._tier(tier)[pattern.id] = pattern
            await self._index_pattern(pattern)
            loaded += 1
        logger.debug("Loaded %d %s patterns from persistence", loaded, tier)

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def on(self, event: EngineEvent, callback: EventListener) -> None:
        """Register ``callback`` for a lifecycle event."""
        if event not in ENGINE_EVENTS:
            raise ValidationError("Unknown engine event", context={"event": event})
        self._listeners.setdefault(event, []).append(callback)

    def _emit(self, event: str, payload: dict[str, Any]) -> None:
        for callback in self._listeners.get(event, []):
            try:
                callback(payload)
            except Exception as exc:
                logger.warning("Listener for %s failed: %s", event, exc, exc_info=True)

    # -------------------------------------------------------------------------
    # Collaborator forwarding
    # -------------------------------------------------------------------------

    def _tier(self, tier: Tier) -> dict[str, Pattern]:
        return self._long_term if tier == "long_term" else self._short_term

    def _find(self, pattern_id: str) -> Pattern | None:
        return self._short_term.get(pattern_id) or self._long_term.get(pattern_id)

    async def _forward(
        self, action: str, key: str, call: Callable[[], Awaitable[Result[Any, ReasonBankError]]]
    ) -> None:
        if self._persistence is None:
            return
        try:
            result = await call()
        except Exception as exc:
            logger.warning("Persistence %s failed for %s: %s", action, key, exc)
            return
        match result:
            case Err(err):
                logger.warning("Persistence %s failed for %s: %s", action, key, err)
            case _:
                pass

    async def _persist_store(self, pattern: Pattern, tier: Tier) -> None:
        backend = self._persistence
        if backend is None:
            return
        entry = pattern_to_entry(pattern, tier)
        await self._forward("store", pattern.id, lambda: backend.store(entry))

    async def _persist_update(self, pattern: Pattern) -> None:
        backend = self._persistence
        if backend is None:
            return
        metadata = lifecycle_metadata(pattern)
        await self._forward("update", pattern.id, lambda: backend.update(pattern.id, metadata))

    async def _persist_delete(self, pattern_id: str) -> None:
        backend = self._persistence
        if backend is None:
            return
        await self._forward("delete", pattern_id, lambda: backend.delete(pattern_id))

    async def _index_pattern(self, pattern: Pattern) -> None:
        if self._index is None:
            return
        try:
            await self._index.add_point(pattern.id, pattern.embedding)
        except Exception as exc:
            self._index_complete = False
            logger.warning(
                "Vector index rejected %s, searching by brute force from now on: %s",
                pattern.id,
                exc,
            )

    async def _unindex_pattern(self, pattern_id: str) -> None:
        if self._index is None:
            return
        try:
            await self._index.remove_point(pattern_id)
        except Exception as exc:
            self._index_complete = False
            logger.warning(
                "Vector index kept removed pattern %s, searching by brute force from now on: %s",
                pattern_id,
                exc,
            )

    async def _discard(self, pattern_id: str) -> None:
        del self._short_term[pattern_id]
        await self._unindex_pattern(pattern_id)
        await self._persist_delete(pattern_id)

    # -------------------------------------------------------------------------
    # Promotion
    # -------------------------------------------------------------------------

    def _should_promote(self, pattern: Pattern) -> bool:
        return (
            pattern.usage_count >= self.settings.promotion_threshold
            and pattern.quality >= self.settings.quality_threshold
        )

    async def _promote(self, pattern: Pattern) -> None:
        self._short_term.pop(pattern.id, None)
        self._long_term[pattern.id] = pattern
        await self._persist_delete(pattern.id)
        await self._persist_store(pattern, "long_term")
        self.metrics.promotions += 1
        logger.debug("Promoted pattern %s to long-term", pattern.id)
        self._emit("pattern:promoted", {"id": pattern.id})

    async def _check_promotion(self, pattern: Pattern) -> bool:
        if pattern.id in self._short_term and self._should_promote(pattern):
            await self._promote(pattern)
            return True
        return False

    # -------------------------------------------------------------------------
    # Core operations
    # -------------------------------------------------------------------------

    async def store_pattern(
        self, strategy: str, domain: str, metadata: dict[str, Any] | None = None
    ) -> StoreResult:
        """Store a strategy, or bump the usage of a near-identical existing one."""
        await self._ensure_initialized()

        embedding = await self.embedder.embed(strategy)
        nearest = await self.search_patterns(embedding, 1)
        if nearest and nearest[0].similarity > self.settings.dedup_threshold:
            existing = nearest[0].pattern
            existing.usage_count += 1
            existing.updated_at = self._clock()
            existing.quality = compute_quality(existing.usage_count, existing.success_count)
            await self._persist_update(existing)
            await self._check_promotion(existing)
            return StoreResult(id=existing.id, action="updated")

        now = self._clock()
        pattern = Pattern(
            id=new_pattern_id(now),
            strategy=strategy,
            domain=domain,
            embedding=embedding,
            quality=CREATION_QUALITY,
            usage_count=1,
            success_count=0,
            created_at=now,
            updated_at=now,
            metadata=dict(metadata or {}),
        )
        self._short_term[pattern.id] = pattern
        await self._index_pattern(pattern)
        await self._persist_store(pattern, "short_term")

        self.metrics.patterns_stored += 1
        self._emit("pattern:stored", {"id": pattern.id, "domain": domain})
        return StoreResult(id=pattern.id, action="created")

    async def search_patterns(
        self, query: str | Sequence[float], k: int = 5
    ) -> list[SearchHit]:
        """Top-``k`` patterns by cosine similarity, best first.

        Uses the vector index when one is wired and holds every live pattern,
        and falls back to a brute-force scan (long-term before short-term)
        otherwise or when the index raises.
        """
        if k < 1:
            raise ValidationError("k must be at least 1", context={"k": k})
        await self._ensure_initialized()

        start = time.perf_counter()
        if isinstance(query, str):
            vector = await self.embedder.embed(query)
        else:
            vector = [float(value) for value in query]
            if len(vector) != self.settings.dimensions:
                raise ValidationError(
                    "Query vector has the wrong dimension",
                    context={"expected": self.settings.dimensions, "actual": len(vector)},
                )

        hits: list[SearchHit] | None = None
        if self._index is not None and self._index_complete:
            index_start = time.perf_counter()
            try:
                raw = await self._index.search(vector, k, self.settings.hnsw_ef_search)
            except Exception as exc:
                logger.warning("Vector index search failed, falling back to brute force: %s", exc)
            else:
                self.metrics.index_search_time += _elapsed_ms(index_start)
                hits = []
                for point_id, distance in raw:
                    pattern = self._find(point_id)
                    if pattern is not None:
                        hits.append(SearchHit(pattern=pattern, similarity=1.0 - float(distance)))
                hits.sort(key=lambda hit: hit.similarity, reverse=True)
                hits = hits[:k]

        if hits is None:
            brute_start = time.perf_counter()
            hits = brute_force_search(
                vector, (self._long_term.values(), self._short_term.values()), k
            )
            self.metrics.brute_force_search_time += _elapsed_ms(brute_start)

        self.metrics.search_count += 1
        self.metrics.total_search_time += _elapsed_ms(start)
        self.metrics.patterns_retrieved += len(hits)
        return hits

    async def record_outcome(self, pattern_id: str, success: bool) -> bool:
        """Count a use of ``pattern_id``. Unknown ids are ignored and return False."""
        await self._ensure_initialized()

        pattern = self._find(pattern_id)
        if pattern is None:
            logger.debug("Outcome for unknown pattern %s ignored", pattern_id)
            return False

        pattern.usage_count += 1
        if success:
            pattern.success_count += 1
        pattern.quality = compute_quality(pattern.usage_count, pattern.success_count)
        pattern.updated_at = self._clock()

        await self._persist_update(pattern)
        await self._check_promotion(pattern)
        self._emit("outcome:recorded", {"pattern_id": pattern_id, "success": success})
        return True

    async def consolidate(self) -> ConsolidationReport:
        """Promote, prune, then deduplicate the short-term tier.

        Not safe to run concurrently with itself; callers serialize it.
        """
        await self._ensure_initialized()

        promoted = 0
        for pattern in list(self._short_term.values()):
            if self._should_promote(pattern):
                await self._promote(pattern)
                promoted += 1

        pruned = 0
        max_age = timedelta(hours=self.settings.prune_age_hours)
        now = self._clock()
        for pattern in list(self._short_term.values()):
            too_old = now - pattern.created_at > max_age
            if too_old and pattern.usage_count < self.settings.prune_max_usage:
                await self._discard(pattern.id)
                pruned += 1

        removed: set[str] = set()
        snapshot = list(self._short_term.values())
        for first, second in duplicate_pairs(snapshot, self.settings.dedup_threshold):
            if first.id in removed or second.id in removed:
                continue
            loser = second if first.quality >= second.quality else first
            removed.add(loser.id)
            await self._discard(loser.id)

        report = ConsolidationReport(
            duplicates_removed=len(removed),
            patterns_pruned=pruned,
            patterns_promoted=promoted,
        )
        logger.debug("Consolidation finished: %s", report)
        self._emit(
            "consolidated",
            {
                "duplicates_removed": report.duplicates_removed,
                "patterns_pruned": report.patterns_pruned,
                "patterns_promoted": report.patterns_promoted,
            },
        )
        return report

    # -------------------------------------------------------------------------
    # Guidance and routing
    # -------------------------------------------------------------------------

    async def generate_guidance(self, context: HookContext) -> GuidanceResult:
        await self._ensure_initialized()

        start = time.perf_counter()
        query = context.query_text()
        hits = await self.search_patterns(query, GUIDANCE_SEARCH_K)
        domains = detect_domains(query)

        lines: list[str] = []
        if domains:
            lines.append(f"**Detected Domains**: {', '.join(domains)}")
        if hits:
            lines.append("**Relevant Patterns**:")
            for hit in hits[:GUIDANCE_PATTERN_LINES]:
                lines.append(f"- {hit.pattern.strategy} ({hit.similarity * 100:.0f}% match)")

        return GuidanceResult(
            patterns=hits,
            context="\n".join(lines),
            recommendations=domain_recommendations(domains),
            agent_suggestion=suggest_agent(query),
            search_time_ms=_elapsed_ms(start),
        )

    async def route_task(self, task: str) -> RoutingResult:
        """Suggest an agent for ``task`` with its record on similar past work."""
        await self._ensure_initialized()

        suggestion = suggest_agent(task)
        hits = await self.search_patterns(task, ROUTING_SEARCH_K)

        totals: dict[str, list[float]] = {}
        for hit in hits:
            agent = str(hit.pattern.metadata.get("agent") or DEFAULT_AGENT)
            success, quality, count = totals.get(agent, [0.0, 0.0, 0.0])
            totals[agent] = [
                success + hit.pattern.success_rate,
                quality + hit.pattern.quality,
                count + 1,
            ]

        history: HistoricalPerformance | None = None
        if suggestion.agent in totals:
            success, quality, count = totals[suggestion.agent]
            history = HistoricalPerformance(
                success_rate=success / count,
                avg_quality=quality / count,
                task_count=int(count),
            )

        return RoutingResult(
            agent=suggestion.agent,
            confidence=suggestion.confidence,
            alternatives=[
                AgentAlternative(agent=agent, confidence=confidence)
                for agent, confidence in rank_alternatives(task, suggestion.agent)
            ],
            reasoning=suggestion.reasoning,
            historical_performance=history,
        )

    # -------------------------------------------------------------------------
    # Stats, export and import
    # -------------------------------------------------------------------------

    def get_stats(self) -> EngineStats:
        metrics = replace(self.metrics)
        searches = metrics.search_count
        avg_index = metrics.index_search_time / searches if searches else 0.0
        avg_brute = metrics.brute_force_search_time / searches if searches else 1.0
        return EngineStats(
            short_term_count=len(self._short_term),
            long_term_count=len(self._long_term),
            metrics=metrics,
            avg_search_time=metrics.total_search_time / searches if searches else 0.0,
            use_real_backend=self._use_real_backend,
            index_speedup=avg_brute / avg_index if avg_brute > 0 and avg_index > 0 else 1.0,
        )

    async def export_patterns(self) -> PatternSnapshot:
        return PatternSnapshot(
            short_term=[_copy_pattern(p) for p in self._short_term.values()],
            long_term=[_copy_pattern(p) for p in self._long_term.values()],
        )

    async def import_patterns(self, snapshot: PatternSnapshot) -> int:
        """Add patterns whose ids are not yet known. Returns how many were added."""
        await self._ensure_initialized()

        imported = 0
        tiers: tuple[tuple[Tier, list[Pattern]], ...] = (
            ("short_term", snapshot.short_term),
            ("long_term", snapshot.long_term),
        )
        for tier, patterns in tiers:
            for incoming in patterns:
                if self._find(incoming.id) is not None:
                    continue
                if len(incoming.embedding) != self.settings.dimensions:
                    logger.warning(
                        "Skipping imported pattern %s: embedding has %d dimensions, expected %d",
                        incoming.id,
                        len(incoming.embedding),
                        self.settings.dimensions,
                    )
                    continue
                pattern = _copy_pattern(incoming)
                self._tier(tier)[pattern.id] = pattern
                await self._index_pattern(pattern)
                await self._persist_store(pattern, tier)
                imported += 1
        return imported


# -----------------------------------------------------------------------------
# Factory
# -----------------------------------------------------------------------------


def _semantic_service(config: AppConfig) -> ModelService | None:
    if not config.embedding.use_semantic_search:
        return None
    if importlib.util.find_spec("sentence_transformers") is None:
        logger.debug("sentence-transformers not installed; semantic tier disabled")
        return None
    return SentenceTransformerService(config.embedding.model_name)


def create_engine(
    config: AppConfig,
    *,
    vector_index: VectorIndex | None = None,
    clock: Clock | None = None,
) -> ReasoningBank:
    """Wire an engine from configuration: JSONL archive, model service, process tier."""
    persistence = (
        JsonlPatternBackend(config.storage.store_path)
        if config.storage.persistence_enabled
        else None
    )
    return ReasoningBank(
        config.engine,
        model_service=_semantic_service(config),
        vector_index=vector_index,
        persistence=persistence,
        embedding_command=config.embedding.command,
        embedding_timeout=config.embedding.command_timeout,
        embedding_settings=config.embedding,
        clock=clock,
    )


__all__ = [
    "ENGINE_EVENTS",
    "EngineEvent",
    "ReasoningBank",
    "compute_quality",
    "create_engine",
    "new_pattern_id",
]
