"""Memory subsystem for reasonbank.

This package provides the pattern lifecycle:
- Embedding through a model, an external process or a hash fallback
- Short-term and long-term pattern tiers with promotion
- Similarity search through a vector index or brute force
- Consolidation (promote, prune, deduplicate)
- Persistence to a JSONL archive

Public API:
- ReasoningBank: the pattern engine
- create_engine: wire an engine from AppConfig
- JsonlPatternBackend: the shipped persistence backend
"""

from .embedding import (
    EmbeddingChain,
    HashEmbedder,
    ModelEmbedder,
    ProcessEmbedder,
    SentenceTransformerService,
    hash_embedding,
)
from .engine import ENGINE_EVENTS, ReasoningBank, compute_quality, create_engine
from .models import (
    LONG_TERM_NAMESPACE,
    SHORT_TERM_NAMESPACE,
    ConsolidationReport,
    EngineMetrics,
    EngineStats,
    GuidanceResult,
    ModelService,
    Pattern,
    PatternBackend,
    PatternSnapshot,
    RoutingResult,
    SearchHit,
    StoredEntry,
    StoreResult,
    VectorIndex,
    pattern_from_dict,
    pattern_to_dict,
    snapshot_from_dict,
    snapshot_to_dict,
)
from .retrieval import brute_force_search, cosine_similarity
from .store import JsonlPatternBackend

__all__ = [
    "ENGINE_EVENTS",
    "LONG_TERM_NAMESPACE",
    "SHORT_TERM_NAMESPACE",
    "ConsolidationReport",
    "EmbeddingChain",
    "EngineMetrics",
    "EngineStats",
    "GuidanceResult",
    "HashEmbedder",
    "JsonlPatternBackend",
    "ModelEmbedder",
    "ModelService",
    "Pattern",
    "PatternBackend",
    "PatternSnapshot",
    "ProcessEmbedder",
    "ReasoningBank",
    "RoutingResult",
    "SearchHit",
    "SentenceTransformerService",
    "StoreResult",
    "StoredEntry",
    "VectorIndex",
    "brute_force_search",
    "compute_quality",
    "cosine_similarity",
    "create_engine",
    "hash_embedding",
    "pattern_from_dict",
    "pattern_to_dict",
    "snapshot_from_dict",
    "snapshot_to_dict",
]
