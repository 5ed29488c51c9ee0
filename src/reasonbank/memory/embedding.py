"""Embedding tiers and the fallback chain.

The engine embeds text through three tiers tried in a fixed order:

1. ModelEmbedder - a real model service (sentence-transformers by default)
2. ProcessEmbedder - an external embedding generator run as a subprocess
3. HashEmbedder - a deterministic, dependency-free degraded embedding

Each tier memoizes its own results keyed on a prefix of the input text. A
tier failure raises EmbeddingError, which the chain logs and treats as the
signal to try the next tier. The hash tier cannot fail.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import math
import re
from collections import OrderedDict
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from reasonbank.core.console import get_logger
from reasonbank.core.result import EmbeddingError

from .models import ModelService

if TYPE_CHECKING:
    from sentence_transformers import SentenceTransformer

logger = get_logger(__name__)

TEXT_PLACEHOLDER = "{text}"
_CONTROL_CHARS = re.compile(r"[\x00-\x1f]")


# -----------------------------------------------------------------------------
# Utility Functions
# -----------------------------------------------------------------------------


def sanitize_text(text: str, max_chars: int = 500) -> str:
    """Truncate then strip control characters before handing text to a process."""
    return _CONTROL_CHARS.sub("", text[:max_chars])


def render_command(template: Sequence[str], text: str) -> list[str]:
    """Substitute ``text`` as a single argv element.

    The first element equal to ``{text}`` is replaced; without a placeholder
    the text is appended as the last argument.
    """
    argv = list(template)
    for index, part in enumerate(argv):
        if part == TEXT_PLACEHOLDER:
            argv[index] = text
            return argv
    argv.append(text)
    return argv


def _as_vector(candidate: object) -> list[float] | None:
    if not isinstance(candidate, list) or not candidate:
        return None
    values: list[float] = []
    for value in candidate:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        values.append(float(value))
    return values


def parse_embedding_output(raw: str) -> list[float]:
    """Extract a vector from generator output.

    Accepts ``{"embedding": [...]}``, ``{"data": [{"embedding": [...]}]}``,
    ``{"embeddings": [[...]]}`` or a bare numeric array.
    """
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise EmbeddingError("Embedding output is not JSON", context={"error": str(exc)}) from exc

    candidate: object = payload
    if isinstance(payload, dict):
        if "embedding" in payload:
            candidate = payload["embedding"]
        elif isinstance(payload.get("data"), list) and payload["data"]:
            first = payload["data"][0]
            candidate = first.get("embedding") if isinstance(first, dict) else None
        elif isinstance(payload.get("embeddings"), list) and payload["embeddings"]:
            candidate = payload["embeddings"][0]

    vector = _as_vector(candidate)
    if vector is None:
        raise EmbeddingError("Embedding output has no numeric vector")
    return vector


def hash_embedding(text: str, dimensions: int) -> list[float]:
    """Deterministic pseudo-embedding with no semantic meaning.

    For each dimension a 32-bit signed rolling hash of the normalized text is
    seeded by the dimension index, mapped through ``(sin(h) + 1) / 2`` and the
    vector is L2-normalized.
    """
    codes = [ord(char) for char in text.lower().strip()]
    vector: list[float] = []
    for index in range(dimensions):
        seed = index + 1
        value = 0
        for code in codes:
            value = (value * 31 + code * seed) & 0xFFFFFFFF
        if value >= 0x80000000:
            value -= 0x100000000
        vector.append((math.sin(value) + 1.0) / 2.0)

    norm = math.sqrt(sum(component * component for component in vector))
    if norm > 0:
        vector = [component / norm for component in vector]
    return vector


class _EmbeddingCache:
    """Bounded LRU keyed on a text prefix."""

    def __init__(self, key_chars: int, max_entries: int) -> None:
        self._key_chars = key_chars
        self._max_entries = max_entries
        self._entries: OrderedDict[str, list[float]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, text: str) -> list[float] | None:
        key = text[: self._key_chars]
        vector = self._entries.get(key)
        if vector is not None:
            self._entries.move_to_end(key)
        return vector

    def put(self, text: str, vector: list[float]) -> None:
        key = text[: self._key_chars]
        self._entries[key] = vector
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)


# -----------------------------------------------------------------------------
# Tiers
# -----------------------------------------------------------------------------


class EmbeddingTier:
    """Base class: cache lookup, compute, dimension check, cache store."""

    name = "tier"

    def __init__(
        self, dimensions: int, *, cache_key_chars: int = 200, cache_size: int = 1000
    ) -> None:
        self.dimensions = dimensions
        self._cache = _EmbeddingCache(cache_key_chars, cache_size)

    @property
    def cached(self) -> int:
        return len(self._cache)

    async def _compute(self, text: str) -> list[float]:
        raise NotImplementedError

    async def embed(self, text: str) -> list[float]:
        cached = self._cache.get(text)
        if cached is not None:
            return cached
        vector = await self._compute(text)
        if len(vector) != self.dimensions:
            raise EmbeddingError(
                "Embedding has the wrong dimension",
                context={"tier": self.name, "expected": self.dimensions, "actual": len(vector)},
            )
        self._cache.put(text, vector)
        return vector


class HashEmbedder(EmbeddingTier):
    """Degraded tier: always succeeds, same text always gives the same vector."""

    name = "hash"

    async def _compute(self, text: str) -> list[float]:
        return hash_embedding(text, self.dimensions)


class ModelEmbedder(EmbeddingTier):
    """Real tier backed by an injected model service."""

    name = "model"

    def __init__(self, service: ModelService, dimensions: int, **cache_options: int) -> None:
        super().__init__(dimensions, **cache_options)
        self._service = service
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        """Initialize the model service. Raises EmbeddingError on failure."""
        if self._ready:
            return
        try:
            await self._service.initialize()
        except EmbeddingError:
            raise
        except Exception as exc:
            raise EmbeddingError(
                "Embedding model failed to initialize", context={"error": str(exc)}
            ) from exc
        self._ready = True

    async def _compute(self, text: str) -> list[float]:
        if not self._ready:
            raise EmbeddingError("Embedding model used before initialization")
        try:
            raw = await self._service.embed(text)
        except Exception as exc:
            raise EmbeddingError("Embedding model failed", context={"error": str(exc)}) from exc
        return [float(value) for value in raw]


class ProcessEmbedder(EmbeddingTier):
    """External-process tier. The text is passed as one argv element, never via a shell."""

    name = "process"

    def __init__(
        self,
        command: Sequence[str],
        dimensions: int,
        *,
        timeout: float = 10.0,
        max_input_chars: int = 500,
        **cache_options: int,
    ) -> None:
        if not command:
            raise ValueError("ProcessEmbedder requires a non-empty command")
        super().__init__(dimensions, **cache_options)
        self._command = list(command)
        self._timeout = timeout
        self._max_input_chars = max_input_chars

    async def _compute(self, text: str) -> list[float]:
        argv = render_command(self._command, sanitize_text(text, self._max_input_chars))
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise EmbeddingError(
                "Embedding process could not start",
                context={"binary": argv[0], "error": str(exc)},
            ) from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except TimeoutError as exc:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            raise EmbeddingError(
                "Embedding process timed out", context={"timeout": self._timeout}
            ) from exc

        if proc.returncode != 0:
            raise EmbeddingError(
                "Embedding process failed",
                context={
                    "returncode": proc.returncode,
                    "stderr": stderr.decode("utf-8", errors="replace").strip()[:200],
                },
            )
        return parse_embedding_output(stdout.decode("utf-8", errors="replace"))


# -----------------------------------------------------------------------------
# Sentence-Transformers Model Service
# -----------------------------------------------------------------------------


def _load_sentence_transformer(model_name: str) -> SentenceTransformer:
    """Load a SentenceTransformer model. Raises EmbeddingError when unavailable."""
    try:
        from sentence_transformers import SentenceTransformer as STModel
    except ImportError as exc:
        raise EmbeddingError(
            'sentence-transformers is not installed. Install with `pip install "reasonbank[ai]"`.'
        ) from exc

    cache_root = Path.home() / ".cache" / "reasonbank" / "sentence-transformers"
    cache_root.mkdir(parents=True, exist_ok=True)
    return STModel(model_name, cache_folder=str(cache_root))


class SentenceTransformerService:
    """Model service running a local SentenceTransformer in worker threads."""

    def __init__(self, model_name: str) -> None:
        self.model_name = model_name
        self._model: SentenceTransformer | None = None

    async def initialize(self) -> None:
        if self._model is None:
            self._model = await asyncio.to_thread(_load_sentence_transformer, self.model_name)

    async def embed(self, text: str) -> Sequence[float]:
        if self._model is None:
            raise EmbeddingError("SentenceTransformer model not loaded")
        model = self._model
        vector = await asyncio.to_thread(
            model.encode, text, show_progress_bar=False, convert_to_numpy=True
        )
        return [float(value) for value in vector.tolist()]


# -----------------------------------------------------------------------------
# Fallback Chain
# -----------------------------------------------------------------------------


class EmbeddingChain:
    """Tries each tier in order and ends on the hash tier."""

    def __init__(
        self,
        dimensions: int,
        *,
        model: ModelEmbedder | None = None,
        process: ProcessEmbedder | None = None,
        cache_key_chars: int = 200,
        cache_size: int = 1000,
    ) -> None:
        self.dimensions = dimensions
        self.model = model
        self.process = process
        self.fallback = HashEmbedder(
            dimensions, cache_key_chars=cache_key_chars, cache_size=cache_size
        )

    @property
    def tiers(self) -> list[EmbeddingTier]:
        ordered: list[EmbeddingTier] = []
        if self.model is not None:
            ordered.append(self.model)
        if self.process is not None:
            ordered.append(self.process)
        ordered.append(self.fallback)
        return ordered

    @property
    def uses_real_model(self) -> bool:
        return self.model is not None and self.model.ready

    async def initialize(self) -> None:
        """Initialize the model tier, dropping it when it cannot start."""
        if self.model is None:
            return
        try:
            await self.model.initialize()
        except EmbeddingError as exc:
            logger.warning("Real embeddings unavailable, using fallback tiers: %s", exc)
            self.model = None

    async def embed(self, text: str) -> list[float]:
        for tier in self.tiers[:-1]:
            try:
                return await tier.embed(text)
            except EmbeddingError as exc:
                logger.debug("Embedding tier %s failed, falling through: %s", tier.name, exc)
        return await self.fallback.embed(text)


__all__ = [
    "EmbeddingChain",
    "EmbeddingTier",
    "HashEmbedder",
    "ModelEmbedder",
    "ProcessEmbedder",
    "SentenceTransformerService",
    "TEXT_PLACEHOLDER",
    "hash_embedding",
    "parse_embedding_output",
    "render_command",
    "sanitize_text",
]
