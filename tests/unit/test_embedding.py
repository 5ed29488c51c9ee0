"""Unit tests for embedding tiers and the fallback chain."""

from __future__ import annotations

import math
import sys
from collections.abc import Sequence

import pytest

from reasonbank.core.result import EmbeddingError
from reasonbank.memory.embedding import (
    EmbeddingChain,
    HashEmbedder,
    ModelEmbedder,
    ProcessEmbedder,
    hash_embedding,
    parse_embedding_output,
    render_command,
    sanitize_text,
)

# -----------------------------------------------------------------------------
# Fakes
# -----------------------------------------------------------------------------


class CountingModel:
    def __init__(self, dims: int = 4, *, fail_init: bool = False, fail_embed: bool = False) -> None:
        self.dims = dims
        self.fail_init = fail_init
        self.fail_embed = fail_embed
        self.calls = 0

    async def initialize(self) -> None:
        if self.fail_init:
            raise RuntimeError("weights missing")

    async def embed(self, text: str) -> Sequence[float]:
        self.calls += 1
        if self.fail_embed:
            raise RuntimeError("model crashed")
        return [1.0] + [0.0] * (self.dims - 1)


def python_command(script: str) -> list[str]:
    return [sys.executable, "-c", script, "{text}"]


ECHO_LENGTH = (
    "import json, sys; "
    "print(json.dumps({'embedding': [float(len(sys.argv[1])), 0.0, 0.0, 0.0]}))"
)


# -----------------------------------------------------------------------------
# Pure helpers
# -----------------------------------------------------------------------------


class TestHashEmbedding:
    def test_deterministic(self) -> None:
        assert hash_embedding("cache the results", 32) == hash_embedding("cache the results", 32)

    def test_unit_norm(self) -> None:
        vector = hash_embedding("anything at all", 64)
        assert len(vector) == 64
        assert math.isclose(math.sqrt(sum(v * v for v in vector)), 1.0, rel_tol=1e-9)

    def test_case_and_whitespace_insensitive(self) -> None:
        assert hash_embedding("  Fix The Bug ", 16) == hash_embedding("fix the bug", 16)

    def test_different_texts_differ(self) -> None:
        assert hash_embedding("alpha", 16) != hash_embedding("beta", 16)

    def test_empty_text_is_uniform(self) -> None:
        vector = hash_embedding("", 4)
        # sin(0) maps every component to 0.5 before normalization
        assert vector == pytest.approx([0.5, 0.5, 0.5, 0.5])


class TestProcessHelpers:
    def test_sanitize_truncates_then_strips(self) -> None:
        assert sanitize_text("ab\x00cd\nef", max_chars=5) == "abcd"

    def test_sanitize_keeps_printable(self) -> None:
        assert sanitize_text("rm -rf $(whoami); echo 'x'") == "rm -rf $(whoami); echo 'x'"

    def test_render_replaces_placeholder(self) -> None:
        assert render_command(["embed", "--text", "{text}", "--json"], "a b") == [
            "embed",
            "--text",
            "a b",
            "--json",
        ]

    def test_render_appends_without_placeholder(self) -> None:
        assert render_command(["embed"], "a; b") == ["embed", "a; b"]

    def test_render_does_not_mutate_template(self) -> None:
        template = ["embed", "{text}"]
        render_command(template, "x")
        assert template == ["embed", "{text}"]

    @pytest.mark.parametrize(
        "raw",
        [
            '{"embedding": [1, 2.5]}',
            '{"data": [{"embedding": [1, 2.5]}]}',
            '{"embeddings": [[1, 2.5], [9, 9]]}',
            "[1, 2.5]",
        ],
    )
    def test_parse_accepted_shapes(self, raw: str) -> None:
        assert parse_embedding_output(raw) == [1.0, 2.5]

    @pytest.mark.parametrize(
        "raw",
        ["not json", "{}", '{"embedding": []}', '{"embedding": ["a"]}', "[true, false]", '"x"'],
    )
    def test_parse_rejects(self, raw: str) -> None:
        with pytest.raises(EmbeddingError):
            parse_embedding_output(raw)


# -----------------------------------------------------------------------------
# Tiers
# -----------------------------------------------------------------------------


class TestTiers:
    @pytest.mark.asyncio
    async def test_hash_tier_caches_on_prefix(self) -> None:
        tier = HashEmbedder(8, cache_key_chars=4)
        first = await tier.embed("abcdXXXX")
        second = await tier.embed("abcdYYYY")
        assert first is second
        assert tier.cached == 1

    @pytest.mark.asyncio
    async def test_cache_is_bounded(self) -> None:
        tier = HashEmbedder(8, cache_size=2)
        for text in ("one", "two", "three"):
            await tier.embed(text)
        assert tier.cached == 2

    @pytest.mark.asyncio
    async def test_model_tier_requires_initialize(self) -> None:
        tier = ModelEmbedder(CountingModel(), 4)
        with pytest.raises(EmbeddingError, match="before initialization"):
            await tier.embed("text")

    @pytest.mark.asyncio
    async def test_model_tier_rejects_wrong_dimension(self) -> None:
        tier = ModelEmbedder(CountingModel(dims=3), 4)
        await tier.initialize()
        with pytest.raises(EmbeddingError, match="wrong dimension"):
            await tier.embed("text")

    @pytest.mark.asyncio
    async def test_model_init_failure_is_wrapped(self) -> None:
        tier = ModelEmbedder(CountingModel(fail_init=True), 4)
        with pytest.raises(EmbeddingError):
            await tier.initialize()
        assert not tier.ready

    def test_process_requires_command(self) -> None:
        with pytest.raises(ValueError):
            ProcessEmbedder([], 4)


class TestProcessEmbedder:
    @pytest.mark.asyncio
    async def test_reads_vector_from_stdout(self) -> None:
        tier = ProcessEmbedder(python_command(ECHO_LENGTH), 4)
        assert await tier.embed("hello") == [5.0, 0.0, 0.0, 0.0]

    @pytest.mark.asyncio
    async def test_text_is_one_argument(self) -> None:
        tier = ProcessEmbedder(python_command(ECHO_LENGTH), 4)
        # Shell metacharacters arrive verbatim in a single argv element
        assert await tier.embed("a b; rm -rf /") == [13.0, 0.0, 0.0, 0.0]

    @pytest.mark.asyncio
    async def test_input_is_truncated(self) -> None:
        tier = ProcessEmbedder(python_command(ECHO_LENGTH), 4, max_input_chars=3)
        assert await tier.embed("abcdefgh") == [3.0, 0.0, 0.0, 0.0]

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises(self) -> None:
        tier = ProcessEmbedder(python_command("import sys; sys.exit(3)"), 4)
        with pytest.raises(EmbeddingError, match="failed"):
            await tier.embed("text")

    @pytest.mark.asyncio
    async def test_timeout_raises(self) -> None:
        tier = ProcessEmbedder(python_command("import time; time.sleep(10)"), 4, timeout=0.3)
        with pytest.raises(EmbeddingError, match="timed out"):
            await tier.embed("text")

    @pytest.mark.asyncio
    async def test_missing_binary_raises(self) -> None:
        tier = ProcessEmbedder(["/nonexistent/embedder-binary"], 4)
        with pytest.raises(EmbeddingError, match="could not start"):
            await tier.embed("text")


# -----------------------------------------------------------------------------
# Chain
# -----------------------------------------------------------------------------


class TestEmbeddingChain:
    @pytest.mark.asyncio
    async def test_hash_only_chain(self) -> None:
        chain = EmbeddingChain(8)
        await chain.initialize()
        assert [tier.name for tier in chain.tiers] == ["hash"]
        assert not chain.uses_real_model
        assert await chain.embed("text") == hash_embedding("text", 8)

    @pytest.mark.asyncio
    async def test_model_tier_preferred(self) -> None:
        model = CountingModel()
        chain = EmbeddingChain(4, model=ModelEmbedder(model, 4))
        await chain.initialize()

        assert chain.uses_real_model
        assert await chain.embed("text") == [1.0, 0.0, 0.0, 0.0]
        await chain.embed("text")
        assert model.calls == 1

    @pytest.mark.asyncio
    async def test_failed_init_drops_model_tier(self) -> None:
        chain = EmbeddingChain(4, model=ModelEmbedder(CountingModel(fail_init=True), 4))
        await chain.initialize()

        assert chain.model is None
        assert [tier.name for tier in chain.tiers] == ["hash"]

    @pytest.mark.asyncio
    async def test_model_failure_falls_to_process(self) -> None:
        chain = EmbeddingChain(
            4,
            model=ModelEmbedder(CountingModel(fail_embed=True), 4),
            process=ProcessEmbedder(python_command(ECHO_LENGTH), 4),
        )
        await chain.initialize()

        assert [tier.name for tier in chain.tiers] == ["model", "process", "hash"]
        assert await chain.embed("abc") == [3.0, 0.0, 0.0, 0.0]

    @pytest.mark.asyncio
    async def test_everything_failing_ends_on_hash(self) -> None:
        chain = EmbeddingChain(
            4,
            model=ModelEmbedder(CountingModel(fail_embed=True), 4),
            process=ProcessEmbedder(python_command("import sys; sys.exit(1)"), 4),
        )
        await chain.initialize()

        assert await chain.embed("abc") == hash_embedding("abc", 4)
