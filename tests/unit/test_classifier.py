from __future__ import annotations

import pytest

from reasonbank.guidance.classifier import (
    AGENT_PATTERNS,
    DEFAULT_AGENT,
    DOMAIN_GUIDANCE,
    detect_domains,
    domain_recommendations,
    match_confidence,
    rank_alternatives,
    suggest_agent,
)


@pytest.mark.parametrize(
    ("task", "agent", "confidence"),
    [
        ("Fix authentication vulnerability CVE-2024", "security-architect", 98),
        ("Write unit tests with mocks", "test-architect", 95),
        ("Profile the slow endpoint", "performance-engineer", 90),
        ("Orchestrate a swarm of workers", "swarm-specialist", 95),
        # coder and reviewer both score 90; the earlier agent keeps it
        ("review the code", "coder", 90),
        ("hello world", "coder", 70),
    ],
)
def test_suggest_agent(task: str, agent: str, confidence: int) -> None:
    suggestion = suggest_agent(task)
    assert (suggestion.agent, suggestion.confidence) == (agent, confidence)


def test_default_reasoning() -> None:
    assert suggest_agent("").reasoning == "Default agent for general tasks"


def test_match_reasoning_names_agent() -> None:
    assert suggest_agent("encrypt the password").reasoning == (
        "Task matches security-architect patterns"
    )


@pytest.mark.parametrize(("count", "expected"), [(1, 90), (2, 95), (3, 98), (10, 98)])
def test_match_confidence_is_capped(count: int, expected: int) -> None:
    assert match_confidence(count) == expected


def test_rank_alternatives_excludes_winner_and_sorts() -> None:
    assert rank_alternatives("Fix the cache", "coder") == [
        ("performance-engineer", 85),
        ("security-architect", 60),
        ("test-architect", 60),
    ]


def test_rank_alternatives_without_hits_keeps_table_order() -> None:
    ranked = rank_alternatives("hello world", DEFAULT_AGENT)
    assert ranked == [(agent, 60) for agent in list(AGENT_PATTERNS)[:3]]


def test_detect_domains_in_table_order() -> None:
    assert detect_domains("Fix slow auth tests") == [
        "security",
        "testing",
        "performance",
        "debugging",
    ]


def test_detect_domains_none() -> None:
    assert detect_domains("hello world") == []


def test_domain_recommendations_are_capped() -> None:
    bullets = domain_recommendations(["security", "testing"])
    assert bullets == list(DOMAIN_GUIDANCE["security"])
    assert len(domain_recommendations(["security", "testing"], limit=7)) == 7


def test_domain_recommendations_ignore_unknown() -> None:
    assert domain_recommendations(["astrology"]) == []
