"""Keyword-based agent classifier and authored domain guidance tables.

Nothing here is learned: the agent table and the best-practice bullets are
constants. Learned patterns only contribute through the engine's routing
statistics.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

DEFAULT_AGENT = "coder"
DEFAULT_CONFIDENCE = 70
MATCH_CONFIDENCE = 85
ALTERNATIVE_MATCH_CONFIDENCE = 85
ALTERNATIVE_MISS_CONFIDENCE = 60

# Order matters: ties keep the earlier agent.
AGENT_PATTERNS: dict[str, re.Pattern[str]] = {
    "security-architect": re.compile(r"security|auth|cve|vuln|encrypt|password|token", re.I),
    "test-architect": re.compile(r"test|spec|mock|coverage|tdd|assert", re.I),
    "performance-engineer": re.compile(r"perf|optim|fast|memory|cache|speed|slow", re.I),
    "core-architect": re.compile(r"architect|design|ddd|domain|refactor|struct", re.I),
    "swarm-specialist": re.compile(r"swarm|agent|coordinate|orchestrat|parallel", re.I),
    "memory-specialist": re.compile(r"memory|agentdb|hnsw|vector|embedding", re.I),
    "coder": re.compile(r"fix|bug|implement|create|add|build|error|code", re.I),
    "reviewer": re.compile(r"review|quality|lint|check|audit", re.I),
}

DOMAIN_PATTERNS: dict[str, re.Pattern[str]] = {
    "security": re.compile(r"security|auth|password|token|secret|cve|vuln", re.I),
    "testing": re.compile(r"test|spec|mock|coverage|tdd|assert", re.I),
    "performance": re.compile(r"perf|optim|fast|slow|memory|cache|speed", re.I),
    "architecture": re.compile(r"architect|design|ddd|domain|refactor|struct", re.I),
    "debugging": re.compile(r"fix|bug|error|issue|broken|fail|debug", re.I),
}

DOMAIN_GUIDANCE: dict[str, tuple[str, ...]] = {
    "security": (
        "Validate all inputs at system boundaries",
        "Use parameterized queries (no string concatenation)",
        "Store secrets in environment variables only",
        "Apply principle of least privilege",
        "Check OWASP Top 10 patterns",
    ),
    "testing": (
        "Write test first, then implementation (TDD)",
        "Mock external dependencies",
        "Test behavior, not implementation",
        "One assertion per test concept",
        "Use descriptive test names",
    ),
    "performance": (
        "Use an indexed vector search instead of brute force",
        "Batch database operations",
        "Implement caching at appropriate layers",
        "Profile before optimizing",
        "Target: <1ms searches, <100ms operations",
    ),
    "architecture": (
        "Respect bounded context boundaries",
        "Use domain events for cross-module communication",
        "Keep domain logic in domain layer",
        "Infrastructure adapters for external services",
        "Record decisions in architecture decision records",
    ),
    "debugging": (
        "Reproduce the issue first",
        "Check recent changes in git log",
        "Add logging before fixing",
        "Write regression test",
        "Verify fix doesn't break other tests",
    ),
}


def detect_domains(text: str) -> list[str]:
    """Return every domain whose keywords appear in ``text``, in table order."""
    return [domain for domain, pattern in DOMAIN_PATTERNS.items() if pattern.search(text)]


def domain_recommendations(domains: list[str], limit: int = 5) -> list[str]:
    """Concatenate the bullets of each domain and keep the first ``limit``."""
    bullets: list[str] = []
    for domain in domains:
        bullets.extend(DOMAIN_GUIDANCE.get(domain, ()))
    return bullets[:limit]


@dataclass(frozen=True)
class AgentSuggestion:
    agent: str
    confidence: int
    reasoning: str


def match_confidence(match_count: int) -> int:
    return MATCH_CONFIDENCE + min(5 * match_count, 13)


def suggest_agent(task: str) -> AgentSuggestion:
    """Pick the agent whose keywords best match ``task``.

    Confidence is ``85 + min(5 * matches, 13)``; a later agent only wins with
    a strictly higher confidence. With no match the task goes to ``coder``
    at 70.
    """
    best = AgentSuggestion(
        agent=DEFAULT_AGENT,
        confidence=DEFAULT_CONFIDENCE,
        reasoning="Default agent for general tasks",
    )
    for agent, pattern in AGENT_PATTERNS.items():
        matches = pattern.findall(task)
        if not matches:
            continue
        confidence = match_confidence(len(matches))
        if confidence > best.confidence:
            best = AgentSuggestion(
                agent=agent,
                confidence=confidence,
                reasoning=f"Task matches {agent} patterns",
            )
    return best


def rank_alternatives(task: str, exclude: str, limit: int = 3) -> list[tuple[str, int]]:
    """Other agents scored 85 on a keyword hit and 60 otherwise, best first."""
    scored = [
        (
            agent,
            ALTERNATIVE_MATCH_CONFIDENCE if pattern.search(task) else ALTERNATIVE_MISS_CONFIDENCE,
        )
        for agent, pattern in AGENT_PATTERNS.items()
        if agent != exclude
    ]
    scored.sort(key=lambda item: item[1], reverse=True)
    return scored[:limit]


__all__ = [
    "AGENT_PATTERNS",
    "AgentSuggestion",
    "DEFAULT_AGENT",
    "DOMAIN_GUIDANCE",
    "DOMAIN_PATTERNS",
    "detect_domains",
    "domain_recommendations",
    "match_confidence",
    "rank_alternatives",
    "suggest_agent",
]
