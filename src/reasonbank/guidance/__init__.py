"""Guidance layer: agent classification, hook wire models and hook policy.

``GuidanceProvider`` lives in ``reasonbank.guidance.provider`` and is not
re-exported here, since the engine itself imports this package.
"""

from .classifier import detect_domains, rank_alternatives, suggest_agent
from .hooks import HookContext, HookDecision, HookOutput, HookSpecificOutput, PermissionDecision

__all__ = [
    "HookContext",
    "HookDecision",
    "HookOutput",
    "HookSpecificOutput",
    "PermissionDecision",
    "detect_domains",
    "rank_alternatives",
    "suggest_agent",
]
