"""reasonbank - pattern memory and guidance engine for agent tool-use hooks.

This package stores strategies learned from prior task executions as
vector-embedded patterns, retrieves similar patterns for a new context and
turns them into permission decisions, quality feedback and agent routing
suggestions for a host hook system.

Exports:
    __version__: Package version string.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.3.0"
