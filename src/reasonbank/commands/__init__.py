"""CLI command modules for rb.

This package contains the user-facing command groups:
    - memory: Learned pattern store management
    - hooks: Host hook entry points
"""

from __future__ import annotations

from . import hooks, memory

__all__ = ["hooks", "memory"]
