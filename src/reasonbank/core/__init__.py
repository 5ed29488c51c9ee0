"""Core shared infrastructure for reasonbank.

This package contains foundational utilities:
    - config: Application configuration management
    - console: Rich console output and logging
    - result: Error handling patterns
"""

from __future__ import annotations

from . import config, console, result

__all__ = ["config", "console", "result"]
