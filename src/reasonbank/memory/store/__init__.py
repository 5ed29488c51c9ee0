"""Pattern archive package.

This package provides the file-level helpers behind the shipped persistence
backend:
- iter_entries / load_entries: stream rows out of a JSONL archive
- write_entries: atomic rewrite of the archive
- JsonlPatternBackend: the PatternBackend implementation built on them
"""

from __future__ import annotations

import itertools
import json
import os
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

from reasonbank.core.console import get_logger
from reasonbank.memory.models import StoredEntry

logger = get_logger(__name__)

# Constants
MAX_ENTRIES = 10_000


def _record(entry: StoredEntry) -> dict[str, Any]:
    return {
        "key": entry.key,
        "namespace": entry.namespace,
        "content": entry.content,
        "embedding": entry.embedding,
        "tags": entry.tags,
        "metadata": entry.metadata,
    }


def _entry(data: dict[str, Any]) -> StoredEntry:
    return StoredEntry(
        key=str(data.get("key") or data["id"]),
        namespace=str(data.get("namespace", "")),
        content=str(data.get("content", "")),
        embedding=[float(value) for value in data.get("embedding") or []],
        tags=[str(tag) for tag in data.get("tags") or []],
        metadata=dict(data.get("metadata") or {}),
    )


def iter_entries(path: Path) -> Iterator[StoredEntry]:
    """Yield archive rows, skipping lines that cannot be parsed."""
    if not path.exists():
        return
    with path.open("r", encoding="utf-8") as fh:
        for line_no, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield _entry(json.loads(line))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable archive line %s in %s: %s", line_no, path, exc)


def load_entries(path: Path, max_entries: int = MAX_ENTRIES) -> list[StoredEntry]:
    """Load entries with limit, using generator internally for efficiency."""
    return list(itertools.islice(iter_entries(path), max_entries))


def write_entries(path: Path, entries: Sequence[StoredEntry]) -> None:
    """Atomically rewrite the JSONL file with new entries."""
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(".tmp")
    with temp_path.open("w", encoding="utf-8") as fh:
        for entry in entries:
            fh.write(json.dumps(_record(entry), ensure_ascii=True) + "\n")
        fh.flush()
        os.fsync(fh.fileno())
    os.replace(temp_path, path)


from .jsonl import JsonlPatternBackend  # noqa: E402

__all__ = [
    "JsonlPatternBackend",
    "MAX_ENTRIES",
    "iter_entries",
    "load_entries",
    "write_entries",
]
