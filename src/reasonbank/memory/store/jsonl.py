"""JSONL file-based pattern archive."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from reasonbank.core.console import get_logger
from reasonbank.core.result import Err, Ok, PersistenceError, ReasonBankError, Result
from reasonbank.memory.models import PatternBackend, StoredEntry

from . import MAX_ENTRIES, iter_entries, write_entries

logger = get_logger(__name__)


class JsonlPatternBackend(PatternBackend):
    """Keeps every row in one JSONL file, rewritten atomically on each change.

    Rows are keyed by ``key``; storing an existing key replaces the row, which
    is how promotion (delete + store under the long-term namespace) lands.
    ``max_entries`` caps what a single query returns, never what is kept.
    """

    def __init__(self, path: Path, max_entries: int = MAX_ENTRIES) -> None:
        self._path = Path(path).expanduser()
        self._max_entries = max_entries

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> dict[str, StoredEntry]:
        # Every row: writes rewrite the whole file from this read
        return {entry.key: entry for entry in iter_entries(self._path)}

    def _store_sync(self, entry: StoredEntry) -> None:
        rows = self._read()
        rows[entry.key] = entry
        write_entries(self._path, list(rows.values()))

    def _update_sync(self, key: str, metadata: Mapping[str, Any]) -> bool:
        rows = self._read()
        current = rows.get(key)
        if current is None:
            return False
        current.metadata = {**current.metadata, **metadata}
        write_entries(self._path, list(rows.values()))
        return True

    def _delete_sync(self, key: str) -> bool:
        rows = self._read()
        if rows.pop(key, None) is None:
            return False
        write_entries(self._path, list(rows.values()))
        return True

    def _query_sync(self, namespace: str, limit: int) -> list[StoredEntry]:
        matches = [entry for entry in self._read().values() if entry.namespace == namespace]
        return matches[: min(limit, self._max_entries)]

    async def store(self, entry: StoredEntry) -> Result[None, ReasonBankError]:
        try:
            await asyncio.to_thread(self._store_sync, entry)
        except OSError as exc:
            return Err(
                PersistenceError(
                    "Failed to store pattern",
                    context={"path": str(self._path), "key": entry.key, "error": str(exc)},
                )
            )
        return Ok(None)

    async def update(self, key: str, metadata: Mapping[str, Any]) -> Result[None, ReasonBankError]:
        try:
            found = await asyncio.to_thread(self._update_sync, key, metadata)
        except OSError as exc:
            return Err(
                PersistenceError(
                    "Failed to update pattern",
                    context={"path": str(self._path), "key": key, "error": str(exc)},
                )
            )
        if not found:
            return Err(PersistenceError("Pattern not in archive", context={"key": key}))
        return Ok(None)

    async def delete(self, key: str) -> Result[None, ReasonBankError]:
        try:
            removed = await asyncio.to_thread(self._delete_sync, key)
        except OSError as exc:
            return Err(
                PersistenceError(
                    "Failed to delete pattern",
                    context={"path": str(self._path), "key": key, "error": str(exc)},
                )
            )
        if not removed:
            logger.debug("Delete of %s ignored: not in archive", key)
        return Ok(None)

    async def query(self, namespace: str, limit: int) -> Result[list[StoredEntry], ReasonBankError]:
        try:
            rows = await asyncio.to_thread(self._query_sync, namespace, limit)
        except OSError as exc:
            return Err(
                PersistenceError(
                    "Failed to read pattern archive",
                    context={"path": str(self._path), "error": str(exc)},
                )
            )
        return Ok(rows)


__all__ = ["JsonlPatternBackend"]
