"""Helpers shared by the CLI command modules."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer

from reasonbank.core.config import AppConfig
from reasonbank.core.console import get_console
from reasonbank.core.result import ReasonBankError
from reasonbank.memory.engine import ReasoningBank, create_engine

T = TypeVar("T")


def run_with_engine(config: AppConfig, action: Callable[[ReasoningBank], Awaitable[T]]) -> T:
    """Run ``action`` against a freshly wired engine inside one event loop."""

    async def _run() -> T:
        async with create_engine(config) as engine:
            return await action(engine)

    try:
        return asyncio.run(_run())
    except ReasonBankError as exc:
        get_console(stderr=True).print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc


def parse_meta(pairs: list[str] | None) -> dict[str, str]:
    """Turn repeated ``key=value`` options into a dict."""
    meta: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected key=value, got {pair!r}", param_hint="--meta")
        meta[key.strip()] = value.strip()
    return meta


__all__ = ["parse_meta", "run_with_engine"]
