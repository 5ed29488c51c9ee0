"""Pattern memory commands.

Provides CLI commands for working with the learned pattern store:
    - Storing strategies and recording their outcomes
    - Searching by similarity
    - Consolidating the short-term tier
    - Exporting and importing both tiers
"""

from __future__ import annotations

import json
from pathlib import Path

import typer
from rich import box
from rich.panel import Panel
from rich.table import Table

from reasonbank.core.console import console
from reasonbank.memory.engine import ReasoningBank
from reasonbank.memory.models import (
    ConsolidationReport,
    SearchHit,
    StoreResult,
    snapshot_from_dict,
    snapshot_to_dict,
)

from .common import parse_meta, run_with_engine

app = typer.Typer(help="Learned pattern store: store, search, score and consolidate.")


@app.command("store")
def store(
    ctx: typer.Context,
    strategy: str = typer.Argument(..., help="Strategy text to remember."),
    domain: str = typer.Option("general", "--domain", "-d", help="Domain tag for the pattern."),
    meta: list[str] = typer.Option(
        None, "--meta", "-m", help="Metadata as key=value (repeatable)."
    ),
) -> None:
    """Store a pattern, or bump the usage of a near-identical one."""
    state = ctx.obj
    metadata = parse_meta(meta)

    async def _store(engine: ReasoningBank) -> StoreResult:
        return await engine.store_pattern(strategy, domain, metadata)

    result = run_with_engine(state.config, _store)
    style = "green" if result.action == "created" else "cyan"
    console.print(
        Panel(f"[{style}]{result.action.capitalize()}[/{style}] {result.id}", title="Pattern")
    )


@app.command("search")
def search(
    ctx: typer.Context,
    query: str = typer.Argument(..., help="Search text."),
    limit: int = typer.Option(5, "--limit", "-l", min=1, help="Maximum results to show."),
) -> None:
    """Search learned patterns by similarity."""
    state = ctx.obj

    async def _search(engine: ReasoningBank) -> list[SearchHit]:
        return await engine.search_patterns(query, limit)

    hits = run_with_engine(state.config, _search)
    if not hits:
        console.print(Panel("No matching patterns.", style="yellow"))
        return

    table = Table(title=f"Top {len(hits)} patterns", box=box.SIMPLE_HEAVY, expand=True)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Match", justify="right")
    table.add_column("Quality", justify="right")
    table.add_column("Strategy", style="white")
    for hit in hits:
        table.add_row(
            hit.pattern.id,
            f"{hit.similarity * 100:.0f}%",
            f"{hit.pattern.quality:.2f}",
            hit.pattern.strategy,
        )
    console.print(table)


@app.command("outcome")
def outcome(
    ctx: typer.Context,
    pattern_id: str = typer.Argument(..., help="Pattern id."),
    success: bool = typer.Option(True, "--success/--failure", help="Whether the pattern worked."),
) -> None:
    """Record whether a pattern helped."""
    state = ctx.obj

    async def _record(engine: ReasoningBank) -> bool:
        return await engine.record_outcome(pattern_id, success)

    if not run_with_engine(state.config, _record):
        console.print(f"[red]Unknown pattern: {pattern_id}[/red]")
        raise typer.Exit(code=1)
    label = "success" if success else "failure"
    console.print(f"[green]Recorded {label} for {pattern_id}[/green]")


@app.command("consolidate")
def consolidate(ctx: typer.Context) -> None:
    """Promote, prune and deduplicate short-term patterns."""
    state = ctx.obj

    async def _consolidate(engine: ReasoningBank) -> ConsolidationReport:
        return await engine.consolidate()

    report = run_with_engine(state.config, _consolidate)
    console.print(
        Panel(
            f"Promoted: {report.patterns_promoted}\n"
            f"Pruned: {report.patterns_pruned}\n"
            f"Duplicates removed: {report.duplicates_removed}",
            title="Consolidation",
        )
    )


@app.command("stats")
def stats(ctx: typer.Context) -> None:
    """Show tier sizes and search metrics."""
    state = ctx.obj

    async def _stats(engine: ReasoningBank) -> list[tuple[str, str]]:
        current = engine.get_stats()
        return [
            ("Short-term patterns", str(current.short_term_count)),
            ("Long-term patterns", str(current.long_term_count)),
            ("Patterns stored", str(current.metrics.patterns_stored)),
            ("Promotions", str(current.metrics.promotions)),
            ("Searches", str(current.metrics.search_count)),
            ("Avg search time", f"{current.avg_search_time:.2f}ms"),
            ("Real embeddings", "yes" if engine.embedder.uses_real_model else "no (fallback)"),
            ("Indexed backend", "yes" if current.use_real_backend else "no"),
        ]

    table = Table(title="Pattern store", box=box.SIMPLE, expand=True)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    for name, value in run_with_engine(state.config, _stats):
        table.add_row(name, value)
    console.print(table)


@app.command("export")
def export(
    ctx: typer.Context,
    output: Path = typer.Argument(..., help="File to write the JSON export to."),
) -> None:
    """Export both tiers to a JSON file."""
    state = ctx.obj

    async def _export(engine: ReasoningBank) -> dict[str, list[dict[str, object]]]:
        return snapshot_to_dict(await engine.export_patterns())

    document = run_with_engine(state.config, _export)
    output = output.expanduser()
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(document, indent=2), encoding="utf-8")
    total = len(document["shortTerm"]) + len(document["longTerm"])
    console.print(f"[green]Exported {total} patterns to {output}[/green]")


@app.command("import")
def import_(
    ctx: typer.Context,
    source: Path = typer.Argument(..., help="JSON export to import."),
) -> None:
    """Import patterns whose ids are not known yet."""
    state = ctx.obj
    source = source.expanduser()
    try:
        snapshot = snapshot_from_dict(json.loads(source.read_text(encoding="utf-8")))
    except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as exc:
        console.print(f"[red]Cannot read export {source}: {exc}[/red]")
        raise typer.Exit(code=1) from exc

    async def _import(engine: ReasoningBank) -> int:
        return await engine.import_patterns(snapshot)

    imported = run_with_engine(state.config, _import)
    console.print(f"[green]Imported {imported} patterns from {source}[/green]")
