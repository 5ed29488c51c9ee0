from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import typer
from rich import box
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .commands import hooks, memory
from .commands.common import run_with_engine
from .core.config import AppConfig, ConfigLoadResult, load_config
from .core.console import console, get_console, setup_logging
from .memory.engine import ReasoningBank
from .memory.models import RoutingResult

app = typer.Typer(help="rb: learned pattern memory and hook guidance for coding agents.")
logger = logging.getLogger(__name__)


@dataclass
class AppState:
    config: AppConfig
    config_meta: ConfigLoadResult
    logger: logging.Logger


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None, "--config", "-c", help="Path to a reasonbank config file (TOML or JSON)."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    loaded_config, meta = load_config(config_path=config)
    logger = setup_logging(level=loaded_config.log_level, verbose=verbose)

    ctx.obj = AppState(config=loaded_config, config_meta=meta, logger=logger)

    if meta.error:
        # Hook commands own stdout, so the Safe Mode warning goes to stderr
        get_console(stderr=True).print(
            Panel(
                f"[bold red]Configuration Error - Safe Mode Active[/bold red]\n\n"
                f"Failed to load {meta.path}:\n{meta.error}\n\n"
                f"[yellow]Using default settings.[/yellow]",
                border_style="red",
            )
        )
    else:
        logger.debug(
            "Loaded configuration from %s (env overrides: %s)",
            meta.path,
            sorted(meta.env_overrides),
        )


@app.command("route")
def route(
    ctx: typer.Context,
    task: str = typer.Argument(..., help="Task description to route."),
) -> None:
    """Recommend an agent for a task."""
    state: AppState = ctx.obj

    async def _route(engine: ReasoningBank) -> RoutingResult:
        return await engine.route_task(task)

    routing = run_with_engine(state.config, _route)

    lines = [
        f"[bold cyan]{routing.agent}[/bold cyan] ({routing.confidence}%)",
        routing.reasoning,
    ]
    history = routing.historical_performance
    if history is not None:
        lines.append(
            f"History: {history.success_rate * 100:.0f}% success, "
            f"{history.avg_quality * 100:.0f}% avg quality over {history.task_count} patterns"
        )
    console.print(Panel("\n".join(lines), title="Recommended agent"))

    if routing.alternatives:
        table = Table(title="Alternatives", box=box.SIMPLE)
        table.add_column("Agent", style="cyan", no_wrap=True)
        table.add_column("Confidence", justify="right")
        for alt in routing.alternatives:
            table.add_row(alt.agent, f"{alt.confidence}%")
        console.print(table)


@app.command("config")
def show_config(ctx: typer.Context) -> None:
    """Show the active configuration and where it came from."""
    state: AppState = ctx.obj
    config = state.config
    meta = state.config_meta

    table = Table(title="Config", box=box.SIMPLE, expand=True)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")

    for key, value in config.model_dump().items():
        table.add_row(key, str(value))

    console.print(table)

    meta_lines = [
        f"Path: {meta.path}",
        "File loaded: yes" if meta.file_loaded else "File loaded: no (using defaults + env)",
    ]
    if meta.env_overrides:
        meta_lines.append("Env overrides: " + ", ".join(sorted(meta.env_overrides)))

    console.print(Panel("\n".join(meta_lines), title="Config source", box=box.SIMPLE))


@app.command("version")
def show_version() -> None:
    """Print the reasonbank version."""
    console.print(__version__)


app.add_typer(memory.app, name="memory")
app.add_typer(hooks.app, name="hook")


def cli() -> None:
    app()


if __name__ == "__main__":
    cli()
