"""Host hook entry points.

Each command prints exactly what the host reads: plain text for the
session, prompt and route hooks, wire JSON for the edit and command hooks.
``stop`` prints nothing on success and exits 2 with the reason on stderr
when stopping should be refused.
"""

from __future__ import annotations

from pathlib import Path

import typer

from reasonbank.guidance.hooks import HookOutput
from reasonbank.guidance.provider import GuidanceProvider, StopCheck
from reasonbank.memory.engine import ReasoningBank

from .common import run_with_engine

app = typer.Typer(help="Hook entry points that print host-readable guidance.")

STOP_REFUSED_EXIT_CODE = 2


@app.callback()
def hooks(
    ctx: typer.Context,
    semantic: bool | None = typer.Option(
        None,
        "--semantic/--no-semantic",
        help=(
            "Override embedding.use_semantic_search for this call. --no-semantic skips "
            "loading the embedding model; keep it consistent with how the archive was built."
        ),
    ),
) -> None:
    """Hook entry points. Every call builds its own short-lived engine."""
    if semantic is None:
        return
    config = ctx.obj.config
    ctx.obj.config = config.model_copy(
        update={"embedding": config.embedding.model_copy(update={"use_semantic_search": semantic})}
    )


def _emit(output: HookOutput) -> None:
    typer.echo(output.to_json())


@app.command("session-start")
def session_start(ctx: typer.Context) -> None:
    """Print the session banner with learned pattern stats."""

    async def _run(engine: ReasoningBank) -> str:
        return await GuidanceProvider(engine).session_context()

    typer.echo(run_with_engine(ctx.obj.config, _run))


@app.command("prompt")
def prompt(
    ctx: typer.Context,
    text: str = typer.Argument(..., help="The user prompt."),
) -> None:
    """Print domain guidance and relevant patterns for a prompt."""

    async def _run(engine: ReasoningBank) -> str:
        return await GuidanceProvider(engine).prompt_context(text)

    typer.echo(run_with_engine(ctx.obj.config, _run))


@app.command("pre-edit")
def pre_edit(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="File about to be edited."),
) -> None:
    """Print the permission decision for an edit."""

    async def _run(engine: ReasoningBank) -> HookOutput:
        return await GuidanceProvider(engine).pre_edit(path)

    _emit(run_with_engine(ctx.obj.config, _run))


@app.command("post-edit")
def post_edit(
    ctx: typer.Context,
    path: str = typer.Argument(..., help="File that was edited."),
    content_file: Path | None = typer.Option(
        None, "--content-file", "-f", help="File holding the edited content to review."
    ),
) -> None:
    """Review edited content and record the edit as a pattern."""
    content: str | None = None
    if content_file is not None:
        try:
            content = content_file.expanduser().read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            typer.echo(f"Cannot read {content_file}: {exc}", err=True)
            raise typer.Exit(code=1) from exc

    async def _run(engine: ReasoningBank) -> HookOutput:
        return await GuidanceProvider(engine).post_edit(path, content)

    _emit(run_with_engine(ctx.obj.config, _run))


@app.command("pre-command")
def pre_command(
    ctx: typer.Context,
    command: str = typer.Argument(..., help="Shell command about to run."),
) -> None:
    """Print the permission decision for a shell command."""

    async def _run(engine: ReasoningBank) -> HookOutput:
        return await GuidanceProvider(engine).pre_command(command)

    _emit(run_with_engine(ctx.obj.config, _run))


@app.command("route")
def route(
    ctx: typer.Context,
    task: str = typer.Argument(..., help="Task description."),
) -> None:
    """Print the agent recommendation for a task."""

    async def _run(engine: ReasoningBank) -> str:
        return await GuidanceProvider(engine).routing_guidance(task)

    typer.echo(run_with_engine(ctx.obj.config, _run))


@app.command("stop")
def stop(ctx: typer.Context) -> None:
    """Refuse to stop while too many patterns wait for consolidation."""

    async def _run(engine: ReasoningBank) -> StopCheck:
        return await GuidanceProvider(engine).stop_check()

    check = run_with_engine(ctx.obj.config, _run)
    if not check.should_stop:
        typer.echo(check.reason or "Stopping refused.", err=True)
        raise typer.Exit(code=STOP_REFUSED_EXIT_CODE)
