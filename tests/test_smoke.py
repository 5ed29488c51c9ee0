from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from typer.testing import CliRunner

from reasonbank import __version__
from reasonbank.main import app

runner = CliRunner()


def _command_paths(group: typer.Typer, prefix: tuple[str, ...] = ()) -> list[tuple[str, ...]]:
    paths: list[tuple[str, ...]] = []
    for command in group.registered_commands:
        assert command.name, "commands are registered with explicit names"
        paths.append((*prefix, command.name))
    for sub in group.registered_groups:
        assert sub.name and sub.typer_instance is not None
        path = (*prefix, sub.name)
        paths.append(path)
        paths.extend(_command_paths(sub.typer_instance, path))
    return paths


def test_app_version(capture_console: Console) -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in capture_console.export_text()


def test_all_commands_have_help() -> None:
    """
    Critical Smoke Test: Iterate over EVERY registered command, including the
    memory and hook sub-commands, and ensure it accepts --help. This catches
    import errors and broken option declarations in the command modules.
    """
    paths = _command_paths(app)
    assert ("memory", "store") in paths
    assert ("hook", "pre-edit") in paths
    for path in paths:
        result = runner.invoke(app, [*path, "--help"])
        assert result.exit_code == 0, f"Command 'rb {' '.join(path)} --help' failed!"
        assert "Usage:" in result.stdout


def test_config_command_shows_source(isolate_config: Path, capture_console: Console) -> None:
    isolate_config.write_text("[engine]\nstop_check_limit = 4\n", encoding="utf-8")

    result = runner.invoke(app, ["config"])

    assert result.exit_code == 0
    text = capture_console.export_text()
    assert "File loaded: yes" in text
    assert "stop_check_limit" in text


def test_broken_config_enters_safe_mode(isolate_config: Path, capture_console: Console) -> None:
    isolate_config.write_text("[engine\n", encoding="utf-8")

    result = runner.invoke(app, ["config"])

    assert result.exit_code == 0
    assert "Safe Mode" in result.output
    assert "File loaded: no" in capture_console.export_text()
