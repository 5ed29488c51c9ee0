"""Rich consoles and logging for the ``rb`` CLI.

Hook commands hand their wire payloads to the host on stdout, so stdout is
reserved for payloads and the human-facing tables of the ``memory``
commands. Log records, the safe-mode panel and command errors all go to
``stderr_console``.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "reasonbank"
_HANDLER_NAME = "reasonbank-stderr"

# Libraries that log at INFO while loading a model
_CHATTY_LOGGERS = ("sentence_transformers", "transformers", "huggingface_hub", "filelock")

console = Console()
stderr_console = Console(stderr=True)


def resolve_level(level: str | int, verbose: bool = False) -> int:
    """``--verbose`` wins; unknown level names fall back to INFO."""
    if verbose:
        return logging.DEBUG
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: str | int = logging.INFO, verbose: bool = False) -> logging.Logger:
    """Attach one stderr handler to the ``reasonbank`` logger and return it.

    Safe to call once per CLI invocation: an earlier handler installed here is
    replaced, never stacked. Model-loading libraries stay at WARNING unless
    ``verbose`` is set.
    """
    numeric_level = resolve_level(level, verbose)

    logger = logging.getLogger(LOGGER_NAME)
    for stale in [h for h in logger.handlers if h.get_name() == _HANDLER_NAME]:
        logger.removeHandler(stale)

    handler = RichHandler(
        console=stderr_console,
        markup=False,
        show_path=False,
        show_time=verbose,
        rich_tracebacks=verbose,
    )
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(numeric_level)

    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)

    return logger


def get_console(stderr: bool = False) -> Console:
    return stderr_console if stderr else console


def get_logger(name: str | None = None) -> logging.Logger:
    return logging.getLogger(name or LOGGER_NAME)
