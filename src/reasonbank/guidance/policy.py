"""Static hook policy: protected paths, destructive commands and edit review.

Everything here is a fixed table evaluated without touching learned
patterns, so the verdicts are deterministic for a given input.

Usage:
    from reasonbank.guidance.policy import check_command, CommandVerdict

    verdict, rule = check_command("rm -rf build/")
    if verdict is CommandVerdict.BLOCKED:
        print(f"Blocked by {rule}")
"""

from __future__ import annotations

import re
from enum import Enum, auto


class PathVerdict(Enum):
    """Result of checking a path before an edit."""

    ALLOWED = auto()
    BLOCKED_SENSITIVE = auto()
    CONFIRM_PRODUCTION = auto()


class CommandVerdict(Enum):
    """Result of checking a shell command before it runs."""

    ALLOWED = auto()
    BLOCKED = auto()
    CONFIRM = auto()


# Substrings of a lowercased path that must never be edited directly
BLOCKED_PATH_MARKERS: tuple[str, ...] = (
    ".env",
    ".pem",
    ".key",
    "credentials",
    "secret",
    "password",
)

# Substrings of a lowercased path that need explicit confirmation
WARNED_PATH_MARKERS: tuple[str, ...] = ("prod", "production", "live", "deploy")

# Destructive commands, matched case-insensitively anywhere in the command
DANGEROUS_COMMANDS: tuple[str, ...] = (
    "rm -rf",
    "drop database",
    "truncate",
    "push.*--force|--force.*push",
    "reset --hard",
    "format c:",
)
_DANGEROUS_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = tuple(
    (rule, re.compile(rule, re.I)) for rule in DANGEROUS_COMMANDS
)

# Commands with effects outside the workspace
RISKY_COMMANDS: tuple[str, ...] = (
    "npm publish",
    "git push",
    "deploy",
    "kubectl apply",
    "twine upload",
)

TEST_COMMAND_PATTERN = re.compile(r"pytest|\btox\b|npm test|vitest|jest|pnpm test", re.I)
BUILD_COMMAND_PATTERN = re.compile(r"python -m build|npm run build|\btsc\b|pnpm build", re.I)

TEST_HINT = "Running tests. If failures occur, fix them before proceeding."
BUILD_HINT = "Building project. Watch for type errors. All must pass before commit."

_TEST_FILE = re.compile(r"test|spec", re.I)

# First match wins
FILE_TYPE_ADVICE: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        _TEST_FILE,
        "Testing file: Mock dependencies first, test behavior not implementation.",
    ),
    (
        re.compile(r"security|auth", re.I),
        "Security module: Validate inputs, use parameterized queries, no hardcoded secrets.",
    ),
    (
        re.compile(r"memory|cache", re.I),
        "Memory module: Prefer indexed search, batch operations, proper cleanup.",
    ),
    (
        re.compile(r"swarm|coordinator", re.I),
        "Swarm module: Use event-driven communication, handle failures gracefully.",
    ),
    (
        re.compile(r"\.py$"),
        "Python: Keep type hints precise, avoid Any, log through the module logger.",
    ),
    (
        re.compile(r"\.ts$"),
        "TypeScript: Use strict types, avoid any, export interfaces for public APIs.",
    ),
)

MAX_FILE_LINES = 500

_PRINT_CALL = re.compile(r"\bprint\(")
_MARKER_COMMENT = re.compile(r"TODO|FIXME|HACK", re.I)
_PY_LOOSE_TYPE = re.compile(r":\s*Any\b")
_TS_LOOSE_TYPE = re.compile(r":\s*any\b")

# Assignments like password = "hunter2" or api_key = 'abc'
_HARDCODED_SECRET = re.compile(
    r"""(?ix)
    password\s*=\s*['"][^'"]+['"]
    |
    api[_-]?key\s*=\s*['"][^'"]+['"]
    """
)


def check_path(path: str) -> tuple[PathVerdict, str | None]:
    """Classify an edit target. Returns the verdict and the marker that triggered it."""
    lowered = path.lower()
    for marker in BLOCKED_PATH_MARKERS:
        if marker in lowered:
            return PathVerdict.BLOCKED_SENSITIVE, marker
    for marker in WARNED_PATH_MARKERS:
        if marker in lowered:
            return PathVerdict.CONFIRM_PRODUCTION, marker
    return PathVerdict.ALLOWED, None


def check_command(command: str) -> tuple[CommandVerdict, str | None]:
    """Classify a shell command. Returns the verdict and the rule that triggered it."""
    for rule, pattern in _DANGEROUS_PATTERNS:
        if pattern.search(command):
            return CommandVerdict.BLOCKED, rule
    lowered = command.lower()
    for marker in RISKY_COMMANDS:
        if marker in lowered:
            return CommandVerdict.CONFIRM, marker
    return CommandVerdict.ALLOWED, None


def command_hint(command: str) -> str | None:
    if TEST_COMMAND_PATTERN.search(command):
        return TEST_HINT
    if BUILD_COMMAND_PATTERN.search(command):
        return BUILD_HINT
    return None


def file_type_advice(path: str) -> str | None:
    for pattern, advice in FILE_TYPE_ADVICE:
        if pattern.search(path):
            return advice
    return None


def review_content(path: str, content: str) -> list[str]:
    """Quality issues in freshly edited content, in a fixed order."""
    issues: list[str] = []
    is_test = bool(_TEST_FILE.search(path))

    if not is_test:
        if "console.log" in content:
            issues.append("Remove console.log statements (use proper logging)")
        if path.endswith(".py") and _PRINT_CALL.search(content):
            issues.append("Remove print() calls (use the logging module)")

    if _MARKER_COMMENT.search(content):
        issues.append("Address TODO/FIXME comments before committing")

    if path.endswith(".py") and _PY_LOOSE_TYPE.search(content):
        issues.append("Replace 'Any' annotations with specific types")
    elif path.endswith(".ts") and _TS_LOOSE_TYPE.search(content):
        issues.append("Replace 'any' types with specific types")

    line_count = content.count("\n") + 1
    if line_count > MAX_FILE_LINES:
        issues.append(f"File exceeds {MAX_FILE_LINES} lines ({line_count}). Consider splitting.")

    if _HARDCODED_SECRET.search(content):
        issues.append("Possible hardcoded secret detected. Use environment variables.")

    return issues


__all__ = [
    "BLOCKED_PATH_MARKERS",
    "CommandVerdict",
    "DANGEROUS_COMMANDS",
    "PathVerdict",
    "RISKY_COMMANDS",
    "WARNED_PATH_MARKERS",
    "check_command",
    "check_path",
    "command_hint",
    "file_type_advice",
    "review_content",
]
