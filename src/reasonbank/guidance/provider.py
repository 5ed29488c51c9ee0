"""Turns engine state and hook policy into host-visible guidance.

Text hooks (session start, prompt, routing) return plain strings; the edit
and command hooks return ``HookOutput`` wire objects. The deny and ask rules
in ``reasonbank.guidance.policy`` are evaluated before any pattern lookup,
so no learned pattern can override them.
"""

from __future__ import annotations

from dataclasses import dataclass

from reasonbank.core.console import get_logger
from reasonbank.memory.engine import ReasoningBank

from .classifier import DOMAIN_GUIDANCE, detect_domains
from .hooks import (
    FileContext,
    HookContext,
    HookDecision,
    HookOutput,
    HookSpecificOutput,
    PermissionDecision,
    RoutingContext,
)
from .policy import (
    CommandVerdict,
    PathVerdict,
    check_command,
    check_path,
    command_hint,
    file_type_advice,
    review_content,
)

logger = get_logger(__name__)

PRE_TOOL_USE = "PreToolUse"
POST_TOOL_USE = "PostToolUse"

SESSION_BANNER: tuple[str, ...] = (
    "## Development Context",
    "",
    "**Priority**: Security first, then correctness, then speed",
    "",
    "**Active Patterns**:",
    "- Write the failing test before the fix",
    "- Keep modules behind small typed interfaces",
    "- Log through module loggers, never print",
    "",
    "**Code Quality Rules**:",
    "- Files under 500 lines",
    "- No hardcoded secrets",
    "- Input validation at boundaries",
    "- Typed interfaces for all public APIs",
    "",
)


@dataclass(frozen=True)
class StopCheck:
    should_stop: bool
    reason: str | None = None


class GuidanceProvider:
    """Hook entry points backed by a caller-owned ``ReasoningBank``."""

    def __init__(self, engine: ReasoningBank, *, stop_check_limit: int | None = None) -> None:
        self.engine = engine
        self.stop_check_limit = (
            engine.settings.stop_check_limit if stop_check_limit is None else stop_check_limit
        )

    async def initialize(self) -> None:
        await self.engine.initialize()

    async def session_context(self) -> str:
        await self.engine.initialize()
        stats = self.engine.get_stats()
        lines = [
            *SESSION_BANNER,
            f"**Learned Patterns**: {stats.total_patterns} available",
            f"**Avg Search Time**: {stats.avg_search_time:.2f}ms",
        ]
        return "\n".join(lines)

    async def prompt_context(self, prompt: str) -> str:
        guidance = await self.engine.generate_guidance(
            HookContext(event="pre-route", routing=RoutingContext(task=prompt))
        )

        lines: list[str] = []
        if guidance.recommendations:
            for domain in detect_domains(prompt):
                lines.append(f"**{domain.capitalize()} Guidance**:")
                lines.extend(f"- {bullet}" for bullet in DOMAIN_GUIDANCE[domain][:5])
                lines.append("")

        if guidance.patterns:
            lines.append("**Relevant Learned Patterns**:")
            for hit in guidance.patterns[:3]:
                lines.append(f"- {hit.pattern.strategy} ({hit.similarity * 100:.0f}% match)")

        return "\n".join(lines)

    async def pre_edit(self, path: str) -> HookOutput:
        verdict, marker = check_path(path)
        if verdict is PathVerdict.BLOCKED_SENSITIVE:
            logger.info("Denied edit of %s (matched %s)", path, marker)
            return HookOutput.permission(
                PermissionDecision.DENY,
                reason=(
                    f"Security: Cannot edit {marker} files directly. "
                    "Use environment variables instead."
                ),
            )
        if verdict is PathVerdict.CONFIRM_PRODUCTION:
            return HookOutput.permission(
                PermissionDecision.ASK,
                reason=f"This appears to be a {marker} file. Confirm this edit is intentional.",
            )

        guidance = await self.engine.generate_guidance(
            HookContext(event="pre-edit", file=FileContext(path=path, operation="modify"))
        )
        advice = file_type_advice(path) or ""
        if guidance.patterns:
            hints = "; ".join(hit.pattern.strategy for hit in guidance.patterns[:2])
            advice += f" Similar patterns: {hints}"

        if advice:
            return HookOutput.permission(PermissionDecision.ALLOW, context=advice)
        return HookOutput.allow()

    async def post_edit(self, path: str, content: str | None = None) -> HookOutput:
        issues = review_content(path, content) if content else []

        await self.engine.store_pattern(
            f"Edit: {path}", "code", {"operation": "modify", "issues": len(issues)}
        )

        if not issues:
            return HookOutput.allow()
        bullets = "\n- ".join(issues)
        return HookOutput(
            decision=HookDecision.ALLOW,
            reason=f"Edit completed. Review suggestions:\n- {bullets}",
            hook_specific_output=HookSpecificOutput(
                hook_event_name=POST_TOOL_USE,
                additional_context=f"Quality check found items to address:\n- {bullets}",
            ),
        )

    async def pre_command(self, command: str) -> HookOutput:
        verdict, rule = check_command(command)
        if verdict is CommandVerdict.BLOCKED:
            logger.info("Denied command matching %s", rule)
            return HookOutput.permission(
                PermissionDecision.DENY,
                reason=f"Destructive command blocked: {rule}. Use safer alternatives.",
            )
        if verdict is CommandVerdict.CONFIRM:
            return HookOutput.permission(
                PermissionDecision.ASK,
                reason=(
                    f"This command has external effects ({rule}). Confirm before proceeding."
                ),
            )

        hint = command_hint(command)
        if hint:
            return HookOutput.permission(PermissionDecision.ALLOW, context=hint)
        return HookOutput.allow()

    async def routing_guidance(self, task: str) -> str:
        routing = await self.engine.route_task(task)

        lines = [
            f"**Recommended Agent**: {routing.agent}",
            f"**Confidence**: {routing.confidence}%",
            f"**Reasoning**: {routing.reasoning}",
            "",
        ]
        if routing.alternatives:
            lines.append("**Alternatives**:")
            lines.extend(f"- {alt.agent} ({alt.confidence}%)" for alt in routing.alternatives)
            lines.append("")

        history = routing.historical_performance
        if history is not None:
            lines.append("**Historical Performance**:")
            lines.append(f"- Success rate: {history.success_rate * 100:.0f}%")
            lines.append(f"- Avg quality: {history.avg_quality * 100:.0f}%")
            lines.append(f"- Similar tasks: {history.task_count}")

        lines.append("")
        lines.append(f'Use Task tool with subagent_type="{routing.agent}" for optimal results.')
        return "\n".join(lines)

    async def stop_check(self) -> StopCheck:
        """Refuse to stop while too many patterns wait for consolidation."""
        await self.engine.initialize()
        pending = self.engine.get_stats().short_term_count
        if pending > self.stop_check_limit:
            return StopCheck(
                should_stop=False,
                reason=(
                    f"{pending} patterns not yet consolidated. "
                    "Run consolidation before stopping."
                ),
            )
        return StopCheck(should_stop=True)


__all__ = ["GuidanceProvider", "StopCheck"]
