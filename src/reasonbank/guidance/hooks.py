"""Host hook wire models.

``HookContext`` is the read-only input a host passes to a hook;
``HookOutput`` is the only externally observable wire format. Field names
are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class HookDecision(str, Enum):
    APPROVE = "approve"
    BLOCK = "block"
    ALLOW = "allow"
    DENY = "deny"


class PermissionDecision(str, Enum):
    """Permission values understood by the host. Names and order are fixed."""

    ALLOW = "allow"
    DENY = "deny"
    ASK = "ask"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)


# -----------------------------------------------------------------------------
# Input
# -----------------------------------------------------------------------------


class FileContext(_WireModel):
    path: str
    operation: str | None = None


class CommandContext(_WireModel):
    raw: str


class TaskContext(_WireModel):
    description: str


class RoutingContext(_WireModel):
    task: str


class HookContext(_WireModel):
    """Optional pieces of what the host is about to do."""

    event: str | None = None
    file: FileContext | None = None
    command: CommandContext | None = None
    task: TaskContext | None = None
    routing: RoutingContext | None = None

    def query_text(self) -> str:
        """Join whichever parts are present into one search query."""
        parts: list[str] = []
        if self.file and self.file.path:
            parts.append(f"file: {self.file.path}")
        if self.command and self.command.raw:
            parts.append(f"command: {self.command.raw}")
        if self.task and self.task.description:
            parts.append(self.task.description)
        if self.routing and self.routing.task:
            parts.append(self.routing.task)
        return " ".join(parts)


# -----------------------------------------------------------------------------
# Output
# -----------------------------------------------------------------------------


class HookSpecificOutput(_WireModel):
    hook_event_name: str = Field(alias="hookEventName")
    additional_context: str | None = Field(default=None, alias="additionalContext")
    permission_decision: PermissionDecision | None = Field(
        default=None, alias="permissionDecision"
    )
    permission_decision_reason: str | None = Field(
        default=None, alias="permissionDecisionReason"
    )


class HookOutput(_WireModel):
    decision: HookDecision | None = None
    reason: str | None = None
    hook_specific_output: HookSpecificOutput | None = Field(
        default=None, alias="hookSpecificOutput"
    )

    @classmethod
    def allow(cls) -> HookOutput:
        return cls(decision=HookDecision.ALLOW)

    @classmethod
    def permission(
        cls,
        decision: PermissionDecision,
        *,
        event: str = "PreToolUse",
        reason: str | None = None,
        context: str | None = None,
    ) -> HookOutput:
        return cls(
            hook_specific_output=HookSpecificOutput(
                hook_event_name=event,
                permission_decision=decision,
                permission_decision_reason=reason,
                additional_context=context,
            )
        )

    @property
    def permission_decision(self) -> PermissionDecision | None:
        if self.hook_specific_output is None:
            return None
        return self.hook_specific_output.permission_decision

    def to_wire(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


__all__ = [
    "CommandContext",
    "FileContext",
    "HookContext",
    "HookDecision",
    "HookOutput",
    "HookSpecificOutput",
    "PermissionDecision",
    "RoutingContext",
    "TaskContext",
]
