"""ToolBus value types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studio_agent.agents.policy import Mode, RiskTier, Scope


@dataclass(frozen=True)
class ToolContext:
    """Per-dispatch caller context handed to the policy checks and the executor."""

    session_id: str
    studio_id: str
    user_id: str
    scopes: frozenset[Scope]
    mode: Mode
    dry_run: bool = False
    db: Optional[async_sessionmaker[AsyncSession]] = field(default=None, compare=False, repr=False)


Executor = Callable[[dict, ToolContext], Awaitable[Any]]


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    parameters: dict
    required_scope: Scope
    risk: RiskTier
    executor: Executor

    def to_openai(self) -> dict:
        """OpenAI function-calling descriptor."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolOutcome(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    CONFIRMATION_REQUIRED = "confirmation_required"


@dataclass(frozen=True)
class ConfirmationRequest:
    """A high-risk call paused until the caller confirms it."""

    token: Optional[str]
    tool: str
    args: dict
    reason: str

    def to_dict(self) -> dict:
        return {
            "confirmationToken": self.token,
            "tool": self.tool,
            "args": self.args,
            "reason": self.reason,
        }


@dataclass
class ToolResult:
    tool: str
    args: dict
    outcome: ToolOutcome
    data: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    simulated: bool = False
    duration_ms: int = 0
    confirmation: Optional[ConfirmationRequest] = None
    audit_id: Optional[int] = None
    exception: Optional[Exception] = field(default=None, repr=False, compare=False)

    @property
    def ok(self) -> bool:
        return self.outcome == ToolOutcome.SUCCESS

    @property
    def needs_confirmation(self) -> bool:
        return self.outcome == ToolOutcome.CONFIRMATION_REQUIRED

    def to_dict(self) -> dict:
        payload = {
            "tool": self.tool,
            "args": self.args,
            "ok": self.ok,
            "outcome": self.outcome.value,
            "result": self.data,
            "error": self.error,
            "errorType": self.error_type,
            "simulated": self.simulated,
            "durationMs": self.duration_ms,
        }
        if self.confirmation is not None:
            payload["confirmation"] = self.confirmation.to_dict()
        return payload

    def to_llm_content(self) -> dict:
        """What the model sees for this call on the finalizing step."""
        if self.ok:
            return {"ok": True, "simulated": self.simulated, "data": self.data}
        return {"ok": False, "error": self.error, "errorType": self.error_type}
