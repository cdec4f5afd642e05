"""The runner interface shared by the legacy and ToolBus dialogue paths."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol, runtime_checkable

from studio_agent.agents.policy import Mode
from studio_agent.agents.toolbus.types import ConfirmationRequest, ToolResult
from studio_agent.providers.base import ToolCall


@dataclass(frozen=True)
class CallerIdentity:
    """Who is talking to the agent, as asserted by the upstream auth layer."""

    user_id: str
    studio_id: str
    role: str


@dataclass(frozen=True)
class TurnInput:
    message: str
    caller: CallerIdentity
    session_id: Optional[str] = None
    mode: Optional[Mode] = None
    confirmation_token: Optional[str] = None
    dry_run: bool = False
    # Read-only source of prior turns when the turn runs in a side session
    history_session_id: Optional[str] = None


class TurnState(str, Enum):
    START = "START"
    SESSION_RESOLVED = "SESSION_RESOLVED"
    LLM_PLANNED = "LLM_PLANNED"
    TOOLS_DISPATCHED = "TOOLS_DISPATCHED"
    LLM_FINALIZED = "LLM_FINALIZED"
    PERSISTED = "PERSISTED"
    DONE = "DONE"
    CONFIRMATION_PENDING = "CONFIRMATION_PENDING"
    FAILED = "FAILED"


@dataclass
class TurnOutput:
    session_id: Optional[str]
    message: str
    mode: Optional[Mode] = None
    state: TurnState = TurnState.DONE
    plan_content: Optional[str] = None
    plan: list[ToolCall] = field(default_factory=list)
    tool_results: list[ToolResult] = field(default_factory=list)
    confirmation: Optional[ConfirmationRequest] = None

    @property
    def confirmation_pending(self) -> bool:
        return self.state == TurnState.CONFIRMATION_PENDING

    def plan_dict(self) -> dict:
        return {
            "content": self.plan_content,
            "toolCalls": [call.to_dict() for call in self.plan],
        }


@runtime_checkable
class AgentRunner(Protocol):
    """One conversational turn in, one reply out."""

    name: str

    async def run(self, turn: TurnInput) -> TurnOutput: ...
