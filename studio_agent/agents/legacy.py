"""LegacyAgentRunner: the V1 assistant path, kept behind the shared runner interface."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional, Protocol

from studio_agent.agents.prompts import LEGACY_PROMPT
from studio_agent.agents.runner import TurnInput, TurnOutput, TurnState
from studio_agent.core.exceptions import TransportError
from studio_agent.providers.base import BaseProvider, ToolCall


@dataclass
class LegacyReply:
    text: str
    tool_calls: list[ToolCall] = field(default_factory=list)


class LegacyHandler(Protocol):
    """Whatever currently answers V1 chat requests."""

    async def __call__(self, turn: TurnInput) -> LegacyReply: ...


class CompletionLegacyHandler:
    """Default V1 behaviour: a single text-only completion with the legacy prompt."""

    def __init__(self, provider: BaseProvider, model: Optional[str] = None, timeout_seconds: float = 30.0):
        self._provider = provider
        self._model = model
        self._timeout = timeout_seconds

    async def __call__(self, turn: TurnInput) -> LegacyReply:
        messages = [
            {"role": "system", "content": LEGACY_PROMPT},
            {"role": "user", "content": turn.message},
        ]
        try:
            result = await asyncio.wait_for(
                self._provider.complete(messages, tools=None, model=self._model),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TransportError("Legacy LLM request timed out", component="llm") from exc
        return LegacyReply(text=result.content or "", tool_calls=list(result.tool_calls))


class LegacyAgentRunner:
    name = "v1"

    def __init__(self, handler: LegacyHandler):
        self._handler = handler

    async def run(self, turn: TurnInput) -> TurnOutput:
        reply = await self._handler(turn)
        return TurnOutput(
            session_id=turn.session_id,
            message=reply.text,
            state=TurnState.DONE,
            plan=list(reply.tool_calls),
        )
