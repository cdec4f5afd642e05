"""DialogueOrchestrator: one conversational turn against the LLM through the ToolBus.

State flow per turn::

    START -> SESSION_RESOLVED -> LLM_PLANNED -> TOOLS_DISPATCHED
          -> LLM_FINALIZED -> PERSISTED -> DONE

with ``CONFIRMATION_PENDING`` and ``FAILED`` as the other terminal states.
The user message is durable before the first LLM call, so a transport
failure never loses what the user said.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studio_agent.agents.policy import Mode, parse_scopes
from studio_agent.agents.prompts import confirmation_message, system_prompt
from studio_agent.agents.runner import TurnInput, TurnOutput, TurnState
from studio_agent.agents.toolbus.bus import ToolBus
from studio_agent.agents.toolbus.types import ToolContext, ToolResult
from studio_agent.core.exceptions import (
    AuthorizationError,
    ConfirmationTokenError,
    StudioAgentException,
    TransportError,
)
from studio_agent.core.logging import bind_session_id, get_logger
from studio_agent.db.models import AgentSession
from studio_agent.providers.base import BaseProvider, CompletionResult, ToolCall
from studio_agent.services.audit_service import AuditLedger
from studio_agent.services.transcript_service import TranscriptService

logger = get_logger(__name__)

# Tool-level failures that end the turn instead of being shown to the model
FATAL_TOOL_ERRORS = (AuthorizationError, ConfirmationTokenError)


class DialogueOrchestrator:
    """The ToolBus-backed dialogue runner."""

    name = "v2"

    def __init__(
        self,
        bus: ToolBus,
        transcripts: TranscriptService,
        ledger: AuditLedger,
        provider: BaseProvider,
        session_factory: async_sessionmaker[AsyncSession],
        model: Optional[str] = None,
        llm_timeout_seconds: float = 30.0,
        max_tool_calls: int = 10,
        history_limit: int = 20,
    ):
        self._bus = bus
        self._transcripts = transcripts
        self._ledger = ledger
        self._provider = provider
        self._sf = session_factory
        self._model = model
        self._llm_timeout = llm_timeout_seconds
        self._max_tool_calls = max_tool_calls
        self._history_limit = history_limit

    async def run(self, turn: TurnInput) -> TurnOutput:
        session_id: Optional[str] = None
        try:
            row, mode = await self._transcripts.resolve_session(turn.caller, turn.session_id, turn.mode)
            session_id = row.id
            bind_session_id(row.id)
            self._transition(TurnState.SESSION_RESOLVED, row.id, mode=mode.value, dry_run=turn.dry_run)

            ctx = ToolContext(
                session_id=row.id,
                studio_id=row.studio_id,
                user_id=turn.caller.user_id,
                scopes=parse_scopes(row.scopes),
                mode=mode,
                dry_run=turn.dry_run,
                db=self._sf,
            )
            history = await self._transcripts.history(turn.history_session_id or row.id, self._history_limit)
            await self._transcripts.append(row.id, "user", turn.message)

            conversation = [{"role": m.role, "content": m.content} for m in history]
            conversation.append({"role": "user", "content": turn.message})

            if turn.confirmation_token:
                return await self._run_confirmed(turn.confirmation_token, row, ctx, conversation)
            return await self._run_planned(row, ctx, conversation)
        except StudioAgentException as exc:
            self._transition(TurnState.FAILED, session_id, error=type(exc).__name__)
            raise

    # ------------------------------------------------------------------
    # Turn variants
    # ------------------------------------------------------------------
    async def _run_planned(self, row: AgentSession, ctx: ToolContext, conversation: list[dict]) -> TurnOutput:
        definitions = self._bus.definitions_for_scopes(ctx.scopes)
        messages = [{"role": "system", "content": system_prompt(ctx.mode, definitions)}, *conversation]
        tools = [definition.to_openai() for definition in definitions]

        plan = await self._complete(messages, tools=tools or None)
        self._transition(TurnState.LLM_PLANNED, row.id, tool_calls=len(plan.tool_calls))

        if not plan.tool_calls:
            reply = plan.content or ""
            await self._transcripts.append(row.id, "assistant", reply)
            return self._done(row.id, ctx.mode, reply, plan=plan)

        calls = plan.tool_calls[: self._max_tool_calls]
        if len(plan.tool_calls) > len(calls):
            logger.warning(
                "Tool call plan truncated",
                data={"requested": len(plan.tool_calls), "limit": self._max_tool_calls},
            )

        results: list[ToolResult] = []
        for call in calls:
            result = await self._bus.dispatch(ctx, call.name, call.arguments)
            results.append(result)
            stop = await self._stop_on(result, row.id, ctx.mode, plan, calls, results)
            if stop is not None:
                return stop

        self._transition(TurnState.TOOLS_DISPATCHED, row.id, dispatched=len(results))
        return await self._finalize(row, ctx, messages, CompletionResult(content=plan.content, tool_calls=calls), results, plan)

    async def _run_confirmed(
        self, token: str, row: AgentSession, ctx: ToolContext, conversation: list[dict]
    ) -> TurnOutput:
        """Resubmission of a paused call: run it with the token, then let the model report."""
        pending = await self._ledger.get_confirmation(token)
        if pending is None or pending.session_id != row.id:
            raise ConfirmationTokenError()

        call = ToolCall(
            id=f"call_{pending.id[-16:]}",
            name=pending.tool,
            arguments=dict(pending.args_json or {}),
            raw_arguments=json.dumps(pending.args_json or {}, sort_keys=True),
        )
        plan = CompletionResult(content=None, tool_calls=[call])
        self._transition(TurnState.LLM_PLANNED, row.id, confirmed_tool=call.name)

        result = await self._bus.dispatch(ctx, call.name, call.arguments, confirmation_token=token)
        stop = await self._stop_on(result, row.id, ctx.mode, plan, [call], [result])
        if stop is not None:
            return stop
        self._transition(TurnState.TOOLS_DISPATCHED, row.id, dispatched=1)

        definitions = self._bus.definitions_for_scopes(ctx.scopes)
        messages = [{"role": "system", "content": system_prompt(ctx.mode, definitions)}, *conversation]
        return await self._finalize(row, ctx, messages, plan, [result], plan)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    async def _stop_on(
        self,
        result: ToolResult,
        session_id: str,
        mode: Mode,
        plan: CompletionResult,
        calls: list[ToolCall],
        results: list[ToolResult],
    ) -> Optional[TurnOutput]:
        """End the turn early on a rejection or a confirmation pause."""
        if isinstance(result.exception, FATAL_TOOL_ERRORS):
            await self._transcripts.append(
                session_id,
                "assistant",
                f"I can't do that: {result.error}",
                metadata={"rejected": True, "toolResults": [r.to_dict() for r in results]},
            )
            raise result.exception

        if result.needs_confirmation:
            confirmation = result.confirmation
            message = confirmation_message(confirmation.tool, confirmation.reason)
            await self._transcripts.append(
                session_id,
                "assistant",
                message,
                metadata={
                    "confirmation": confirmation.to_dict(),
                    "toolResults": [r.to_dict() for r in results],
                },
            )
            self._transition(TurnState.CONFIRMATION_PENDING, session_id, tool=confirmation.tool)
            return TurnOutput(
                session_id=session_id,
                message=message,
                mode=mode,
                state=TurnState.CONFIRMATION_PENDING,
                plan_content=plan.content,
                plan=list(calls),
                tool_results=results,
                confirmation=confirmation,
            )
        return None

    async def _finalize(
        self,
        row: AgentSession,
        ctx: ToolContext,
        messages: list[dict],
        replayed: CompletionResult,
        results: list[ToolResult],
        plan: CompletionResult,
    ) -> TurnOutput:
        tool_messages = []
        for call, result in zip(replayed.tool_calls, results):
            content = json.dumps(result.to_llm_content(), default=str)
            tool_messages.append({"role": "tool", "tool_call_id": call.id, "content": content})
            await self._transcripts.append(
                row.id, "tool", content, metadata={"tool": call.name, "outcome": result.outcome.value}, tool_call_id=call.id
            )

        final = await self._complete([*messages, replayed.to_message(), *tool_messages], tools=None)
        self._transition(TurnState.LLM_FINALIZED, row.id)

        reply = final.content or _fallback_reply(results)
        await self._transcripts.append(
            row.id, "assistant", reply, metadata={"toolResults": [r.to_dict() for r in results]}
        )
        return self._done(row.id, ctx.mode, reply, plan=plan, results=results)

    async def _complete(self, messages: list[dict], tools: Optional[list[dict]]) -> CompletionResult:
        try:
            return await asyncio.wait_for(
                self._provider.complete(messages, tools=tools, model=self._model),
                timeout=self._llm_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TransportError("LLM request timed out", component="llm") from exc

    def _done(
        self,
        session_id: str,
        mode: Mode,
        reply: str,
        plan: CompletionResult,
        results: Optional[list[ToolResult]] = None,
    ) -> TurnOutput:
        self._transition(TurnState.PERSISTED, session_id)
        self._transition(TurnState.DONE, session_id)
        return TurnOutput(
            session_id=session_id,
            message=reply,
            mode=mode,
            state=TurnState.DONE,
            plan_content=plan.content,
            plan=list(plan.tool_calls),
            tool_results=list(results or []),
        )

    @staticmethod
    def _transition(state: TurnState, session_id: Optional[str], **data: Any) -> None:
        terminal = state in (TurnState.DONE, TurnState.CONFIRMATION_PENDING, TurnState.FAILED)
        log = logger.info if terminal else logger.debug
        log(f"Turn state: {state.value}", data={"session_id": session_id, **data})


def _fallback_reply(results: list[ToolResult]) -> str:
    ok = sum(1 for r in results if r.ok)
    return f"Completed {ok} of {len(results)} actions."
