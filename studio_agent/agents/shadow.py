"""Shadow comparison of the legacy (V1) and ToolBus (V2) runners.

V1 answers the user. V2 runs the same turn concurrently in dry-run mode, and
the pair is scored by a pluggable comparator and stored as a diff record. No
V2 failure, timeout or diff-write error can change what the user receives.
"""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass, replace
from difflib import SequenceMatcher
from typing import Any, Optional, Protocol

from studio_agent.agents.policy import DEFAULT_POLICY, Mode
from studio_agent.agents.runner import AgentRunner, TurnInput, TurnOutput
from studio_agent.agents.toolbus.types import ToolOutcome
from studio_agent.core.exceptions import StudioAgentException
from studio_agent.core.logging import get_logger
from studio_agent.core.time import elapsed_ms
from studio_agent.providers.base import ToolCall
from studio_agent.services.audit_service import AuditLedger
from studio_agent.services.transcript_service import TranscriptService

logger = get_logger(__name__)


@dataclass
class RunnerOutcome:
    output: Optional[TurnOutput]
    error: Optional[str]
    duration_ms: int


@dataclass(frozen=True)
class Comparison:
    match: bool
    score: Optional[float]
    notes: str


class ResponseComparator(Protocol):
    def compare(self, v1: RunnerOutcome, v2: RunnerOutcome) -> Comparison: ...


def _normalize(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


def argument_agreement(a: Optional[dict], b: Optional[dict]) -> float:
    """Share of the union of keys whose (normalized) values are equal."""
    a = a or {}
    b = b or {}
    keys = set(a) | set(b)
    if not keys:
        return 1.0
    same = sum(1 for key in keys if key in a and key in b and _normalize(a[key]) == _normalize(b[key]))
    return same / len(keys)


def text_similarity(a: str, b: str) -> float:
    return round(SequenceMatcher(None, (a or "").lower(), (b or "").lower()).ratio(), 4)


class StructuralComparator:
    """Default comparator.

    1. If either side failed, they match only when both failed.
    2. If V1 reports tool calls, the tool-name multisets must agree and every
       paired call must agree on at least ``argument_threshold`` of its keys.
    3. Otherwise they match when no V2 tool result failed; text similarity of
       the two replies is kept as the score for review.
    """

    def __init__(self, argument_threshold: float = 0.8):
        self.argument_threshold = argument_threshold

    def compare(self, v1: RunnerOutcome, v2: RunnerOutcome) -> Comparison:
        if v1.error or v2.error:
            both = bool(v1.error) and bool(v2.error)
            side = "both failed" if both else ("v1 failed" if v1.error else "v2 failed")
            return Comparison(match=both, score=None, notes=side)

        if v1.output.plan:
            return self._compare_plans(v1.output.plan, v2.output.plan)

        score = text_similarity(v1.output.message, v2.output.message)
        failed = [r.tool for r in v2.output.tool_results if r.outcome == ToolOutcome.ERROR]
        if failed:
            return Comparison(match=False, score=score, notes=f"v2 tool failures: {', '.join(failed)}")
        return Comparison(match=True, score=score, notes="outcomes agree")

    def _compare_plans(self, v1_calls: list[ToolCall], v2_calls: list[ToolCall]) -> Comparison:
        v1_names = sorted(call.name for call in v1_calls)
        v2_names = sorted(call.name for call in v2_calls)
        if v1_names != v2_names:
            return Comparison(match=False, score=0.0, notes=f"tool sets differ: v1={v1_names} v2={v2_names}")

        by_name: dict[str, list[ToolCall]] = defaultdict(list)
        for call in v2_calls:
            by_name[call.name].append(call)
        scores = []
        for call in v1_calls:
            counterpart = by_name[call.name].pop(0)
            scores.append(argument_agreement(call.arguments, counterpart.arguments))

        worst = min(scores)
        score = round(sum(scores) / len(scores), 4)
        if worst < self.argument_threshold:
            return Comparison(match=False, score=score, notes=f"arguments differ (worst agreement {worst:.2f})")
        return Comparison(match=True, score=score, notes="same tools and arguments")


@dataclass(frozen=True)
class ShadowResponse:
    message: str
    session_id: Optional[str]
    v1_duration_ms: int
    v2_duration_ms: int


class ShadowRunner:
    def __init__(
        self,
        legacy: AgentRunner,
        candidate: AgentRunner,
        transcripts: TranscriptService,
        ledger: AuditLedger,
        comparator: Optional[ResponseComparator] = None,
        candidate_timeout_seconds: float = 60.0,
    ):
        self._legacy = legacy
        self._candidate = candidate
        self._transcripts = transcripts
        self._ledger = ledger
        self._comparator = comparator or StructuralComparator()
        self._candidate_timeout = candidate_timeout_seconds

    async def run(self, turn: TurnInput) -> ShadowResponse:
        """V2 always gets its own shadow session; a caller-supplied session is only read."""
        source = None
        if turn.session_id:
            source = await self._transcripts.get_owned_session(turn.caller, turn.session_id)

        metadata: dict[str, Any] = {"shadow": True}
        requested_mode = turn.mode
        if source is not None:
            metadata["sourceSessionId"] = source.id
            requested_mode = DEFAULT_POLICY.clamp_mode(turn.mode, Mode(source.mode))

        try:
            shadow_row, _ = await self._transcripts.resolve_session(
                turn.caller, None, requested_mode, metadata=metadata
            )
        except StudioAgentException as exc:
            logger.error("Shadow session unavailable; serving legacy only", data={"error": exc.message})
            v1 = await self._timed(self._legacy, turn, timeout=None)
            return ShadowResponse(self._user_text(v1), turn.session_id, v1.duration_ms, 0)

        user_session_id = source.id if source is not None else shadow_row.id
        v1_turn = replace(turn, session_id=user_session_id)
        v2_turn = replace(
            turn,
            session_id=shadow_row.id,
            mode=requested_mode,
            dry_run=True,
            confirmation_token=None,
            history_session_id=source.id if source is not None else None,
        )
        v1, v2 = await asyncio.gather(
            self._timed(self._legacy, v1_turn, timeout=None),
            self._timed(self._candidate, v2_turn, timeout=self._candidate_timeout),
        )

        comparison = self._comparator.compare(v1, v2)
        await self._record(shadow_row.id, v1, v2, comparison)
        logger.info(
            "Shadow comparison",
            data={
                "session_id": shadow_row.id,
                "source_session_id": metadata.get("sourceSessionId"),
                "match": comparison.match,
                "notes": comparison.notes,
                "v1_ms": v1.duration_ms,
                "v2_ms": v2.duration_ms,
            },
        )
        return ShadowResponse(self._user_text(v1), user_session_id, v1.duration_ms, v2.duration_ms)

    @staticmethod
    def _user_text(v1: RunnerOutcome) -> str:
        if v1.error is not None:
            return f"Error: {v1.error}"
        return v1.output.message

    @staticmethod
    async def _timed(runner: AgentRunner, turn: TurnInput, timeout: Optional[float]) -> RunnerOutcome:
        """Run one side and capture its output or error; never raises."""
        started = time.perf_counter()
        try:
            if timeout is None:
                output = await runner.run(turn)
            else:
                output = await asyncio.wait_for(runner.run(turn), timeout=timeout)
            return RunnerOutcome(output=output, error=None, duration_ms=elapsed_ms(started))
        except asyncio.TimeoutError:
            return RunnerOutcome(output=None, error=f"{runner.name} timed out", duration_ms=elapsed_ms(started))
        except StudioAgentException as exc:
            return RunnerOutcome(output=None, error=exc.message, duration_ms=elapsed_ms(started))
        except Exception as exc:
            logger.warning(f"Shadow runner {runner.name} raised", data={"error": str(exc)}, exc_info=True)
            return RunnerOutcome(output=None, error=str(exc) or type(exc).__name__, duration_ms=elapsed_ms(started))

    async def _record(self, session_id: str, v1: RunnerOutcome, v2: RunnerOutcome, comparison: Comparison) -> None:
        try:
            await self._ledger.record_shadow_diff(
                session_id=session_id,
                v1_text=v1.output.message if v1.output else None,
                v2_plan_json=v2.output.plan_dict() if v2.output else None,
                v2_results_json=[r.to_dict() for r in v2.output.tool_results] if v2.output else None,
                match=comparison.match,
                score=comparison.score,
                notes=comparison.notes,
                v1_error=v1.error,
                v2_error=v2.error,
                v1_duration_ms=v1.duration_ms,
                v2_duration_ms=v2.duration_ms,
            )
        except Exception as exc:
            logger.error("Failed to record shadow diff", data={"session_id": session_id, "error": str(exc)}, exc_info=True)
