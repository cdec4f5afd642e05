"""Shadow comparison: comparator rules and failure isolation of the V2 side."""

from __future__ import annotations

import asyncio

import pytest

from studio_agent.agents.legacy import LegacyAgentRunner, LegacyReply
from studio_agent.agents.runner import TurnInput, TurnOutput, TurnState
from studio_agent.agents.shadow import (
    RunnerOutcome,
    ShadowRunner,
    StructuralComparator,
    argument_agreement,
    text_similarity,
)
from studio_agent.agents.toolbus.types import ToolOutcome, ToolResult
from studio_agent.db.models import AgentSession
from studio_agent.providers.base import CompletionResult
from studio_agent.providers.mock import tool_call
from studio_agent.repositories.diff_repo import SQLAlchemyDiffRepository


def _outcome(message="ok", plan=(), results=(), error=None) -> RunnerOutcome:
    if error is not None:
        return RunnerOutcome(output=None, error=error, duration_ms=5)
    output = TurnOutput(
        session_id="sess_x",
        message=message,
        state=TurnState.DONE,
        plan=list(plan),
        tool_results=list(results),
    )
    return RunnerOutcome(output=output, error=None, duration_ms=5)


class TestComparator:
    comparator = StructuralComparator(argument_threshold=0.8)

    def test_both_failed_is_a_match(self):
        result = self.comparator.compare(_outcome(error="boom"), _outcome(error="bang"))
        assert result.match is True
        assert result.notes == "both failed"

    def test_one_side_failed_is_a_mismatch(self):
        result = self.comparator.compare(_outcome(), _outcome(error="v2 timed out"))
        assert result.match is False
        assert result.notes == "v2 failed"

    def test_same_tools_and_arguments(self):
        v1 = _outcome(plan=[tool_call("send_invoice", {"invoice_number": "INV-1001"})])
        v2 = _outcome(plan=[tool_call("send_invoice", {"invoice_number": "inv-1001 "})])
        result = self.comparator.compare(v1, v2)
        assert result.match is True
        assert result.score == 1.0

    def test_different_tool_sets(self):
        v1 = _outcome(plan=[tool_call("send_invoice", {"invoice_number": "INV-1001"})])
        v2 = _outcome(plan=[tool_call("get_invoice", {"invoice_number": "INV-1001"})])
        result = self.comparator.compare(v1, v2)
        assert result.match is False
        assert "tool sets differ" in result.notes

    def test_arguments_below_threshold(self):
        v1 = _outcome(plan=[tool_call("update_client", {"client_id": "c1", "phone": "1", "email": "a@x"})])
        v2 = _outcome(plan=[tool_call("update_client", {"client_id": "c1", "phone": "2", "email": "b@x"})])
        result = self.comparator.compare(v1, v2)
        assert result.match is False
        assert result.score == pytest.approx(1 / 3, abs=1e-3)

    def test_text_only_turn_with_failed_v2_tool(self):
        failed = ToolResult(tool="list_invoices", args={}, outcome=ToolOutcome.ERROR, error="nope")
        result = self.comparator.compare(_outcome("You have 3 invoices"), _outcome("Sorry", results=[failed]))
        assert result.match is False
        assert "list_invoices" in result.notes

    def test_text_only_turn_keeps_similarity_score(self):
        result = self.comparator.compare(_outcome("You have 3 invoices"), _outcome("You have 3 invoices."))
        assert result.match is True
        assert 0.9 < result.score <= 1.0


def test_argument_agreement_edges():
    assert argument_agreement(None, {}) == 1.0
    assert argument_agreement({"a": 1}, {"b": 1}) == 0.0
    assert argument_agreement({"a": "X "}, {"a": "x"}) == 1.0


def test_text_similarity_is_case_insensitive():
    assert text_similarity("Hello", "hello") == 1.0


class _Candidate:
    name = "v2"

    def __init__(self, behaviour):
        self._behaviour = behaviour
        self.turns: list[TurnInput] = []

    async def run(self, turn: TurnInput) -> TurnOutput:
        self.turns.append(turn)
        return await self._behaviour(turn)


async def _legacy_handler(turn: TurnInput) -> LegacyReply:
    return LegacyReply(text=f"legacy: {turn.message}")


async def _diffs(session_factory, studio_id: str = "studio_1"):
    async with session_factory() as session:
        return await SQLAlchemyDiffRepository(session).list_recent(studio_id)


@pytest.mark.asyncio
class TestShadowRunner:
    async def test_v2_exception_never_reaches_user(self, transcripts, ledger, session_factory, make_caller):
        async def explode(turn):
            raise RuntimeError("v2 exploded")

        candidate = _Candidate(explode)
        runner = ShadowRunner(LegacyAgentRunner(_legacy_handler), candidate, transcripts, ledger)

        response = await runner.run(TurnInput(message="hello", caller=make_caller(), confirmation_token="cnf_x"))

        assert response.message == "legacy: hello"
        assert candidate.turns[0].dry_run is True
        assert candidate.turns[0].confirmation_token is None
        diffs = await _diffs(session_factory)
        assert len(diffs) == 1
        assert diffs[0].match is False
        assert diffs[0].v2_error == "v2 exploded"
        assert diffs[0].v1_text == "legacy: hello"

    async def test_v2_timeout_is_recorded(self, transcripts, ledger, session_factory, make_caller):
        async def stall(turn):
            await asyncio.sleep(2)

        runner = ShadowRunner(
            LegacyAgentRunner(_legacy_handler),
            _Candidate(stall),
            transcripts,
            ledger,
            candidate_timeout_seconds=0.05,
        )

        response = await runner.run(TurnInput(message="hello", caller=make_caller()))

        assert response.message == "legacy: hello"
        diffs = await _diffs(session_factory)
        assert diffs[0].v2_error == "v2 timed out"

    async def test_v1_error_becomes_error_text(self, transcripts, ledger, session_factory, make_caller):
        async def broken_legacy(turn):
            raise ValueError("legacy backend down")

        async def fine(turn):
            return TurnOutput(session_id=turn.session_id, message="v2 answer")

        runner = ShadowRunner(LegacyAgentRunner(broken_legacy), _Candidate(fine), transcripts, ledger)

        response = await runner.run(TurnInput(message="hello", caller=make_caller()))

        assert response.message == "Error: legacy backend down"
        diffs = await _diffs(session_factory)
        assert diffs[0].v1_error == "legacy backend down"
        assert diffs[0].match is False

    async def test_diff_write_failure_is_isolated(self, transcripts, ledger, make_caller):
        class FlakyLedger:
            async def record_shadow_diff(self, **fields):
                raise RuntimeError("diff table locked")

        async def fine(turn):
            return TurnOutput(session_id=turn.session_id, message="v2 answer")

        runner = ShadowRunner(LegacyAgentRunner(_legacy_handler), _Candidate(fine), transcripts, FlakyLedger())

        response = await runner.run(TurnInput(message="hello", caller=make_caller()))

        assert response.message == "legacy: hello"
        assert response.session_id.startswith("sess_")

    async def test_shadow_session_is_tagged(self, transcripts, ledger, session_factory, make_caller):
        async def fine(turn):
            return TurnOutput(session_id=turn.session_id, message="v2 answer")

        runner = ShadowRunner(LegacyAgentRunner(_legacy_handler), _Candidate(fine), transcripts, ledger)
        response = await runner.run(TurnInput(message="hello", caller=make_caller()))

        async with session_factory() as session:
            row = await session.get(AgentSession, response.session_id)
        assert row.metadata_ == {"shadow": True}

    async def test_with_real_orchestrator_in_dry_run(
        self, orchestrator, provider, transcripts, ledger, session_factory, crm, fetch, make_caller
    ):
        provider.enqueue(CompletionResult(tool_calls=[tool_call("send_invoice", {"invoice_number": "INV-1001"})]))

        async def legacy(turn):
            return LegacyReply(
                text="I'll send INV-1001.",
                tool_calls=[tool_call("send_invoice", {"invoice_number": "INV-1001"})],
            )

        runner = ShadowRunner(LegacyAgentRunner(legacy), orchestrator, transcripts, ledger)
        response = await runner.run(TurnInput(message="send INV-1001", caller=make_caller()))

        assert response.message == "I'll send INV-1001."
        invoice = await fetch.get(fetch.Invoice, crm.draft_id)
        assert invoice.status == "draft"
        assert await fetch.count(fetch.Email) == 0

        diffs = await _diffs(session_factory)
        assert diffs[0].match is True
        assert diffs[0].v2_plan_json["toolCalls"][0]["name"] == "send_invoice"
        assert diffs[0].v2_results_json[0]["simulated"] is True

        audit = await ledger.session_audit(response.session_id)
        assert [a["simulated"] for a in audit] == [True]

    @pytest.mark.security
    async def test_existing_session_is_read_but_never_written(
        self, orchestrator, provider, transcripts, ledger, session_factory, crm, make_caller
    ):
        caller = make_caller()
        live, _ = await transcripts.resolve_session(caller, None)
        await transcripts.append(live.id, "user", "hello")
        await transcripts.append(live.id, "assistant", "hi")
        provider.enqueue(
            CompletionResult(tool_calls=[tool_call("update_client", {"client_id": crm.jane_id, "notes": "vip"})]),
            CompletionResult(content="I updated the client."),
        )

        runner = ShadowRunner(LegacyAgentRunner(_legacy_handler), orchestrator, transcripts, ledger)
        response = await runner.run(TurnInput(message="update note", caller=caller, session_id=live.id))

        assert response.message == "legacy: update note"
        assert response.session_id == live.id
        assert [(m.role, m.content) for m in await transcripts.transcript(live.id)] == [
            ("user", "hello"),
            ("assistant", "hi"),
        ]
        assert await ledger.session_audit(live.id) == []

        planned = provider.calls[0]["messages"]
        assert [m["content"] for m in planned if m["role"] != "system"] == ["hello", "hi", "update note"]

        diffs = await _diffs(session_factory)
        shadow_id = diffs[0].session_id
        assert shadow_id != live.id
        async with session_factory() as session:
            shadow = await session.get(AgentSession, shadow_id)
        assert shadow.metadata_ == {"shadow": True, "sourceSessionId": live.id}
        assert [a["simulated"] for a in await ledger.session_audit(shadow_id)] == [True]

    async def test_foreign_source_session_is_not_found(self, transcripts, ledger, make_caller):
        from studio_agent.core.exceptions import NotFoundError

        async def fine(turn):
            return TurnOutput(session_id=turn.session_id, message="v2 answer")

        other, _ = await transcripts.resolve_session(make_caller(user_id="someone_else"), None)
        runner = ShadowRunner(LegacyAgentRunner(_legacy_handler), _Candidate(fine), transcripts, ledger)

        with pytest.raises(NotFoundError):
            await runner.run(TurnInput(message="hello", caller=make_caller(), session_id=other.id))

    async def test_diffs_are_confined_to_the_callers_studio(self, transcripts, ledger, session_factory, make_caller):
        async def fine(turn):
            return TurnOutput(session_id=turn.session_id, message="v2 answer")

        runner = ShadowRunner(LegacyAgentRunner(_legacy_handler), _Candidate(fine), transcripts, ledger)
        await runner.run(TurnInput(message="studio one", caller=make_caller()))
        await runner.run(TurnInput(message="studio two", caller=make_caller(studio_id="studio_2")))

        assert [d.v1_text for d in await _diffs(session_factory, "studio_1")] == ["legacy: studio one"]
        assert [d.v1_text for d in await _diffs(session_factory, "studio_2")] == ["legacy: studio two"]
        async with session_factory() as session:
            stats = await SQLAlchemyDiffRepository(session).stats("studio_3")
        assert stats["totalComparisons"] == 0
        assert stats["avgV1Duration"] == 0.0
