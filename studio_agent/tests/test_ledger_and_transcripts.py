"""Audit ledger, confirmation tokens and transcript persistence."""

from __future__ import annotations

import pytest

from studio_agent.agents.policy import Mode
from studio_agent.agents.toolbus.types import ToolOutcome, ToolResult
from studio_agent.core.exceptions import NotFoundError
from studio_agent.repositories.message_repo import SQLAlchemyMessageRepository
from studio_agent.services.audit_service import args_fingerprint, json_safe

pytestmark = pytest.mark.asyncio


class TestLedger:
    async def test_record_and_usage_stats(self, ledger, make_ctx):
        ctx = await make_ctx()
        await ledger.record(ctx, ToolResult(tool="search_clients", args={"query": "a"}, outcome=ToolOutcome.SUCCESS, duration_ms=10))
        await ledger.record(ctx, ToolResult(tool="search_clients", args={"query": "b"}, outcome=ToolOutcome.SUCCESS, duration_ms=30))
        await ledger.record(
            ctx,
            ToolResult(tool="send_invoice", args={}, outcome=ToolOutcome.ERROR, error="nope", error_type="ExecutionError"),
        )

        stats = await ledger.usage_stats()

        assert stats["total"] == 3
        assert stats["successful"] == 2
        assert stats["failed"] == 1
        assert stats["successRate"] == pytest.approx(2 / 3)
        assert stats["toolUsage"] == {"search_clients": 2, "send_invoice": 1}

    async def test_session_audit_is_in_dispatch_order(self, ledger, make_ctx):
        ctx = await make_ctx()
        for tool in ("a_tool", "b_tool", "c_tool"):
            await ledger.record(ctx, ToolResult(tool=tool, args={}, outcome=ToolOutcome.SUCCESS))

        audit = await ledger.session_audit(ctx.session_id)
        assert [a["tool"] for a in audit] == ["a_tool", "b_tool", "c_tool"]
        assert all(a["timestamp"].endswith("+00:00") for a in audit)

    async def test_confirmation_consumed_once(self, ledger, make_ctx):
        ctx = await make_ctx()
        request = await ledger.open_confirmation(ctx, "send_email", {"to": "a@b.c"}, "please confirm")

        assert await ledger.consume_confirmation(ctx, request.token, "send_email", {"to": "a@b.c"}) is True
        assert await ledger.consume_confirmation(ctx, request.token, "send_email", {"to": "a@b.c"}) is False

        stored = await ledger.get_confirmation(request.token)
        assert stored.status == "consumed"
        assert stored.consumed_at is not None

    async def test_confirmation_checks_tool_name(self, ledger, make_ctx):
        ctx = await make_ctx()
        request = await ledger.open_confirmation(ctx, "send_email", {"to": "a@b.c"}, "please confirm")
        assert await ledger.consume_confirmation(ctx, request.token, "draft_email", {"to": "a@b.c"}) is False

    async def test_dry_run_gets_no_token(self, ledger, make_ctx):
        ctx = await make_ctx(dry_run=True)
        request = await ledger.open_confirmation(ctx, "send_email", {}, "please confirm")
        assert request.token is None


def test_fingerprint_ignores_key_order():
    assert args_fingerprint({"a": 1, "b": [1, 2]}) == args_fingerprint({"b": [1, 2], "a": 1})
    assert args_fingerprint({"a": 1}) != args_fingerprint({"a": 2})


def test_json_safe_stringifies_unknown_values():
    from datetime import datetime, timezone

    value = json_safe({"when": datetime(2030, 1, 1, tzinfo=timezone.utc)})
    assert value == {"when": "2030-01-01 00:00:00+00:00"}


class TestTranscripts:
    async def test_new_session_takes_role_defaults(self, transcripts, make_caller):
        row, mode = await transcripts.resolve_session(make_caller(role="photographer"), None)

        assert mode == Mode.AUTO_SAFE
        assert row.mode == "auto_safe"
        assert "INV_WRITE" in row.scopes
        assert "ADMIN" not in row.scopes

    async def test_existing_session_mode_can_only_be_lowered(self, transcripts, make_caller):
        row, _ = await transcripts.resolve_session(make_caller(role="photographer"), None)

        _, lowered = await transcripts.resolve_session(make_caller(role="photographer"), row.id, Mode.READ_ONLY)
        _, raised = await transcripts.resolve_session(make_caller(role="photographer"), row.id, Mode.AUTO_FULL)

        assert lowered == Mode.READ_ONLY
        assert raised == Mode.AUTO_SAFE

    async def test_other_studio_cannot_see_session(self, transcripts, make_caller):
        row, _ = await transcripts.resolve_session(make_caller(), None)

        with pytest.raises(NotFoundError):
            await transcripts.get_owned_session(make_caller(role="owner", studio_id="studio_2"), row.id)

    async def test_studio_admin_read_access(self, transcripts, make_caller):
        row, _ = await transcripts.resolve_session(make_caller(), None)
        admin = make_caller(role="admin", user_id="boss")

        with pytest.raises(NotFoundError):
            await transcripts.get_owned_session(admin, row.id)
        assert (await transcripts.get_owned_session(admin, row.id, allow_studio_admin=True)).id == row.id

    async def test_history_excludes_tool_messages_and_respects_limit(self, transcripts, session_factory, make_caller):
        row, _ = await transcripts.resolve_session(make_caller(), None)
        await transcripts.append(row.id, "user", "one")
        await transcripts.append(row.id, "assistant", "two")
        await transcripts.append(row.id, "tool", "{}", tool_call_id="call_1")
        await transcripts.append(row.id, "user", "three")

        history = await transcripts.history(row.id, limit=2)
        assert [m.content for m in history] == ["two", "three"]

        async with session_factory() as session:
            everything = await SQLAlchemyMessageRepository(session).list_for_session(row.id)
        assert [m.role for m in everything] == ["user", "assistant", "tool", "user"]


async def test_crm_records_get_string_uuid_ids(crm, fetch):
    client = await fetch.get(fetch.Client, crm.jane_id)
    assert isinstance(client.id, str)
    assert len(client.id) == 36
    invoice = await fetch.get(fetch.Invoice, crm.draft_id)
    assert invoice.client_id == client.id
