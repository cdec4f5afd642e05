"""Audit and confirmation ledger.

Every ToolBus dispatch ends here exactly once, whatever its outcome. Writes
are row-scoped inserts (or one conditional update for confirmations) on a
fresh session, so concurrent turns never contend on shared rows.
"""

from __future__ import annotations

import hashlib
import json
import secrets
from datetime import timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..agents.toolbus.types import ConfirmationRequest, ToolContext, ToolResult
from ..core.exceptions import TransportError
from ..core.logging import get_logger
from ..core.time import isoformat, utcnow
from ..db.models import AgentAudit, AgentAuditDiff, AgentConfirmation
from ..repositories.audit_repo import SQLAlchemyAuditRepository, SQLAlchemyConfirmationRepository
from ..repositories.diff_repo import SQLAlchemyDiffRepository

logger = get_logger(__name__)


def json_safe(value: Any) -> Any:
    """Coerce executor output into something the JSON column accepts."""
    return json.loads(json.dumps(value, default=str))


def args_fingerprint(args: dict) -> str:
    canonical = json.dumps(args, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def audit_to_dict(row: AgentAudit) -> dict:
    return {
        "id": row.id,
        "tool": row.tool,
        "args": row.args_json,
        "result": row.result_json,
        "ok": row.ok,
        "outcome": row.outcome,
        "error": row.error,
        "errorType": row.error_type,
        "duration": row.duration_ms,
        "simulated": row.simulated,
        "timestamp": isoformat(row.created_at),
    }


def diff_to_dict(row: AgentAuditDiff) -> dict:
    return {
        "id": row.id,
        "sessionId": row.session_id,
        "v1Text": row.v1_text,
        "v2Plan": row.v2_plan_json,
        "v2Results": row.v2_results_json,
        "match": row.match,
        "score": row.score,
        "notes": row.notes,
        "v1Error": row.v1_error,
        "v2Error": row.v2_error,
        "v1Duration": row.v1_duration_ms,
        "v2Duration": row.v2_duration_ms,
        "timestamp": isoformat(row.created_at),
    }


class AuditLedger:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        confirmation_ttl_seconds: int = 900,
    ):
        self._sf = session_factory
        self._ttl = timedelta(seconds=confirmation_ttl_seconds)

    async def record(self, ctx: ToolContext, result: ToolResult, confirmation_id: str | None = None) -> int:
        """Write one invocation record. Failure here is fatal for the dispatch."""
        try:
            async with self._sf() as session:
                async with session.begin():
                    row = await SQLAlchemyAuditRepository(session).create(
                        session_id=ctx.session_id,
                        tool=result.tool,
                        args_json=json_safe(result.args),
                        result_json=json_safe(result.data) if result.data is not None else None,
                        ok=result.ok,
                        outcome=result.outcome.value,
                        error=result.error,
                        error_type=result.error_type,
                        duration_ms=result.duration_ms,
                        simulated=result.simulated,
                        confirmation_id=confirmation_id,
                    )
                    audit_id = row.id
        except SQLAlchemyError as exc:
            logger.error(
                "Audit write failed",
                data={"tool": result.tool, "session_id": ctx.session_id, "error": str(exc)},
            )
            raise TransportError("Audit ledger unavailable", component="audit") from exc
        return audit_id

    async def open_confirmation(self, ctx: ToolContext, tool: str, args: dict, reason: str) -> ConfirmationRequest:
        """Persist a single-use token for a paused call. Dry runs get no token."""
        if ctx.dry_run:
            return ConfirmationRequest(token=None, tool=tool, args=args, reason=reason)
        token = f"cnf_{secrets.token_urlsafe(24)}"
        try:
            async with self._sf() as session:
                async with session.begin():
                    await SQLAlchemyConfirmationRepository(session).create(
                        token=token,
                        session_id=ctx.session_id,
                        tool=tool,
                        args=json_safe(args),
                        fingerprint=args_fingerprint(args),
                        reason=reason,
                        expires_at=utcnow() + self._ttl,
                    )
        except SQLAlchemyError as exc:
            raise TransportError("Confirmation ledger unavailable", component="audit") from exc
        return ConfirmationRequest(token=token, tool=tool, args=args, reason=reason)

    async def consume_confirmation(self, ctx: ToolContext, token: str, tool: str, args: dict) -> bool:
        try:
            async with self._sf() as session:
                async with session.begin():
                    return await SQLAlchemyConfirmationRepository(session).consume(
                        token=token,
                        session_id=ctx.session_id,
                        tool=tool,
                        fingerprint=args_fingerprint(args),
                    )
        except SQLAlchemyError as exc:
            raise TransportError("Confirmation ledger unavailable", component="audit") from exc

    async def get_confirmation(self, token: str) -> AgentConfirmation | None:
        async with self._sf() as session:
            return await SQLAlchemyConfirmationRepository(session).get(token)

    async def session_audit(self, session_id: str) -> list[dict]:
        async with self._sf() as session:
            rows = await SQLAlchemyAuditRepository(session).list_for_session(session_id)
            return [audit_to_dict(row) for row in rows]

    async def usage_stats(self) -> dict:
        async with self._sf() as session:
            return await SQLAlchemyAuditRepository(session).usage_stats()

    async def record_shadow_diff(self, **fields: Any) -> int:
        for key in ("v2_plan_json", "v2_results_json"):
            if fields.get(key) is not None:
                fields[key] = json_safe(fields[key])
        async with self._sf() as session:
            async with session.begin():
                row = await SQLAlchemyDiffRepository(session).create(**fields)
                return row.id
