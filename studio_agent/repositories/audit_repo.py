"""Audit ledger repositories: invocation records and pending confirmations."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.time import utcnow
from ..db.models import AgentAudit, AgentConfirmation


@runtime_checkable
class AuditRepository(Protocol):
    async def create(self, **fields: Any) -> AgentAudit: ...
    async def list_for_session(self, session_id: str) -> list[AgentAudit]: ...
    async def usage_stats(self) -> dict: ...


@runtime_checkable
class ConfirmationRepository(Protocol):
    async def create(
        self, token: str, session_id: str, tool: str, args: dict, fingerprint: str, reason: str, expires_at: datetime
    ) -> AgentConfirmation: ...
    async def get(self, token: str) -> AgentConfirmation | None: ...
    async def consume(self, token: str, session_id: str, tool: str, fingerprint: str) -> bool: ...


class SQLAlchemyAuditRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, **fields: Any) -> AgentAudit:
        row = AgentAudit(**fields)
        self._session.add(row)
        await self._session.flush()
        return row

    async def list_for_session(self, session_id: str) -> list[AgentAudit]:
        result = await self._session.execute(
            select(AgentAudit)
            .where(AgentAudit.session_id == session_id)
            .order_by(AgentAudit.id.asc())
        )
        return list(result.scalars().all())

    async def usage_stats(self) -> dict:
        totals = (
            await self._session.execute(
                select(
                    func.count(AgentAudit.id),
                    func.coalesce(func.sum(case((AgentAudit.outcome == "success", 1), else_=0)), 0),
                    func.coalesce(func.sum(case((AgentAudit.outcome == "error", 1), else_=0)), 0),
                    func.coalesce(func.sum(case((AgentAudit.outcome == "confirmation_required", 1), else_=0)), 0),
                    func.coalesce(func.sum(case((AgentAudit.simulated.is_(True), 1), else_=0)), 0),
                    func.avg(AgentAudit.duration_ms),
                )
            )
        ).one()
        per_tool = await self._session.execute(
            select(AgentAudit.tool, func.count(AgentAudit.id)).group_by(AgentAudit.tool)
        )
        total, successful, failed, confirmations, simulated, avg_duration = totals
        return {
            "total": int(total),
            "successful": int(successful),
            "failed": int(failed),
            "confirmations": int(confirmations),
            "simulated": int(simulated),
            "successRate": (int(successful) / int(total)) if total else 0.0,
            "avgDuration": round(float(avg_duration), 2) if avg_duration is not None else 0.0,
            "toolUsage": {tool: int(count) for tool, count in per_tool.all()},
        }


class SQLAlchemyConfirmationRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(
        self,
        token: str,
        session_id: str,
        tool: str,
        args: dict,
        fingerprint: str,
        reason: str,
        expires_at: datetime,
    ) -> AgentConfirmation:
        row = AgentConfirmation(
            id=token,
            session_id=session_id,
            tool=tool,
            args_json=args,
            args_fingerprint=fingerprint,
            reason=reason,
            status="pending",
            expires_at=expires_at,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def get(self, token: str) -> AgentConfirmation | None:
        return await self._session.get(AgentConfirmation, token)

    async def consume(self, token: str, session_id: str, tool: str, fingerprint: str) -> bool:
        """Flip pending -> consumed; only one caller can ever see rowcount 1."""
        now = utcnow()
        result = await self._session.execute(
            update(AgentConfirmation)
            .where(
                AgentConfirmation.id == token,
                AgentConfirmation.session_id == session_id,
                AgentConfirmation.tool == tool,
                AgentConfirmation.args_fingerprint == fingerprint,
                AgentConfirmation.status == "pending",
                AgentConfirmation.expires_at > now,
            )
            .values(status="consumed", consumed_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
