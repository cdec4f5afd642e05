"""Shadow diff repository."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import AgentAuditDiff, AgentSession


@runtime_checkable
class DiffRepository(Protocol):
    async def create(self, **fields: Any) -> AgentAuditDiff: ...
    async def list_recent(self, studio_id: str, limit: int = 50, offset: int = 0) -> list[AgentAuditDiff]: ...
    async def stats(self, studio_id: str) -> dict: ...


class SQLAlchemyDiffRepository:
    """Reads are always confined to one studio via the diff's shadow session."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create(self, **fields: Any) -> AgentAuditDiff:
        row = AgentAuditDiff(**fields)
        self._session.add(row)
        await self._session.flush()
        return row

    async def list_recent(self, studio_id: str, limit: int = 50, offset: int = 0) -> list[AgentAuditDiff]:
        result = await self._session.execute(
            select(AgentAuditDiff)
            .join(AgentSession, AgentAuditDiff.session_id == AgentSession.id)
            .where(AgentSession.studio_id == studio_id)
            .order_by(AgentAuditDiff.created_at.desc(), AgentAuditDiff.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def stats(self, studio_id: str) -> dict:
        row = (
            await self._session.execute(
                select(
                    func.count(AgentAuditDiff.id),
                    func.coalesce(func.sum(case((AgentAuditDiff.match.is_(True), 1), else_=0)), 0),
                    func.coalesce(func.sum(case((AgentAuditDiff.v1_error.is_not(None), 1), else_=0)), 0),
                    func.coalesce(func.sum(case((AgentAuditDiff.v2_error.is_not(None), 1), else_=0)), 0),
                    func.avg(AgentAuditDiff.v1_duration_ms),
                    func.avg(AgentAuditDiff.v2_duration_ms),
                )
                .select_from(AgentAuditDiff)
                .join(AgentSession, AgentAuditDiff.session_id == AgentSession.id)
                .where(AgentSession.studio_id == studio_id)
            )
        ).one()
        total, matches, v1_errors, v2_errors, avg_v1, avg_v2 = row
        return {
            "totalComparisons": int(total),
            "matches": int(matches),
            "mismatches": int(total) - int(matches),
            "v1Errors": int(v1_errors),
            "v2Errors": int(v2_errors),
            "avgV1Duration": round(float(avg_v1), 2) if avg_v1 is not None else 0.0,
            "avgV2Duration": round(float(avg_v2), 2) if avg_v2 is not None else 0.0,
        }
