"""AgentSession repository."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.time import utcnow
from ..db.models import AgentSession
from ..db.types import new_session_id


@runtime_checkable
class SessionRepository(Protocol):
    async def get_by_id(self, id: str) -> AgentSession | None: ...
    async def create(
        self, studio_id: str, user_id: str, role: str, mode: str, scopes: list[str], metadata: dict | None = None
    ) -> AgentSession: ...
    async def touch(self, id: str) -> None: ...


class SQLAlchemySessionRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, id: str) -> AgentSession | None:
        return await self._session.get(AgentSession, id)

    async def create(
        self,
        studio_id: str,
        user_id: str,
        role: str,
        mode: str,
        scopes: list[str],
        metadata: dict | None = None,
    ) -> AgentSession:
        row = AgentSession(
            id=new_session_id(),
            studio_id=studio_id,
            user_id=user_id,
            role=role,
            mode=mode,
            scopes=sorted(scopes),
            metadata_=metadata or {},
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def touch(self, id: str) -> None:
        await self._session.execute(
            update(AgentSession).where(AgentSession.id == id).values(updated_at=utcnow())
        )
