"""AgentMessage repository (append-only transcript)."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import AgentMessage


@runtime_checkable
class MessageRepository(Protocol):
    async def append(
        self, session_id: str, role: str, content: str, metadata: dict | None = None, tool_call_id: str | None = None
    ) -> AgentMessage: ...
    async def list_for_session(self, session_id: str) -> list[AgentMessage]: ...
    async def recent(self, session_id: str, limit: int, roles: tuple[str, ...] = ("user", "assistant")) -> list[AgentMessage]: ...


class SQLAlchemyMessageRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    async def append(
        self,
        session_id: str,
        role: str,
        content: str,
        metadata: dict | None = None,
        tool_call_id: str | None = None,
    ) -> AgentMessage:
        msg = AgentMessage(
            session_id=session_id,
            role=role,
            content=content,
            metadata_=metadata,
            tool_call_id=tool_call_id,
        )
        self._session.add(msg)
        await self._session.flush()
        return msg

    async def list_for_session(self, session_id: str) -> list[AgentMessage]:
        result = await self._session.execute(
            select(AgentMessage)
            .where(AgentMessage.session_id == session_id)
            .order_by(AgentMessage.created_at.asc(), AgentMessage.id.asc())
        )
        return list(result.scalars().all())

    async def recent(
        self,
        session_id: str,
        limit: int,
        roles: tuple[str, ...] = ("user", "assistant"),
    ) -> list[AgentMessage]:
        """Last ``limit`` messages with the given roles, oldest first."""
        result = await self._session.execute(
            select(AgentMessage)
            .where(AgentMessage.session_id == session_id, AgentMessage.role.in_(roles))
            .order_by(AgentMessage.id.desc())
            .limit(limit)
        )
        return list(reversed(result.scalars().all()))
