"""TranscriptService: agent sessions and their append-only message log."""

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..agents.policy import DEFAULT_POLICY, Mode, ModePolicy
from ..agents.runner import CallerIdentity
from ..core.exceptions import NotFoundError, TransportError
from ..core.time import isoformat
from ..db.models import AgentMessage, AgentSession
from ..repositories.message_repo import SQLAlchemyMessageRepository
from ..repositories.session_repo import SQLAlchemySessionRepository

STUDIO_WIDE_ROLES = frozenset({"admin", "owner"})


def session_to_dict(row: AgentSession) -> dict:
    return {
        "id": row.id,
        "studioId": row.studio_id,
        "userId": row.user_id,
        "role": row.role,
        "mode": row.mode,
        "scopes": list(row.scopes or []),
        "metadata": row.metadata_ or {},
        "createdAt": isoformat(row.created_at),
        "updatedAt": isoformat(row.updated_at),
    }


def message_to_dict(row: AgentMessage) -> dict:
    return {
        "id": row.id,
        "role": row.role,
        "content": row.content,
        "metadata": row.metadata_,
        "toolCallId": row.tool_call_id,
        "createdAt": isoformat(row.created_at),
    }


class TranscriptService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], policy: ModePolicy = DEFAULT_POLICY):
        self._sf = session_factory
        self._policy = policy

    async def resolve_session(
        self,
        caller: CallerIdentity,
        session_id: str | None,
        requested_mode: Mode | None = None,
        metadata: dict | None = None,
    ) -> tuple[AgentSession, Mode]:
        """Load the caller's session or create one; returns it with the effective mode.

        New sessions take scopes and their mode ceiling from the caller's role.
        On an existing session a requested mode can only lower the stored one.
        """
        if session_id:
            row = await self.get_owned_session(caller, session_id)
            return row, self._policy.clamp_mode(requested_mode, Mode(row.mode))

        mode = self._policy.clamp_mode(requested_mode, self._policy.recommended_mode(caller.role))
        scopes = [s.value for s in self._policy.scopes_for_role(caller.role)]
        try:
            async with self._sf() as session:
                async with session.begin():
                    row = await SQLAlchemySessionRepository(session).create(
                        studio_id=caller.studio_id,
                        user_id=caller.user_id,
                        role=caller.role,
                        mode=mode.value,
                        scopes=scopes,
                        metadata=metadata,
                    )
        except SQLAlchemyError as exc:
            raise TransportError("Session store unavailable", component="database") from exc
        return row, mode

    async def get_owned_session(
        self, caller: CallerIdentity, session_id: str, allow_studio_admin: bool = False
    ) -> AgentSession:
        """Foreign and unknown sessions are indistinguishable to the caller."""
        async with self._sf() as session:
            row = await SQLAlchemySessionRepository(session).get_by_id(session_id)
        if row is None or row.studio_id != caller.studio_id:
            raise NotFoundError("Session not found")
        studio_admin = allow_studio_admin and caller.role.strip().lower() in STUDIO_WIDE_ROLES
        if row.user_id != caller.user_id and not studio_admin:
            raise NotFoundError("Session not found")
        return row

    async def append(
        self,
        session_id: str,
        role: str,
        content: str,
        metadata: dict | None = None,
        tool_call_id: str | None = None,
    ) -> AgentMessage:
        try:
            async with self._sf() as session:
                async with session.begin():
                    msg = await SQLAlchemyMessageRepository(session).append(
                        session_id, role, content, metadata=metadata, tool_call_id=tool_call_id
                    )
                    await SQLAlchemySessionRepository(session).touch(session_id)
        except SQLAlchemyError as exc:
            raise TransportError("Transcript store unavailable", component="database") from exc
        return msg

    async def history(self, session_id: str, limit: int) -> list[AgentMessage]:
        async with self._sf() as session:
            return await SQLAlchemyMessageRepository(session).recent(session_id, limit)

    async def transcript(self, session_id: str) -> list[AgentMessage]:
        async with self._sf() as session:
            return await SQLAlchemyMessageRepository(session).list_for_session(session_id)
