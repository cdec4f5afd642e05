"""FastAPI dependency factories for repository injection."""

from __future__ import annotations

from typing import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from .diff_repo import SQLAlchemyDiffRepository


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session from the application session factory."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        async with session.begin():
            yield session


async def get_diff_repo(session: AsyncSession = Depends(get_session)) -> SQLAlchemyDiffRepository:
    return SQLAlchemyDiffRepository(session)
