"""CRM data repository used by the built-in tools."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..db.models import CalendarEvent, Client, Invoice


@runtime_checkable
class CRMRepository(Protocol):
    async def search_clients(self, studio_id: str, query: str, limit: int = 10) -> list[Client]: ...
    async def get_client(self, studio_id: str, client_id: str) -> Client | None: ...
    async def find_clients_by_name(self, studio_id: str, name: str) -> list[Client]: ...
    async def list_invoices(
        self, studio_id: str, status: str | None = None, client_id: str | None = None, limit: int = 20
    ) -> list[Invoice]: ...
    async def get_invoice(self, studio_id: str, invoice_id: str) -> Invoice | None: ...
    async def get_invoice_by_number(self, studio_id: str, number: str) -> Invoice | None: ...
    async def search_events(
        self, studio_id: str, start: datetime | None, end: datetime | None, query: str | None = None, limit: int = 20
    ) -> list[CalendarEvent]: ...
    async def get_event(self, studio_id: str, event_id: str) -> CalendarEvent | None: ...
    async def add(self, row: Any) -> Any: ...
    async def delete_event(self, studio_id: str, event_id: str) -> bool: ...


class SQLAlchemyCRMRepository:
    def __init__(self, session: AsyncSession):
        self._session = session

    # -- clients -----------------------------------------------------------
    async def search_clients(self, studio_id: str, query: str, limit: int = 10) -> list[Client]:
        pattern = f"%{query.strip().lower()}%"
        full_name = func.lower(Client.first_name + " " + Client.last_name)
        result = await self._session.execute(
            select(Client)
            .where(
                Client.studio_id == studio_id,
                or_(
                    full_name.like(pattern),
                    func.lower(func.coalesce(Client.email, "")).like(pattern),
                    func.coalesce(Client.phone, "").like(pattern),
                ),
            )
            .order_by(Client.last_name, Client.first_name)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_client(self, studio_id: str, client_id: str) -> Client | None:
        row = await self._session.get(Client, client_id)
        if row is None or row.studio_id != studio_id:
            return None
        return row

    async def find_clients_by_name(self, studio_id: str, name: str) -> list[Client]:
        full_name = func.lower(Client.first_name + " " + Client.last_name)
        result = await self._session.execute(
            select(Client).where(Client.studio_id == studio_id, full_name == name.strip().lower())
        )
        return list(result.scalars().all())

    # -- invoices ----------------------------------------------------------
    async def list_invoices(
        self,
        studio_id: str,
        status: str | None = None,
        client_id: str | None = None,
        limit: int = 20,
    ) -> list[Invoice]:
        stmt = select(Invoice).where(Invoice.studio_id == studio_id)
        if status:
            stmt = stmt.where(Invoice.status == status)
        if client_id:
            stmt = stmt.where(Invoice.client_id == client_id)
        result = await self._session.execute(stmt.order_by(Invoice.number).limit(limit))
        return list(result.scalars().all())

    async def get_invoice(self, studio_id: str, invoice_id: str) -> Invoice | None:
        row = await self._session.get(Invoice, invoice_id)
        if row is None or row.studio_id != studio_id:
            return None
        return row

    async def get_invoice_by_number(self, studio_id: str, number: str) -> Invoice | None:
        result = await self._session.execute(
            select(Invoice).where(Invoice.studio_id == studio_id, Invoice.number == number)
        )
        return result.scalar_one_or_none()

    # -- calendar ----------------------------------------------------------
    async def search_events(
        self,
        studio_id: str,
        start: datetime | None,
        end: datetime | None,
        query: str | None = None,
        limit: int = 20,
    ) -> list[CalendarEvent]:
        stmt = select(CalendarEvent).where(CalendarEvent.studio_id == studio_id)
        if start is not None:
            stmt = stmt.where(CalendarEvent.ends_at >= start)
        if end is not None:
            stmt = stmt.where(CalendarEvent.starts_at <= end)
        if query:
            stmt = stmt.where(func.lower(CalendarEvent.title).like(f"%{query.strip().lower()}%"))
        result = await self._session.execute(stmt.order_by(CalendarEvent.starts_at).limit(limit))
        return list(result.scalars().all())

    async def get_event(self, studio_id: str, event_id: str) -> CalendarEvent | None:
        row = await self._session.get(CalendarEvent, event_id)
        if row is None or row.studio_id != studio_id:
            return None
        return row

    async def delete_event(self, studio_id: str, event_id: str) -> bool:
        result = await self._session.execute(
            delete(CalendarEvent).where(CalendarEvent.id == event_id, CalendarEvent.studio_id == studio_id)
        )
        return result.rowcount == 1

    # -- generic -----------------------------------------------------------
    async def add(self, row: Any) -> Any:
        self._session.add(row)
        await self._session.flush()
        return row
