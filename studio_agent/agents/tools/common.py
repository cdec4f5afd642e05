"""Helpers shared by the built-in CRM tools."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from studio_agent.agents.toolbus.types import ToolContext
from studio_agent.core.exceptions import ExecutionError, ValidationError
from studio_agent.core.time import as_utc, isoformat
from studio_agent.db.models import CalendarEvent, Client, Invoice, OutboundEmail
from studio_agent.repositories.crm_repo import SQLAlchemyCRMRepository


@asynccontextmanager
async def crm_repository(ctx: ToolContext) -> AsyncIterator[SQLAlchemyCRMRepository]:
    """One transaction per tool call; dry runs simply return before writing."""
    if ctx.db is None:
        raise ExecutionError("No datastore bound to the tool context")
    async with ctx.db() as session:
        async with session.begin():
            yield SQLAlchemyCRMRepository(session)


def parse_datetime(value: str, field: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError) as exc:
        raise ValidationError(f"{field} must be an ISO 8601 date-time", errors=[{"path": field, "message": str(exc)}]) from exc
    return as_utc(parsed)


def client_to_dict(row: Client) -> dict:
    return {
        "id": row.id,
        "name": f"{row.first_name} {row.last_name}".strip(),
        "first_name": row.first_name,
        "last_name": row.last_name,
        "email": row.email,
        "phone": row.phone,
        "notes": row.notes,
    }


def invoice_to_dict(row: Invoice) -> dict:
    return {
        "id": row.id,
        "number": row.number,
        "client_id": row.client_id,
        "amount": row.amount,
        "currency": row.currency,
        "status": row.status,
        "due_date": isoformat(row.due_date),
        "sent_at": isoformat(row.sent_at),
        "reminder_count": row.reminder_count,
    }


def event_to_dict(row: CalendarEvent) -> dict:
    return {
        "id": row.id,
        "title": row.title,
        "client_id": row.client_id,
        "starts_at": isoformat(row.starts_at),
        "ends_at": isoformat(row.ends_at),
        "location": row.location,
    }


def email_to_dict(row: OutboundEmail) -> dict:
    return {
        "id": row.id,
        "to": row.to_address,
        "subject": row.subject,
        "status": row.status,
        "invoice_id": row.invoice_id,
    }
