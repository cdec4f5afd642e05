"""Calendar tools."""

from __future__ import annotations

from datetime import timedelta

from studio_agent.agents.policy import RiskTier, Scope
from studio_agent.agents.toolbus.types import ToolContext, ToolDefinition
from studio_agent.agents.tools.common import crm_repository, event_to_dict, parse_datetime
from studio_agent.core.exceptions import ExecutionError, ValidationError
from studio_agent.core.time import isoformat
from studio_agent.db.models import CalendarEvent


async def search_calendar(args: dict, ctx: ToolContext) -> dict:
    start = parse_datetime(args["start"], "start") if args.get("start") else None
    end = parse_datetime(args["end"], "end") if args.get("end") else None
    async with crm_repository(ctx) as repo:
        rows = await repo.search_events(ctx.studio_id, start, end, query=args.get("query"), limit=args.get("limit", 20))
        return {"events": [event_to_dict(row) for row in rows], "count": len(rows)}


async def create_calendar_event(args: dict, ctx: ToolContext) -> dict:
    starts_at = parse_datetime(args["starts_at"], "starts_at")
    if args.get("ends_at"):
        ends_at = parse_datetime(args["ends_at"], "ends_at")
    else:
        ends_at = starts_at + timedelta(minutes=args.get("duration_minutes", 60))
    if ends_at <= starts_at:
        raise ValidationError("ends_at must be after starts_at", errors=[{"path": "ends_at", "message": "not after start"}])

    async with crm_repository(ctx) as repo:
        if args.get("client_id") and await repo.get_client(ctx.studio_id, args["client_id"]) is None:
            raise ExecutionError(f"Client not found: {args['client_id']}")
        if ctx.dry_run:
            preview = {
                "id": None,
                "title": args["title"],
                "client_id": args.get("client_id"),
                "starts_at": isoformat(starts_at),
                "ends_at": isoformat(ends_at),
                "location": args.get("location"),
            }
            return {"event": preview, "simulated": True}
        event = await repo.add(
            CalendarEvent(
                studio_id=ctx.studio_id,
                client_id=args.get("client_id"),
                title=args["title"],
                starts_at=starts_at,
                ends_at=ends_at,
                location=args.get("location"),
            )
        )
        return {"event": event_to_dict(event)}


async def delete_calendar_event(args: dict, ctx: ToolContext) -> dict:
    async with crm_repository(ctx) as repo:
        event = await repo.get_event(ctx.studio_id, args["event_id"])
        if event is None:
            raise ExecutionError(f"Calendar event not found: {args['event_id']}")
        snapshot = event_to_dict(event)
        if ctx.dry_run:
            return {"deleted": snapshot, "simulated": True}
        await repo.delete_event(ctx.studio_id, event.id)
        return {"deleted": snapshot}


def calendar_tools() -> list[ToolDefinition]:
    return [
        ToolDefinition(
            name="search_calendar",
            description="Find calendar events in a date range or by title.",
            parameters={
                "type": "object",
                "properties": {
                    "start": {"type": "string", "description": "ISO 8601 date-time"},
                    "end": {"type": "string", "description": "ISO 8601 date-time"},
                    "query": {"type": "string"},
                    "limit": {"type": "integer", "minimum": 1, "maximum": 100},
                },
                "additionalProperties": False,
            },
            required_scope=Scope.CRM_READ,
            risk=RiskTier.LOW,
            executor=search_calendar,
        ),
        ToolDefinition(
            name="create_calendar_event",
            description="Create a calendar event such as a shoot or consultation.",
            parameters={
                "type": "object",
                "properties": {
                    "title": {"type": "string", "minLength": 1},
                    "starts_at": {"type": "string", "description": "ISO 8601 date-time"},
                    "ends_at": {"type": "string", "description": "ISO 8601 date-time"},
                    "duration_minutes": {"type": "integer", "minimum": 5, "maximum": 1440},
                    "client_id": {"type": "string"},
                    "location": {"type": "string"},
                },
                "required": ["title", "starts_at"],
                "additionalProperties": False,
            },
            required_scope=Scope.CALENDAR_WRITE,
            risk=RiskTier.MEDIUM,
            executor=create_calendar_event,
        ),
        ToolDefinition(
            name="delete_calendar_event",
            description="Delete a calendar event.",
            parameters={
                "type": "object",
                "properties": {"event_id": {"type": "string"}},
                "required": ["event_id"],
                "additionalProperties": False,
            },
            required_scope=Scope.CALENDAR_WRITE,
            risk=RiskTier.HIGH,
            executor=delete_calendar_event,
        ),
    ]
