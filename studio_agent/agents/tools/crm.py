"""Client lookup and update tools."""

from __future__ import annotations

from studio_agent.agents.policy import RiskTier, Scope
from studio_agent.agents.toolbus.types import ToolContext, ToolDefinition
from studio_agent.agents.tools.common import client_to_dict, crm_repository
from studio_agent.core.exceptions import ExecutionError, ValidationError
from studio_agent.db.models import Client
from studio_agent.repositories.crm_repo import SQLAlchemyCRMRepository

UPDATABLE_FIELDS = ("first_name", "last_name", "email", "phone", "notes")


async def resolve_client(repo: SQLAlchemyCRMRepository, ctx: ToolContext, args: dict) -> Client:
    """Find the client by id, or by exact full name when no id was given."""
    if args.get("client_id"):
        client = await repo.get_client(ctx.studio_id, args["client_id"])
        if client is None:
            raise ExecutionError(f"Client not found: {args['client_id']}")
        return client
    if args.get("client_name"):
        matches = await repo.find_clients_by_name(ctx.studio_id, args["client_name"])
        if not matches:
            raise ExecutionError(f"No client named {args['client_name']!r}")
        if len(matches) > 1:
            raise ValidationError(
                f"{len(matches)} clients are named {args['client_name']!r}; pass client_id instead",
                errors=[{"path": "client_name", "message": "ambiguous"}],
            )
        return matches[0]
    raise ValidationError("client_id or client_name is required", errors=[{"path": "", "message": "missing client"}])


async def search_clients(args: dict, ctx: ToolContext) -> dict:
    async with crm_repository(ctx) as repo:
        rows = await repo.search_clients(ctx.studio_id, args["query"], limit=args.get("limit", 10))
        return {"clients": [client_to_dict(row) for row in rows], "count": len(rows)}


async def get_client(args: dict, ctx: ToolContext) -> dict:
    async with crm_repository(ctx) as repo:
        client = await resolve_client(repo, ctx, args)
        return {"client": client_to_dict(client)}


async def update_client(args: dict, ctx: ToolContext) -> dict:
    changes = {field: args[field] for field in UPDATABLE_FIELDS if field in args}
    if not changes:
        raise ValidationError("Nothing to update", errors=[{"path": "", "message": "no updatable fields given"}])

    async with crm_repository(ctx) as repo:
        client = await resolve_client(repo, ctx, args)
        before = client_to_dict(client)
        if ctx.dry_run:
            return {"client": {**before, **changes}, "before": before, "changes": changes, "simulated": True}
        for field, value in changes.items():
            setattr(client, field, value)
        await repo.add(client)
        return {"client": client_to_dict(client), "before": before, "changes": changes}


_CLIENT_REF = {
    "client_id": {"type": "string", "description": "Client id"},
    "client_name": {"type": "string", "description": "Exact full name, used when the id is unknown"},
}


def crm_tools() -> list[ToolDefinition]:
    return [
        ToolDefinition(
            name="search_clients",
            description="Search clients by name, email or phone.",
            parameters={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "minLength": 1},
                    "limit": {"type": "integer", "minimum": 1, "maximum": 50},
                },
                "required": ["query"],
                "additionalProperties": False,
            },
            required_scope=Scope.CRM_READ,
            risk=RiskTier.LOW,
            executor=search_clients,
        ),
        ToolDefinition(
            name="get_client",
            description="Get one client's details by id or exact name.",
            parameters={"type": "object", "properties": dict(_CLIENT_REF), "additionalProperties": False},
            required_scope=Scope.CRM_READ,
            risk=RiskTier.LOW,
            executor=get_client,
        ),
        ToolDefinition(
            name="update_client",
            description="Update a client's contact details or notes.",
            parameters={
                "type": "object",
                "properties": {
                    **_CLIENT_REF,
                    "first_name": {"type": "string", "minLength": 1},
                    "last_name": {"type": "string"},
                    "email": {"type": "string"},
                    "phone": {"type": "string", "minLength": 3},
                    "notes": {"type": "string"},
                },
                "additionalProperties": False,
            },
            required_scope=Scope.CRM_WRITE,
            risk=RiskTier.MEDIUM,
            executor=update_client,
        ),
    ]
