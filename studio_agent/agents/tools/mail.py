"""Email drafting and sending tools.

Sending only queues into the outbox; delivery happens elsewhere.
"""

from __future__ import annotations

from studio_agent.agents.policy import RiskTier, Scope
from studio_agent.agents.toolbus.types import ToolContext, ToolDefinition
from studio_agent.agents.tools.common import crm_repository, email_to_dict
from studio_agent.db.models import OutboundEmail


async def _store_email(args: dict, ctx: ToolContext, status: str) -> dict:
    async with crm_repository(ctx) as repo:
        if ctx.dry_run:
            preview = {"id": None, "to": args["to"], "subject": args["subject"], "status": status, "invoice_id": None}
            return {"email": preview, "simulated": True}
        email = await repo.add(
            OutboundEmail(
                studio_id=ctx.studio_id,
                to_address=args["to"],
                subject=args["subject"],
                body=args["body"],
                status=status,
            )
        )
        return {"email": email_to_dict(email)}


async def draft_email(args: dict, ctx: ToolContext) -> dict:
    return await _store_email(args, ctx, status="draft")


async def send_email(args: dict, ctx: ToolContext) -> dict:
    return await _store_email(args, ctx, status="queued")


_EMAIL_PARAMS = {
    "type": "object",
    "properties": {
        "to": {"type": "string", "pattern": "^[^@\\s]+@[^@\\s]+$"},
        "subject": {"type": "string", "minLength": 1, "maxLength": 255},
        "body": {"type": "string", "minLength": 1},
    },
    "required": ["to", "subject", "body"],
    "additionalProperties": False,
}


def email_tools() -> list[ToolDefinition]:
    return [
        ToolDefinition(
            name="draft_email",
            description="Save an email draft for the studio to review.",
            parameters=_EMAIL_PARAMS,
            required_scope=Scope.EMAIL_SEND,
            risk=RiskTier.MEDIUM,
            executor=draft_email,
        ),
        ToolDefinition(
            name="send_email",
            description="Send an email to a client.",
            parameters=_EMAIL_PARAMS,
            required_scope=Scope.EMAIL_SEND,
            risk=RiskTier.HIGH,
            executor=send_email,
        ),
    ]
