"""Invoice listing and sending tools."""

from __future__ import annotations

from studio_agent.agents.policy import RiskTier, Scope
from studio_agent.agents.toolbus.types import ToolContext, ToolDefinition
from studio_agent.agents.tools.common import crm_repository, email_to_dict, invoice_to_dict
from studio_agent.core.exceptions import ExecutionError, ValidationError
from studio_agent.core.time import utcnow
from studio_agent.db.models import Invoice, OutboundEmail
from studio_agent.repositories.crm_repo import SQLAlchemyCRMRepository

INVOICE_STATUSES = ["draft", "sent", "paid", "overdue"]


async def _resolve_invoice(repo: SQLAlchemyCRMRepository, ctx: ToolContext, args: dict) -> Invoice:
    if args.get("invoice_id"):
        invoice = await repo.get_invoice(ctx.studio_id, args["invoice_id"])
    elif args.get("invoice_number"):
        invoice = await repo.get_invoice_by_number(ctx.studio_id, args["invoice_number"])
    else:
        raise ValidationError("invoice_id or invoice_number is required", errors=[{"path": "", "message": "missing invoice"}])
    if invoice is None:
        raise ExecutionError(f"Invoice not found: {args.get('invoice_id') or args.get('invoice_number')}")
    return invoice


async def list_invoices(args: dict, ctx: ToolContext) -> dict:
    async with crm_repository(ctx) as repo:
        rows = await repo.list_invoices(
            ctx.studio_id,
            status=args.get("status"),
            client_id=args.get("client_id"),
            limit=args.get("limit", 20),
        )
        return {
            "invoices": [invoice_to_dict(row) for row in rows],
            "count": len(rows),
            "total_amount": round(sum(row.amount for row in rows), 2),
        }


async def get_invoice(args: dict, ctx: ToolContext) -> dict:
    async with crm_repository(ctx) as repo:
        invoice = await _resolve_invoice(repo, ctx, args)
        return {"invoice": invoice_to_dict(invoice)}


async def send_invoice(args: dict, ctx: ToolContext) -> dict:
    """Mark the invoice sent (or count a reminder) and queue the email to the client."""
    async with crm_repository(ctx) as repo:
        invoice = await _resolve_invoice(repo, ctx, args)
        if invoice.status == "paid":
            raise ExecutionError(f"Invoice {invoice.number} is already paid")
        client = await repo.get_client(ctx.studio_id, invoice.client_id)
        if client is None or not client.email:
            raise ExecutionError(f"Client for invoice {invoice.number} has no email address")

        is_reminder = invoice.status in ("sent", "overdue")
        subject = f"{'Reminder: ' if is_reminder else ''}Invoice {invoice.number}"
        body = args.get("message") or (
            f"Hi {client.first_name},\n\nPlease find invoice {invoice.number} for "
            f"{invoice.amount:.2f} {invoice.currency}."
        )
        preview = {
            "to": client.email,
            "subject": subject,
            "reminder": is_reminder,
        }
        if ctx.dry_run:
            return {"invoice": invoice_to_dict(invoice), "email": preview, "simulated": True}

        if is_reminder:
            invoice.reminder_count += 1
        else:
            invoice.status = "sent"
        invoice.sent_at = utcnow()
        email = await repo.add(
            OutboundEmail(
                studio_id=ctx.studio_id,
                to_address=client.email,
                subject=subject,
                body=body,
                status="queued",
                invoice_id=invoice.id,
            )
        )
        return {"invoice": invoice_to_dict(invoice), "email": email_to_dict(email)}


_INVOICE_REF = {
    "invoice_id": {"type": "string"},
    "invoice_number": {"type": "string", "description": "Human invoice number, e.g. INV-1001"},
}


def invoice_tools() -> list[ToolDefinition]:
    return [
        ToolDefinition(
            name="list_invoices",
            description="List invoices, optionally filtered by status or client.",
            parameters={
                "type": "object",
                "properties": {
                    "status": {"type": "string", "enum": INVOICE_STATUSES},
                    "client_id": {"type": "string"},
                    "limit": {"type": "integer", "minimum": 1, "maximum": 100},
                },
                "additionalProperties": False,
            },
            required_scope=Scope.INV_READ,
            risk=RiskTier.LOW,
            executor=list_invoices,
        ),
        ToolDefinition(
            name="get_invoice",
            description="Get one invoice by id or number.",
            parameters={"type": "object", "properties": dict(_INVOICE_REF), "additionalProperties": False},
            required_scope=Scope.INV_READ,
            risk=RiskTier.LOW,
            executor=get_invoice,
        ),
        ToolDefinition(
            name="send_invoice",
            description="Email an invoice to its client. Sending again counts as a reminder.",
            parameters={
                "type": "object",
                "properties": {**_INVOICE_REF, "message": {"type": "string"}},
                "additionalProperties": False,
            },
            required_scope=Scope.INV_WRITE,
            risk=RiskTier.HIGH,
            executor=send_invoice,
        ),
    ]
