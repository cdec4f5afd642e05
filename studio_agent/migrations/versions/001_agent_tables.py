"""agent gateway tables

Revision ID: 001_agent_tables
Revises:
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "001_agent_tables"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    tables = set(sa.inspect(bind).get_table_names())

    if "agent_session" not in tables:
        op.create_table(
            "agent_session",
            sa.Column("id", sa.String(length=64), primary_key=True),
            sa.Column("studio_id", sa.String(length=64), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("role", sa.String(length=32), nullable=False),
            sa.Column("mode", sa.String(length=16), nullable=False),
            sa.Column("scopes", sa.JSON(), nullable=False),
            sa.Column("metadata", sa.JSON(), nullable=False),
            *_timestamps(),
        )
        op.create_index("ix_agent_session_studio_user", "agent_session", ["studio_id", "user_id"])

    if "agent_message" not in tables:
        op.create_table(
            "agent_message",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("session_id", sa.String(length=64), sa.ForeignKey("agent_session.id", ondelete="CASCADE"), nullable=False),
            sa.Column("role", sa.String(length=16), nullable=False),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("tool_call_id", sa.String(length=128), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_agent_message_session_created", "agent_message", ["session_id", "created_at"])

    if "agent_audit" not in tables:
        op.create_table(
            "agent_audit",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("session_id", sa.String(length=64), sa.ForeignKey("agent_session.id", ondelete="CASCADE"), nullable=False),
            sa.Column("tool", sa.String(length=128), nullable=False),
            sa.Column("args_json", sa.JSON(), nullable=True),
            sa.Column("result_json", sa.JSON(), nullable=True),
            sa.Column("ok", sa.Boolean(), nullable=False),
            sa.Column("outcome", sa.String(length=32), nullable=False),
            sa.Column("error", sa.Text(), nullable=True),
            sa.Column("error_type", sa.String(length=64), nullable=True),
            sa.Column("duration_ms", sa.Integer(), nullable=False),
            sa.Column("simulated", sa.Boolean(), nullable=False),
            sa.Column("confirmation_id", sa.String(length=64), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_agent_audit_session_created", "agent_audit", ["session_id", "created_at"])
        op.create_index("ix_agent_audit_tool", "agent_audit", ["tool"])

    if "agent_confirmation" not in tables:
        op.create_table(
            "agent_confirmation",
            sa.Column("id", sa.String(length=64), primary_key=True),
            sa.Column("session_id", sa.String(length=64), sa.ForeignKey("agent_session.id", ondelete="CASCADE"), nullable=False),
            sa.Column("tool", sa.String(length=128), nullable=False),
            sa.Column("args_json", sa.JSON(), nullable=False),
            sa.Column("args_fingerprint", sa.String(length=64), nullable=False),
            sa.Column("reason", sa.Text(), nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        )
        op.create_index("ix_agent_confirmation_session", "agent_confirmation", ["session_id"])

    if "agent_audit_diff" not in tables:
        op.create_table(
            "agent_audit_diff",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("session_id", sa.String(length=64), sa.ForeignKey("agent_session.id", ondelete="CASCADE"), nullable=False),
            sa.Column("v1_text", sa.Text(), nullable=True),
            sa.Column("v2_plan_json", sa.JSON(), nullable=True),
            sa.Column("v2_results_json", sa.JSON(), nullable=True),
            sa.Column("match", sa.Boolean(), nullable=False),
            sa.Column("score", sa.Float(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("v1_error", sa.Text(), nullable=True),
            sa.Column("v2_error", sa.Text(), nullable=True),
            sa.Column("v1_duration_ms", sa.Integer(), nullable=True),
            sa.Column("v2_duration_ms", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_agent_audit_diff_created", "agent_audit_diff", ["created_at"])

    if "crm_client" not in tables:
        op.create_table(
            "crm_client",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("studio_id", sa.String(length=64), nullable=False),
            sa.Column("first_name", sa.String(length=100), nullable=False),
            sa.Column("last_name", sa.String(length=100), nullable=False),
            sa.Column("email", sa.String(length=255), nullable=True),
            sa.Column("phone", sa.String(length=50), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_crm_client_studio_id", "crm_client", ["studio_id"])

    if "crm_invoice" not in tables:
        op.create_table(
            "crm_invoice",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("studio_id", sa.String(length=64), nullable=False),
            sa.Column("client_id", sa.String(length=36), sa.ForeignKey("crm_client.id", ondelete="CASCADE"), nullable=False),
            sa.Column("number", sa.String(length=32), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("currency", sa.String(length=3), nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False),
            sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("reminder_count", sa.Integer(), nullable=False),
            *_timestamps(),
            sa.UniqueConstraint("studio_id", "number", name="uq_crm_invoice_number"),
        )
        op.create_index("ix_crm_invoice_studio_id", "crm_invoice", ["studio_id"])

    if "calendar_event" not in tables:
        op.create_table(
            "calendar_event",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("studio_id", sa.String(length=64), nullable=False),
            sa.Column("client_id", sa.String(length=36), sa.ForeignKey("crm_client.id", ondelete="SET NULL"), nullable=True),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("location", sa.String(length=255), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_calendar_event_studio_id", "calendar_event", ["studio_id"])

    if "email_outbox" not in tables:
        op.create_table(
            "email_outbox",
            sa.Column("id", sa.String(length=36), primary_key=True),
            sa.Column("studio_id", sa.String(length=64), nullable=False),
            sa.Column("to_address", sa.String(length=255), nullable=False),
            sa.Column("subject", sa.String(length=255), nullable=False),
            sa.Column("body", sa.Text(), nullable=False),
            sa.Column("status", sa.String(length=16), nullable=False),
            sa.Column("invoice_id", sa.String(length=36), sa.ForeignKey("crm_invoice.id", ondelete="SET NULL"), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        )
        op.create_index("ix_email_outbox_studio_id", "email_outbox", ["studio_id"])


def downgrade() -> None:
    for table in (
        "email_outbox",
        "calendar_event",
        "crm_invoice",
        "crm_client",
        "agent_audit_diff",
        "agent_confirmation",
        "agent_audit",
        "agent_message",
        "agent_session",
    ):
        op.drop_table(table)
