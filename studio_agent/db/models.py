"""SQLAlchemy ORM models: agent sessions, transcript, ledger, shadow diffs and CRM data."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .types import GUID, JSONB, new_record_id, new_session_id


def _now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    """Provides created_at and updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )


# ---------------------------------------------------------------------------
# Agent sessions and transcript
# ---------------------------------------------------------------------------
class AgentSession(TimestampMixin, Base):
    __tablename__ = "agent_session"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_session_id)
    studio_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    mode: Mapped[str] = mapped_column(String(16), nullable=False)
    scopes: Mapped[list] = mapped_column(JSONB(), nullable=False, default=list)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONB(), nullable=False, default=dict)

    __table_args__ = (Index("ix_agent_session_studio_user", "studio_id", "user_id"),)


class AgentMessage(Base):
    __tablename__ = "agent_message"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("agent_session.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB(), nullable=True)
    tool_call_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (Index("ix_agent_message_session_created", "session_id", "created_at"),)


# ---------------------------------------------------------------------------
# Audit / confirmation ledger
# ---------------------------------------------------------------------------
class AgentAudit(Base):
    __tablename__ = "agent_audit"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("agent_session.id", ondelete="CASCADE"), nullable=False
    )
    tool: Mapped[str] = mapped_column(String(128), nullable=False)
    args_json: Mapped[dict | list | None] = mapped_column(JSONB(), nullable=True)
    result_json: Mapped[dict | list | None] = mapped_column(JSONB(), nullable=True)
    ok: Mapped[bool] = mapped_column(Boolean, nullable=False)
    outcome: Mapped[str] = mapped_column(String(32), nullable=False)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    simulated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    confirmation_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        Index("ix_agent_audit_session_created", "session_id", "created_at"),
        Index("ix_agent_audit_tool", "tool"),
    )


class AgentConfirmation(Base):
    __tablename__ = "agent_confirmation"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    session_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("agent_session.id", ondelete="CASCADE"), nullable=False
    )
    tool: Mapped[str] = mapped_column(String(128), nullable=False)
    args_json: Mapped[dict] = mapped_column(JSONB(), nullable=False, default=dict)
    args_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    consumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_agent_confirmation_session", "session_id"),)


class AgentAuditDiff(Base):
    __tablename__ = "agent_audit_diff"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("agent_session.id", ondelete="CASCADE"), nullable=False
    )
    v1_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    v2_plan_json: Mapped[dict | None] = mapped_column(JSONB(), nullable=True)
    v2_results_json: Mapped[list | None] = mapped_column(JSONB(), nullable=True)
    match: Mapped[bool] = mapped_column(Boolean, nullable=False)
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    v1_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    v2_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    v1_duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    v2_duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (Index("ix_agent_audit_diff_created", "created_at"),)


# ---------------------------------------------------------------------------
# CRM records the built-in tools operate on
# ---------------------------------------------------------------------------
class Client(TimestampMixin, Base):
    __tablename__ = "crm_client"

    id: Mapped[str] = mapped_column(GUID(), primary_key=True, default=new_record_id)
    studio_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class Invoice(TimestampMixin, Base):
    __tablename__ = "crm_invoice"

    id: Mapped[str] = mapped_column(GUID(), primary_key=True, default=new_record_id)
    studio_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    client_id: Mapped[str] = mapped_column(GUID(), ForeignKey("crm_client.id", ondelete="CASCADE"), nullable=False)
    number: Mapped[str] = mapped_column(String(32), nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reminder_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (UniqueConstraint("studio_id", "number", name="uq_crm_invoice_number"),)


class CalendarEvent(TimestampMixin, Base):
    __tablename__ = "calendar_event"

    id: Mapped[str] = mapped_column(GUID(), primary_key=True, default=new_record_id)
    studio_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    client_id: Mapped[str | None] = mapped_column(GUID(), ForeignKey("crm_client.id", ondelete="SET NULL"), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)


class OutboundEmail(Base):
    __tablename__ = "email_outbox"

    id: Mapped[str] = mapped_column(GUID(), primary_key=True, default=new_record_id)
    studio_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    to_address: Mapped[str] = mapped_column(String(255), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="queued")
    invoice_id: Mapped[str | None] = mapped_column(GUID(), ForeignKey("crm_invoice.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
