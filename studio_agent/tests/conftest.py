"""Gateway test fixtures: async SQLite file database, ledger, ToolBus and seeded CRM data."""

from __future__ import annotations

from datetime import timedelta
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from studio_agent.agents.orchestrator import DialogueOrchestrator
from studio_agent.agents.policy import parse_scopes
from studio_agent.agents.runner import CallerIdentity
from studio_agent.agents.toolbus.bus import ToolBus
from studio_agent.agents.toolbus.types import ToolContext
from studio_agent.agents.tools import register_builtin_tools
from studio_agent.core.time import utcnow
from studio_agent.db import create_all, make_engine, make_session_factory
from studio_agent.db.models import CalendarEvent, Client, Invoice, OutboundEmail
from studio_agent.providers.mock import ScriptedProvider
from studio_agent.services.audit_service import AuditLedger
from studio_agent.services.transcript_service import TranscriptService

STUDIO = "studio_1"


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Async engine over a throwaway SQLite file (WAL needs a real file)."""
    eng = make_engine(f"sqlite+aiosqlite:///{(tmp_path / 'agent.db').as_posix()}")
    await create_all(eng)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def ledger(session_factory):
    return AuditLedger(session_factory, confirmation_ttl_seconds=900)


@pytest.fixture
def transcripts(session_factory):
    return TranscriptService(session_factory)


@pytest.fixture
def toolbus(ledger):
    return register_builtin_tools(ToolBus(ledger, tool_timeout_seconds=5.0))


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def orchestrator(toolbus, transcripts, ledger, provider, session_factory):
    return DialogueOrchestrator(
        bus=toolbus,
        transcripts=transcripts,
        ledger=ledger,
        provider=provider,
        session_factory=session_factory,
        model="test-model",
        llm_timeout_seconds=5.0,
    )


def _caller(role: str = "photographer", user_id: str = "user_1", studio_id: str = STUDIO) -> CallerIdentity:
    return CallerIdentity(user_id=user_id, studio_id=studio_id, role=role)


@pytest.fixture
def make_caller():
    return _caller


@pytest.fixture
def make_ctx(transcripts, session_factory):
    """Build a ToolContext backed by a real agent session row."""

    async def _make(role="photographer", mode=None, dry_run=False, user_id="user_1"):
        row, effective = await transcripts.resolve_session(_caller(role, user_id), None, mode)
        return ToolContext(
            session_id=row.id,
            studio_id=row.studio_id,
            user_id=user_id,
            scopes=parse_scopes(row.scopes),
            mode=effective,
            dry_run=dry_run,
            db=session_factory,
        )

    return _make


@pytest_asyncio.fixture
async def crm(session_factory):
    """Two clients, three invoices and one booking in ``STUDIO``."""
    now = utcnow()
    async with session_factory() as session:
        async with session.begin():
            jane = Client(studio_id=STUDIO, first_name="Jane", last_name="Doe", email="jane@example.com", phone="555-0101")
            john = Client(studio_id=STUDIO, first_name="John", last_name="Smith", email=None)
            session.add_all([jane, john])
            await session.flush()

            draft = Invoice(studio_id=STUDIO, client_id=jane.id, number="INV-1001", amount=450.0, status="draft")
            sent = Invoice(studio_id=STUDIO, client_id=jane.id, number="INV-1002", amount=1200.0, status="sent", sent_at=now)
            paid = Invoice(studio_id=STUDIO, client_id=jane.id, number="INV-1003", amount=300.0, status="paid")
            event = CalendarEvent(
                studio_id=STUDIO,
                client_id=jane.id,
                title="Doe family shoot",
                starts_at=now + timedelta(days=3),
                ends_at=now + timedelta(days=3, hours=2),
                location="Riverside Park",
            )
            session.add_all([draft, sent, paid, event])
            await session.flush()

            seeded = SimpleNamespace(
                jane_id=jane.id,
                john_id=john.id,
                draft_id=draft.id,
                sent_id=sent.id,
                paid_id=paid.id,
                event_id=event.id,
            )
    return seeded


@pytest.fixture
def fetch(session_factory):
    """Read helpers for asserting on CRM state after a dispatch."""

    async def _get(model, row_id):
        async with session_factory() as session:
            return await session.get(model, row_id)

    async def _count(model):
        async with session_factory() as session:
            return (await session.execute(select(func.count()).select_from(model))).scalar_one()

    return SimpleNamespace(get=_get, count=_count, Client=Client, Invoice=Invoice, Event=CalendarEvent, Email=OutboundEmail)
