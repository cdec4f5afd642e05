"""
Studio Agent Gateway application.

FastAPI application wiring the ToolBus, the dialogue orchestrator and the
shadow comparator behind structured logging and error handling.
"""

import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from studio_agent import __version__
from studio_agent.agents.legacy import CompletionLegacyHandler, LegacyAgentRunner
from studio_agent.agents.orchestrator import DialogueOrchestrator
from studio_agent.agents.shadow import ShadowRunner, StructuralComparator
from studio_agent.agents.toolbus.bus import ToolBus
from studio_agent.agents.tools import register_builtin_tools
from studio_agent.api import agent_shadow_router, agent_v2_router, health_router
from studio_agent.config import Settings, get_settings
from studio_agent.core import (
    RequestContextMiddleware,
    RequestSizeLimitMiddleware,
    get_logger,
    setup_exception_handlers,
    setup_logging,
)
from studio_agent.db import create_all, make_engine, make_session_factory
from studio_agent.providers import BaseProvider, create_provider
from studio_agent.services.audit_service import AuditLedger
from studio_agent.services.transcript_service import TranscriptService

logger = get_logger(__name__)


def _ensure_sqlite_dir(database_url: str) -> None:
    if not database_url.startswith("sqlite") or ":///" not in database_url:
        return
    path = database_url.split(":///", 1)[1]
    directory = os.path.dirname(path)
    if path and path != ":memory:" and directory:
        os.makedirs(directory, exist_ok=True)


def build_services(
    state,
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    provider: BaseProvider,
) -> None:
    """Construct the gateway object graph and hang it on ``app.state``."""
    ledger = AuditLedger(session_factory, confirmation_ttl_seconds=settings.confirmation_ttl_seconds)
    transcripts = TranscriptService(session_factory)
    toolbus = register_builtin_tools(ToolBus(ledger, tool_timeout_seconds=settings.tool_timeout_seconds))
    orchestrator = DialogueOrchestrator(
        bus=toolbus,
        transcripts=transcripts,
        ledger=ledger,
        provider=provider,
        session_factory=session_factory,
        model=settings.agent_model,
        llm_timeout_seconds=settings.llm_timeout_seconds,
        max_tool_calls=settings.tools_max_calls_per_request,
        history_limit=settings.agent_history_limit,
    )
    legacy_handler = getattr(state, "legacy_handler", None) or CompletionLegacyHandler(
        provider,
        model=settings.legacy_agent_model,
        timeout_seconds=settings.llm_timeout_seconds,
    )

    state.session_factory = session_factory
    state.ledger = ledger
    state.transcripts = transcripts
    state.toolbus = toolbus
    state.orchestrator = orchestrator
    state.shadow_runner = ShadowRunner(
        legacy=LegacyAgentRunner(legacy_handler),
        candidate=orchestrator,
        transcripts=transcripts,
        ledger=ledger,
        comparator=StructuralComparator(settings.shadow_argument_threshold),
        candidate_timeout_seconds=settings.shadow_timeout_seconds,
    )


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    setup_logging(
        level=settings.log_level,
        json_output=not settings.debug,
        log_file=settings.log_file or None,
    )
    logger.info(
        "Starting studio agent gateway",
        data={
            "environment": settings.environment,
            "provider_mode": settings.provider_mode,
            "shadow_enabled": settings.shadow_enabled,
            "dry_run": settings.agent_v2_dry_run,
        },
    )

    _ensure_sqlite_dir(settings.database_url)
    engine = make_engine(settings.database_url, echo=settings.debug)
    if settings.should_create_tables:
        await create_all(engine)
        logger.info("Database tables ensured")

    # Provider may be injected before startup (useful in tests)
    provider_created = False
    if not hasattr(_app.state, "provider"):
        _app.state.provider = create_provider(settings)
        provider_created = True

    build_services(_app.state, settings, make_session_factory(engine), _app.state.provider)
    _app.state.start_time = datetime.now(UTC)
    logger.info("Registered tools", data={"tools": _app.state.toolbus.names()})

    yield

    logger.info("Shutting down studio agent gateway")
    if provider_created:
        await _app.state.provider.aclose()
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Studio Agent Gateway",
        description="Permissioned LLM tool execution for the studio CRM",
        version=__version__,
        lifespan=lifespan,
        docs_url=settings.docs_url,
        redoc_url=None,
    )

    setup_exception_handlers(app)

    # Last added = first executed
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_bytes)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    app.include_router(health_router)
    app.include_router(agent_v2_router)
    if settings.shadow_enabled:
        app.include_router(agent_shadow_router)

    return app


def run() -> None:
    """Console entry point."""
    import uvicorn

    settings = get_settings()
    uvicorn.run("studio_agent.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())


app = create_app()


if __name__ == "__main__":
    run()
