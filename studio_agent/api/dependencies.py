"""Request-scoped dependencies: caller identity and app-level services."""

from fastapi import Depends, Request

from studio_agent.agents.orchestrator import DialogueOrchestrator
from studio_agent.agents.policy import Scope
from studio_agent.agents.runner import CallerIdentity
from studio_agent.agents.shadow import ShadowRunner
from studio_agent.agents.toolbus.bus import ToolBus
from studio_agent.config import Settings, get_settings
from studio_agent.core.exceptions import AuthenticationError, AuthorizationError
from studio_agent.services.audit_service import AuditLedger
from studio_agent.services.transcript_service import TranscriptService

# Identity used when DEV_IDENTITY_FALLBACK is on and no auth headers arrive
DEV_CALLER = CallerIdentity(user_id="demo_user", studio_id="demo_studio", role="photographer")


def get_caller(request: Request, settings: Settings = Depends(get_settings)) -> CallerIdentity:
    """Caller identity asserted by the upstream auth layer."""
    user_id = request.headers.get(settings.identity_header_user, "").strip()
    studio_id = request.headers.get(settings.identity_header_studio, "").strip()
    role = request.headers.get(settings.identity_header_role, "").strip()
    if user_id and studio_id:
        return CallerIdentity(user_id=user_id, studio_id=studio_id, role=role or "viewer")
    if settings.use_dev_identity:
        return DEV_CALLER
    raise AuthenticationError()


def get_toolbus(request: Request) -> ToolBus:
    return request.app.state.toolbus


def get_ledger(request: Request) -> AuditLedger:
    return request.app.state.ledger


def get_transcripts(request: Request) -> TranscriptService:
    return request.app.state.transcripts


def get_orchestrator(request: Request) -> DialogueOrchestrator:
    return request.app.state.orchestrator


def get_shadow_runner(request: Request) -> ShadowRunner:
    return request.app.state.shadow_runner


def require_admin(
    caller: CallerIdentity = Depends(get_caller),
    toolbus: ToolBus = Depends(get_toolbus),
) -> CallerIdentity:
    """Shadow analytics expose other users' conversations."""
    scopes = toolbus.policy.scopes_for_role(caller.role)
    if Scope.ADMIN not in scopes:
        raise AuthorizationError(
            "Admin scope required",
            required_scopes=[Scope.ADMIN.value],
            user_scopes=[s.value for s in scopes],
        )
    return caller
