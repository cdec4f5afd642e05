"""Agent V2 endpoints: chat through the ToolBus, session inspection, stats."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from studio_agent.agents.orchestrator import DialogueOrchestrator
from studio_agent.agents.policy import Mode
from studio_agent.agents.runner import CallerIdentity, TurnInput
from studio_agent.agents.toolbus.bus import ToolBus
from studio_agent.api.dependencies import (
    get_caller,
    get_ledger,
    get_orchestrator,
    get_toolbus,
    get_transcripts,
)
from studio_agent.config import Settings, get_settings
from studio_agent.services.audit_service import AuditLedger
from studio_agent.services.transcript_service import (
    TranscriptService,
    message_to_dict,
    session_to_dict,
)

router = APIRouter(prefix="/agent/v2", tags=["agent"])


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatRequest(CamelModel):
    message: str = Field(..., max_length=8000)
    session_id: Optional[str] = None
    mode: Optional[Mode] = None
    confirmation_token: Optional[str] = None

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("message must not be empty")
        return v.strip()


class ChatResponse(CamelModel):
    session_id: str
    message: str
    mode: Mode
    tool_calls: Optional[List[Dict[str, Any]]] = None


class ConfirmationResponse(CamelModel):
    session_id: str
    confirm_required: bool = True
    tool: str
    args: Dict[str, Any]
    reason: str
    message: str
    confirmation_token: Optional[str] = None
    mode: Mode


def build_turn(body: ChatRequest, caller: CallerIdentity, dry_run: bool = False) -> TurnInput:
    return TurnInput(
        message=body.message,
        caller=caller,
        session_id=body.session_id,
        mode=body.mode,
        confirmation_token=body.confirmation_token,
        dry_run=dry_run,
    )


@router.post("/chat")
async def chat(
    body: ChatRequest,
    caller: CallerIdentity = Depends(get_caller),
    orchestrator: DialogueOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
):
    output = await orchestrator.run(build_turn(body, caller, dry_run=settings.agent_v2_dry_run))

    if output.confirmation_pending:
        confirmation = output.confirmation
        return ConfirmationResponse(
            session_id=output.session_id,
            tool=confirmation.tool,
            args=confirmation.args,
            reason=confirmation.reason,
            message=output.message,
            confirmation_token=confirmation.token,
            mode=output.mode,
        ).model_dump(by_alias=True, mode="json")

    return ChatResponse(
        session_id=output.session_id,
        message=output.message,
        mode=output.mode,
        tool_calls=[r.to_dict() for r in output.tool_results] or None,
    ).model_dump(by_alias=True, mode="json")


@router.get("/session/{session_id}")
async def get_session(
    session_id: str,
    caller: CallerIdentity = Depends(get_caller),
    transcripts: TranscriptService = Depends(get_transcripts),
    ledger: AuditLedger = Depends(get_ledger),
):
    row = await transcripts.get_owned_session(caller, session_id, allow_studio_admin=True)
    messages = await transcripts.transcript(row.id)
    return {
        "session": session_to_dict(row),
        "messages": [message_to_dict(m) for m in messages],
        "auditLog": await ledger.session_audit(row.id),
    }


@router.get("/stats")
async def stats(
    caller: CallerIdentity = Depends(get_caller),
    toolbus: ToolBus = Depends(get_toolbus),
    ledger: AuditLedger = Depends(get_ledger),
):
    return {**toolbus.stats(), "invocations": await ledger.usage_stats()}
