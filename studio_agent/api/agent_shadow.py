"""Shadow endpoints: answer with the legacy agent while V2 runs dry alongside."""

from fastapi import APIRouter, Depends, Query

from studio_agent.agents.runner import CallerIdentity
from studio_agent.agents.shadow import ShadowRunner
from studio_agent.api.agent_v2 import ChatRequest, build_turn
from studio_agent.api.dependencies import get_caller, get_shadow_runner, require_admin
from studio_agent.repositories.deps import get_diff_repo
from studio_agent.repositories.diff_repo import SQLAlchemyDiffRepository
from studio_agent.services.audit_service import diff_to_dict

router = APIRouter(prefix="/agent/shadow", tags=["agent-shadow"])


@router.post("/chat")
async def shadow_chat(
    body: ChatRequest,
    caller: CallerIdentity = Depends(get_caller),
    shadow: ShadowRunner = Depends(get_shadow_runner),
):
    response = await shadow.run(build_turn(body, caller))
    return {
        "message": response.message,
        "sessionId": response.session_id,
        "shadowMode": True,
        "v1Duration": response.v1_duration_ms,
        "v2Duration": response.v2_duration_ms,
    }


@router.get("/stats")
async def shadow_stats(
    admin: CallerIdentity = Depends(require_admin),
    diffs: SQLAlchemyDiffRepository = Depends(get_diff_repo),
):
    return await diffs.stats(admin.studio_id)


@router.get("/diffs")
async def shadow_diffs(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: CallerIdentity = Depends(require_admin),
    diffs: SQLAlchemyDiffRepository = Depends(get_diff_repo),
):
    rows = await diffs.list_recent(admin.studio_id, limit=limit, offset=offset)
    return {"diffs": [diff_to_dict(row) for row in rows], "limit": limit, "offset": offset}
