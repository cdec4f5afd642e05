"""HTTP routers."""

from studio_agent.api.agent_shadow import router as agent_shadow_router
from studio_agent.api.agent_v2 import router as agent_v2_router
from studio_agent.api.health import router as health_router

__all__ = ["agent_shadow_router", "agent_v2_router", "health_router"]
