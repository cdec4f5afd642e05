"""Tool registry and dispatcher."""

from studio_agent.agents.toolbus.bus import ToolBus
from studio_agent.agents.toolbus.types import (
    ConfirmationRequest,
    ToolContext,
    ToolDefinition,
    ToolOutcome,
    ToolResult,
)

__all__ = [
    "ConfirmationRequest",
    "ToolBus",
    "ToolContext",
    "ToolDefinition",
    "ToolOutcome",
    "ToolResult",
]
