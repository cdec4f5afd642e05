"""Built-in studio CRM tools."""

from studio_agent.agents.toolbus.bus import ToolBus
from studio_agent.agents.toolbus.types import ToolDefinition
from studio_agent.agents.tools.scheduling import calendar_tools
from studio_agent.agents.tools.crm import crm_tools
from studio_agent.agents.tools.mail import email_tools
from studio_agent.agents.tools.invoices import invoice_tools


def builtin_tools() -> list[ToolDefinition]:
    return [*crm_tools(), *invoice_tools(), *calendar_tools(), *email_tools()]


def register_builtin_tools(bus: ToolBus) -> ToolBus:
    bus.register_all(builtin_tools())
    return bus


__all__ = ["builtin_tools", "register_builtin_tools"]
