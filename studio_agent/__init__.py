"""Studio Agent gateway: permissioned LLM tool execution for the studio CRM."""

__version__ = "0.1.0"
