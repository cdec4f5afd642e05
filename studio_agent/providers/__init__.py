"""LLM providers."""

from studio_agent.providers.base import BaseProvider, CompletionResult, ToolCall
from studio_agent.providers.registry import create_provider

__all__ = ["BaseProvider", "CompletionResult", "ToolCall", "create_provider"]
