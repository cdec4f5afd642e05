"""Provider selection from settings."""

from studio_agent.config import Settings
from studio_agent.core.logging import get_logger
from studio_agent.providers.base import BaseProvider

logger = get_logger(__name__)


def create_provider(settings: Settings) -> BaseProvider:
    """Build the configured chat-completion provider."""
    if settings.provider_mode == "mock":
        from studio_agent.providers.mock import ScriptedProvider

        logger.info("Initialized deterministic mock provider (PROVIDER_MODE=mock)")
        return ScriptedProvider()

    from studio_agent.providers.openai_compat import OpenAICompatProvider

    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is empty; LLM calls will likely be rejected")
    logger.info(
        "Initialized OpenAI-compatible provider",
        data={"base_url": settings.openai_base_url, "model": settings.agent_model},
    )
    return OpenAICompatProvider(
        base_url=settings.openai_base_url,
        api_key=settings.openai_api_key,
        default_model=settings.agent_model,
        temperature=settings.agent_temperature,
        timeout=settings.llm_timeout_seconds,
    )
