"""OpenAI-compatible provider implementation."""

from typing import Any, Dict, List, Optional

import httpx

from studio_agent.core.exceptions import TransportError
from studio_agent.core.logging import get_logger
from studio_agent.providers.base import BaseProvider, CompletionResult, ToolCall

logger = get_logger(__name__)


class OpenAICompatProvider(BaseProvider):
    """Provider for OpenAI-compatible /chat/completions endpoints with tool calling."""

    name = "openai_compat"

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        default_model: str = "gpt-4-turbo-preview",
        temperature: float = 0.1,
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize OpenAI-compatible provider."""
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.default_model = default_model
        self.temperature = temperature
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"

            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=headers,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def healthcheck(self) -> bool:
        """Check if endpoint is available."""
        try:
            response = await self.client.get("/models")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
    ) -> CompletionResult:
        """Send non-streaming chat request, offering ``tools`` when given."""
        payload: Dict[str, Any] = {
            "model": model or self.default_model,
            "messages": messages,
            "temperature": self.temperature,
            "stream": False,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"

        try:
            response = await self.client.post("/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as exc:
            raise TransportError("LLM request timed out", component="llm") from exc
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "LLM request rejected",
                data={"status_code": exc.response.status_code, "body": exc.response.text[:500]},
            )
            raise TransportError(f"LLM request failed with HTTP {exc.response.status_code}", component="llm") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise TransportError(f"LLM request failed: {exc}", component="llm") from exc

        try:
            choice = data["choices"][0]
            message = choice["message"]
        except (KeyError, IndexError, TypeError) as exc:
            raise TransportError("Malformed LLM response", component="llm") from exc

        usage = data.get("usage") or {}
        return CompletionResult(
            content=message.get("content"),
            tool_calls=[ToolCall.from_openai(tc) for tc in message.get("tool_calls") or []],
            model=data.get("model", payload["model"]),
            finish_reason=choice.get("finish_reason", "stop"),
            usage={k: v for k, v in usage.items() if isinstance(v, int)},
        )
