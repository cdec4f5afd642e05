"""Provider interface and chat-completion value types."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ToolCall:
    """A tool invocation requested by the model.

    ``arguments`` is None when the model produced arguments that are not a
    JSON object; the raw text is kept for the audit trail.
    """

    id: str
    name: str
    arguments: Optional[Dict[str, Any]]
    raw_arguments: str = ""

    @classmethod
    def from_openai(cls, payload: Dict[str, Any]) -> "ToolCall":
        function = payload.get("function") or {}
        raw = function.get("arguments") or "{}"
        if isinstance(raw, dict):
            return cls(id=payload.get("id", ""), name=function.get("name", ""), arguments=raw, raw_arguments=json.dumps(raw))
        try:
            parsed = json.loads(raw)
        except (TypeError, ValueError):
            parsed = None
        if not isinstance(parsed, dict):
            parsed = None
        return cls(id=payload.get("id", ""), name=function.get("name", ""), arguments=parsed, raw_arguments=raw)

    def to_openai(self) -> Dict[str, Any]:
        raw = self.raw_arguments or json.dumps(self.arguments or {})
        return {"id": self.id, "type": "function", "function": {"name": self.name, "arguments": raw}}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "arguments": self.arguments if self.arguments is not None else self.raw_arguments,
        }


@dataclass
class CompletionResult:
    content: Optional[str] = None
    tool_calls: List[ToolCall] = field(default_factory=list)
    model: Optional[str] = None
    finish_reason: Optional[str] = None
    usage: Optional[Dict[str, int]] = None

    def to_message(self) -> Dict[str, Any]:
        """Assistant message to replay to the model on the next call."""
        message: Dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [call.to_openai() for call in self.tool_calls]
        return message


class BaseProvider(ABC):
    """Chat-completion backend used by the dialogue runners."""

    name: str = "base"

    @abstractmethod
    async def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
    ) -> CompletionResult:
        """Send one non-streaming chat request.

        Raises:
            TransportError: the backend could not be reached or answered garbage.
        """

    async def healthcheck(self) -> bool:
        return True

    async def aclose(self) -> None:
        return None
