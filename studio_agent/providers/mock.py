"""Deterministic scripted provider for tests and PROVIDER_MODE=mock."""

import json
from collections import deque
from typing import Any, Dict, Iterable, List, Optional, Union
from uuid import uuid4

from studio_agent.providers.base import BaseProvider, CompletionResult, ToolCall

ScriptItem = Union[CompletionResult, Exception]


def tool_call(name: str, arguments: Optional[Dict[str, Any]] = None, call_id: Optional[str] = None) -> ToolCall:
    """Build a ToolCall the way the model would send it."""
    args = arguments or {}
    return ToolCall(
        id=call_id or f"call_{uuid4().hex[:12]}",
        name=name,
        arguments=args,
        raw_arguments=json.dumps(args),
    )


class ScriptedProvider(BaseProvider):
    """Replays queued completions in order, then falls back to an echo.

    Queued exceptions are raised instead of returned, which is how tests
    simulate transport failures.
    """

    name = "mock"

    def __init__(self, script: Iterable[ScriptItem] = ()):
        self._script: deque = deque(script)
        self.calls: List[Dict[str, Any]] = []

    def enqueue(self, *items: ScriptItem) -> None:
        self._script.extend(items)

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
    ) -> CompletionResult:
        self.calls.append({"messages": messages, "tools": tools, "model": model})
        if self._script:
            item = self._script.popleft()
            if isinstance(item, Exception):
                raise item
            return item

        prompt = ""
        for message in reversed(messages):
            if message.get("role") == "user":
                prompt = message.get("content") or ""
                break
        return CompletionResult(content=f"[mock] {prompt}", model=model or "mock-model", finish_reason="stop")
