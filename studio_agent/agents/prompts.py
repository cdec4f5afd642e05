"""System prompts for the dialogue runners."""

from __future__ import annotations

from typing import Iterable

from studio_agent.agents.policy import Mode, RiskTier
from studio_agent.agents.toolbus.types import ToolDefinition

BASE_PROMPT = """You are the operations assistant for a photography studio CRM.
You help the studio manage clients, invoices, calendar bookings and email.

Rules:
- Use the provided tools to read or change CRM data; never invent records or ids.
- Prefer one precise tool call over several broad ones.
- When a tool fails, explain what went wrong in plain language.
- Keep answers short and concrete. Format lists of records as bullet points."""

MODE_INSTRUCTIONS = {
    Mode.READ_ONLY: (
        "Mode: READ-ONLY. You may only look things up. If the user asks for a change, "
        "explain that their current mode does not allow it."
    ),
    Mode.AUTO_SAFE: (
        "Mode: SAFE. Low and medium risk actions run immediately. High risk actions "
        "(sending email or invoices, deleting events) pause until the user confirms."
    ),
    Mode.AUTO_FULL: (
        "Mode: FULL. All actions run immediately. Double-check recipients and amounts "
        "before high risk actions."
    ),
}

LEGACY_PROMPT = """You are a helpful CRM assistant for a photography studio.
Answer questions about clients, invoices, bookings and email as accurately as you can.
Be concise."""


def _tool_summary(definitions: Iterable[ToolDefinition]) -> str:
    by_risk: dict[RiskTier, list[str]] = {tier: [] for tier in RiskTier}
    for definition in definitions:
        by_risk[definition.risk].append(definition.name)
    lines = [
        f"- {tier.value} risk: {', '.join(names)}"
        for tier, names in by_risk.items()
        if names
    ]
    if not lines:
        return "No tools are available to this user."
    return "Available tools:\n" + "\n".join(lines)


def system_prompt(mode: Mode, definitions: Iterable[ToolDefinition]) -> str:
    return "\n\n".join([BASE_PROMPT, MODE_INSTRUCTIONS[Mode(mode)], _tool_summary(definitions)])


def confirmation_message(tool: str, reason: str) -> str:
    return f"{reason} Reply with the confirmation to run {tool}, or ignore this to cancel."
