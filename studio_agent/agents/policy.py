"""Scope and execution-mode policy.

Maps caller roles to granted scopes and a recommended execution mode, and
decides for a (mode, risk tier) pair whether a tool may run and whether it
needs an explicit confirmation first. The tables below are the only place
these rules live; the ToolBus and the orchestrator consult them through a
``ModePolicy`` instance.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping


class Scope(str, Enum):
    CRM_READ = "CRM_READ"
    CRM_WRITE = "CRM_WRITE"
    INV_READ = "INV_READ"
    INV_WRITE = "INV_WRITE"
    EMAIL_SEND = "EMAIL_SEND"
    CALENDAR_WRITE = "CALENDAR_WRITE"
    PRICE_RESEARCH = "PRICE_RESEARCH"
    PRICE_WRITE = "PRICE_WRITE"
    ADMIN = "ADMIN"


class Mode(str, Enum):
    READ_ONLY = "read_only"
    AUTO_SAFE = "auto_safe"
    AUTO_FULL = "auto_full"


class RiskTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Ordering used to clamp a requested mode to the caller's ceiling
MODE_RANK: dict[Mode, int] = {Mode.READ_ONLY: 0, Mode.AUTO_SAFE: 1, Mode.AUTO_FULL: 2}

READ_ONLY_SCOPES: frozenset[Scope] = frozenset({Scope.CRM_READ, Scope.INV_READ})

_OPERATOR_SCOPES = frozenset(
    {
        Scope.CRM_READ,
        Scope.CRM_WRITE,
        Scope.INV_READ,
        Scope.INV_WRITE,
        Scope.EMAIL_SEND,
        Scope.CALENDAR_WRITE,
        Scope.PRICE_RESEARCH,
        Scope.PRICE_WRITE,
    }
)

ROLE_SCOPES: Mapping[str, frozenset[Scope]] = {
    "admin": _OPERATOR_SCOPES | {Scope.ADMIN},
    "owner": _OPERATOR_SCOPES | {Scope.ADMIN},
    "photographer": _OPERATOR_SCOPES,
    "manager": _OPERATOR_SCOPES,
    "staff": frozenset({Scope.CRM_READ, Scope.INV_READ, Scope.CALENDAR_WRITE}),
    "viewer": READ_ONLY_SCOPES,
}

ROLE_MODES: Mapping[str, Mode] = {
    "admin": Mode.AUTO_FULL,
    "owner": Mode.AUTO_FULL,
    "photographer": Mode.AUTO_SAFE,
    "manager": Mode.AUTO_SAFE,
}


@dataclass(frozen=True)
class PolicyDecision:
    allow: bool
    require_confirmation: bool = False


# (mode, risk) -> decision
RISK_TABLE: Mapping[tuple[Mode, RiskTier], PolicyDecision] = {
    (Mode.READ_ONLY, RiskTier.LOW): PolicyDecision(allow=True),
    (Mode.READ_ONLY, RiskTier.MEDIUM): PolicyDecision(allow=False),
    (Mode.READ_ONLY, RiskTier.HIGH): PolicyDecision(allow=False),
    (Mode.AUTO_SAFE, RiskTier.LOW): PolicyDecision(allow=True),
    (Mode.AUTO_SAFE, RiskTier.MEDIUM): PolicyDecision(allow=True),
    (Mode.AUTO_SAFE, RiskTier.HIGH): PolicyDecision(allow=True, require_confirmation=True),
    (Mode.AUTO_FULL, RiskTier.LOW): PolicyDecision(allow=True),
    (Mode.AUTO_FULL, RiskTier.MEDIUM): PolicyDecision(allow=True),
    (Mode.AUTO_FULL, RiskTier.HIGH): PolicyDecision(allow=True),
}


def _normalize_role(role: str | None) -> str:
    return (role or "").strip().lower()


@dataclass(frozen=True)
class ModePolicy:
    """Role, mode and risk tables bundled so they can be swapped as a unit."""

    role_scopes: Mapping[str, frozenset[Scope]] = field(default_factory=lambda: dict(ROLE_SCOPES))
    role_modes: Mapping[str, Mode] = field(default_factory=lambda: dict(ROLE_MODES))
    risk_table: Mapping[tuple[Mode, RiskTier], PolicyDecision] = field(default_factory=lambda: dict(RISK_TABLE))
    default_scopes: frozenset[Scope] = READ_ONLY_SCOPES
    default_mode: Mode = Mode.READ_ONLY

    def scopes_for_role(self, role: str | None) -> frozenset[Scope]:
        return self.role_scopes.get(_normalize_role(role), self.default_scopes)

    def recommended_mode(self, role: str | None) -> Mode:
        return self.role_modes.get(_normalize_role(role), self.default_mode)

    def is_allowed(self, mode: Mode, risk: RiskTier) -> PolicyDecision:
        # Unknown combinations fail closed
        return self.risk_table.get((Mode(mode), RiskTier(risk)), PolicyDecision(allow=False))

    def clamp_mode(self, requested: Mode | str | None, ceiling: Mode) -> Mode:
        """A requested mode may lower the ceiling but never raise it."""
        if requested is None:
            return ceiling
        requested = Mode(requested)
        if MODE_RANK[requested] > MODE_RANK[ceiling]:
            return ceiling
        return requested

    def explain(self, mode: Mode, risk: RiskTier, tool: str) -> str:
        decision = self.is_allowed(mode, risk)
        mode = Mode(mode)
        risk = RiskTier(risk)
        if not decision.allow:
            return f"'{tool}' is a {risk.value}-risk action and cannot run in {mode.value} mode."
        if decision.require_confirmation:
            return f"'{tool}' is a {risk.value}-risk action. Please confirm before it runs."
        return f"'{tool}' is allowed in {mode.value} mode."


DEFAULT_POLICY = ModePolicy()


def scopes_for_role(role: str | None) -> frozenset[Scope]:
    return DEFAULT_POLICY.scopes_for_role(role)


def recommended_mode(role: str | None) -> Mode:
    return DEFAULT_POLICY.recommended_mode(role)


def is_allowed(mode: Mode, risk: RiskTier) -> PolicyDecision:
    return DEFAULT_POLICY.is_allowed(mode, risk)


def parse_scopes(values: Iterable[str]) -> frozenset[Scope]:
    """Stored scope strings back to enum members; unknown names are dropped."""
    known = {s.value for s in Scope}
    return frozenset(Scope(v) for v in values if v in known)
