"""ToolBus: the single gate every agent tool call goes through.

Dispatch order is fixed: lookup, schema validation, scope check, mode/risk
policy (with confirmation gating), then execution under a timeout. Whatever
happens, exactly one ledger record is written before the result is returned.
Tool-level failures come back as ``ToolResult`` values; only a ledger outage
raises.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, Iterable, Optional

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError

from studio_agent.agents.policy import DEFAULT_POLICY, ModePolicy, RiskTier, Scope
from studio_agent.agents.toolbus.types import ToolContext, ToolDefinition, ToolOutcome, ToolResult
from studio_agent.core.exceptions import (
    AuthorizationError,
    ConfirmationTokenError,
    ExecutionError,
    ModeBlockedError,
    StudioAgentException,
    ToolNotFoundError,
    ToolRegistrationError,
    ValidationError,
)
from studio_agent.core.logging import get_logger
from studio_agent.core.time import elapsed_ms

if TYPE_CHECKING:
    from studio_agent.services.audit_service import AuditLedger

logger = get_logger(__name__)

# Failures that are reported to the caller as an error-tagged ToolResult
TOOL_FAILURES = (
    ToolNotFoundError,
    ValidationError,
    AuthorizationError,
    ModeBlockedError,
    ConfirmationTokenError,
    ExecutionError,
)


class ToolBus:
    def __init__(
        self,
        ledger: "AuditLedger",
        policy: ModePolicy = DEFAULT_POLICY,
        tool_timeout_seconds: float = 15.0,
    ):
        self._ledger = ledger
        self._policy = policy
        self._timeout = tool_timeout_seconds
        self._tools: dict[str, ToolDefinition] = {}
        self._validators: dict[str, Draft202012Validator] = {}

    @property
    def policy(self) -> ModePolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------
    def register(self, definition: ToolDefinition, replace: bool = False) -> None:
        existing = self._tools.get(definition.name)
        if existing is not None and not replace:
            if existing == definition:
                return
            raise ToolRegistrationError(f"Tool already registered with a different definition: {definition.name}")

        try:
            Draft202012Validator.check_schema(definition.parameters)
        except SchemaError as exc:
            raise ToolRegistrationError(f"Invalid parameter schema for {definition.name}: {exc.message}") from exc

        self._tools[definition.name] = definition
        self._validators[definition.name] = Draft202012Validator(definition.parameters)
        logger.debug(
            f"Registered tool: {definition.name}",
            data={"scope": definition.required_scope.value, "risk": definition.risk.value},
        )

    def register_all(self, definitions: Iterable[ToolDefinition]) -> None:
        for definition in definitions:
            self.register(definition)

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return sorted(self._tools)

    def definitions_for_scopes(self, scopes: Iterable[Scope]) -> list[ToolDefinition]:
        granted = frozenset(Scope(s) for s in scopes)
        return [
            definition
            for _, definition in sorted(self._tools.items())
            if definition.required_scope in granted
        ]

    def list_for_scopes(self, scopes: Iterable[Scope]) -> list[dict]:
        """OpenAI function descriptors for the tools the scopes unlock."""
        return [definition.to_openai() for definition in self.definitions_for_scopes(scopes)]

    def stats(self) -> dict:
        by_risk = {tier.value: 0 for tier in RiskTier}
        by_scope: dict[str, int] = {}
        for definition in self._tools.values():
            by_risk[definition.risk.value] += 1
            by_scope[definition.required_scope.value] = by_scope.get(definition.required_scope.value, 0) + 1
        return {"totalTools": len(self._tools), "byRisk": by_risk, "byScope": by_scope}

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------
    async def dispatch(
        self,
        ctx: ToolContext,
        tool_name: str,
        args: Any,
        confirmation_token: Optional[str] = None,
    ) -> ToolResult:
        started = time.perf_counter()
        recorded_args = args if isinstance(args, dict) else {"_raw": args}
        consumed_token: Optional[str] = None

        try:
            definition = self._lookup(tool_name)
            self._validate(definition, args)
            self._authorize(ctx, definition)

            decision = self._policy.is_allowed(ctx.mode, definition.risk)
            if not decision.allow:
                raise ModeBlockedError(
                    self._policy.explain(ctx.mode, definition.risk, definition.name),
                    tool=definition.name,
                    mode=ctx.mode.value,
                    risk=definition.risk.value,
                )

            if decision.require_confirmation:
                if confirmation_token is None or ctx.dry_run:
                    return await self._pause_for_confirmation(ctx, definition, args, started)
                if not await self._ledger.consume_confirmation(ctx, confirmation_token, definition.name, args):
                    raise ConfirmationTokenError()
                consumed_token = confirmation_token

            data = await self._execute(ctx, definition, args)
            result = ToolResult(tool=tool_name, args=recorded_args, outcome=ToolOutcome.SUCCESS, data=data)
        except TOOL_FAILURES as exc:
            result = ToolResult(
                tool=tool_name,
                args=recorded_args,
                outcome=ToolOutcome.ERROR,
                error=exc.message,
                error_type=type(exc).__name__,
                exception=exc,
            )

        result.simulated = ctx.dry_run
        result.duration_ms = elapsed_ms(started)
        result.audit_id = await self._ledger.record(ctx, result, confirmation_id=consumed_token)
        logger.info(
            f"Tool dispatched: {tool_name} -> {result.outcome.value}",
            data={
                "session_id": ctx.session_id,
                "error_type": result.error_type,
                "simulated": result.simulated,
                "duration_ms": result.duration_ms,
            },
        )
        return result

    def _lookup(self, tool_name: str) -> ToolDefinition:
        definition = self._tools.get(tool_name)
        if definition is None:
            raise ToolNotFoundError(tool_name)
        return definition

    def _validate(self, definition: ToolDefinition, args: Any) -> None:
        if not isinstance(args, dict):
            raise ValidationError(f"Arguments for {definition.name} must be a JSON object")
        errors = sorted(self._validators[definition.name].iter_errors(args), key=lambda e: [str(p) for p in e.path])
        if errors:
            details = [
                {"path": "/".join(str(p) for p in err.path), "message": err.message}
                for err in errors
            ]
            raise ValidationError(f"Invalid arguments for {definition.name}: {errors[0].message}", errors=details)

    def _authorize(self, ctx: ToolContext, definition: ToolDefinition) -> None:
        if definition.required_scope not in ctx.scopes:
            raise AuthorizationError(
                f"Missing scope {definition.required_scope.value} for {definition.name}",
                tool=definition.name,
                required_scopes=[definition.required_scope.value],
                user_scopes=[s.value for s in ctx.scopes],
            )

    async def _pause_for_confirmation(
        self, ctx: ToolContext, definition: ToolDefinition, args: dict, started: float
    ) -> ToolResult:
        reason = self._policy.explain(ctx.mode, definition.risk, definition.name)
        confirmation = await self._ledger.open_confirmation(ctx, definition.name, args, reason)
        result = ToolResult(
            tool=definition.name,
            args=args,
            outcome=ToolOutcome.CONFIRMATION_REQUIRED,
            simulated=ctx.dry_run,
            confirmation=confirmation,
            duration_ms=elapsed_ms(started),
        )
        result.audit_id = await self._ledger.record(ctx, result, confirmation_id=confirmation.token)
        logger.info(
            f"Tool paused for confirmation: {definition.name}",
            data={"session_id": ctx.session_id, "risk": definition.risk.value, "mode": ctx.mode.value},
        )
        return result

    async def _execute(self, ctx: ToolContext, definition: ToolDefinition, args: dict) -> Any:
        try:
            return await asyncio.wait_for(definition.executor(dict(args), ctx), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise ExecutionError(f"{definition.name} timed out after {self._timeout:g}s", tool=definition.name) from exc
        except (ValidationError, ExecutionError):
            raise
        except StudioAgentException as exc:
            raise ExecutionError(exc.message, tool=definition.name) from exc
        except Exception as exc:
            logger.warning(
                f"Tool executor failed: {definition.name}",
                data={"session_id": ctx.session_id, "error": str(exc)},
                exc_info=True,
            )
            raise ExecutionError(f"{definition.name} failed: {exc}", tool=definition.name) from exc
