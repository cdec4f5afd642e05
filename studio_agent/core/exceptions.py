"""Exception hierarchy and FastAPI exception handlers."""

from typing import Iterable, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from studio_agent.core.logging import get_logger, request_context

logger = get_logger(__name__)


class StudioAgentException(Exception):
    """Base exception for the studio agent gateway."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        code: str = "E5000",
        details: dict = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details or {}
        super().__init__(message)


class AuthenticationError(StudioAgentException):
    """Caller identity missing."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, code="E2000")


class AuthorizationError(StudioAgentException):
    """Caller lacks the scope a tool requires."""

    def __init__(
        self,
        message: str = "Access denied",
        tool: Optional[str] = None,
        required_scopes: Iterable[str] = (),
        user_scopes: Iterable[str] = (),
    ):
        self.tool = tool
        self.required_scopes = sorted(str(s) for s in required_scopes)
        self.user_scopes = sorted(str(s) for s in user_scopes)
        details = {"requiredScopes": self.required_scopes, "userScopes": self.user_scopes}
        if tool:
            details["tool"] = tool
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, code="E2001", details=details)


class ModeBlockedError(StudioAgentException):
    """The session mode does not permit the tool's risk tier."""

    def __init__(self, message: str, tool: Optional[str] = None, mode: Optional[str] = None, risk: Optional[str] = None):
        self.tool = tool
        self.mode = mode
        self.risk = risk
        details = {"mode": mode, "risk": risk}
        if tool:
            details["tool"] = tool
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, code="E2002", details=details)


class NotFoundError(StudioAgentException):
    """Resource not found."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, code="E4040")


class ToolNotFoundError(StudioAgentException):
    """No tool registered under the requested name."""

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(
            f"Tool not found: {tool}",
            status_code=status.HTTP_404_NOT_FOUND,
            code="E4041",
            details={"tool": tool},
        )


class ValidationError(StudioAgentException):
    """Tool arguments do not match the tool's parameter schema."""

    def __init__(self, message: str, errors: Optional[list] = None):
        self.errors = errors or []
        super().__init__(
            message,
            status_code=status.HTTP_400_BAD_REQUEST,
            code="E4000",
            details={"errors": self.errors},
        )


class ConfirmationTokenError(StudioAgentException):
    """Confirmation token unknown, expired, already used or issued for another call."""

    def __init__(self, message: str = "Confirmation token is not valid"):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, code="E4090")


class ExecutionError(StudioAgentException):
    """A tool executor failed or timed out."""

    def __init__(self, message: str, tool: Optional[str] = None):
        self.tool = tool
        super().__init__(
            message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code="E5001",
            details={"tool": tool} if tool else {},
        )


class ToolRegistrationError(StudioAgentException):
    """Conflicting or malformed tool definition at startup."""

    def __init__(self, message: str):
        super().__init__(message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, code="E5002")


class TransportError(StudioAgentException):
    """LLM or persistence transport failure."""

    def __init__(self, message: str, component: Optional[str] = None):
        self.component = component
        super().__init__(
            message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            code="E3000",
            details={"component": component} if component else {},
        )


def _request_id() -> Optional[str]:
    ctx = request_context.get()
    return ctx.get("request_id") if ctx else None


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers with FastAPI app."""

    @app.exception_handler(StudioAgentException)
    async def studio_agent_exception_handler(
        request: Request, exc: StudioAgentException
    ) -> JSONResponse:
        """Render gateway exceptions with the canonical error envelope."""
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            f"{type(exc).__name__}: {exc.message}",
            data={"status_code": exc.status_code, "details": exc.details},
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.message,
                "message": exc.message,
                "error": {
                    "code": exc.code,
                    "message": exc.message,
                    "request_id": _request_id(),
                },
                **exc.details,
            },
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request body validation errors."""
        errors = exc.errors()
        logger.warning("Validation error", data={"errors": errors})
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": "Validation error",
                "errors": [
                    {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
                    for e in errors
                ],
                "error": {
                    "code": "E4220",
                    "message": "Validation error",
                    "request_id": _request_id(),
                },
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        code = f"E{exc.status_code}0"
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.detail,
                "error": {
                    "code": code,
                    "message": exc.detail,
                    "request_id": _request_id(),
                },
            },
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.error(
            f"Unhandled exception: {type(exc).__name__}: {exc}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error",
                "error": {
                    "code": "E5000",
                    "message": "Internal server error",
                    "request_id": _request_id(),
                },
            },
        )
