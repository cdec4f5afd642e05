"""Core module with logging, middleware, and exception handling."""

from studio_agent.core.exceptions import setup_exception_handlers
from studio_agent.core.logging import get_logger, setup_logging
from studio_agent.core.middleware import (
    RequestContextMiddleware,
    RequestSizeLimitMiddleware,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "RequestContextMiddleware",
    "RequestSizeLimitMiddleware",
    "setup_exception_handlers",
]
