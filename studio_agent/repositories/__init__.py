"""Repository layer: one Protocol + SQLAlchemy implementation per aggregate."""

from .audit_repo import (
    AuditRepository,
    ConfirmationRepository,
    SQLAlchemyAuditRepository,
    SQLAlchemyConfirmationRepository,
)
from .crm_repo import CRMRepository, SQLAlchemyCRMRepository
from .diff_repo import DiffRepository, SQLAlchemyDiffRepository
from .message_repo import MessageRepository, SQLAlchemyMessageRepository
from .session_repo import SessionRepository, SQLAlchemySessionRepository

__all__ = [
    "AuditRepository",
    "CRMRepository",
    "ConfirmationRepository",
    "DiffRepository",
    "MessageRepository",
    "SessionRepository",
    "SQLAlchemyAuditRepository",
    "SQLAlchemyCRMRepository",
    "SQLAlchemyConfirmationRepository",
    "SQLAlchemyDiffRepository",
    "SQLAlchemyMessageRepository",
    "SQLAlchemySessionRepository",
]
