"""Persistence: models, column types and async engine helpers."""

from .models import Base
from .session import create_all, make_engine, make_session_factory

__all__ = ["Base", "create_all", "make_engine", "make_session_factory"]
