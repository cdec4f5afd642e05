"""Column types and id factories shared by the agent and CRM tables."""

from __future__ import annotations

import uuid

from sqlalchemy import String, types
from sqlalchemy.dialects import postgresql


class GUID(types.TypeDecorator):
    """CRM record ids: native UUID on Postgres, 36-char text on SQLite, always ``str`` in Python."""

    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.UUID(as_uuid=False))
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)


class JSONB(types.TypeDecorator):
    """Tool arguments, results and session metadata: JSONB on Postgres, JSON elsewhere."""

    impl = types.JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.JSONB)
        return dialect.type_descriptor(types.JSON)


def new_record_id() -> str:
    return str(uuid.uuid4())


def new_session_id() -> str:
    """Agent session ids keep the ``sess_`` prefix clients already rely on."""
    return f"sess_{uuid.uuid4().hex}"
