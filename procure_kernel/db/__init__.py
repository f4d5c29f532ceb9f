"""Database layer: declarative base, engine/session management, immutability listeners."""

from procure_kernel.db.base import Base, UTCDateTime, UUIDString
from procure_kernel.db.engine import (
    create_engine_for_url,
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "Base",
    "UTCDateTime",
    "UUIDString",
    "create_engine_for_url",
    "create_tables",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
]
