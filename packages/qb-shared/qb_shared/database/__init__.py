"""Database module for QueryBridge shared infrastructure."""

from .models import (
    Base,
    SHARED_SCHEMA,
    RuntimeState,
    ControlColumnMap,
)
from .connection import (
    get_database_url,
    get_engine,
    get_session_factory,
    get_session_context,
    init_db,
    close_db,
)

__all__ = [
    # Models
    "Base",
    "SHARED_SCHEMA",
    "RuntimeState",
    "ControlColumnMap",
    # Connection
    "get_database_url",
    "get_engine",
    "get_session_factory",
    "get_session_context",
    "init_db",
    "close_db",
]
