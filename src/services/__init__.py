"""Services module for the feature flag backend."""

from services.database import (
    check_connection,
    get_sync_session,
    init_db,
    session_scope,
)

__all__ = [
    "check_connection",
    "get_sync_session",
    "init_db",
    "session_scope",
]
