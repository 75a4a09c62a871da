"""
Database module.
Contains database connection, models, and the status store.
"""

from boxsync.db.connection import (
    close_db,
    create_engine_for_url,
    get_async_session,
    get_engine,
    get_session_context,
    init_db,
)
from boxsync.db.models import Base, Job, PaymentsAccount, Task
from boxsync.db.repository import StatusStore

__all__ = [
    "get_async_session",
    "get_session_context",
    "get_engine",
    "create_engine_for_url",
    "init_db",
    "close_db",
    "Base",
    "Job",
    "PaymentsAccount",
    "Task",
    "StatusStore",
]
