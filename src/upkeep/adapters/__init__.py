"""Adapters - I/O implementations of ports."""

from .sqlite_store import SqliteMaintenanceStore, SqliteMaintenanceSession
from .activity_log import SqliteActivityLog

__all__ = [
    "SqliteMaintenanceStore",
    "SqliteMaintenanceSession",
    "SqliteActivityLog",
]
