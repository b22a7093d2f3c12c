"""SQLite activity log adapter."""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from upkeep.errors import TransactionError

logger = logging.getLogger(__name__)


class SqliteActivityLog:
    """
    Append-only activity log kept next to the maintenance data.

    Implements AuditLog protocol. Writes use their own short connection, so
    call it after the transaction that made the change has committed.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS activity_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at TEXT NOT NULL,
                    action TEXT NOT NULL,
                    entity_type TEXT NOT NULL,
                    entity_id TEXT NOT NULL,
                    details TEXT
                )
                """
            )
            conn.commit()
        except sqlite3.Error as e:
            raise TransactionError(f"Cannot open activity log {self.db_path}: {e}") from e
        finally:
            conn.close()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        return conn

    def log_create(self, entity_type: str, entity_id: str, details: dict[str, Any] | None = None) -> None:
        """Record that an entity was created."""
        if details is not None:
            details = json.dumps(details, ensure_ascii=False, default=str)
        conn = self._get_conn()
        try:
            conn.execute(
                """
                INSERT INTO activity_log(created_at, action, entity_type, entity_id, details)
                VALUES (?, ?, ?, ?, ?)
                """,
                (datetime.now(timezone.utc).isoformat(), "Created", entity_type, entity_id, details),
            )
            conn.commit()
        finally:
            conn.close()

    def recent(self, limit: int = 50) -> list[dict[str, Any]]:
        """Newest entries first."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM activity_log ORDER BY id DESC LIMIT ?",
                (int(limit),),
            ).fetchall()
        except sqlite3.Error as e:
            raise TransactionError(str(e)) from e
        finally:
            conn.close()
        entries = []
        for row in rows:
            details = row["details"]
            try:
                details = json.loads(details) if details else None
            except json.JSONDecodeError:
                pass
            entries.append(
                {
                    "created_at": row["created_at"],
                    "action": row["action"],
                    "entity_type": row["entity_type"],
                    "entity_id": row["entity_id"],
                    "details": details,
                }
            )
        return entries
