"""SQLite maintenance storage adapter."""

import contextlib
import logging
import sqlite3
import uuid
from collections.abc import Iterator
from datetime import date, datetime
from pathlib import Path
from typing import Any

from upkeep.core.maintenance import Asset, MaintenanceTemplate, TaskInstance
from upkeep.errors import DuplicateOccurrenceError, TransactionError

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


def _date_to_str(value: date | None) -> str | None:
    return value.isoformat() if value else None


def _str_to_date(value: str | None) -> date | None:
    return date.fromisoformat(value[:10]) if value else None


def _datetime_to_str(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _str_to_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SqliteMaintenanceStore:
    """
    SQLite maintenance store.

    Implements MaintenanceStore protocol. The schema is created on startup and
    missing columns are added with ALTER TABLE, so older databases keep working.

    Every transaction() opens its own connection and starts with
    BEGIN IMMEDIATE, so two scheduler runs against the same file serialize
    instead of both passing the existence check. A unique index on
    (template_id, due_date) backs that up.
    """

    def __init__(self, db_path: str | Path = "upkeep.sqlite3"):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info(f"Maintenance store ready db={self.db_path}")

    def _get_conn(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are managed explicitly below
        conn = sqlite3.connect(str(self.db_path), timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS assets (
                    id TEXT PRIMARY KEY,
                    account_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'Active',
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS maintenance_templates (
                    id TEXT PRIMARY KEY,
                    account_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    notes TEXT,
                    cadence_months INTEGER NOT NULL,
                    lead_time_days INTEGER NOT NULL DEFAULT 0,
                    start_date TEXT,
                    asset_id TEXT,
                    active INTEGER NOT NULL DEFAULT 1,
                    last_generated_at TEXT,
                    next_scheduled_at TEXT,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS maintenance_tasks (
                    id TEXT PRIMARY KEY,
                    title TEXT NOT NULL,
                    notes TEXT,
                    due_date TEXT,
                    next_due_date TEXT,
                    completed INTEGER NOT NULL DEFAULT 0,
                    is_recurring INTEGER NOT NULL DEFAULT 0,
                    recurrence_months INTEGER,
                    template_id TEXT,
                    asset_id TEXT,
                    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                )
                """
            )

            # Columns added after the first release.
            cols = {row["name"] for row in conn.execute("PRAGMA table_info(maintenance_tasks)")}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                conn.execute(f"ALTER TABLE maintenance_tasks ADD COLUMN {name} {decl}")
                logger.info(f"Maintenance store migration: added column {name}")

            add_col("account_id", "TEXT")
            add_col("cancelled_at", "TEXT")
            add_col("cancel_reason", "TEXT")
            add_col("previous_task_id", "TEXT")

            conn.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_tasks_template_due "
                "ON maintenance_tasks(template_id, due_date) WHERE template_id IS NOT NULL"
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_previous ON maintenance_tasks(previous_task_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_account ON maintenance_tasks(account_id)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_templates_active "
                "ON maintenance_templates(active, account_id, next_scheduled_at)"
            )
        except sqlite3.Error as e:
            raise TransactionError(f"Cannot open maintenance store {self.db_path}: {e}") from e
        finally:
            conn.close()

    @contextlib.contextmanager
    def transaction(self) -> Iterator["SqliteMaintenanceSession"]:
        """Run a block atomically; sqlite errors surface as TransactionError."""
        conn = self._get_conn()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield SqliteMaintenanceSession(conn)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            logger.error(f"Maintenance store transaction failed: {e}")
            raise TransactionError(str(e)) from e
        finally:
            conn.close()


class SqliteMaintenanceSession:
    """
    Reads and writes on one open SQLite transaction.

    Implements MaintenanceRepository protocol.
    """

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def _fetch_one(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        return self._conn.execute(sql, params).fetchone()

    def _fetch_all(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        return self._conn.execute(sql, params).fetchall()

    @staticmethod
    def _row_to_template(row: sqlite3.Row) -> MaintenanceTemplate:
        return MaintenanceTemplate(
            id=row["id"],
            account_id=row["account_id"],
            title=row["title"],
            notes=row["notes"],
            cadence_months=int(row["cadence_months"]),
            lead_time_days=int(row["lead_time_days"] or 0),
            start_date=_str_to_date(row["start_date"]),
            asset_id=row["asset_id"],
            active=bool(row["active"]),
            last_generated_at=_str_to_date(row["last_generated_at"]),
            next_scheduled_at=_str_to_date(row["next_scheduled_at"]),
        )

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> TaskInstance:
        return TaskInstance(
            id=row["id"],
            title=row["title"],
            notes=row["notes"],
            due_date=_str_to_date(row["due_date"]),
            next_due_date=_str_to_date(row["next_due_date"]),
            completed=bool(row["completed"]),
            is_recurring=bool(row["is_recurring"]),
            recurrence_months=row["recurrence_months"],
            template_id=row["template_id"],
            asset_id=row["asset_id"],
            account_id=row["account_id"],
            cancelled_at=_str_to_datetime(row["cancelled_at"]),
            cancel_reason=row["cancel_reason"],
            previous_task_id=row["previous_task_id"],
        )

    @staticmethod
    def _task_params(task: TaskInstance) -> dict[str, Any]:
        return {
            "id": task.id,
            "title": task.title,
            "notes": task.notes,
            "due_date": _date_to_str(task.due_date),
            "next_due_date": _date_to_str(task.next_due_date),
            "completed": int(task.completed),
            "is_recurring": int(task.is_recurring),
            "recurrence_months": task.recurrence_months,
            "template_id": task.template_id,
            "asset_id": task.asset_id,
            "account_id": task.account_id,
            "cancelled_at": _datetime_to_str(task.cancelled_at),
            "cancel_reason": task.cancel_reason,
            "previous_task_id": task.previous_task_id,
        }

    # ---- templates ----

    def list_active_templates(self, account_id: str | None = None) -> list[MaintenanceTemplate]:
        sql = "SELECT * FROM maintenance_templates WHERE active = 1"
        params: tuple = ()
        if account_id:
            sql += " AND account_id = ?"
            params = (account_id,)
        sql += " ORDER BY next_scheduled_at IS NULL, next_scheduled_at ASC, created_at ASC"
        return [self._row_to_template(r) for r in self._fetch_all(sql, params)]

    def list_templates(self, account_id: str) -> list[MaintenanceTemplate]:
        rows = self._fetch_all(
            "SELECT * FROM maintenance_templates WHERE account_id = ? ORDER BY title ASC",
            (account_id,),
        )
        return [self._row_to_template(r) for r in rows]

    def get_template(self, template_id: str) -> MaintenanceTemplate | None:
        row = self._fetch_one("SELECT * FROM maintenance_templates WHERE id = ?", (template_id,))
        return self._row_to_template(row) if row else None

    def create_template(self, template: MaintenanceTemplate) -> MaintenanceTemplate:
        template_id = template.id or _new_id()
        self._conn.execute(
            """
            INSERT INTO maintenance_templates(
                id, account_id, title, notes, cadence_months, lead_time_days,
                start_date, asset_id, active, last_generated_at, next_scheduled_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                template_id,
                template.account_id,
                template.title,
                template.notes,
                template.cadence_months,
                template.lead_time_days,
                _date_to_str(template.start_date),
                template.asset_id,
                int(template.active),
                _date_to_str(template.last_generated_at),
                _date_to_str(template.next_scheduled_at),
            ),
        )
        logger.debug(f"Template added id={template_id} cadence={template.cadence_months}")
        return self.get_template(template_id)

    def save_template(self, template: MaintenanceTemplate) -> None:
        self._conn.execute(
            """
            UPDATE maintenance_templates
            SET title = ?, notes = ?, cadence_months = ?, lead_time_days = ?,
                start_date = ?, asset_id = ?, active = ?
            WHERE id = ?
            """,
            (
                template.title,
                template.notes,
                template.cadence_months,
                template.lead_time_days,
                _date_to_str(template.start_date),
                template.asset_id,
                int(template.active),
                template.id,
            ),
        )

    def update_template_schedule(
        self,
        template_id: str,
        *,
        last_generated_at: date | None = None,
        next_scheduled_at: date | None = None,
    ) -> None:
        fields: list[str] = []
        params: list[Any] = []

        if last_generated_at is not None:
            fields.append("last_generated_at = ?")
            params.append(_date_to_str(last_generated_at))

        if next_scheduled_at is not None:
            fields.append("next_scheduled_at = ?")
            params.append(_date_to_str(next_scheduled_at))

        if not fields:
            return

        params.append(template_id)
        self._conn.execute(f"UPDATE maintenance_templates SET {', '.join(fields)} WHERE id = ?", params)

    # ---- assets ----

    def create_asset(self, asset: Asset) -> Asset:
        asset_id = asset.id or _new_id()
        self._conn.execute(
            "INSERT INTO assets(id, account_id, name, status) VALUES (?, ?, ?, ?)",
            (asset_id, asset.account_id, asset.name, asset.status),
        )
        return Asset(id=asset_id, account_id=asset.account_id, name=asset.name, status=asset.status)

    def get_asset(self, asset_id: str) -> Asset | None:
        row = self._fetch_one("SELECT * FROM assets WHERE id = ?", (asset_id,))
        if not row:
            return None
        return Asset(id=row["id"], account_id=row["account_id"], name=row["name"], status=row["status"])

    def get_asset_status(self, asset_id: str) -> str | None:
        row = self._fetch_one("SELECT status FROM assets WHERE id = ?", (asset_id,))
        return row["status"] if row else None

    def set_asset_status(self, asset_id: str, status: str) -> None:
        self._conn.execute("UPDATE assets SET status = ? WHERE id = ?", (status, asset_id))

    # ---- tasks ----

    def create_task(self, task: TaskInstance) -> TaskInstance:
        params = self._task_params(task)
        params["id"] = task.id or _new_id()
        try:
            self._conn.execute(
                """
                INSERT INTO maintenance_tasks(
                    id, title, notes, due_date, next_due_date, completed, is_recurring,
                    recurrence_months, template_id, asset_id, account_id,
                    cancelled_at, cancel_reason, previous_task_id
                )
                VALUES (
                    :id, :title, :notes, :due_date, :next_due_date, :completed, :is_recurring,
                    :recurrence_months, :template_id, :asset_id, :account_id,
                    :cancelled_at, :cancel_reason, :previous_task_id
                )
                """,
                params,
            )
        except sqlite3.IntegrityError as e:
            if task.template_id and "maintenance_tasks.template_id" in str(e):
                raise DuplicateOccurrenceError(task.template_id, task.due_date) from e
            raise
        logger.debug(f"Task added id={params['id']} due={task.due_date} template={task.template_id}")
        return self.get_task(params["id"])

    def get_task(self, task_id: str) -> TaskInstance | None:
        row = self._fetch_one("SELECT * FROM maintenance_tasks WHERE id = ?", (task_id,))
        return self._row_to_task(row) if row else None

    def save_task(self, task: TaskInstance) -> None:
        self._conn.execute(
            """
            UPDATE maintenance_tasks
            SET title = :title, notes = :notes, due_date = :due_date,
                next_due_date = :next_due_date, completed = :completed,
                is_recurring = :is_recurring, recurrence_months = :recurrence_months,
                template_id = :template_id, asset_id = :asset_id, account_id = :account_id,
                cancelled_at = :cancelled_at, cancel_reason = :cancel_reason,
                previous_task_id = :previous_task_id
            WHERE id = :id
            """,
            self._task_params(task),
        )

    def delete_task(self, task_id: str) -> None:
        self._conn.execute("DELETE FROM maintenance_tasks WHERE id = ?", (task_id,))

    def list_tasks(self, account_id: str) -> list[TaskInstance]:
        rows = self._fetch_all(
            """
            SELECT *
            FROM maintenance_tasks
            WHERE account_id = ?
            ORDER BY due_date IS NULL, due_date ASC, created_at ASC
            """,
            (account_id,),
        )
        return [self._row_to_task(r) for r in rows]

    def find_task_by_template_due(self, template_id: str, due_date: date) -> TaskInstance | None:
        row = self._fetch_one(
            "SELECT * FROM maintenance_tasks WHERE template_id = ? AND due_date = ? LIMIT 1",
            (template_id, _date_to_str(due_date)),
        )
        return self._row_to_task(row) if row else None

    def find_follow_up(self, previous_task_id: str, due_date: date) -> TaskInstance | None:
        row = self._fetch_one(
            """
            SELECT *
            FROM maintenance_tasks
            WHERE previous_task_id = ? AND due_date = ?
            ORDER BY created_at DESC, rowid DESC
            LIMIT 1
            """,
            (previous_task_id, _date_to_str(due_date)),
        )
        return self._row_to_task(row) if row else None

    def find_open_follow_up(
        self,
        *,
        template_id: str | None,
        asset_id: str | None,
        due_date: date,
        previous_task_id: str,
    ) -> TaskInstance | None:
        row = self._fetch_one(
            """
            SELECT *
            FROM maintenance_tasks
            WHERE template_id IS ?
              AND asset_id IS ?
              AND due_date = ?
              AND previous_task_id = ?
              AND is_recurring = 1
              AND completed = 0
              AND cancelled_at IS NULL
            ORDER BY created_at DESC, rowid DESC
            LIMIT 1
            """,
            (template_id, asset_id, _date_to_str(due_date), previous_task_id),
        )
        return self._row_to_task(row) if row else None

    def set_next_due_date(self, task_id: str, next_due_date: date | None) -> None:
        self._conn.execute(
            "UPDATE maintenance_tasks SET next_due_date = ? WHERE id = ?",
            (_date_to_str(next_due_date), task_id),
        )

    def cancel_task(self, task_id: str, *, cancelled_at: datetime, reason: str) -> None:
        self._conn.execute(
            "UPDATE maintenance_tasks SET cancelled_at = ?, cancel_reason = ? WHERE id = ?",
            (_datetime_to_str(cancelled_at), reason, task_id),
        )
