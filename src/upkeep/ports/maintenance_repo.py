"""Maintenance storage interface."""

from contextlib import AbstractContextManager
from datetime import date, datetime
from typing import Protocol

from upkeep.core.maintenance import Asset, MaintenanceTemplate, TaskInstance


class MaintenanceRepository(Protocol):
    """
    Reads and writes bound to one open transaction.

    Lookups are by exact key; None means "no such row".
    """

    # Templates

    def list_active_templates(self, account_id: str | None = None) -> list[MaintenanceTemplate]:
        """Active templates, ordered by next_scheduled_at ascending (unscheduled last)."""
        ...

    def list_templates(self, account_id: str) -> list[MaintenanceTemplate]:
        ...

    def get_template(self, template_id: str) -> MaintenanceTemplate | None:
        ...

    def create_template(self, template: MaintenanceTemplate) -> MaintenanceTemplate:
        """Insert a template; returns it with its id assigned."""
        ...

    def save_template(self, template: MaintenanceTemplate) -> None:
        """Overwrite the user-editable fields of a template."""
        ...

    def update_template_schedule(
        self,
        template_id: str,
        *,
        last_generated_at: date | None = None,
        next_scheduled_at: date | None = None,
    ) -> None:
        """Update generator bookkeeping. None leaves a field unchanged."""
        ...

    # Assets

    def create_asset(self, asset: Asset) -> Asset:
        ...

    def get_asset(self, asset_id: str) -> Asset | None:
        ...

    def get_asset_status(self, asset_id: str) -> str | None:
        ...

    def set_asset_status(self, asset_id: str, status: str) -> None:
        ...

    # Tasks

    def create_task(self, task: TaskInstance) -> TaskInstance:
        """
        Insert a task; returns it with its id assigned.

        Raises DuplicateOccurrenceError if (template_id, due_date) is taken.
        """
        ...

    def get_task(self, task_id: str) -> TaskInstance | None:
        ...

    def save_task(self, task: TaskInstance) -> None:
        """Overwrite every stored field of an existing task."""
        ...

    def delete_task(self, task_id: str) -> None:
        ...

    def list_tasks(self, account_id: str) -> list[TaskInstance]:
        ...

    def find_task_by_template_due(self, template_id: str, due_date: date) -> TaskInstance | None:
        """Any occurrence of a template on a due date, whatever its state."""
        ...

    def find_follow_up(self, previous_task_id: str, due_date: date) -> TaskInstance | None:
        """Newest follow-up of a task on a due date, whatever its state."""
        ...

    def find_open_follow_up(
        self,
        *,
        template_id: str | None,
        asset_id: str | None,
        due_date: date,
        previous_task_id: str,
    ) -> TaskInstance | None:
        """Newest recurring, not completed, not cancelled follow-up of a task on a due date."""
        ...

    def set_next_due_date(self, task_id: str, next_due_date: date | None) -> None:
        ...

    def cancel_task(self, task_id: str, *, cancelled_at: datetime, reason: str) -> None:
        ...


class MaintenanceStore(Protocol):
    """Durable storage that hands out transaction-scoped repositories."""

    def transaction(self) -> AbstractContextManager[MaintenanceRepository]:
        """
        Open an atomic unit of work.

        Commits when the block exits normally; rolls back everything written in
        the block when it raises.
        """
        ...
