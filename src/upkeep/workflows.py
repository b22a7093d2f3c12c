"""Shared workflow layer between the CLI and the scheduler daemon.

Each action applies the user's literal edit and, for task edits, runs the
recurring transition in the same transaction.
"""

import logging
from dataclasses import replace
from datetime import date, datetime

from .core.dates import add_months, adjust_to_next_business_day, compute_next_due_date, start_of_day
from .core.maintenance import (
    ASSET_ACTIVE,
    MANUAL_CANCEL_REASON,
    MIN_RECURRENCE_MONTHS,
    Asset,
    MaintenanceTemplate,
    SchedulerResult,
    TaskInstance,
    filter_by_status,
    sort_by_due,
)
from .errors import NotFoundError, ValidationError
from .ports.audit_log import AuditLog
from .ports.maintenance_repo import MaintenanceRepository, MaintenanceStore
from .recurring import TransitionResult, handle_recurring_transition
from .scheduler import run_maintenance_scheduler

logger = logging.getLogger(__name__)

TASK_STATUSES = ("all", "open", "completed", "cancelled")


# ============== Lookups ==============


def _load_task(repo: MaintenanceRepository, account_id: str, task_id: str) -> TaskInstance:
    task = repo.get_task(task_id)
    # Unscoped rows predate account scoping and stay reachable.
    if task is None or task.account_id not in (None, account_id):
        raise NotFoundError("Task not found")
    return task


def _load_template(repo: MaintenanceRepository, account_id: str, template_id: str) -> MaintenanceTemplate:
    template = repo.get_template(template_id)
    if template is None or template.account_id != account_id:
        raise NotFoundError("Template not found")
    return template


def _check_asset(repo: MaintenanceRepository, account_id: str, asset_id: str | None) -> str | None:
    if not asset_id:
        return None
    asset = repo.get_asset(asset_id)
    if asset is None or asset.account_id != account_id:
        raise NotFoundError("Selected asset not found for this account.")
    return asset.id


def _clean_title(title: str | None) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required.")
    return title


def _clean_notes(notes: str | None) -> str | None:
    notes = (notes or "").strip()
    return notes or None


def _recurrence(is_recurring: bool, recurrence_months: float | None) -> int | None:
    if not is_recurring:
        return None
    return max(MIN_RECURRENCE_MONTHS, round(recurrence_months or 0))


# ============== Assets ==============


def add_asset(store: MaintenanceStore, account_id: str, name: str, status: str = ASSET_ACTIVE) -> Asset:
    """Register an asset that templates and tasks can link to."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required.")
    with store.transaction() as repo:
        return repo.create_asset(Asset(id="", account_id=account_id, name=name, status=status))


def set_asset_status(store: MaintenanceStore, account_id: str, asset_id: str, status: str) -> None:
    """Change an asset's status; templates on non-Active assets are skipped by the scheduler."""
    with store.transaction() as repo:
        _check_asset(repo, account_id, asset_id)
        repo.set_asset_status(asset_id, status)


# ============== Tasks ==============


def create_task(
    store: MaintenanceStore,
    account_id: str,
    *,
    title: str,
    notes: str | None = None,
    due_date: date | None = None,
    asset_id: str | None = None,
    is_recurring: bool = False,
    recurrence_months: int | None = None,
) -> TaskInstance:
    """Create an ad-hoc task. Recurring tasks need a due date."""
    title = _clean_title(title)
    recurrence = _recurrence(is_recurring, recurrence_months)
    due = start_of_day(due_date) if due_date else None

    if is_recurring and not due:
        raise ValidationError("Recurring tasks require a due date and recurrence")

    with store.transaction() as repo:
        task = TaskInstance(
            id="",
            title=title,
            notes=_clean_notes(notes),
            due_date=due,
            next_due_date=compute_next_due_date(due, recurrence) if is_recurring else None,
            completed=False,
            is_recurring=is_recurring,
            recurrence_months=recurrence,
            asset_id=_check_asset(repo, account_id, asset_id),
            account_id=account_id,
        )
        return repo.create_task(task)


def update_task(
    store: MaintenanceStore,
    account_id: str,
    task_id: str,
    *,
    title: str,
    notes: str | None = None,
    due_date: date | None = None,
    completed: bool = False,
    asset_id: str | None = None,
    is_recurring: bool = False,
    recurrence_months: int | None = None,
    now: datetime,
) -> TaskInstance:
    """
    Apply a full edit of a task, then its recurring side effects.

    A missing due_date keeps the stored one. Turning recurrence off clears the
    preview and any cancellation.
    """
    title = _clean_title(title)
    recurrence = _recurrence(is_recurring, recurrence_months)

    with store.transaction() as repo:
        before = _load_task(repo, account_id, task_id)

        effective_due = start_of_day(due_date) if due_date else before.due_date
        if is_recurring and not effective_due:
            raise ValidationError("Recurring tasks require a due date")

        after = replace(
            before,
            title=title,
            notes=_clean_notes(notes),
            due_date=effective_due,
            next_due_date=compute_next_due_date(effective_due, recurrence) if is_recurring else None,
            completed=completed,
            is_recurring=is_recurring,
            recurrence_months=recurrence,
            asset_id=_check_asset(repo, account_id, asset_id),
            cancelled_at=before.cancelled_at if is_recurring else None,
            cancel_reason=before.cancel_reason if is_recurring else None,
        )
        repo.save_task(after)
        handle_recurring_transition(repo, before, after, now=now)
        return repo.get_task(task_id)


def set_task_completed(
    store: MaintenanceStore,
    account_id: str,
    task_id: str,
    completed: bool,
    *,
    now: datetime,
) -> TransitionResult | None:
    """
    Mark a task complete or reopen it.

    Cancelled tasks cannot be toggled; returns None for them.
    """
    with store.transaction() as repo:
        before = _load_task(repo, account_id, task_id)
        if before.cancelled_at:
            logger.info(f"Task {task_id} is cancelled; ignoring completion change")
            return None

        next_due = None
        if before.is_recurring and before.recurrence_months and before.due_date:
            next_due = adjust_to_next_business_day(
                before.next_due_date or add_months(before.due_date, before.recurrence_months)
            )

        after = replace(before, completed=completed, next_due_date=next_due)
        repo.save_task(after)
        return handle_recurring_transition(repo, before, after, now=now)


def complete_task(store: MaintenanceStore, account_id: str, task_id: str, *, now: datetime) -> TransitionResult | None:
    return set_task_completed(store, account_id, task_id, True, now=now)


def reopen_task(store: MaintenanceStore, account_id: str, task_id: str, *, now: datetime) -> TransitionResult | None:
    return set_task_completed(store, account_id, task_id, False, now=now)


def cancel_task(
    store: MaintenanceStore,
    account_id: str,
    task_id: str,
    *,
    now: datetime,
    reason: str = MANUAL_CANCEL_REASON,
) -> TaskInstance:
    """Cancel a task (it also stops counting as completed). Already-cancelled tasks are unchanged."""
    with store.transaction() as repo:
        task = _load_task(repo, account_id, task_id)
        if task.cancelled_at:
            return task
        task = replace(task, cancelled_at=now, cancel_reason=reason, completed=False)
        repo.save_task(task)
        return task


def restore_task(store: MaintenanceStore, account_id: str, task_id: str) -> TaskInstance:
    """Undo a cancellation."""
    with store.transaction() as repo:
        task = _load_task(repo, account_id, task_id)
        if not task.cancelled_at:
            return task
        task = replace(task, cancelled_at=None, cancel_reason=None)
        repo.save_task(task)
        return task


def delete_task(store: MaintenanceStore, account_id: str, task_id: str) -> None:
    """Delete a task. The engine never does this on its own."""
    with store.transaction() as repo:
        _load_task(repo, account_id, task_id)
        repo.delete_task(task_id)


def get_task(store: MaintenanceStore, account_id: str, task_id: str) -> TaskInstance:
    with store.transaction() as repo:
        return _load_task(repo, account_id, task_id)


def get_template(store: MaintenanceStore, account_id: str, template_id: str) -> MaintenanceTemplate:
    with store.transaction() as repo:
        return _load_template(repo, account_id, template_id)


def list_tasks(store: MaintenanceStore, account_id: str, status: str = "all") -> list[TaskInstance]:
    if status not in TASK_STATUSES:
        raise ValidationError(f"Unknown status {status!r}")
    with store.transaction() as repo:
        tasks = repo.list_tasks(account_id)
    return sort_by_due(filter_by_status(tasks, status))


# ============== Templates ==============


def _clean_cadence(cadence_months: float | None) -> int:
    if cadence_months is None or cadence_months < MIN_RECURRENCE_MONTHS:
        raise ValidationError("Recurrence must be at least one month")
    return round(cadence_months)


def _clean_lead_time(lead_time_days: float | None) -> int:
    if not lead_time_days or lead_time_days < 0:
        return 0
    return round(lead_time_days)


def create_template(
    store: MaintenanceStore,
    account_id: str,
    *,
    title: str,
    cadence_months: int,
    notes: str | None = None,
    lead_time_days: int = 0,
    start_date: date | None = None,
    asset_id: str | None = None,
    active: bool = True,
    now: datetime,
    audit_log: AuditLog | None = None,
) -> tuple[MaintenanceTemplate, SchedulerResult | None]:
    """
    Create a template and, if active, generate its first cadence of occurrences.

    The first occurrence is scheduled on start_date (or today), moved off a weekend.
    """
    title = _clean_title(title)
    cadence = _clean_cadence(cadence_months)
    start = start_of_day(start_date) if start_date else None

    with store.transaction() as repo:
        template = repo.create_template(
            MaintenanceTemplate(
                id="",
                account_id=account_id,
                title=title,
                notes=_clean_notes(notes),
                cadence_months=cadence,
                lead_time_days=_clean_lead_time(lead_time_days),
                start_date=start,
                asset_id=_check_asset(repo, account_id, asset_id),
                active=active,
                next_scheduled_at=adjust_to_next_business_day(start or now),
            )
        )
    logger.info(f"Template {template.id} created: every {cadence} month(s)")

    result = None
    if template.active:
        result = run_maintenance_scheduler(
            store, audit_log, account_id=account_id, lookahead_months=cadence, now=now
        )
    return template, result


def update_template(
    store: MaintenanceStore,
    account_id: str,
    template_id: str,
    *,
    title: str,
    cadence_months: int,
    notes: str | None = None,
    lead_time_days: int = 0,
    start_date: date | None = None,
    asset_id: str | None = None,
    active: bool = True,
    now: datetime,
    audit_log: AuditLog | None = None,
) -> tuple[MaintenanceTemplate, SchedulerResult | None]:
    """Edit a template; an active template is rescheduled one cadence ahead."""
    title = _clean_title(title)
    cadence = _clean_cadence(cadence_months)

    with store.transaction() as repo:
        existing = _load_template(repo, account_id, template_id)
        template = replace(
            existing,
            title=title,
            notes=_clean_notes(notes),
            cadence_months=cadence,
            lead_time_days=_clean_lead_time(lead_time_days),
            start_date=start_of_day(start_date) if start_date else None,
            asset_id=_check_asset(repo, account_id, asset_id),
            active=active,
        )
        repo.save_template(template)

    result = None
    if template.active:
        result = run_maintenance_scheduler(
            store, audit_log, account_id=account_id, lookahead_months=cadence, now=now
        )
    return template, result


def list_templates(store: MaintenanceStore, account_id: str) -> list[MaintenanceTemplate]:
    with store.transaction() as repo:
        return repo.list_templates(account_id)
