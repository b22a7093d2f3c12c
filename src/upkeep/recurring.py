"""Side effects of editing a recurring task.

The caller writes the user's literal edits first, then calls
handle_recurring_transition() with the same transaction-bound repository, so
the edit and everything derived from it commit or roll back together.
"""

import logging
from dataclasses import dataclass, replace
from datetime import date, datetime

from .core.dates import compute_next_due_date
from .core.maintenance import REOPEN_CANCEL_REASON, TaskInstance, follow_up_for
from .ports.maintenance_repo import MaintenanceRepository

logger = logging.getLogger(__name__)


@dataclass
class TransitionResult:
    """What a transition changed besides the caller's own write."""

    next_due_date: date | None = None
    preview_refreshed: bool = False
    follow_up: TaskInstance | None = None
    cancelled: TaskInstance | None = None


def handle_recurring_transition(
    repo: MaintenanceRepository,
    before: TaskInstance,
    after: TaskInstance,
    *,
    now: datetime,
) -> TransitionResult:
    """
    Derive and apply the consequences of a task going from `before` to `after`.

    - fills in a missing after.next_due_date, or moves it off a weekend
    - completing spawns the next occurrence (and advances the template)
    - reopening cancels the follow-up that completion spawned

    Non-recurring and cancelled tasks are left alone.
    """
    result = TransitionResult()

    if not after.has_recurrence or after.cancelled_at:
        return result

    expected = compute_next_due_date(after.due_date, after.recurrence_months, after.next_due_date)
    if expected and expected != after.next_due_date:
        repo.set_next_due_date(after.id, expected)
        logger.debug(f"Refreshed preview of task {after.id}: {after.next_due_date} -> {expected}")
        after = replace(after, next_due_date=expected)
        result.preview_refreshed = True
    result.next_due_date = after.next_due_date

    if not before.completed and after.completed:
        result.follow_up = _spawn_follow_up(repo, after)
    elif before.completed and not after.completed:
        result.cancelled = _cancel_follow_up(repo, after, now)

    return result


def _spawn_follow_up(repo: MaintenanceRepository, task: TaskInstance) -> TaskInstance | None:
    follow_up = follow_up_for(task)
    if follow_up is None:
        return None

    earlier = repo.find_follow_up(task.id, follow_up.due_date)
    if earlier is not None:
        if not earlier.is_cancelled:
            return None
        # Completed, reopened, completed again: bring back the cancelled follow-up.
        restored = replace(earlier, cancelled_at=None, cancel_reason=None)
        repo.save_task(restored)
        logger.info(f"Task {task.id} completed again; restored follow-up {restored.id}")
        _advance_template(repo, restored)
        return restored

    if follow_up.template_id:
        existing = repo.find_task_by_template_due(follow_up.template_id, follow_up.due_date)
        if existing:
            # The generator already filled this slot.
            logger.info(
                f"Task {task.id} completed; occurrence {existing.id} already due {follow_up.due_date}"
            )
            return None

    created = repo.create_task(follow_up)
    logger.info(f"Task {task.id} completed; follow-up {created.id} due {created.due_date}")
    _advance_template(repo, created)
    return created


def _advance_template(repo: MaintenanceRepository, follow_up: TaskInstance) -> None:
    if follow_up.template_id:
        repo.update_template_schedule(
            follow_up.template_id,
            last_generated_at=follow_up.due_date,
            next_scheduled_at=follow_up.next_due_date,
        )


def _cancel_follow_up(repo: MaintenanceRepository, task: TaskInstance, now: datetime) -> TaskInstance | None:
    expected_due = task.next_due_date or compute_next_due_date(task.due_date, task.recurrence_months)
    if not expected_due:
        return None

    follow_up = repo.find_open_follow_up(
        template_id=task.template_id,
        asset_id=task.asset_id,
        due_date=expected_due,
        previous_task_id=task.id,
    )
    if follow_up is None:
        return None

    repo.cancel_task(follow_up.id, cancelled_at=now, reason=REOPEN_CANCEL_REASON)
    logger.info(f"Task {task.id} reopened; cancelled follow-up {follow_up.id} due {follow_up.due_date}")
    return replace(follow_up, cancelled_at=now, cancel_reason=REOPEN_CANCEL_REASON)
