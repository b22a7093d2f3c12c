"""Pure maintenance domain logic - no I/O dependencies."""

from dataclasses import dataclass, field
from datetime import date, datetime

from .dates import add_months, adjust_to_next_business_day

ASSET_ACTIVE = "Active"
REOPEN_CANCEL_REASON = "Previous occurrence reopened"
MANUAL_CANCEL_REASON = "Cancelled manually"
MIN_RECURRENCE_MONTHS = 1


@dataclass
class Asset:
    """Something that needs maintaining (a property, a vehicle, an appliance)."""

    id: str
    account_id: str
    name: str
    status: str = ASSET_ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == ASSET_ACTIVE


@dataclass
class MaintenanceTemplate:
    """A recurrence definition from which task occurrences are generated."""

    id: str
    account_id: str
    title: str
    cadence_months: int
    notes: str | None = None
    lead_time_days: int = 0
    start_date: date | None = None
    asset_id: str | None = None
    active: bool = True
    last_generated_at: date | None = None
    next_scheduled_at: date | None = None

    def initial_due_date(self, now: date) -> date:
        """
        Where a generator run starts walking for this template.

        Priority: next_scheduled_at, then one cadence after last_generated_at,
        then start_date, then `now`. Always business-day adjusted.
        """
        if self.next_scheduled_at:
            return adjust_to_next_business_day(self.next_scheduled_at)

        cadence = max(MIN_RECURRENCE_MONTHS, self.cadence_months)
        if self.last_generated_at:
            return adjust_to_next_business_day(add_months(self.last_generated_at, cadence))

        if self.start_date:
            return adjust_to_next_business_day(self.start_date)

        return adjust_to_next_business_day(now)


@dataclass
class TaskInstance:
    """
    A concrete maintenance task.

    Generated occurrences carry a template_id; ad-hoc recurring tasks created
    by a user do not, but follow the same recurrence math. The same type is
    used as the before/after snapshot of an edit.
    """

    id: str
    title: str
    notes: str | None = None
    due_date: date | None = None
    next_due_date: date | None = None
    completed: bool = False
    is_recurring: bool = False
    recurrence_months: int | None = None
    template_id: str | None = None
    asset_id: str | None = None
    account_id: str | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None
    previous_task_id: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None

    @property
    def is_open(self) -> bool:
        return not self.completed and not self.is_cancelled

    @property
    def has_recurrence(self) -> bool:
        return self.is_recurring and bool(self.recurrence_months) and self.recurrence_months >= 1

    def status_label(self) -> str:
        if self.is_cancelled:
            return "cancelled"
        if self.completed:
            return "completed"
        return "open"


def occurrence_from_template(template: MaintenanceTemplate, due: date, next_due: date) -> TaskInstance:
    """Build (unsaved) the occurrence of `template` due on `due`."""
    return TaskInstance(
        id="",
        title=template.title,
        notes=template.notes,
        due_date=due,
        next_due_date=next_due,
        completed=False,
        is_recurring=True,
        recurrence_months=max(MIN_RECURRENCE_MONTHS, template.cadence_months),
        template_id=template.id,
        asset_id=template.asset_id,
        account_id=template.account_id,
    )


def follow_up_for(task: TaskInstance) -> TaskInstance | None:
    """
    Build (unsaved) the occurrence that follows a completed recurring task.

    Returns None when the task carries no preview date to derive it from.
    """
    if not task.next_due_date or not task.has_recurrence:
        return None
    due = adjust_to_next_business_day(task.next_due_date)
    return TaskInstance(
        id="",
        title=task.title,
        notes=task.notes,
        due_date=due,
        next_due_date=adjust_to_next_business_day(add_months(due, task.recurrence_months)),
        completed=False,
        is_recurring=True,
        recurrence_months=task.recurrence_months,
        template_id=task.template_id,
        asset_id=task.asset_id,
        account_id=task.account_id,
        previous_task_id=task.id,
    )


@dataclass
class TemplateRunDetail:
    """What one generator run did for one template."""

    template_id: str
    created: int = 0
    next_due: date | None = None
    skipped_reason: str | None = None
    error: str | None = None
    capped: bool = False

    def to_dict(self) -> dict:
        data = {
            "templateId": self.template_id,
            "created": self.created,
            "nextDue": self.next_due.isoformat() if self.next_due else None,
        }
        if self.skipped_reason:
            data["skippedReason"] = self.skipped_reason
        if self.error:
            data["error"] = self.error
        if self.capped:
            data["capped"] = True
        return data


@dataclass
class SchedulerResult:
    """Summary of a generator run across templates."""

    processed: int = 0
    created: int = 0
    templates: list[TemplateRunDetail] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "created": self.created,
            "templates": [t.to_dict() for t in self.templates],
        }


def filter_by_status(tasks: list[TaskInstance], status: str) -> list[TaskInstance]:
    """Filter tasks to open, completed or cancelled; 'all' keeps everything."""
    if status == "all":
        return list(tasks)
    return [t for t in tasks if t.status_label() == status]


def sort_by_due(tasks: list[TaskInstance]) -> list[TaskInstance]:
    """Sort by due date ascending, undated tasks last."""
    return sorted(tasks, key=lambda t: (t.due_date is None, t.due_date or date.max, t.title))
