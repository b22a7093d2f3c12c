"""Maintenance template scheduler.

Walks every active template forward from where the previous run stopped and
creates the task occurrences that fall inside both the lookahead horizon and
their lead-time window. Creation is gated on an existence check at
(template_id, due_date), so repeated runs over the same inputs create nothing
new.
"""

import logging
from datetime import date, datetime, timedelta

from .core.dates import add_months, adjust_to_next_business_day, start_of_day
from .core.maintenance import (
    ASSET_ACTIVE,
    MIN_RECURRENCE_MONTHS,
    MaintenanceTemplate,
    SchedulerResult,
    TaskInstance,
    TemplateRunDetail,
    occurrence_from_template,
)
from .errors import ConfigurationError, DuplicateOccurrenceError, NotFoundError
from .ports.audit_log import AuditLog
from .ports.maintenance_repo import MaintenanceRepository, MaintenanceStore

logger = logging.getLogger(__name__)

DEFAULT_LOOKAHEAD_MONTHS = 12
# ~4 years of a quarterly cadence; bounds pathological cadence/horizon combinations
MAX_ITERATIONS_PER_TEMPLATE = 48


def run_maintenance_scheduler(
    store: MaintenanceStore,
    audit_log: AuditLog | None = None,
    *,
    account_id: str | None = None,
    lookahead_months: int = DEFAULT_LOOKAHEAD_MONTHS,
    now: date | datetime | None = None,
    template_ids: list[str] | None = None,
) -> SchedulerResult:
    """
    Generate missing occurrences for active templates.

    Each template is processed in its own transaction. A template that fails
    is rolled back and reported on its detail entry; the rest of the batch
    still runs.
    """
    today = start_of_day(now or date.today())
    horizon = add_months(today, lookahead_months)

    with store.transaction() as repo:
        templates = repo.list_active_templates(account_id)
    if template_ids is not None:
        templates = [t for t in templates if t.id in template_ids]

    result = SchedulerResult(processed=len(templates))
    logger.info(
        f"Scheduling {len(templates)} template(s) account={account_id or '*'} "
        f"now={today} horizon={horizon}"
    )

    for template in templates:
        detail = TemplateRunDetail(template_id=template.id)
        created: list[TaskInstance] = []
        try:
            with store.transaction() as repo:
                created = _schedule_template(repo, template, detail, today, horizon)
        except Exception as e:
            logger.exception(f"Scheduling template {template.id} failed")
            detail.error = str(e)
            detail.created = 0
            detail.next_due = None
            detail.capped = False
            created = []

        result.created += detail.created
        result.templates.append(detail)

        if audit_log is not None:
            _record_creations(audit_log, template, created)

    logger.info(f"Scheduler run done: processed={result.processed} created={result.created}")
    return result


def run_template_scheduler(
    store: MaintenanceStore,
    template_id: str,
    audit_log: AuditLog | None = None,
    *,
    account_id: str | None = None,
    now: date | datetime | None = None,
) -> SchedulerResult:
    """Run the scheduler for a single template, looking ahead one cadence."""
    with store.transaction() as repo:
        template = repo.get_template(template_id)
    if template is None or (account_id and template.account_id != account_id):
        raise NotFoundError(f"Template {template_id} not found")

    return run_maintenance_scheduler(
        store,
        audit_log,
        account_id=template.account_id,
        lookahead_months=max(MIN_RECURRENCE_MONTHS, template.cadence_months),
        now=now,
        template_ids=[template.id],
    )


def _schedule_template(
    repo: MaintenanceRepository,
    template: MaintenanceTemplate,
    detail: TemplateRunDetail,
    today: date,
    horizon: date,
) -> list[TaskInstance]:
    """Walk one template forward; returns the tasks created."""
    created: list[TaskInstance] = []

    skipped = _skip_reason(repo, template)
    if skipped:
        logger.info(f"Skipping template {template.id}: {skipped}")
        detail.skipped_reason = skipped
        return created

    try:
        _check_cadence(template)
    except ConfigurationError as e:
        logger.info(f"Skipping template {template.id}: {e}")
        detail.skipped_reason = str(e)
        return created

    cadence = template.cadence_months
    lead = timedelta(days=max(0, template.lead_time_days))
    due = template.initial_due_date(today)
    iterations = 0
    last_created_due: date | None = None
    stopped = False

    while due <= horizon and iterations < MAX_ITERATIONS_PER_TEMPLATE:
        iterations += 1
        if due - lead > today:
            # Outside its lead window; this becomes next_scheduled_at.
            stopped = True
            break

        next_candidate = adjust_to_next_business_day(add_months(due, cadence))

        if repo.find_task_by_template_due(template.id, due) is None:
            try:
                task = repo.create_task(occurrence_from_template(template, due, next_candidate))
            except DuplicateOccurrenceError:
                logger.info(f"Template {template.id}: occurrence on {due} created concurrently")
            else:
                logger.info(f"Template {template.id}: created task {task.id} due {due}")
                created.append(task)
                detail.created += 1
                last_created_due = due

        if next_candidate == due:
            stopped = True
            break
        due = next_candidate

    if not stopped and due <= horizon:
        detail.capped = True
        logger.warning(
            f"Template {template.id} hit the {MAX_ITERATIONS_PER_TEMPLATE} iteration cap; "
            f"resuming from {due} next run"
        )

    detail.next_due = due
    next_scheduled = due if template.next_scheduled_at != due else None
    if last_created_due or next_scheduled:
        repo.update_template_schedule(
            template.id,
            last_generated_at=last_created_due,
            next_scheduled_at=next_scheduled,
        )
    return created


def _skip_reason(repo: MaintenanceRepository, template: MaintenanceTemplate) -> str | None:
    if not template.asset_id:
        return None
    status = repo.get_asset_status(template.asset_id)
    if status and status != ASSET_ACTIVE:
        return f"asset status {status}"
    return None


def _check_cadence(template: MaintenanceTemplate) -> None:
    if template.cadence_months is None or template.cadence_months <= 0:
        raise ConfigurationError("cadence_months must be greater than zero")


def _record_creations(audit_log: AuditLog, template: MaintenanceTemplate, tasks: list[TaskInstance]) -> None:
    """Best-effort audit; a failing sink never fails generation."""
    for task in tasks:
        try:
            audit_log.log_create(
                "MaintenanceTask",
                task.id,
                {"templateId": template.id, "dueDate": task.due_date.isoformat()},
            )
        except Exception as e:
            logger.warning(f"Audit log write failed for task {task.id}: {e}")
