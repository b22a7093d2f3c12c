"""Upkeep CLI - recurring maintenance."""

import json
import logging
import sys
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path

import click

from .adapters.activity_log import SqliteActivityLog
from .adapters.sqlite_store import SqliteMaintenanceStore
from .config import Config, load_config
from .core.maintenance import MaintenanceTemplate, SchedulerResult, TaskInstance
from .errors import UpkeepError
from .scheduler import run_maintenance_scheduler, run_template_scheduler
from . import workflows

DATE = click.DateTime(formats=["%Y-%m-%d"])


@dataclass
class Context:
    """Objects shared by every command."""

    config: Config
    store: SqliteMaintenanceStore
    audit_log: SqliteActivityLog
    account_id: str


def _fail(e: Exception) -> None:
    click.echo(f"Error: {e}", err=True)
    sys.exit(1)


def _as_date(value: datetime | None) -> date | None:
    return value.date() if value else None


@click.group()
@click.version_option(package_name="upkeep")
@click.option("--db", "db_path", type=click.Path(dir_okay=False, path_type=Path), help="SQLite database file")
@click.option("--account", "account_id", default=None, help="Account to act on")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx, db_path: Path | None, account_id: str | None, debug: bool):
    """Upkeep - recurring maintenance for properties, vehicles and assets."""
    if debug:
        logging.basicConfig(
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            level=logging.DEBUG,
        )
    config = load_config()
    if db_path:
        config.database_path = db_path
    if account_id:
        config.account_id = account_id
    try:
        store = SqliteMaintenanceStore(config.database_path)
        audit_log = SqliteActivityLog(config.database_path)
    except UpkeepError as e:
        _fail(e)
    ctx.obj = Context(config=config, store=store, audit_log=audit_log, account_id=config.account_id)


# ============== Output ==============


def _task_to_dict(t: TaskInstance) -> dict:
    return {
        "id": t.id,
        "title": t.title,
        "notes": t.notes,
        "due_date": t.due_date.isoformat() if t.due_date else None,
        "next_due_date": t.next_due_date.isoformat() if t.next_due_date else None,
        "status": t.status_label(),
        "recurrence_months": t.recurrence_months,
        "template_id": t.template_id,
        "asset_id": t.asset_id,
        "cancel_reason": t.cancel_reason,
    }


def _template_to_dict(t: MaintenanceTemplate) -> dict:
    return {
        "id": t.id,
        "title": t.title,
        "cadence_months": t.cadence_months,
        "lead_time_days": t.lead_time_days,
        "start_date": t.start_date.isoformat() if t.start_date else None,
        "asset_id": t.asset_id,
        "active": t.active,
        "last_generated_at": t.last_generated_at.isoformat() if t.last_generated_at else None,
        "next_scheduled_at": t.next_scheduled_at.isoformat() if t.next_scheduled_at else None,
    }


def _describe_cadence(months: int | None) -> str:
    if not months or months < 1:
        return "--"
    return "every month" if months == 1 else f"every {months} months"


def _show_tasks(tasks: list[TaskInstance], as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps([_task_to_dict(t) for t in tasks], indent=2))
        return

    if not tasks:
        click.echo("No tasks.")
        return

    for t in tasks:
        due = t.due_date.isoformat() if t.due_date else "no due date"
        recurring = f" ({_describe_cadence(t.recurrence_months)})" if t.is_recurring else ""
        click.echo(f"[{t.status_label():9}] {due:10}  {t.title}{recurring}  {t.id}")


def _show_result(result: SchedulerResult | None, as_json: bool = False) -> None:
    if result is None:
        return
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.echo(f"Processed {result.processed} template(s), created {result.created} task(s).")
    for detail in result.templates:
        if detail.error:
            click.echo(f"  {detail.template_id}: failed ({detail.error})")
        elif detail.skipped_reason:
            click.echo(f"  {detail.template_id}: skipped ({detail.skipped_reason})")
        else:
            next_due = detail.next_due.isoformat() if detail.next_due else "--"
            capped = ", iteration cap reached" if detail.capped else ""
            click.echo(f"  {detail.template_id}: created {detail.created}, next due {next_due}{capped}")


# ============== Scheduler ==============


@main.command()
@click.option("--lookahead", "lookahead_months", type=click.IntRange(min=1), default=None,
              help="Months ahead to generate (defaults to LOOKAHEAD_MONTHS)")
@click.option("--now", "now", type=DATE, default=None, help="Treat this date as today (YYYY-MM-DD)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def schedule(obj: Context, lookahead_months: int | None, now: datetime | None, as_json: bool):
    """Generate upcoming occurrences for all active templates."""
    try:
        result = run_maintenance_scheduler(
            obj.store,
            obj.audit_log,
            account_id=obj.account_id,
            lookahead_months=lookahead_months or obj.config.lookahead_months,
            now=now or datetime.now(),
        )
    except UpkeepError as e:
        _fail(e)
    _show_result(result, as_json)


@main.command()
@click.pass_obj
def serve(obj: Context):
    """Run the scheduler every day at SCHEDULER_TIME."""
    from .daemon import run_daemon

    click.echo(f"Starting scheduler daemon (daily at {obj.config.scheduler_time})...")
    click.echo("Press Ctrl+C to stop")
    try:
        run_daemon(obj.config)
    except ValueError as e:
        click.echo(f"Configuration error: {e}", err=True)
        sys.exit(1)
    except UpkeepError as e:
        _fail(e)
    except (KeyboardInterrupt, SystemExit):
        click.echo("\nScheduler stopped.")


# ============== Assets ==============


@main.group()
def asset():
    """Manage assets."""
    pass


@asset.command("add")
@click.argument("name")
@click.option("--status", default="Active", show_default=True)
@click.pass_obj
def asset_add(obj: Context, name: str, status: str):
    """Add an asset."""
    try:
        created = workflows.add_asset(obj.store, obj.account_id, name, status)
    except UpkeepError as e:
        _fail(e)
    click.echo(created.id)


@asset.command("status")
@click.argument("asset_id")
@click.argument("status")
@click.pass_obj
def asset_status(obj: Context, asset_id: str, status: str):
    """Change an asset's status (templates on non-Active assets are skipped)."""
    try:
        workflows.set_asset_status(obj.store, obj.account_id, asset_id, status)
    except UpkeepError as e:
        _fail(e)
    click.echo(f"Asset {asset_id} is now {status}.")


# ============== Tasks ==============


@main.group()
def task():
    """Manage maintenance tasks."""
    pass


@task.command("add")
@click.argument("title")
@click.option("--notes", default=None)
@click.option("--due", "due_date", type=DATE, default=None, help="Due date (YYYY-MM-DD)")
@click.option("--every", "recurrence_months", type=int, default=None, help="Repeat every N months")
@click.option("--asset", "asset_id", default=None)
@click.pass_obj
def task_add(obj: Context, title: str, notes: str | None, due_date: datetime | None,
             recurrence_months: int | None, asset_id: str | None):
    """Add a task."""
    try:
        created = workflows.create_task(
            obj.store,
            obj.account_id,
            title=title,
            notes=notes,
            due_date=_as_date(due_date),
            asset_id=asset_id,
            is_recurring=recurrence_months is not None,
            recurrence_months=recurrence_months,
        )
    except UpkeepError as e:
        _fail(e)
    click.echo(created.id)


@task.command("edit")
@click.argument("task_id")
@click.option("--title", default=None)
@click.option("--notes", default=None)
@click.option("--due", "due_date", type=DATE, default=None, help="Due date (YYYY-MM-DD)")
@click.option("--every", "recurrence_months", type=int, default=None, help="Repeat every N months")
@click.option("--no-repeat", is_flag=True, help="Stop repeating")
@click.option("--asset", "asset_id", default=None)
@click.pass_obj
def task_edit(obj: Context, task_id: str, title: str | None, notes: str | None, due_date: datetime | None,
              recurrence_months: int | None, no_repeat: bool, asset_id: str | None):
    """Edit a task; unspecified fields keep their current value."""
    try:
        current = workflows.get_task(obj.store, obj.account_id, task_id)
        is_recurring = False if no_repeat else (current.is_recurring or recurrence_months is not None)
        updated = workflows.update_task(
            obj.store,
            obj.account_id,
            task_id,
            title=title if title is not None else current.title,
            notes=notes if notes is not None else current.notes,
            due_date=_as_date(due_date),
            completed=current.completed,
            asset_id=asset_id if asset_id is not None else current.asset_id,
            is_recurring=is_recurring,
            recurrence_months=recurrence_months or current.recurrence_months,
            now=datetime.now(),
        )
    except UpkeepError as e:
        _fail(e)
    _show_tasks([updated], as_json=False)


@task.command("list")
@click.option("--status", type=click.Choice(workflows.TASK_STATUSES), default="open", show_default=True)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def task_list(obj: Context, status: str, as_json: bool):
    """List tasks."""
    try:
        tasks = workflows.list_tasks(obj.store, obj.account_id, status)
    except UpkeepError as e:
        _fail(e)
    _show_tasks(tasks, as_json)


@task.command("complete")
@click.argument("task_id")
@click.pass_obj
def task_complete(obj: Context, task_id: str):
    """Mark a task complete (recurring tasks get their next occurrence)."""
    try:
        result = workflows.complete_task(obj.store, obj.account_id, task_id, now=datetime.now())
    except UpkeepError as e:
        _fail(e)
    if result is None:
        click.echo("Cancelled tasks cannot be updated.")
        return
    click.echo(f"Task {task_id} completed.")
    if result.follow_up:
        click.echo(f"Next occurrence {result.follow_up.id} due {result.follow_up.due_date}.")


@task.command("reopen")
@click.argument("task_id")
@click.pass_obj
def task_reopen(obj: Context, task_id: str):
    """Reopen a completed task (its follow-up occurrence is cancelled)."""
    try:
        result = workflows.reopen_task(obj.store, obj.account_id, task_id, now=datetime.now())
    except UpkeepError as e:
        _fail(e)
    if result is None:
        click.echo("Cancelled tasks cannot be updated.")
        return
    click.echo(f"Task {task_id} reopened.")
    if result.cancelled:
        click.echo(f"Cancelled follow-up {result.cancelled.id} due {result.cancelled.due_date}.")


@task.command("cancel")
@click.argument("task_id")
@click.option("--reason", default="Cancelled manually", show_default=True)
@click.pass_obj
def task_cancel(obj: Context, task_id: str, reason: str):
    """Cancel a task."""
    try:
        workflows.cancel_task(obj.store, obj.account_id, task_id, now=datetime.now(), reason=reason)
    except UpkeepError as e:
        _fail(e)
    click.echo(f"Task {task_id} cancelled.")


@task.command("restore")
@click.argument("task_id")
@click.pass_obj
def task_restore(obj: Context, task_id: str):
    """Restore a cancelled task."""
    try:
        workflows.restore_task(obj.store, obj.account_id, task_id)
    except UpkeepError as e:
        _fail(e)
    click.echo(f"Task {task_id} restored.")


@task.command("delete")
@click.argument("task_id")
@click.confirmation_option(prompt="Delete this task?")
@click.pass_obj
def task_delete(obj: Context, task_id: str):
    """Delete a task."""
    try:
        workflows.delete_task(obj.store, obj.account_id, task_id)
    except UpkeepError as e:
        _fail(e)
    click.echo(f"Task {task_id} deleted.")


# ============== Templates ==============


@main.group()
def template():
    """Manage recurring maintenance templates."""
    pass


@template.command("add")
@click.argument("title")
@click.option("--every", "cadence_months", type=int, required=True, help="Cadence in months")
@click.option("--lead-days", "lead_time_days", type=int, default=0, show_default=True,
              help="Days before the due date the task becomes visible")
@click.option("--start", "start_date", type=DATE, default=None, help="First due date (YYYY-MM-DD)")
@click.option("--asset", "asset_id", default=None)
@click.option("--notes", default=None)
@click.option("--inactive", is_flag=True, help="Create without generating tasks")
@click.pass_obj
def template_add(obj: Context, title: str, cadence_months: int, lead_time_days: int,
                 start_date: datetime | None, asset_id: str | None, notes: str | None, inactive: bool):
    """Add a template and generate its first occurrences."""
    try:
        created, result = workflows.create_template(
            obj.store,
            obj.account_id,
            title=title,
            cadence_months=cadence_months,
            notes=notes,
            lead_time_days=lead_time_days,
            start_date=_as_date(start_date),
            asset_id=asset_id,
            active=not inactive,
            now=datetime.now(),
            audit_log=obj.audit_log,
        )
    except UpkeepError as e:
        _fail(e)
    click.echo(created.id)
    _show_result(result)


@template.command("edit")
@click.argument("template_id")
@click.option("--title", default=None)
@click.option("--every", "cadence_months", type=int, default=None, help="Cadence in months")
@click.option("--lead-days", "lead_time_days", type=int, default=None)
@click.option("--start", "start_date", type=DATE, default=None, help="First due date (YYYY-MM-DD)")
@click.option("--no-start", is_flag=True, help="Clear the first due date")
@click.option("--asset", "asset_id", default=None)
@click.option("--notes", default=None)
@click.option("--active/--inactive", default=None)
@click.pass_obj
def template_edit(obj: Context, template_id: str, title: str | None, cadence_months: int | None,
                  lead_time_days: int | None, start_date: datetime | None, asset_id: str | None,
                  no_start: bool, notes: str | None, active: bool | None):
    """Edit a template; unspecified fields keep their current value."""
    try:
        current = workflows.get_template(obj.store, obj.account_id, template_id)
        _, result = workflows.update_template(
            obj.store,
            obj.account_id,
            template_id,
            title=title if title is not None else current.title,
            cadence_months=cadence_months if cadence_months is not None else current.cadence_months,
            notes=notes if notes is not None else current.notes,
            lead_time_days=lead_time_days if lead_time_days is not None else current.lead_time_days,
            start_date=None if no_start else (_as_date(start_date) or current.start_date),
            asset_id=asset_id if asset_id is not None else current.asset_id,
            active=active if active is not None else current.active,
            now=datetime.now(),
            audit_log=obj.audit_log,
        )
    except UpkeepError as e:
        _fail(e)
    click.echo(f"Template {template_id} updated.")
    _show_result(result)


@template.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def template_list(obj: Context, as_json: bool):
    """List templates."""
    try:
        templates = workflows.list_templates(obj.store, obj.account_id)
    except UpkeepError as e:
        _fail(e)
    if as_json:
        click.echo(json.dumps([_template_to_dict(t) for t in templates], indent=2))
        return

    if not templates:
        click.echo("No templates.")
        return

    for t in templates:
        state = "active" if t.active else "inactive"
        next_due = t.next_scheduled_at.isoformat() if t.next_scheduled_at else "--"
        click.echo(f"[{state:8}] {t.title} ({_describe_cadence(t.cadence_months)}), next {next_due}  {t.id}")


@template.command("run")
@click.argument("template_id")
@click.option("--now", "now", type=DATE, default=None, help="Treat this date as today (YYYY-MM-DD)")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def template_run(obj: Context, template_id: str, now: datetime | None, as_json: bool):
    """Generate occurrences for one template, one cadence ahead."""
    try:
        result = run_template_scheduler(
            obj.store,
            template_id,
            obj.audit_log,
            account_id=obj.account_id,
            now=now or datetime.now(),
        )
    except UpkeepError as e:
        _fail(e)
    _show_result(result, as_json)


# ============== Activity ==============


@main.command("log")
@click.option("--limit", type=click.IntRange(min=1), default=20, show_default=True)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def activity_log(obj: Context, limit: int, as_json: bool):
    """Show recent activity."""
    try:
        entries = obj.audit_log.recent(limit)
    except UpkeepError as e:
        _fail(e)
    if as_json:
        click.echo(json.dumps(entries, indent=2))
        return

    if not entries:
        click.echo("No activity.")
        return

    for entry in entries:
        details = entry["details"]
        due = f" due {details['dueDate']}" if isinstance(details, dict) and details.get("dueDate") else ""
        click.echo(f"{entry['created_at'][:19]}  {entry['action']} {entry['entity_type']} {entry['entity_id']}{due}")


if __name__ == "__main__":
    main()
