"""In-memory doubles for the storage and audit ports."""

import contextlib
import copy
import uuid
from dataclasses import replace
from datetime import date, datetime

from upkeep.core.maintenance import Asset, MaintenanceTemplate, TaskInstance
from upkeep.errors import DuplicateOccurrenceError


class _State:
    def __init__(self):
        self.assets: dict[str, Asset] = {}
        self.templates: dict[str, MaintenanceTemplate] = {}
        self.tasks: dict[str, TaskInstance] = {}


class FakeMaintenanceSession:
    """MaintenanceRepository over plain dicts."""

    def __init__(self, state: _State):
        self._s = state

    # templates

    def list_active_templates(self, account_id=None):
        templates = [
            t for t in self._s.templates.values() if t.active and (not account_id or t.account_id == account_id)
        ]
        return sorted(templates, key=lambda t: (t.next_scheduled_at is None, t.next_scheduled_at or date.max))

    def list_templates(self, account_id):
        return sorted((t for t in self._s.templates.values() if t.account_id == account_id), key=lambda t: t.title)

    def get_template(self, template_id):
        return self._s.templates.get(template_id)

    def create_template(self, template):
        template = replace(template, id=template.id or uuid.uuid4().hex)
        self._s.templates[template.id] = template
        return template

    def save_template(self, template):
        stored = self._s.templates[template.id]
        self._s.templates[template.id] = replace(
            template,
            last_generated_at=stored.last_generated_at,
            next_scheduled_at=stored.next_scheduled_at,
        )

    def update_template_schedule(self, template_id, *, last_generated_at=None, next_scheduled_at=None):
        t = self._s.templates[template_id]
        self._s.templates[template_id] = replace(
            t,
            last_generated_at=last_generated_at or t.last_generated_at,
            next_scheduled_at=next_scheduled_at or t.next_scheduled_at,
        )

    # assets

    def create_asset(self, asset):
        asset = replace(asset, id=asset.id or uuid.uuid4().hex)
        self._s.assets[asset.id] = asset
        return asset

    def get_asset(self, asset_id):
        return self._s.assets.get(asset_id)

    def get_asset_status(self, asset_id):
        asset = self._s.assets.get(asset_id)
        return asset.status if asset else None

    def set_asset_status(self, asset_id, status):
        self._s.assets[asset_id] = replace(self._s.assets[asset_id], status=status)

    # tasks

    def create_task(self, task):
        # Same guarantee as the unique (template_id, due_date) index.
        for t in self._s.tasks.values():
            if task.template_id and t.template_id == task.template_id and t.due_date == task.due_date:
                raise DuplicateOccurrenceError(task.template_id, task.due_date)
        task = replace(task, id=task.id or uuid.uuid4().hex)
        self._s.tasks[task.id] = task
        return task

    def get_task(self, task_id):
        return self._s.tasks.get(task_id)

    def save_task(self, task):
        self._s.tasks[task.id] = task

    def delete_task(self, task_id):
        self._s.tasks.pop(task_id, None)

    def list_tasks(self, account_id):
        return [t for t in self._s.tasks.values() if t.account_id == account_id]

    def find_task_by_template_due(self, template_id, due_date):
        for t in self._s.tasks.values():
            if t.template_id == template_id and t.due_date == due_date:
                return t
        return None

    def find_follow_up(self, previous_task_id, due_date):
        matches = [t for t in self._s.tasks.values() if t.previous_task_id == previous_task_id and t.due_date == due_date]
        return matches[-1] if matches else None

    def find_open_follow_up(self, *, template_id, asset_id, due_date, previous_task_id):
        for t in reversed(list(self._s.tasks.values())):
            if (
                t.template_id == template_id
                and t.asset_id == asset_id
                and t.due_date == due_date
                and t.previous_task_id == previous_task_id
                and t.is_recurring
                and t.is_open
            ):
                return t
        return None

    def set_next_due_date(self, task_id, next_due_date):
        self._s.tasks[task_id] = replace(self._s.tasks[task_id], next_due_date=next_due_date)

    def cancel_task(self, task_id, *, cancelled_at: datetime, reason: str):
        self._s.tasks[task_id] = replace(self._s.tasks[task_id], cancelled_at=cancelled_at, cancel_reason=reason)


class FakeMaintenanceStore:
    """MaintenanceStore whose transactions snapshot state and restore it on error."""

    def __init__(self):
        self.state = _State()
        self.transactions = 0

    @contextlib.contextmanager
    def transaction(self):
        self.transactions += 1
        snapshot = copy.deepcopy(self.state)
        try:
            yield FakeMaintenanceSession(self.state)
        except BaseException:
            self.state = snapshot
            raise

    @property
    def tasks(self) -> list[TaskInstance]:
        return list(self.state.tasks.values())

    @property
    def session(self) -> FakeMaintenanceSession:
        """Direct access for arranging test data."""
        return FakeMaintenanceSession(self.state)


class RecordingAuditLog:
    def __init__(self):
        self.entries: list[tuple] = []

    def log_create(self, entity_type, entity_id, details=None):
        self.entries.append((entity_type, entity_id, details))


class FailingAuditLog:
    def __init__(self):
        self.calls = 0

    def log_create(self, entity_type, entity_id, details=None):
        self.calls += 1
        raise RuntimeError("audit sink unavailable")
