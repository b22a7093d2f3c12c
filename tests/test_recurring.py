"""Tests for recurring task transitions."""

from dataclasses import replace
from datetime import date

import pytest

from upkeep.core.maintenance import REOPEN_CANCEL_REASON, TaskInstance, occurrence_from_template
from upkeep.recurring import handle_recurring_transition

from .conftest import ACCOUNT, NOW, make_template


def _recurring_task(**overrides) -> TaskInstance:
    values = dict(
        id="",
        title="Clean gutters",
        due_date=date(2024, 1, 1),
        next_due_date=date(2024, 4, 1),
        is_recurring=True,
        recurrence_months=3,
        account_id=ACCOUNT,
    )
    values.update(overrides)
    return TaskInstance(**values)


def _apply(store, before, **changes):
    """Save an edit the way the workflow layer does, then run the transition."""
    after = replace(before, **changes)
    with store.transaction() as repo:
        repo.save_task(after)
        return handle_recurring_transition(repo, before, after, now=NOW)


@pytest.fixture
def task(store):
    return store.session.create_task(_recurring_task())


class TestInertCases:
    def test_non_recurring_task_untouched(self, store):
        before = store.session.create_task(_recurring_task(is_recurring=False, recurrence_months=None, next_due_date=None))
        result = _apply(store, before, completed=True)

        assert result.follow_up is None
        assert result.next_due_date is None
        assert len(store.tasks) == 1

    def test_cancelled_task_untouched(self, store, task):
        cancelled = replace(task, cancelled_at=NOW, cancel_reason="Cancelled manually")
        store.session.save_task(cancelled)

        result = _apply(store, cancelled, completed=True)

        assert result.follow_up is None
        assert len(store.tasks) == 1

    def test_zero_recurrence_is_inert(self, store):
        before = store.session.create_task(_recurring_task(recurrence_months=0, next_due_date=None))
        result = _apply(store, before, completed=True)
        assert result.follow_up is None
        assert len(store.tasks) == 1


class TestPreviewRefresh:
    def test_fills_missing_preview(self, store):
        before = store.session.create_task(_recurring_task(next_due_date=None))
        result = _apply(store, before, title="Clean gutters and drains")

        assert result.preview_refreshed
        assert result.next_due_date == date(2024, 4, 1)
        assert store.session.get_task(before.id).next_due_date == date(2024, 4, 1)

    def test_moves_weekend_preview(self, store):
        # 2024-08-31 is a Saturday
        before = store.session.create_task(_recurring_task(next_due_date=date(2024, 8, 31)))
        result = _apply(store, before, notes="ladder in garage")

        assert result.preview_refreshed
        assert store.session.get_task(before.id).next_due_date == date(2024, 9, 2)

    def test_up_to_date_preview_not_rewritten(self, store, task):
        result = _apply(store, task, notes="ladder in garage")
        assert not result.preview_refreshed
        assert result.next_due_date == date(2024, 4, 1)


class TestCompletion:
    def test_spawns_follow_up(self, store, task):
        result = _apply(store, task, completed=True)

        follow_up = result.follow_up
        assert follow_up is not None
        assert follow_up.due_date == date(2024, 4, 1)
        assert follow_up.next_due_date == date(2024, 7, 1)
        assert follow_up.previous_task_id == task.id
        assert follow_up.recurrence_months == 3
        assert follow_up.account_id == ACCOUNT
        assert follow_up.is_open
        assert len(store.tasks) == 2

    def test_already_completed_spawns_nothing(self, store, task):
        _apply(store, task, completed=True)
        done = store.session.get_task(task.id)

        result = _apply(store, done, title="Clean gutters again")

        assert result.follow_up is None
        assert len(store.tasks) == 2

    def test_advances_template(self, store):
        template = store.session.create_template(make_template())
        occurrence = store.session.create_task(
            occurrence_from_template(template, date(2024, 1, 1), date(2024, 4, 1))
        )

        result = _apply(store, occurrence, completed=True)

        assert result.follow_up.template_id == template.id
        stored = store.session.get_template(template.id)
        assert stored.last_generated_at == date(2024, 4, 1)
        assert stored.next_scheduled_at == date(2024, 7, 1)

    def test_slot_already_filled_by_generator(self, store):
        template = store.session.create_template(make_template(next_scheduled_at=date(2024, 7, 1)))
        first = store.session.create_task(occurrence_from_template(template, date(2024, 1, 1), date(2024, 4, 1)))
        store.session.create_task(occurrence_from_template(template, date(2024, 4, 1), date(2024, 7, 1)))

        result = _apply(store, first, completed=True)

        assert result.follow_up is None
        assert len([t for t in store.tasks if t.due_date == date(2024, 4, 1)]) == 1
        assert store.session.get_template(template.id).next_scheduled_at == date(2024, 7, 1)


class TestReopen:
    def test_cancels_follow_up(self, store, task):
        follow_up = _apply(store, task, completed=True).follow_up
        done = store.session.get_task(task.id)

        result = _apply(store, done, completed=False)

        assert result.cancelled.id == follow_up.id
        stored = store.session.get_task(follow_up.id)
        assert stored.cancelled_at == NOW
        assert stored.cancel_reason == REOPEN_CANCEL_REASON
        assert store.session.get_task(task.id).is_open

    def test_leaves_unrelated_task_on_same_date(self, store, task):
        other = store.session.create_task(_recurring_task(title="Clean gutters", due_date=date(2024, 4, 1)))
        _apply(store, task, completed=True)
        done = store.session.get_task(task.id)

        _apply(store, done, completed=False)

        assert store.session.get_task(other.id).is_open

    def test_without_follow_up_cancels_nothing(self, store, task):
        done = replace(task, completed=True)
        store.session.save_task(done)

        result = _apply(store, done, completed=False)

        assert result.cancelled is None

    def test_complete_reopen_complete_restores_follow_up(self, store, task):
        first = _apply(store, task, completed=True).follow_up
        _apply(store, store.session.get_task(task.id), completed=False)

        result = _apply(store, store.session.get_task(task.id), completed=True)

        assert result.follow_up.id == first.id
        assert store.session.get_task(first.id).is_open
        assert len(store.tasks) == 2

    def test_round_trip_with_template(self, store):
        template = store.session.create_template(make_template())
        occurrence = store.session.create_task(
            occurrence_from_template(template, date(2024, 1, 1), date(2024, 4, 1))
        )

        first = _apply(store, occurrence, completed=True).follow_up
        _apply(store, store.session.get_task(occurrence.id), completed=False)
        again = _apply(store, store.session.get_task(occurrence.id), completed=True).follow_up

        assert again.id == first.id
        open_in_slot = [t for t in store.tasks if t.due_date == date(2024, 4, 1) and t.is_open]
        assert len(open_in_slot) == 1
