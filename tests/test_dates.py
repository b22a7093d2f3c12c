"""Tests for the date rules."""

from datetime import date, datetime, timedelta

import pytest

from upkeep.core.dates import (
    add_months,
    adjust_to_next_business_day,
    compute_next_due_date,
    is_business_day,
    start_of_day,
)


class TestAdjustToNextBusinessDay:
    def test_saturday_moves_to_monday(self):
        assert adjust_to_next_business_day(date(2024, 6, 1)) == date(2024, 6, 3)

    def test_sunday_moves_to_monday(self):
        assert adjust_to_next_business_day(date(2024, 6, 2)) == date(2024, 6, 3)

    def test_weekday_unchanged(self):
        assert adjust_to_next_business_day(date(2024, 6, 5)) == date(2024, 6, 5)

    def test_drops_time_of_day(self):
        assert adjust_to_next_business_day(datetime(2024, 6, 1, 18, 45)) == date(2024, 6, 3)

    def test_idempotent_over_a_year(self):
        d = date(2024, 1, 1)
        for _ in range(366):
            once = adjust_to_next_business_day(d)
            assert adjust_to_next_business_day(once) == once
            assert is_business_day(once)
            d += timedelta(days=1)


class TestAddMonths:
    def test_clamps_to_end_of_february_leap_year(self):
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)

    def test_clamps_to_end_of_february(self):
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)

    def test_crosses_year(self):
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)

    def test_accepts_datetime(self):
        assert add_months(datetime(2024, 1, 1, 12), 1) == date(2024, 2, 1)


class TestStartOfDay:
    def test_datetime(self):
        assert start_of_day(datetime(2024, 3, 5, 23, 59)) == date(2024, 3, 5)

    def test_date_passes_through(self):
        assert start_of_day(date(2024, 3, 5)) == date(2024, 3, 5)


class TestComputeNextDueDate:
    def test_adds_recurrence_and_adjusts(self):
        # 2024-03-02 is a Saturday
        assert compute_next_due_date(date(2024, 1, 2), 2) == date(2024, 3, 4)

    def test_plain_weekday(self):
        assert compute_next_due_date(date(2024, 1, 1), 3) == date(2024, 4, 1)

    def test_cached_preview_wins(self):
        assert compute_next_due_date(date(2024, 1, 1), 3, date(2024, 5, 15)) == date(2024, 5, 15)

    def test_cached_preview_is_adjusted(self):
        # 2024-08-31 is a Saturday
        assert compute_next_due_date(date(2024, 1, 1), 3, date(2024, 8, 31)) == date(2024, 9, 2)

    @pytest.mark.parametrize("months", [None, 0, -1])
    def test_no_recurrence(self, months):
        assert compute_next_due_date(date(2024, 1, 1), months) is None

    def test_no_due_date(self):
        assert compute_next_due_date(None, 3) is None

    def test_result_is_business_day(self):
        d = date(2024, 1, 1)
        for _ in range(60):
            assert is_business_day(compute_next_due_date(d, 1))
            d += timedelta(days=1)
