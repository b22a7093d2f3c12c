"""Pure date rules for recurring maintenance - no I/O, no clock."""

from datetime import date, datetime, timedelta

from dateutil.relativedelta import relativedelta

SATURDAY = 5
SUNDAY = 6


def start_of_day(value: date | datetime) -> date:
    """Drop the time component of a datetime; dates pass through."""
    if isinstance(value, datetime):
        return value.date()
    return value


def add_months(value: date | datetime, months: int) -> date:
    """Add calendar months, clamping to the end of shorter months (Jan 31 + 1 -> Feb 28/29)."""
    return start_of_day(value) + relativedelta(months=months)


def adjust_to_next_business_day(value: date | datetime) -> date:
    """
    Move a weekend date to the following Monday.

    Saturday advances 2 days, Sunday 1 day, weekdays are unchanged.
    Public holidays are not modeled.
    """
    result = start_of_day(value)
    weekday = result.weekday()
    if weekday == SATURDAY:
        return result + timedelta(days=2)
    if weekday == SUNDAY:
        return result + timedelta(days=1)
    return result


def is_business_day(value: date | datetime) -> bool:
    return start_of_day(value).weekday() < SATURDAY


def compute_next_due_date(
    due_date: date | None,
    recurrence_months: int | None,
    cached_next_due_date: date | None = None,
) -> date | None:
    """
    Preview of the occurrence that follows `due_date`.

    Returns None when there is no usable recurrence. A cached preview wins over
    the derived one (it may have been set explicitly), but is still moved off
    a weekend.
    """
    if not recurrence_months or recurrence_months < 1:
        return None
    if cached_next_due_date:
        return adjust_to_next_business_day(cached_next_due_date)
    if not due_date:
        return None
    return adjust_to_next_business_day(add_months(due_date, recurrence_months))
