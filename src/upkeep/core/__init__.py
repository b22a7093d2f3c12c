"""Functional core - pure business logic with no I/O."""

from .dates import adjust_to_next_business_day, compute_next_due_date, add_months, is_business_day, start_of_day
from .maintenance import (
    Asset,
    MaintenanceTemplate,
    TaskInstance,
    SchedulerResult,
    TemplateRunDetail,
    follow_up_for,
    occurrence_from_template,
)

__all__ = [
    # Dates
    "adjust_to_next_business_day",
    "compute_next_due_date",
    "add_months",
    "is_business_day",
    "start_of_day",
    # Maintenance
    "Asset",
    "MaintenanceTemplate",
    "TaskInstance",
    "SchedulerResult",
    "TemplateRunDetail",
    "follow_up_for",
    "occurrence_from_template",
]
