"""Shared fixtures."""

from datetime import date, datetime

import pytest

from upkeep.adapters.activity_log import SqliteActivityLog
from upkeep.adapters.sqlite_store import SqliteMaintenanceStore
from upkeep.core.maintenance import MaintenanceTemplate

from .fakes import FakeMaintenanceStore, RecordingAuditLog

ACCOUNT = "acct-1"
NOW = datetime(2024, 1, 1, 9, 30)  # a Monday


@pytest.fixture
def store():
    return FakeMaintenanceStore()


@pytest.fixture
def audit_log():
    return RecordingAuditLog()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "upkeep.sqlite3"


@pytest.fixture
def sqlite_store(db_path):
    return SqliteMaintenanceStore(db_path)


@pytest.fixture
def activity_log(db_path):
    return SqliteActivityLog(db_path)


def make_template(**overrides) -> MaintenanceTemplate:
    values = dict(
        id="",
        account_id=ACCOUNT,
        title="Service boiler",
        cadence_months=3,
        lead_time_days=7,
        start_date=date(2024, 1, 1),
    )
    values.update(overrides)
    return MaintenanceTemplate(**values)
