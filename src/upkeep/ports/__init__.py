"""Ports - interfaces/protocols for external dependencies."""

from .maintenance_repo import MaintenanceRepository, MaintenanceStore
from .audit_log import AuditLog

__all__ = [
    "MaintenanceRepository",
    "MaintenanceStore",
    "AuditLog",
]
