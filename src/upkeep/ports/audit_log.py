"""Audit log interface."""

from typing import Any, Protocol


class AuditLog(Protocol):
    """Append-only record of entity changes."""

    def log_create(self, entity_type: str, entity_id: str, details: dict[str, Any] | None = None) -> None:
        """Record that an entity was created."""
        ...
