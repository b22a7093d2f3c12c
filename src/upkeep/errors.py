"""Error types shared by the engine, the storage adapters and the CLI."""


class UpkeepError(Exception):
    """Base class for all upkeep errors."""

    pass


class ConfigurationError(UpkeepError):
    """Raised when a template cannot be scheduled as configured."""

    pass


class ValidationError(UpkeepError):
    """Raised when user input is rejected before anything is written."""

    pass


class NotFoundError(UpkeepError):
    """Raised when a task, template or asset is missing or belongs to another account."""

    pass


class TransactionError(UpkeepError):
    """Raised when a storage write fails; the surrounding transaction is rolled back."""

    pass


class DuplicateOccurrenceError(TransactionError):
    """Raised when an occurrence already exists for the same (template_id, due_date)."""

    def __init__(self, template_id: str, due_date):
        self.template_id = template_id
        self.due_date = due_date
        super().__init__(f"Occurrence already exists for template {template_id} on {due_date}")
