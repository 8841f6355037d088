"""Scheduling errors."""


class ScheduleError(ValueError):
    """A schedule kind, expression, or timezone cannot be evaluated."""


class AutomationValidationError(ValueError):
    """An automation definition is incomplete or unschedulable."""


class AutomationNotFoundError(LookupError):
    """No automation exists with the requested id."""

    def __init__(self, automation_id: int) -> None:
        super().__init__(f"automation not found: {automation_id}")
        self.automation_id = automation_id
