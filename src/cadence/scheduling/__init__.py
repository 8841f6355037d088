"""Scheduling subsystem - persisted automations and their execution.

Public API:
- next_run: Next due instant for an interval, oneshot or cron schedule
- AutomationStore: SQL-backed definitions, run history, atomic claims
- ActionRegistry: Action-type name to handler mapping
- AutomationScheduler: Polling loop that claims and executes due automations
- AutomationService: Validated administrative operations

Types:
- AutomationDefinition: A persisted automation
- AutomationRun: One execution attempt
- ActionContext / ActionFunc: Handler context and signature
"""

from cadence.scheduling.calculator import next_run, validate_schedule
from cadence.scheduling.errors import (
    AutomationNotFoundError,
    AutomationValidationError,
    ScheduleError,
)
from cadence.scheduling.registry import ActionRegistry
from cadence.scheduling.scheduler import AutomationScheduler
from cadence.scheduling.service import AutomationService
from cadence.scheduling.store import AutomationStore
from cadence.scheduling.types import (
    ActionContext,
    ActionFunc,
    AutomationDefinition,
    AutomationRun,
    RunStatus,
    ScheduleKind,
)

__all__ = [
    "ActionContext",
    "ActionFunc",
    "ActionRegistry",
    "AutomationDefinition",
    "AutomationNotFoundError",
    "AutomationRun",
    "AutomationScheduler",
    "AutomationService",
    "AutomationStore",
    "AutomationValidationError",
    "RunStatus",
    "ScheduleError",
    "ScheduleKind",
    "next_run",
    "validate_schedule",
]
