"""Automation types.

Public types:
- AutomationDefinition: A persisted automation bound to a schedule
- AutomationRun: One execution attempt of an automation
- ActionContext: Per-execution context handed to action handlers
- ActionFunc: Async handler signature for an action type
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


class ScheduleKind(StrEnum):
    """Recurrence model of an automation."""

    INTERVAL = "interval"
    ONESHOT = "oneshot"
    CRON = "cron"


class RunStatus(StrEnum):
    """Allowed run statuses."""

    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class AutomationDefinition:
    """A named automation bound to a schedule and an action type."""

    name: str
    action_type: str
    schedule_kind: str
    schedule_expr: str
    timezone: str = "UTC"
    # Action-specific config, never interpreted by the scheduler
    payload: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    # None means "nothing pending": spent, in flight, or orphaned
    next_run_at: datetime | None = None
    last_run_at: datetime | None = None
    id: int | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_oneshot(self) -> bool:
        return self.schedule_kind.strip().lower() == ScheduleKind.ONESHOT


@dataclass
class AutomationRun:
    """One execution attempt of an automation."""

    id: int
    automation_id: int
    # The due instant that triggered the run, not the wall-clock start
    scheduled_at: datetime
    started_at: datetime
    status: RunStatus = RunStatus.RUNNING
    finished_at: datetime | None = None
    error: str | None = None
    output: str | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


@dataclass
class ActionContext:
    """Context handed to an action handler for a single execution."""

    run_id: int
    scheduled_at: datetime
    cancelled: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled.is_set()


# Handler receives the full definition, payload included, and returns output text
ActionFunc = Callable[[ActionContext, AutomationDefinition], Awaitable[str | None]]
