"""Administrative operations on automations.

Everything that creates or edits a definition goes through here so that an
unschedulable definition is rejected before it is persisted.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Any

from cadence.scheduling.calculator import next_run, validate_schedule
from cadence.scheduling.errors import (
    AutomationNotFoundError,
    AutomationValidationError,
    ScheduleError,
)
from cadence.scheduling.types import (
    AutomationDefinition,
    AutomationRun,
    ScheduleKind,
    utc_now,
)

if TYPE_CHECKING:
    from cadence.config.models import SeedAutomation
    from cadence.scheduling.store import AutomationStore

logger = logging.getLogger(__name__)

_SCHEDULE_FIELDS = ("schedule_kind", "schedule_expr", "timezone")
_UPDATABLE_FIELDS = {
    "name",
    "action_type",
    "schedule_kind",
    "schedule_expr",
    "timezone",
    "payload",
    "enabled",
}


def parse_payload(payload: Any) -> dict[str, Any]:
    """Accept a dict or a JSON object string; anything else is rejected."""
    if payload is None or payload == "":
        return {}
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise AutomationValidationError(f"payload must be valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise AutomationValidationError("payload must be a JSON object")
    return payload


class AutomationService:
    """Validated CRUD over the automation store."""

    def __init__(self, store: AutomationStore) -> None:
        self._store = store

    @property
    def store(self) -> AutomationStore:
        return self._store

    async def create(
        self,
        name: str,
        action_type: str,
        schedule_kind: str,
        schedule_expr: str,
        timezone: str | None = None,
        payload: Any = None,
        enabled: bool = True,
        now: datetime | None = None,
    ) -> AutomationDefinition:
        """Validate and persist a new automation with its first due time.

        Raises:
            AutomationValidationError: If a field is missing or the schedule
                cannot be evaluated.
        """
        definition = AutomationDefinition(
            name=name,
            action_type=action_type,
            schedule_kind=schedule_kind,
            schedule_expr=schedule_expr,
            timezone=timezone or "UTC",
            payload=parse_payload(payload),
            enabled=enabled,
        )
        self._normalize(definition)
        definition.next_run_at = self._first_run(definition, now or utc_now())

        await self._store.create_automation(definition)
        return definition

    async def update(
        self,
        automation_id: int,
        now: datetime | None = None,
        **changes: Any,
    ) -> AutomationDefinition:
        """Apply changes and recompute the next due time from now.

        Recomputing also restores a next run for automations left without
        one after a failed schedule calculation.

        Raises:
            AutomationNotFoundError: If the automation does not exist.
            AutomationValidationError: If the result would be invalid.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise AutomationValidationError(
                f"Unknown field(s): {', '.join(sorted(unknown))}"
            )

        current = await self.get(automation_id)
        updates = {k: v for k, v in changes.items() if v is not None}
        if "payload" in updates:
            updates["payload"] = parse_payload(updates["payload"])
        updated = replace(current, **updates)
        self._normalize(updated)

        schedule_changed = any(
            getattr(updated, f) != getattr(current, f) for f in _SCHEDULE_FIELDS
        )
        now = now or utc_now()
        if schedule_changed:
            updated.next_run_at = self._first_run(updated, now)
        else:
            updated.next_run_at = self._compute(updated, now)

        if not await self._store.update_automation(updated):
            raise AutomationNotFoundError(automation_id)
        logger.info(
            "automation_updated",
            extra={
                "automation.id": automation_id,
                "automation.fields": sorted(updates),
            },
        )
        return updated

    async def get(self, automation_id: int) -> AutomationDefinition:
        definition = await self._store.get_automation(automation_id)
        if definition is None:
            raise AutomationNotFoundError(automation_id)
        return definition

    async def list_all(self) -> list[AutomationDefinition]:
        return await self._store.list_automations()

    async def delete(self, automation_id: int) -> None:
        if not await self._store.delete_automation(automation_id):
            raise AutomationNotFoundError(automation_id)
        logger.info("automation_deleted", extra={"automation.id": automation_id})

    async def trigger_now(
        self, automation_id: int, now: datetime | None = None
    ) -> None:
        """Make an automation due on the next poll, regardless of schedule."""
        if not await self._store.trigger_now(automation_id, now or utc_now()):
            raise AutomationNotFoundError(automation_id)
        logger.info("automation_triggered_now", extra={"automation.id": automation_id})

    async def list_runs(
        self, automation_id: int | None = None, limit: int = 20
    ) -> list[AutomationRun]:
        if automation_id is not None:
            await self.get(automation_id)
        return await self._store.list_runs(automation_id, limit=limit)

    async def ensure_seeded(
        self, seeds: Iterable[SeedAutomation], now: datetime | None = None
    ) -> list[AutomationDefinition]:
        """Create configured default automations whose name is not stored yet."""
        created: list[AutomationDefinition] = []
        for seed in seeds:
            if await self._store.get_automation_by_name(seed.name) is not None:
                continue
            definition = await self.create(
                name=seed.name,
                action_type=seed.action_type,
                schedule_kind=seed.schedule_kind,
                schedule_expr=seed.schedule_expr,
                timezone=seed.timezone,
                payload=seed.payload,
                enabled=seed.enabled,
                now=now,
            )
            logger.info(
                "automation_seeded",
                extra={"automation.id": definition.id, "automation.name": seed.name},
            )
            created.append(definition)
        return created

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize(definition: AutomationDefinition) -> None:
        definition.name = definition.name.strip()
        definition.action_type = definition.action_type.strip()
        definition.schedule_kind = definition.schedule_kind.strip().lower()
        definition.schedule_expr = definition.schedule_expr.strip()
        definition.timezone = definition.timezone.strip() or "UTC"

        missing = [
            f
            for f in ("name", "action_type", "schedule_kind", "schedule_expr")
            if not getattr(definition, f)
        ]
        if missing:
            raise AutomationValidationError(
                "name, action_type, schedule_kind and schedule_expr are required "
                f"(missing: {', '.join(missing)})"
            )
        try:
            validate_schedule(
                definition.schedule_kind,
                definition.schedule_expr,
                definition.timezone,
            )
        except ScheduleError as e:
            raise AutomationValidationError(f"invalid schedule: {e}") from e

    def _first_run(
        self, definition: AutomationDefinition, now: datetime
    ) -> datetime | None:
        next_run_at = self._compute(definition, now)
        if next_run_at is None and definition.schedule_kind == ScheduleKind.ONESHOT:
            raise AutomationValidationError(
                "invalid schedule: oneshot time must be in the future"
            )
        return next_run_at

    @staticmethod
    def _compute(definition: AutomationDefinition, now: datetime) -> datetime | None:
        try:
            return next_run(
                definition.schedule_kind,
                definition.schedule_expr,
                definition.timezone,
                now,
            )
        except ScheduleError as e:
            raise AutomationValidationError(f"invalid schedule: {e}") from e
