"""Automation store backed by SQL tables.

Definitions live in ``automations`` and execution history in
``automation_runs``. The scheduler only relies on three operations:
``claim_due``, ``insert_run`` and ``complete_run``; the rest is the
administrative surface.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import text

from cadence.scheduling.types import (
    AutomationDefinition,
    AutomationRun,
    RunStatus,
    utc_now,
)

if TYPE_CHECKING:
    from cadence.db.engine import Database

logger = logging.getLogger(__name__)

_AUTOMATION_COLUMNS = (
    "id, name, action_type, schedule_kind, schedule_expr, timezone, payload, "
    "enabled, next_run_at, claimed_due_at, last_run_at, created_at, updated_at"
)

_RUN_COLUMNS = (
    "id, automation_id, scheduled_at, started_at, finished_at, status, error, output"
)


def format_timestamp(value: datetime | None) -> str | None:
    """Format a datetime for storage (UTC, fixed microsecond precision)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _row_to_automation(row: Any, *, claimed: bool = False) -> AutomationDefinition:
    """Convert a row to an AutomationDefinition.

    With ``claimed`` the snapshot reports the claimed due instant as
    ``next_run_at``, i.e. the definition as it looked before the claim.
    """
    next_run = row.claimed_due_at if claimed else row.next_run_at
    return AutomationDefinition(
        id=row.id,
        name=row.name,
        action_type=row.action_type,
        schedule_kind=row.schedule_kind,
        schedule_expr=row.schedule_expr,
        timezone=row.timezone,
        payload=json.loads(row.payload) if row.payload else {},
        enabled=bool(row.enabled),
        next_run_at=parse_timestamp(next_run),
        last_run_at=parse_timestamp(row.last_run_at),
        created_at=parse_timestamp(row.created_at) or utc_now(),
        updated_at=parse_timestamp(row.updated_at) or utc_now(),
    )


def _row_to_run(row: Any) -> AutomationRun:
    return AutomationRun(
        id=row.id,
        automation_id=row.automation_id,
        scheduled_at=parse_timestamp(row.scheduled_at) or utc_now(),
        started_at=parse_timestamp(row.started_at) or utc_now(),
        finished_at=parse_timestamp(row.finished_at),
        status=RunStatus(row.status),
        error=row.error,
        output=row.output,
    )


class AutomationStore:
    """SQL-backed storage for automation definitions and runs."""

    def __init__(self, db: Database) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    async def get_automation(self, automation_id: int) -> AutomationDefinition | None:
        async with self._db.session() as session:
            result = await session.execute(
                text(f"SELECT {_AUTOMATION_COLUMNS} FROM automations WHERE id = :id"),
                {"id": automation_id},
            )
            row = result.fetchone()
        return _row_to_automation(row) if row else None

    async def get_automation_by_name(self, name: str) -> AutomationDefinition | None:
        async with self._db.session() as session:
            result = await session.execute(
                text(
                    f"SELECT {_AUTOMATION_COLUMNS} FROM automations "
                    "WHERE name = :name ORDER BY id LIMIT 1"
                ),
                {"name": name},
            )
            row = result.fetchone()
        return _row_to_automation(row) if row else None

    async def list_automations(self) -> list[AutomationDefinition]:
        async with self._db.session() as session:
            result = await session.execute(
                text(f"SELECT {_AUTOMATION_COLUMNS} FROM automations ORDER BY id")
            )
            rows = result.fetchall()
        return [_row_to_automation(row) for row in rows]

    async def get_run(self, run_id: int) -> AutomationRun | None:
        async with self._db.session() as session:
            result = await session.execute(
                text(f"SELECT {_RUN_COLUMNS} FROM automation_runs WHERE id = :id"),
                {"id": run_id},
            )
            row = result.fetchone()
        return _row_to_run(row) if row else None

    async def list_runs(
        self, automation_id: int | None = None, limit: int = 20
    ) -> list[AutomationRun]:
        """Most recent runs first, optionally for one automation."""
        where = ""
        params: dict[str, Any] = {"limit": limit}
        if automation_id is not None:
            where = "WHERE automation_id = :automation_id"
            params["automation_id"] = automation_id
        async with self._db.session() as session:
            result = await session.execute(
                text(
                    f"SELECT {_RUN_COLUMNS} FROM automation_runs {where} "
                    "ORDER BY started_at DESC, id DESC LIMIT :limit"
                ),
                params,
            )
            rows = result.fetchall()
        return [_row_to_run(row) for row in rows]

    # ------------------------------------------------------------------
    # Administrative writes
    # ------------------------------------------------------------------

    async def create_automation(self, definition: AutomationDefinition) -> int:
        now = utc_now()
        definition.created_at = now
        definition.updated_at = now
        async with self._db.session() as session:
            result = await session.execute(
                text("""
                    INSERT INTO automations (name, action_type, schedule_kind,
                        schedule_expr, timezone, payload, enabled, next_run_at,
                        last_run_at, created_at, updated_at)
                    VALUES (:name, :action_type, :schedule_kind, :schedule_expr,
                        :timezone, :payload, :enabled, :next_run_at,
                        :last_run_at, :created_at, :updated_at)
                    RETURNING id
                """),
                {
                    **self._definition_params(definition),
                    "created_at": format_timestamp(now),
                },
            )
            automation_id = int(result.scalar_one())

        definition.id = automation_id
        logger.info(
            "automation_created",
            extra={
                "automation.id": automation_id,
                "automation.name": definition.name,
                "automation.next_run_at": format_timestamp(definition.next_run_at),
            },
        )
        return automation_id

    async def update_automation(self, definition: AutomationDefinition) -> bool:
        """Overwrite every mutable field of a stored definition."""
        if definition.id is None:
            raise ValueError("Cannot update an automation without an id")
        definition.updated_at = utc_now()
        async with self._db.session() as session:
            result = await session.execute(
                text("""
                    UPDATE automations SET name = :name,
                        action_type = :action_type,
                        schedule_kind = :schedule_kind,
                        schedule_expr = :schedule_expr,
                        timezone = :timezone,
                        payload = :payload,
                        enabled = :enabled,
                        next_run_at = :next_run_at,
                        last_run_at = :last_run_at,
                        updated_at = :updated_at
                    WHERE id = :id
                """),
                {**self._definition_params(definition), "id": definition.id},
            )
        return result.rowcount > 0

    async def delete_automation(self, automation_id: int) -> bool:
        async with self._db.session() as session:
            await session.execute(
                text("DELETE FROM automation_runs WHERE automation_id = :id"),
                {"id": automation_id},
            )
            result = await session.execute(
                text("DELETE FROM automations WHERE id = :id"),
                {"id": automation_id},
            )
        return result.rowcount > 0

    async def trigger_now(self, automation_id: int, now: datetime | None = None) -> bool:
        """Make an automation due immediately, independent of its schedule."""
        now = now or utc_now()
        async with self._db.session() as session:
            result = await session.execute(
                text("""
                    UPDATE automations SET next_run_at = :now, updated_at = :updated_at
                    WHERE id = :id
                """),
                {
                    "id": automation_id,
                    "now": format_timestamp(now),
                    "updated_at": format_timestamp(utc_now()),
                },
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Scheduler operations
    # ------------------------------------------------------------------

    async def claim_due(
        self, now: datetime, limit: int
    ) -> list[AutomationDefinition]:
        """Claim up to ``limit`` due automations in one atomic statement.

        Selection and clearing of ``next_run_at`` happen in a single UPDATE,
        so a definition that one caller has claimed is no longer due for any
        other caller, whether in this process or another one sharing the
        database. The due instant is preserved in ``claimed_due_at`` and
        returned as ``next_run_at`` on the snapshot.

        Returns:
            Pre-claim snapshots ordered by due time, earliest first.
        """
        if limit <= 0:
            return []

        # SQLite serializes writers; elsewhere skip rows another claimer holds
        lock_clause = "" if self._db.is_sqlite else "FOR UPDATE SKIP LOCKED"
        async with self._db.session() as session:
            result = await session.execute(
                text(f"""
                    UPDATE automations
                    SET claimed_due_at = next_run_at, next_run_at = NULL
                    WHERE id IN (
                        SELECT id FROM automations
                        WHERE enabled = 1
                          AND next_run_at IS NOT NULL
                          AND next_run_at <= :now
                        ORDER BY next_run_at, id
                        LIMIT :limit
                        {lock_clause}
                    )
                    AND enabled = 1
                    AND next_run_at IS NOT NULL
                    RETURNING {_AUTOMATION_COLUMNS}
                """),
                {"now": format_timestamp(now), "limit": limit},
            )
            rows = result.fetchall()

        claimed = [_row_to_automation(row, claimed=True) for row in rows]
        # RETURNING order is unspecified
        claimed.sort(key=lambda d: (d.next_run_at or now, d.id or 0))
        if claimed:
            logger.debug(
                f"Claimed {len(claimed)} automation(s): "
                f"{', '.join(str(d.id) for d in claimed)}"
            )
        return claimed

    async def release_claims(self, automation_ids: list[int]) -> None:
        """Return unexecuted claims to their claimed due instant."""
        async with self._db.session() as session:
            for automation_id in automation_ids:
                await session.execute(
                    text("""
                        UPDATE automations SET next_run_at = claimed_due_at
                        WHERE id = :id AND next_run_at IS NULL
                    """),
                    {"id": automation_id},
                )

    async def insert_run(
        self,
        automation_id: int,
        scheduled_at: datetime,
        started_at: datetime | None = None,
    ) -> int:
        """Record the start of an execution in ``running`` status."""
        async with self._db.session() as session:
            result = await session.execute(
                text("""
                    INSERT INTO automation_runs (automation_id, scheduled_at,
                        started_at, status)
                    VALUES (:automation_id, :scheduled_at, :started_at, :status)
                    RETURNING id
                """),
                {
                    "automation_id": automation_id,
                    "scheduled_at": format_timestamp(scheduled_at),
                    "started_at": format_timestamp(started_at or utc_now()),
                    "status": RunStatus.RUNNING.value,
                },
            )
            return int(result.scalar_one())

    async def complete_run(
        self,
        run_id: int,
        automation_id: int,
        status: RunStatus,
        error: str | None,
        output: str | None,
        finished_at: datetime,
        enabled: bool,
        last_run_at: datetime,
        next_run_at: datetime | None,
    ) -> None:
        """Finalize a run and advance its definition in one transaction."""
        async with self._db.session() as session:
            await session.execute(
                text("""
                    UPDATE automation_runs
                    SET status = :status, error = :error, output = :output,
                        finished_at = :finished_at
                    WHERE id = :run_id
                """),
                {
                    "run_id": run_id,
                    "status": RunStatus(status).value,
                    "error": error or None,
                    "output": output or None,
                    "finished_at": format_timestamp(finished_at),
                },
            )
            await session.execute(
                text("""
                    UPDATE automations
                    SET enabled = :enabled, last_run_at = :last_run_at,
                        next_run_at = :next_run_at, updated_at = :updated_at
                    WHERE id = :automation_id
                """),
                {
                    "automation_id": automation_id,
                    "enabled": 1 if enabled else 0,
                    "last_run_at": format_timestamp(last_run_at),
                    "next_run_at": format_timestamp(next_run_at),
                    "updated_at": format_timestamp(finished_at),
                },
            )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _definition_params(definition: AutomationDefinition) -> dict[str, Any]:
        return {
            "name": definition.name,
            "action_type": definition.action_type,
            "schedule_kind": definition.schedule_kind,
            "schedule_expr": definition.schedule_expr,
            "timezone": definition.timezone or "UTC",
            "payload": json.dumps(definition.payload or {}),
            "enabled": 1 if definition.enabled else 0,
            "next_run_at": format_timestamp(definition.next_run_at),
            "last_run_at": format_timestamp(definition.last_run_at),
            "updated_at": format_timestamp(definition.updated_at),
        }
