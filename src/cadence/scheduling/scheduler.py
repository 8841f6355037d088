"""Automation scheduler: polls for due automations and executes them.

The scheduler owns the polling loop. Claiming and bookkeeping are delegated
to AutomationStore, handler lookup to ActionRegistry, and next-run math to
the calculator.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

from cadence.scheduling.calculator import next_run
from cadence.scheduling.errors import ScheduleError
from cadence.scheduling.registry import ActionRegistry
from cadence.scheduling.store import AutomationStore, format_timestamp
from cadence.scheduling.types import (
    ActionContext,
    AutomationDefinition,
    RunStatus,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 15.0
DEFAULT_CLAIM_LIMIT = 10

# Heartbeat log every N polls (~15 min at the default interval)
HEARTBEAT_POLLS = 60


class AutomationScheduler:
    """Claims due automations and runs them through registered actions.

    Example:
        registry = ActionRegistry()
        registry.register("send_digest", send_digest)
        scheduler = AutomationScheduler(AutomationStore(db), registry)

        await scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        store: AutomationStore,
        registry: ActionRegistry,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        claim_limit: int = DEFAULT_CLAIM_LIMIT,
        handler_timeout: float | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        if poll_interval <= 0:
            poll_interval = DEFAULT_POLL_INTERVAL
        if claim_limit <= 0:
            claim_limit = DEFAULT_CLAIM_LIMIT
        self._store = store
        self._registry = registry
        self._poll_interval = poll_interval
        self._claim_limit = claim_limit
        self._handler_timeout = handler_timeout
        self._clock = clock
        self._stopping = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._poll_count = 0

    @property
    def store(self) -> AutomationStore:
        return self._store

    @property
    def registry(self) -> ActionRegistry:
        return self._registry

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start polling. The first poll happens right away."""
        if self.is_running:
            logger.warning("Automation scheduler already running")
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(
            "automation_scheduler_started",
            extra={
                "scheduler.poll_interval": self._poll_interval,
                "scheduler.claim_limit": self._claim_limit,
                "scheduler.actions": self._registry.names,
            },
        )

    async def stop(self) -> None:
        """Stop polling and wait for the current cycle to finish.

        Claimed work is never abandoned: handlers already running are allowed
        to complete (they can observe ``ctx.cancelled`` to wrap up early).
        """
        if self._task is None:
            return
        self._stopping.set()
        try:
            await self._task
        finally:
            self._task = None
        logger.info("automation_scheduler_stopped")

    async def _poll_loop(self) -> None:
        while not self._stopping.is_set():
            self._poll_count += 1
            if self._poll_count % HEARTBEAT_POLLS == 0:
                logger.info(
                    "automation_scheduler_heartbeat",
                    extra={"poll.count": self._poll_count},
                )
            try:
                await self.run_once()
            except Exception as e:
                logger.error(
                    "automation_poll_error",
                    extra={"error.message": str(e)},
                    exc_info=True,
                )
            try:
                await asyncio.wait_for(
                    self._stopping.wait(), timeout=self._poll_interval
                )
            except TimeoutError:
                pass

    async def run_once(self, now: datetime | None = None) -> int:
        """Run a single poll cycle.

        Returns:
            Number of automations claimed and executed.
        """
        now = now or self._clock()
        claimed = await self._store.claim_due(now, self._claim_limit)
        if not claimed:
            logger.debug(f"Automation poll at {now.isoformat()}: nothing due")
            return 0

        logger.debug(f"Automation poll at {now.isoformat()}: {len(claimed)} due")
        for index, definition in enumerate(claimed):
            try:
                await self.execute(definition, now)
            except BaseException:
                # Hand the rest of the batch back so the next poll picks it up
                remaining = [d.id for d in claimed[index + 1 :] if d.id is not None]
                if remaining:
                    await self._store.release_claims(remaining)
                    logger.warning(
                        "automation_claims_released",
                        extra={"automation.ids": remaining},
                    )
                raise
        return len(claimed)

    async def execute(self, definition: AutomationDefinition, now: datetime) -> None:
        """Execute one claimed automation and write back its outcome.

        Never raises for handler or schedule failures; those are recorded on
        the run so one bad automation cannot stall the rest of the batch.
        Exceptions outside ``Exception`` (cancellation, interpreter exit) are
        recorded as a failed run too, then re-raised.
        """
        if definition.id is None:
            raise ValueError("Cannot execute an automation without an id")
        automation_id = definition.id
        # Claimed snapshots carry the due instant that triggered this run
        scheduled_at = definition.next_run_at or now
        started_at = self._clock()

        try:
            run_id = await self._store.insert_run(
                automation_id, scheduled_at, started_at=started_at
            )
        except Exception as e:
            logger.error(
                "automation_run_insert_failed",
                extra={"automation.id": automation_id, "error.message": str(e)},
            )
            return

        logger.info(
            "automation_triggered",
            extra={
                "automation.id": automation_id,
                "automation.name": definition.name,
                "automation.action_type": definition.action_type,
                "run.id": run_id,
                "run.scheduled_at": format_timestamp(scheduled_at),
            },
        )

        try:
            status, error, output = await self._invoke(
                definition, run_id, scheduled_at
            )
        except BaseException as e:
            await self._complete(
                definition,
                automation_id,
                run_id,
                scheduled_at,
                started_at,
                RunStatus.FAILED,
                f"action interrupted: {type(e).__name__}",
                None,
            )
            raise

        await self._complete(
            definition,
            automation_id,
            run_id,
            scheduled_at,
            started_at,
            status,
            error,
            output,
        )

    async def _complete(
        self,
        definition: AutomationDefinition,
        automation_id: int,
        run_id: int,
        scheduled_at: datetime,
        started_at: datetime,
        status: RunStatus,
        error: str | None,
        output: str | None,
    ) -> None:
        # Cadence stays anchored to the scheduled instant, not to how long
        # the handler took
        next_run_at: datetime | None = None
        try:
            next_run_at = next_run(
                definition.schedule_kind,
                definition.schedule_expr,
                definition.timezone,
                scheduled_at,
            )
        except ScheduleError as e:
            # The definition stays enabled with no next run (orphaned) until
            # an update or trigger_now gives it one again
            status = RunStatus.FAILED
            if error:
                error = f"{error}; next run calc failed: {e}"
            else:
                error = str(e)
            logger.warning(
                "automation_orphaned",
                extra={"automation.id": automation_id, "error.message": str(e)},
            )

        enabled = definition.enabled
        if definition.is_oneshot:
            enabled = False

        try:
            await self._store.complete_run(
                run_id,
                automation_id,
                status,
                error,
                output,
                finished_at=self._clock(),
                enabled=enabled,
                last_run_at=started_at,
                next_run_at=next_run_at,
            )
        except Exception as e:
            logger.error(
                "automation_run_complete_failed",
                extra={
                    "automation.id": automation_id,
                    "run.id": run_id,
                    "error.message": str(e),
                },
            )
            return

        log = logger.info if status == RunStatus.SUCCESS else logger.warning
        log(
            "automation_completed",
            extra={
                "automation.id": automation_id,
                "run.id": run_id,
                "run.status": status.value,
                "error.message": error,
                "automation.next_run_at": format_timestamp(next_run_at),
            },
        )

    async def _invoke(
        self, definition: AutomationDefinition, run_id: int, scheduled_at: datetime
    ) -> tuple[RunStatus, str | None, str | None]:
        handler = self._registry.get(definition.action_type)
        if handler is None:
            return (
                RunStatus.FAILED,
                f"unknown action_type: {definition.action_type}",
                None,
            )

        ctx = ActionContext(
            run_id=run_id, scheduled_at=scheduled_at, cancelled=self._stopping
        )
        # A None delay never expires
        deadline = asyncio.timeout(self._handler_timeout or None)
        try:
            async with deadline:
                result = await handler(ctx, definition)
        except Exception as e:
            if isinstance(e, TimeoutError) and deadline.expired():
                return (
                    RunStatus.FAILED,
                    f"action timed out after {self._handler_timeout:g}s",
                    None,
                )
            logger.debug("Action handler raised", exc_info=True)
            return RunStatus.FAILED, str(e) or type(e).__name__, None

        output = None if result is None else str(result)
        return RunStatus.SUCCESS, None, output
