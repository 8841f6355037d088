"""Next-run calculation for interval, oneshot, and cron schedules.

All results are timezone-aware UTC datetimes. ``None`` means the schedule has
no further runs (a spent oneshot, or a cron expression with no match inside
the search horizon).

Cron expressions use the classic five fields (minute, hour, day-of-month,
month, day-of-week) and are evaluated in the automation's local timezone:
"0 8 * * *" in America/Los_Angeles fires at 8 AM Pacific whatever the DST
offset happens to be. Matching is delegated to croniter, which applies the
classic OR rule when both day fields are restricted and accepts 7 as Sunday.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, tzinfo
from decimal import Decimal, InvalidOperation
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import CroniterBadDateError, CroniterError, croniter

from cadence.scheduling.errors import ScheduleError
from cadence.scheduling.types import ScheduleKind

# Cron search gives up after this many years and reports no further runs
CRON_HORIZON_YEARS = 2

_SHORTCUTS = {
    "@hourly": "0 * * * *",
    "@daily": "0 0 * * *",
    "@weekly": "0 0 * * 0",
}

_DURATION_TOKEN = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

_UNIT_MICROSECONDS = {
    "ns": Decimal("0.001"),
    "us": Decimal(1),
    "µs": Decimal(1),
    "μs": Decimal(1),
    "ms": Decimal(1000),
    "s": Decimal(1_000_000),
    "m": Decimal(60_000_000),
    "h": Decimal(3_600_000_000),
}


def resolve_timezone(name: str | None) -> tzinfo:
    """Resolve an IANA timezone name; empty means UTC."""
    name = (name or "").strip()
    if not name or name.upper() == "UTC":
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ScheduleError(f"invalid timezone {name!r}: {e}") from e


def parse_duration(expr: str) -> timedelta:
    """Parse a duration string such as "90s", "5m", "1h30m" or "1.5h".

    A bare "0" is accepted (and yields a zero duration) so callers can give a
    precise "must be > 0" error instead of a syntax error.
    """
    text = expr.strip()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ScheduleError(f"invalid interval expression {expr!r}")

    total = Decimal(0)
    pos = 0
    while pos < len(text):
        match = _DURATION_TOKEN.match(text, pos)
        if match is None:
            raise ScheduleError(f"invalid interval expression {expr!r}")
        try:
            value = Decimal(match.group(1))
        except InvalidOperation as e:
            raise ScheduleError(f"invalid interval expression {expr!r}") from e
        total += value * _UNIT_MICROSECONDS[match.group(2)]
        pos = match.end()

    try:
        return timedelta(microseconds=float(sign * total))
    except OverflowError as e:
        raise ScheduleError("interval out of range") from e


def parse_timestamp(expr: str) -> datetime:
    """Parse an RFC 3339 timestamp. The UTC offset is mandatory."""
    try:
        parsed = datetime.fromisoformat(expr.strip())
    except ValueError as e:
        raise ScheduleError(f"invalid oneshot expression {expr!r}: {e}") from e
    if parsed.tzinfo is None:
        raise ScheduleError(
            f"invalid oneshot expression {expr!r}: missing UTC offset"
        )
    return parsed.astimezone(UTC)


@dataclass(frozen=True)
class CronExpression:
    """A validated five-field cron expression, evaluated with croniter."""

    expr: str

    @classmethod
    def parse(cls, expr: str) -> CronExpression:
        text = expr.strip()
        text = _SHORTCUTS.get(text, text)
        if len(text.split()) != 5:
            raise ScheduleError(
                f"invalid cron expression {expr!r} (expected 5 fields)"
            )
        try:
            croniter(text)
        except (CroniterError, ValueError, KeyError) as e:
            raise ScheduleError(f"invalid cron expression {expr!r}: {e}") from e
        return cls(expr=" ".join(text.split()))

    def next_after(self, from_: datetime, tz: tzinfo) -> datetime | None:
        """First matching minute strictly after ``from_``, in UTC.

        Matching runs on naive local wall-clock times. A wall time that does
        not exist (DST gap) is skipped, and a repeated wall time (DST fold)
        fires once, at its first occurrence.
        """
        reference = from_.astimezone(UTC)
        start = reference.astimezone(tz).replace(tzinfo=None)
        limit = _add_years(start, CRON_HORIZON_YEARS)
        schedule = croniter(
            self.expr, start, max_years_between_matches=CRON_HORIZON_YEARS + 1
        )
        try:
            while True:
                wall = schedule.get_next(datetime)
                if wall > limit:
                    return None
                candidate = wall.replace(tzinfo=tz).astimezone(UTC)
                if candidate.astimezone(tz).replace(tzinfo=None) != wall:
                    continue
                if candidate > reference:
                    return candidate
        except CroniterBadDateError:
            return None


def _add_years(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return moment.replace(year=moment.year + years, day=28)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def _parse_kind(kind: str | ScheduleKind) -> ScheduleKind:
    try:
        return ScheduleKind(str(kind).strip().lower())
    except ValueError as e:
        raise ScheduleError(f"unsupported schedule kind {kind!r}") from e


def next_run(
    kind: str | ScheduleKind,
    expr: str,
    timezone: str | None,
    from_: datetime,
) -> datetime | None:
    """Compute the next due instant after ``from_``.

    Args:
        kind: Schedule kind (interval, oneshot, cron).
        expr: Kind-specific expression.
        timezone: IANA timezone name used for cron evaluation.
        from_: Reference instant. Naive datetimes are taken as UTC.

    Returns:
        The next due instant in UTC, or None if there are no more runs.

    Raises:
        ScheduleError: If the kind, expression or timezone is invalid.
    """
    tz = resolve_timezone(timezone)
    schedule_kind = _parse_kind(kind)
    reference = _as_utc(from_)

    if schedule_kind is ScheduleKind.INTERVAL:
        delta = parse_duration(expr)
        if delta <= timedelta(0):
            raise ScheduleError("interval must be > 0")
        try:
            return reference + delta
        except OverflowError as e:
            raise ScheduleError("interval out of range") from e

    if schedule_kind is ScheduleKind.ONESHOT:
        at = parse_timestamp(expr)
        if at <= reference:
            return None
        return at

    return CronExpression.parse(expr).next_after(reference, tz)


def validate_schedule(
    kind: str | ScheduleKind, expr: str, timezone: str | None
) -> ScheduleKind:
    """Check that a schedule can be evaluated.

    Intervals are also checked for overflow against the current time.

    Returns:
        The normalized schedule kind.

    Raises:
        ScheduleError: If the kind, expression or timezone is invalid.
    """
    resolve_timezone(timezone)
    schedule_kind = _parse_kind(kind)
    if schedule_kind is ScheduleKind.INTERVAL:
        next_run(schedule_kind, expr, timezone, datetime.now(UTC))
    elif schedule_kind is ScheduleKind.ONESHOT:
        parse_timestamp(expr)
    else:
        CronExpression.parse(expr)
    return schedule_kind
