"""Next-occurrence calculation for recurring household tasks."""

import logging
from collections.abc import Mapping
from datetime import datetime

from dateutil.relativedelta import relativedelta

from couplesync.core.config import constants
from couplesync.core.dates import ensure_utc, from_local, to_local, utc_now
from couplesync.core.errors import UnsupportedPatternError
from couplesync.domain.recurrence import RecurrenceOptions, RecurrencePattern, coerce_recurrence


logger = logging.getLogger(__name__)


def _resolve_pattern(pattern: str) -> RecurrencePattern:
    try:
        return RecurrencePattern(pattern)
    except ValueError as e:
        raise UnsupportedPatternError(pattern) from e


def _calendar_step(pattern: RecurrencePattern, interval: int) -> relativedelta:
    """Return the civil-time step for one occurrence of `pattern`."""
    if pattern == RecurrencePattern.DAILY:
        return relativedelta(days=interval)
    if pattern == RecurrencePattern.WEEKLY:
        return relativedelta(weeks=interval)
    if pattern == RecurrencePattern.BIWEEKLY:
        return relativedelta(weeks=constants.BIWEEKLY_WEEKS)
    if pattern == RecurrencePattern.MONTHLY:
        return relativedelta(months=interval)
    if pattern == RecurrencePattern.QUARTERLY:
        return relativedelta(months=constants.QUARTER_MONTHS)
    if pattern == RecurrencePattern.YEARLY:
        return relativedelta(years=interval)

    # TODO: weekday-set / nth-weekday rules for CUSTOM once the product defines them
    raise UnsupportedPatternError(pattern, reason="custom recurrence rules are not yet supported")


def _to_options(options: RecurrenceOptions | Mapping[str, object]) -> RecurrenceOptions:
    recurrence = coerce_recurrence(options)
    if recurrence is None:
        msg = "A recurrence is required to calculate the next due date"
        raise ValueError(msg)
    return recurrence


def _step_forward(instant: datetime, step: relativedelta, timezone: str) -> datetime:
    """Apply `step` to the wall-clock time of `instant` in `timezone` and return the UTC instant."""
    try:
        civil = to_local(instant, timezone).replace(tzinfo=None)
        return from_local(civil + step, timezone)
    except (OverflowError, ValueError) as e:
        msg = f"Next occurrence after {instant.isoformat()} is outside the supported date range"
        raise ValueError(msg) from e


def calculate_next_due_date(
    base_date: datetime | None,
    options: RecurrenceOptions | Mapping[str, object],
    now: datetime | None = None,
) -> datetime:
    """Calculate the next occurrence after `base_date`, as a UTC instant.

    Advances from max(base_date, now), so an overdue occurrence never produces a
    next date that is already in the past. The calendar step is applied to the
    wall-clock time in the recurrence's timezone, which keeps "weekly" on the
    same local weekday and hour across DST changes. Month and year steps clamp
    to the last valid day of the target month.

    The recurrence end date is not enforced here; see exceeds_end_date().

    Args:
        base_date: Occurrence being advanced from (None means "now")
        options: Recurrence specification or its wire-shaped mapping
        now: Reference instant, defaults to the current time

    Returns:
        Next occurrence in UTC, strictly after max(base_date, now)

    Raises:
        UnsupportedPatternError: If the pattern is unknown or not yet supported
        ValueError: If the next occurrence falls outside the representable date range
    """
    recurrence = _to_options(options)
    pattern = _resolve_pattern(recurrence.pattern)
    step = _calendar_step(pattern, recurrence.interval)

    reference = ensure_utc(now) if now is not None else utc_now()
    start = reference if base_date is None else max(ensure_utc(base_date), reference)

    next_due = _step_forward(start, step, recurrence.timezone)

    logger.debug(
        "Calculated next due date",
        extra={
            "pattern": pattern.value,
            "interval": recurrence.interval,
            "timezone": recurrence.timezone,
            "start": start.isoformat(),
            "next_due": next_due.isoformat(),
        },
    )
    return next_due


def is_overdue(due_date: datetime | None, now: datetime | None = None) -> bool:
    """Return True if `due_date` lies strictly before `now`. A missing due date is never overdue."""
    if due_date is None:
        return False
    reference = ensure_utc(now) if now is not None else utc_now()
    return ensure_utc(due_date) < reference


def exceeds_end_date(candidate: datetime, options: RecurrenceOptions | Mapping[str, object]) -> bool:
    """Return True if the recurrence has an end date and `candidate` falls after it."""
    recurrence = _to_options(options)
    if recurrence.end_date is None:
        return False
    return ensure_utc(candidate) > recurrence.end_date


def expand_occurrences(
    first_due: datetime,
    options: RecurrenceOptions | Mapping[str, object],
    window_start: datetime,
    window_end: datetime,
) -> list[datetime]:
    """List the occurrences of a series that fall inside [window_start, window_end].

    The series starts at `first_due` and steps the way on-time completions would,
    so a clamped month end stays clamped (Jan 31, Feb 29, Mar 29). Nothing after
    the recurrence end date is produced, and at most MAX_EXPANDED_OCCURRENCES
    instants are returned.

    Raises:
        UnsupportedPatternError: If the pattern is unknown or not yet supported
        ValueError: If the window ends before it starts
    """
    recurrence = _to_options(options)
    step = _calendar_step(_resolve_pattern(recurrence.pattern), recurrence.interval)

    lower = ensure_utc(window_start)
    upper = ensure_utc(window_end)
    if upper < lower:
        msg = "window_end must not be before window_start"
        raise ValueError(msg)
    if recurrence.end_date is not None:
        upper = min(upper, recurrence.end_date)

    occurrences: list[datetime] = []
    current = ensure_utc(first_due)
    while current <= upper and len(occurrences) < constants.MAX_EXPANDED_OCCURRENCES:
        if current >= lower:
            occurrences.append(current)
        current = _step_forward(current, step, recurrence.timezone)

    if len(occurrences) == constants.MAX_EXPANDED_OCCURRENCES:
        logger.warning(
            "Occurrence expansion truncated",
            extra={"pattern": recurrence.pattern, "limit": constants.MAX_EXPANDED_OCCURRENCES},
        )
    return occurrences
