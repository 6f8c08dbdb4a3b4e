"""iCalendar RRULE interchange and human-readable descriptions for recurrences."""

import logging
from datetime import datetime

from dateutil.rrule import rrulestr
from pydantic import ValidationError

from couplesync.core.config import constants
from couplesync.core.dates import validate_due_date
from couplesync.core.errors import UnsupportedPatternError
from couplesync.domain.recurrence import RecurrenceOptions, RecurrencePattern


logger = logging.getLogger(__name__)

# Index matches the wire format's weekday numbers (0=Sunday)
_BYDAY_CODES = ["SU", "MO", "TU", "WE", "TH", "FR", "SA"]
_WEEKDAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

_SUPPORTED_PARTS = {"FREQ", "INTERVAL", "BYDAY", "BYMONTHDAY", "UNTIL"}
_IGNORED_PARTS = {"WKST"}

# Only used to let dateutil validate a rule; UNTIL is compared naively
_VALIDATION_DTSTART = datetime(2000, 1, 1)  # noqa: DTZ001

_FREQ_BY_PATTERN: dict[RecurrencePattern, str] = {
    RecurrencePattern.DAILY: "DAILY",
    RecurrencePattern.WEEKLY: "WEEKLY",
    RecurrencePattern.BIWEEKLY: "WEEKLY",
    RecurrencePattern.MONTHLY: "MONTHLY",
    RecurrencePattern.QUARTERLY: "MONTHLY",
    RecurrencePattern.YEARLY: "YEARLY",
}

_PATTERN_BY_FREQ: dict[str, RecurrencePattern] = {
    "DAILY": RecurrencePattern.DAILY,
    "WEEKLY": RecurrencePattern.WEEKLY,
    "MONTHLY": RecurrencePattern.MONTHLY,
    "YEARLY": RecurrencePattern.YEARLY,
}

_UNIT_BY_PATTERN: dict[RecurrencePattern, str] = {
    RecurrencePattern.DAILY: "day",
    RecurrencePattern.WEEKLY: "week",
    RecurrencePattern.MONTHLY: "month",
    RecurrencePattern.YEARLY: "year",
}


def _pattern_of(options: RecurrenceOptions) -> RecurrencePattern:
    try:
        pattern = RecurrencePattern(options.pattern)
    except ValueError as e:
        raise UnsupportedPatternError(options.pattern) from e
    if pattern == RecurrencePattern.CUSTOM:
        raise UnsupportedPatternError(pattern, reason="custom recurrence rules cannot be exported")
    return pattern


def build_recurrence_rule(options: RecurrenceOptions) -> str:
    """Convert options to an RRULE (without the leading 'RRULE:' prefix).

    Biweekly and quarterly become WEEKLY/INTERVAL=2 and MONTHLY/INTERVAL=3.

    Raises:
        UnsupportedPatternError: For unknown or custom patterns
    """
    pattern = _pattern_of(options)

    interval = options.interval
    if pattern == RecurrencePattern.BIWEEKLY:
        interval = constants.BIWEEKLY_WEEKS
    elif pattern == RecurrencePattern.QUARTERLY:
        interval = constants.QUARTER_MONTHS

    parts = [f"FREQ={_FREQ_BY_PATTERN[pattern]}"]
    if interval != 1:
        parts.append(f"INTERVAL={interval}")
    if options.weekdays:
        parts.append("BYDAY=" + ",".join(_BYDAY_CODES[d] for d in options.weekdays))
    if options.month_day:
        parts.append(f"BYMONTHDAY={options.month_day}")
    if options.end_date:
        parts.append(f"UNTIL={options.end_date.strftime('%Y%m%dT%H%M%SZ')}")
    return ";".join(parts)


def _parse_until(raw: str) -> str | None:
    """Turn an RRULE UNTIL value (20240301T000000Z or 20240301) into ISO-8601."""
    value = raw.strip()
    if len(value) == 8 and value.isdigit():  # noqa: PLR2004
        return f"{value[:4]}-{value[4:6]}-{value[6:]}"
    return value


def _unsupported_reason(fields: dict[str, str]) -> str | None:
    """Return why a rule cannot be represented by RecurrenceOptions, or None if it can."""
    rejected = sorted(set(fields) - _SUPPORTED_PARTS - _IGNORED_PARTS)
    if rejected:
        return f"unsupported parts: {', '.join(rejected)}"
    if "BYDAY" in fields:
        codes = [code.strip().upper() for code in fields["BYDAY"].split(",")]
        if any(code not in _BYDAY_CODES for code in codes):
            return "ordinal weekdays are not supported"
    if "BYMONTHDAY" in fields and not fields["BYMONTHDAY"].isdigit():
        return "only a single positive month day is supported"
    return None


def parse_recurrence_rule(rule: str, *, timezone: str = "UTC") -> RecurrenceOptions | None:
    """Parse an RRULE string into RecurrenceOptions.

    The rule is validated with dateutil's RFC 5545 parser first. Returns None
    if the rule has no FREQ we support, is malformed, or uses parts that
    RecurrenceOptions cannot represent (COUNT, ordinal BYDAY such as 2MO,
    BYSETPOS, ...). WKST is accepted and ignored.
    """
    text = rule.strip()
    if text.upper().startswith("RRULE:"):
        text = text[len("RRULE:") :]

    fields: dict[str, str] = {}
    for part in text.split(";"):
        key, sep, value = part.partition("=")
        if sep and key.strip() and value.strip():
            fields[key.strip().upper()] = value.strip()

    pattern = _PATTERN_BY_FREQ.get(fields.get("FREQ", "").upper())
    if pattern is None:
        logger.debug("Ignoring recurrence rule without supported FREQ", extra={"rule": rule})
        return None

    try:
        rrulestr(text, dtstart=_VALIDATION_DTSTART, ignoretz=True)
    except ValueError as e:
        logger.warning("Rejected malformed recurrence rule", extra={"rule": rule, "error": str(e)})
        return None

    reason = _unsupported_reason(fields)
    if reason is not None:
        logger.warning("Rejected recurrence rule", extra={"rule": rule, "reason": reason})
        return None
    if fields.keys() & _IGNORED_PARTS:
        logger.info("Ignoring recurrence rule parts", extra={"rule": rule, "parts": sorted(fields.keys() & _IGNORED_PARTS)})

    interval = int(fields.get("INTERVAL", "1"))
    if pattern == RecurrencePattern.WEEKLY and interval == constants.BIWEEKLY_WEEKS:
        pattern, interval = RecurrencePattern.BIWEEKLY, 1
    elif pattern == RecurrencePattern.MONTHLY and interval == constants.QUARTER_MONTHS:
        pattern, interval = RecurrencePattern.QUARTERLY, 1

    weekdays = None
    if "BYDAY" in fields:
        weekdays = [_BYDAY_CODES.index(code.strip().upper()) for code in fields["BYDAY"].split(",")]

    month_day = int(fields["BYMONTHDAY"]) if "BYMONTHDAY" in fields else None
    end_date = validate_due_date(_parse_until(fields["UNTIL"])) if "UNTIL" in fields else None

    try:
        return RecurrenceOptions(
            pattern=pattern,
            interval=interval,
            weekdays=weekdays,
            month_day=month_day,
            end_date=end_date,
            timezone=timezone,
        )
    except ValidationError as e:
        logger.warning("Rejected recurrence rule", extra={"rule": rule, "error": str(e)})
        return None


def describe_recurrence(options: RecurrenceOptions) -> str:
    """Convert options to human-readable text (e.g., "every 2 weeks until 2024-03-01")."""
    try:
        pattern = RecurrencePattern(options.pattern)
    except ValueError:
        return f"repeats ({options.pattern})"

    if pattern == RecurrencePattern.BIWEEKLY:
        text = "every 2 weeks"
    elif pattern == RecurrencePattern.QUARTERLY:
        text = "every 3 months"
    elif pattern == RecurrencePattern.CUSTOM:
        text = "custom schedule"
    elif options.interval == 1:
        text = {"day": "daily", "week": "weekly", "month": "monthly", "year": "yearly"}[_UNIT_BY_PATTERN[pattern]]
    else:
        text = f"every {options.interval} {_UNIT_BY_PATTERN[pattern]}s"

    if options.weekdays:
        text = f"{text} on {', '.join(_WEEKDAY_NAMES[d] for d in options.weekdays)}"

    if options.month_day:
        dom = options.month_day
        suffix = "th"
        if dom in (1, 21, 31):
            suffix = "st"
        elif dom in (2, 22):
            suffix = "nd"
        elif dom in (3, 23):
            suffix = "rd"
        text = f"{text} on the {dom}{suffix}"

    if options.end_date:
        text = f"{text} until {options.end_date.date().isoformat()}"

    return text
