"""Date normalization utilities.

Every date that enters the task model from the outside (HTTP bodies, stored rows,
recurrence payloads) goes through validate_due_date(). Internally all instants are
aware datetimes in UTC; timezones are applied only while doing calendar arithmetic.
"""

import logging
import math
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as dateutil_parser


logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def utc_now() -> datetime:
    """Return the current instant in UTC.

    This is the only place the wall clock is read; pure functions take an explicit
    `now` argument that defaults to this.
    """
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Return `value` as an aware UTC datetime (naive values are taken to be UTC)."""
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def resolve_timezone(name: str | None) -> ZoneInfo:
    """Resolve an IANA timezone name, defaulting to UTC.

    Raises:
        ValueError: If the zone is unknown
    """
    if not name:
        return ZoneInfo("UTC")
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        msg = f"Unknown timezone: {name}"
        raise ValueError(msg) from e


def _from_epoch_millis(value: int | float) -> datetime | None:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    try:
        return _EPOCH + timedelta(milliseconds=value)
    except (OverflowError, ValueError):
        return None


def _from_string(value: str) -> datetime | None:
    text = value.strip()
    if not text:
        return None
    try:
        return ensure_utc(dateutil_parser.isoparse(text))
    except (ValueError, OverflowError):
        return None


def validate_due_date(value: object) -> datetime | None:
    """Normalize an untrusted date value into a UTC instant, or None.

    Accepts ISO-8601 strings, epoch milliseconds, datetime and date objects.
    Anything else, or anything that cannot be interpreted as a real instant,
    becomes None. Never raises.
    """
    if value is None:
        return None

    try:
        # bool is an int subclass; True is not a date
        if isinstance(value, bool):
            result = None
        elif isinstance(value, datetime):
            result = ensure_utc(value)
        elif isinstance(value, date):
            result = datetime(value.year, value.month, value.day, tzinfo=UTC)
        elif isinstance(value, int | float):
            result = _from_epoch_millis(value)
        elif isinstance(value, str):
            result = _from_string(value)
        else:
            result = None
    except (OverflowError, ValueError):
        result = None

    if result is None:
        logger.debug("Discarded unparseable date input", extra={"input_type": type(value).__name__})
    return result


def _coerce_instant(value: datetime | str) -> datetime:
    if isinstance(value, str):
        return dateutil_parser.isoparse(value)
    return value


def to_local(value: datetime | str, timezone: str | None) -> datetime:
    """Convert a UTC instant to an aware wall-clock datetime in `timezone`."""
    return ensure_utc(_coerce_instant(value)).astimezone(resolve_timezone(timezone))


def from_local(value: datetime | str, timezone: str | None) -> datetime:
    """Interpret a wall-clock datetime in `timezone` and return the UTC instant.

    An offset already carried by `value` is discarded; only its wall-clock fields
    are used.
    """
    wall_clock = _coerce_instant(value).replace(tzinfo=None)
    return wall_clock.replace(tzinfo=resolve_timezone(timezone)).astimezone(UTC)


def format_in_timezone(value: datetime | str, timezone: str | None, fmt: str) -> str:
    """Format an instant with strftime in the given timezone."""
    return to_local(value, timezone).strftime(fmt)


def to_iso(value: datetime | None) -> str | None:
    """Serialize an instant as an ISO-8601 UTC string ending in 'Z'."""
    if value is None:
        return None
    return ensure_utc(value).isoformat().replace("+00:00", "Z")
