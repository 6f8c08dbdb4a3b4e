"""Recurrence domain models (wire shape shared with the API clients)."""

from collections.abc import Mapping
from datetime import datetime
from enum import Enum, StrEnum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from couplesync.core.config import constants
from couplesync.core.dates import resolve_timezone, validate_due_date


# Legacy task rows stored the cadence as a bare string; these mean "does not repeat"
NON_RECURRING_VALUES = frozenset({"", "never", "once", "none"})


class RecurrencePattern(StrEnum):
    """Named cadence of a recurring task."""

    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class RecurrenceOptions(BaseModel):
    """Recurrence specification.

    Field names follow the JSON wire format (`monthDay`, `endDate`); snake_case
    names are accepted as well. `pattern` is kept as a plain string so that an
    unknown value reaches the recurrence engine and is reported there.
    """

    model_config = ConfigDict(populate_by_name=True)

    pattern: str = Field(..., description="daily, weekly, biweekly, monthly, quarterly, yearly or custom")
    interval: int = Field(
        default=1,
        ge=1,
        le=constants.MAX_RECURRENCE_INTERVAL,
        description="Every N units for daily/weekly/monthly/yearly",
    )
    weekdays: list[Annotated[int, Field(ge=0, le=6)]] | None = Field(
        default=None, description="Weekdays for custom rules (0=Sunday)"
    )
    month_day: int | None = Field(default=None, alias="monthDay", ge=1, le=31, description="Day of month")
    end_date: datetime | None = Field(default=None, alias="endDate", description="Recurrence cutoff (UTC)")
    timezone: str = Field(default="UTC", description="IANA timezone used for calendar arithmetic")

    @field_validator("pattern", mode="before")
    @classmethod
    def unwrap_pattern(cls, v: Any) -> Any:
        """Accept RecurrencePattern members as well as plain strings."""
        if isinstance(v, Enum):
            return v.value
        return v

    @field_validator("interval", mode="before")
    @classmethod
    def default_interval(cls, v: Any) -> Any:
        """Treat a missing interval as 1."""
        return 1 if v is None else v

    @field_validator("weekdays")
    @classmethod
    def dedupe_weekdays(cls, v: list[int] | None) -> list[int] | None:
        """Deduplicate weekdays but preserve order."""
        if v is None:
            return None
        seen: set[int] = set()
        out: list[int] = []
        for day in v:
            if day not in seen:
                seen.add(day)
                out.append(day)
        return out

    @field_validator("end_date", mode="before")
    @classmethod
    def normalize_end_date(cls, v: Any) -> datetime | None:
        """Route the cutoff through the shared date chokepoint."""
        return validate_due_date(v)

    @field_validator("timezone", mode="before")
    @classmethod
    def validate_timezone(cls, v: Any) -> str:
        """Default to UTC and reject unknown IANA zones."""
        if v is None or v == "":
            return "UTC"
        resolve_timezone(v)
        return v

    def to_wire(self) -> dict[str, Any]:
        """Dump in the JSON wire shape (camelCase, ISO dates, no nulls)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def coerce_recurrence(value: object) -> RecurrenceOptions | None:
    """Build RecurrenceOptions from the shapes found in requests and stored rows.

    Accepts an existing RecurrenceOptions, a wire-shaped mapping, a bare pattern
    name ("weekly") as stored by older rows, or an iCalendar rule
    ("FREQ=WEEKLY;INTERVAL=2"). "never"/"once"/empty mean no recurrence.

    Raises:
        pydantic.ValidationError: If a mapping does not fit the wire shape
        ValueError: If an iCalendar rule is malformed or cannot be represented
    """
    if value is None or isinstance(value, RecurrenceOptions):
        return value

    if isinstance(value, Mapping):
        return RecurrenceOptions.model_validate(dict(value))

    if isinstance(value, str):
        text = value.strip()
        if text.lower() in NON_RECURRING_VALUES:
            return None
        if "=" in text:
            from couplesync.core.rrule import parse_recurrence_rule  # noqa: PLC0415

            parsed = parse_recurrence_rule(text)
            if parsed is None:
                msg = f"Invalid recurrence rule: {text}"
                raise ValueError(msg)
            return parsed
        return RecurrenceOptions(pattern=text)

    msg = f"Invalid recurrence value of type {type(value).__name__}"
    raise ValueError(msg)
