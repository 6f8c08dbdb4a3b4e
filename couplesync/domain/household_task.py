"""Household task domain models and enums."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from couplesync.core.dates import validate_due_date
from couplesync.domain.recurrence import RecurrenceOptions, coerce_recurrence


class TaskState(StrEnum):
    """Lifecycle state of a task with respect to its due date and recurrence."""

    NO_DEADLINE = "NO_DEADLINE"
    ONE_TIME = "ONE_TIME"
    RECURRING_PENDING = "RECURRING_PENDING"
    RECURRING_DONE = "RECURRING_DONE"  # Transient: completion advances it immediately
    COMPLETED = "COMPLETED"
    RECURRENCE_ENDED = "RECURRENCE_ENDED"


class HouseholdTask(BaseModel):
    """Household task data transfer object.

    All datetimes are UTC instants. Date fields are normalized on construction
    and on assignment, so an invalid date can never be stored on a task.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(..., description="Unique task ID")
    owner_id: str = Field(..., description="User ID of the task's creator/owner")
    title: str = Field(..., description="Task title (e.g., 'Take out the recycling')")
    description: str | None = Field(default=None, description="Optional free text")
    due_date: datetime | None = Field(default=None, description="Deadline of the current occurrence")
    next_due_date: datetime | None = Field(default=None, description="Deadline of the following occurrence")
    completed: bool = Field(default=False, description="Whether the current occurrence is done")
    recurrence: RecurrenceOptions | None = Field(default=None, description="Recurrence rule, None for one-time")
    position: int = Field(default=0, ge=0, description="Manual sort position within the owner's list")
    created_at: datetime = Field(..., description="Creation timestamp (UTC)")
    updated_at: datetime = Field(..., description="Last update timestamp (UTC)")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """Validate title is non-empty after trimming."""
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty")
        return v

    @field_validator("due_date", "next_due_date", mode="before")
    @classmethod
    def normalize_dates(cls, v: Any) -> datetime | None:
        """Route every date through the shared chokepoint."""
        return validate_due_date(v)

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def normalize_timestamps(cls, v: Any) -> Any:
        """Normalize audit timestamps to UTC, leaving unusable values to fail validation."""
        return validate_due_date(v) or v

    @field_validator("recurrence", mode="before")
    @classmethod
    def normalize_recurrence(cls, v: Any) -> RecurrenceOptions | None:
        """Accept wire mappings, legacy pattern strings and RRULEs."""
        return coerce_recurrence(v)


class TaskCompletion(BaseModel):
    """Completion history entry for a task occurrence."""

    id: str = Field(..., description="Unique completion record ID")
    task_id: str = Field(..., description="ID of the completed task")
    user_id: str | None = Field(default=None, description="User who completed (or reopened) the task")
    completed_at: datetime = Field(..., description="When the action happened (UTC)")
    expected_date: datetime | None = Field(default=None, description="Due date of the completed occurrence")
    is_completed: bool = Field(default=True, description="False when the record reopens the task")

    @field_validator("completed_at", "expected_date", mode="before")
    @classmethod
    def normalize_dates(cls, v: Any) -> Any:
        """Normalize stored dates to UTC."""
        return validate_due_date(v) or v


class TaskCreate(BaseModel):
    """Input for creating a household task.

    Date and recurrence fields are untyped: raw request values are normalized by
    the lifecycle manager, not rejected here.
    """

    owner_id: str = Field(..., description="User ID of the task owner")
    title: str = Field(..., description="Task title")
    description: str | None = Field(default=None, description="Optional free text")
    due_date: Any = Field(default=None, description="Raw due date (ISO string, epoch millis, ...)")
    recurrence: Any = Field(default=None, description="Recurrence in wire shape, pattern name or RRULE")


class TaskUpdate(BaseModel):
    """Partial update for a household task.

    Only fields that were explicitly provided are applied (see model_fields_set),
    so `{"due_date": null}` clears the due date while omitting it leaves it alone.
    """

    title: str | None = None
    description: str | None = None
    due_date: Any = None
    recurrence: Any = None


class TaskPosition(BaseModel):
    """New manual sort position for one task."""

    id: str = Field(..., description="Task ID")
    position: int = Field(..., ge=0, description="Zero-based position in the list")


class TaskReorder(BaseModel):
    """Bulk reorder request."""

    tasks: list[TaskPosition] = Field(..., min_length=1)


class MissedTask(BaseModel):
    """A task together with the moments its completion was withdrawn within a period."""

    task: HouseholdTask
    missed_dates: list[datetime]
