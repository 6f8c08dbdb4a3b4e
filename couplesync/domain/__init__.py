"""Domain models and DTOs."""

from couplesync.domain.household_task import HouseholdTask, TaskCompletion, TaskCreate, TaskState, TaskUpdate
from couplesync.domain.recurrence import RecurrenceOptions, RecurrencePattern, coerce_recurrence


__all__ = [
    "HouseholdTask",
    "RecurrenceOptions",
    "RecurrencePattern",
    "TaskCompletion",
    "TaskCreate",
    "TaskState",
    "TaskUpdate",
    "coerce_recurrence",
]
