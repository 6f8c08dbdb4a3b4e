"""Pure state transitions for the due-date and recurrence fields of household tasks.

These functions do no I/O. They mutate only the task passed in, take an explicit
`now`, and delegate all date arithmetic to the recurrence engine and all input
normalization to validate_due_date().

State machine (per task):

    NO_DEADLINE / ONE_TIME --complete--> COMPLETED --reopen--> NO_DEADLINE / ONE_TIME
    RECURRING_PENDING --complete--> RECURRING_DONE --advance--> RECURRING_PENDING
                                                  \\--past end date--> RECURRENCE_ENDED

`next_due_date` is computed lazily: it stays None until the first completion.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from couplesync.core.dates import ensure_utc, utc_now, validate_due_date
from couplesync.core.errors import InvalidTransitionError
from couplesync.core.recurrence_engine import calculate_next_due_date, exceeds_end_date, is_overdue
from couplesync.domain.household_task import HouseholdTask, TaskState, TaskUpdate
from couplesync.domain.recurrence import coerce_recurrence


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompletionOutcome:
    """Result of completing one occurrence of a task."""

    task: HouseholdTask
    completed_at: datetime
    expected_date: datetime | None
    recurrence_ended: bool
    already_terminal: bool = False


def _reference(now: datetime | None) -> datetime:
    return ensure_utc(now) if now is not None else utc_now()


def get_task_state(task: HouseholdTask) -> TaskState:
    """Derive the lifecycle state from the task's fields."""
    if task.recurrence is None:
        if task.completed:
            return TaskState.COMPLETED
        return TaskState.NO_DEADLINE if task.due_date is None else TaskState.ONE_TIME

    if not task.completed:
        return TaskState.RECURRING_PENDING
    if task.due_date is None and task.next_due_date is None:
        return TaskState.RECURRENCE_ENDED
    return TaskState.RECURRING_DONE


def is_task_overdue(task: HouseholdTask, now: datetime | None = None) -> bool:
    """Return True if the task's current occurrence is open and past its due date."""
    if task.completed or task.due_date is None:
        return False
    return is_overdue(task.due_date, _reference(now))


def create_task(
    *,
    owner_id: str,
    title: str,
    description: str | None = None,
    due_date: object = None,
    recurrence: object = None,
    now: datetime | None = None,
    task_id: str | None = None,
    position: int = 0,
) -> HouseholdTask:
    """Build a new task from raw input.

    The due date goes through validate_due_date(), so an unparseable value yields a
    task without a deadline. next_due_date stays None until the first completion.

    Raises:
        pydantic.ValidationError: If the title is empty or the recurrence is malformed
    """
    timestamp = _reference(now)
    task = HouseholdTask(
        id=task_id or uuid.uuid4().hex,
        owner_id=owner_id,
        title=title,
        description=description,
        due_date=validate_due_date(due_date),
        next_due_date=None,
        completed=False,
        recurrence=coerce_recurrence(recurrence),
        position=position,
        created_at=timestamp,
        updated_at=timestamp,
    )
    logger.debug("Created task %s in state %s", task.id, get_task_state(task))
    return task


def complete_task(task: HouseholdTask, *, now: datetime | None = None) -> CompletionOutcome:
    """Complete the task's current occurrence.

    One-time tasks become permanently completed with their dates untouched.
    Recurring tasks advance: the next occurrence becomes the due date, the one
    after it is precomputed, and `completed` resets to False. If the next
    occurrence would fall after the recurrence end date, the recurrence ends:
    both dates are cleared and the task stays completed.

    Completing a task that is already in a terminal state changes nothing.

    Raises:
        UnsupportedPatternError: If the recurrence pattern cannot be advanced
    """
    timestamp = _reference(now)
    expected_date = task.due_date
    state = get_task_state(task)

    if state in (TaskState.COMPLETED, TaskState.RECURRENCE_ENDED):
        return CompletionOutcome(
            task=task,
            completed_at=timestamp,
            expected_date=expected_date,
            recurrence_ended=state == TaskState.RECURRENCE_ENDED,
            already_terminal=True,
        )

    if task.recurrence is None:
        task.completed = True
        task.updated_at = timestamp
        logger.info("Completed one-time task %s", task.id)
        return CompletionOutcome(
            task=task, completed_at=timestamp, expected_date=expected_date, recurrence_ended=False
        )

    # Compute the new dates before touching any field
    recurrence = task.recurrence
    next_due = calculate_next_due_date(task.due_date or timestamp, recurrence, timestamp)

    if exceeds_end_date(next_due, recurrence):
        task.completed = True
        task.due_date = None
        task.next_due_date = None
        task.updated_at = timestamp
        logger.info("Recurrence ended for task %s (next occurrence %s is past end date)", task.id, next_due)
        return CompletionOutcome(task=task, completed_at=timestamp, expected_date=expected_date, recurrence_ended=True)

    following = calculate_next_due_date(next_due, recurrence, timestamp)
    task.due_date = next_due
    task.next_due_date = None if exceeds_end_date(following, recurrence) else following
    task.completed = False
    task.updated_at = timestamp

    logger.info("Advanced recurring task %s, next due date: %s", task.id, next_due)
    return CompletionOutcome(task=task, completed_at=timestamp, expected_date=expected_date, recurrence_ended=False)


def reopen_task(task: HouseholdTask, *, now: datetime | None = None) -> HouseholdTask:
    """Mark a completed one-time task as not done again.

    Raises:
        InvalidTransitionError: If the task is not a completed one-time task
    """
    state = get_task_state(task)
    if state != TaskState.COMPLETED:
        msg = f"Cannot reopen: task {task.id} is in {state} state"
        raise InvalidTransitionError(msg)

    task.completed = False
    task.updated_at = _reference(now)
    logger.info("Reopened task %s", task.id)
    return task


def edit_task(task: HouseholdTask, changes: TaskUpdate, *, now: datetime | None = None) -> HouseholdTask:
    """Apply the explicitly provided fields of `changes` to the task.

    A new due date goes through validate_due_date(). Changing the recurrence, or
    moving the due date of a recurring task, drops the precomputed next due date
    (it is recomputed on the next completion) and reopens a completed recurring
    task as pending. All inputs are validated before the task is modified.

    Raises:
        pydantic.ValidationError: If the title is empty or the recurrence is malformed
    """
    provided = changes.model_fields_set
    timestamp = _reference(now)

    title = changes.title if "title" in provided and changes.title is not None else task.title
    description = changes.description if "description" in provided else task.description
    due_date = validate_due_date(changes.due_date) if "due_date" in provided else task.due_date
    recurrence = coerce_recurrence(changes.recurrence) if "recurrence" in provided else task.recurrence

    schedule_changed = due_date != task.due_date or recurrence != task.recurrence

    task.title = title
    task.description = description
    task.due_date = due_date
    task.recurrence = recurrence

    if recurrence is None or schedule_changed:
        task.next_due_date = None
    if recurrence is not None and schedule_changed and task.completed:
        task.completed = False

    task.updated_at = timestamp
    logger.debug("Edited task %s (fields: %s)", task.id, sorted(provided))
    return task
