"""Household task service: persistence around the task lifecycle transitions."""

import json
import logging
import uuid
from datetime import datetime
from typing import Any, Literal

from couplesync.core import db_client
from couplesync.core.config import constants
from couplesync.core.dates import to_iso, validate_due_date
from couplesync.core.logging import span
from couplesync.core.recurrence_engine import expand_occurrences
from couplesync.domain.household_task import (
    HouseholdTask,
    MissedTask,
    TaskCompletion,
    TaskCreate,
    TaskPosition,
    TaskUpdate,
)
from couplesync.domain.recurrence import coerce_recurrence
from couplesync.services import task_lifecycle


logger = logging.getLogger(__name__)

TASKS_COLLECTION = "household_tasks"
COMPLETIONS_COLLECTION = "task_completions"


def task_to_record(task: HouseholdTask) -> dict[str, Any]:
    """Serialize a task into a row for the household_tasks table."""
    return {
        "id": task.id,
        "owner_id": task.owner_id,
        "title": task.title,
        "description": task.description,
        "due_date": to_iso(task.due_date),
        "next_due_date": to_iso(task.next_due_date),
        "completed": int(task.completed),
        "recurrence": json.dumps(task.recurrence.to_wire()) if task.recurrence else None,
        "position": task.position,
        "created_at": to_iso(task.created_at),
        "updated_at": to_iso(task.updated_at),
    }


def _load_recurrence(raw: Any) -> Any:
    """Decode the stored recurrence column (wire JSON, or a legacy bare pattern name)."""
    if not isinstance(raw, str):
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def task_from_record(record: dict[str, Any]) -> HouseholdTask:
    """Build a task from a stored row. Stored dates are re-validated on the way in."""
    return HouseholdTask(
        id=str(record["id"]),
        owner_id=str(record["owner_id"]),
        title=record["title"],
        description=record.get("description"),
        due_date=validate_due_date(record.get("due_date")),
        next_due_date=validate_due_date(record.get("next_due_date")),
        completed=bool(record.get("completed")),
        recurrence=coerce_recurrence(_load_recurrence(record.get("recurrence"))),
        position=record.get("position") or 0,
        created_at=record["created_at"],
        updated_at=record["updated_at"],
    )


def _completion_from_record(record: dict[str, Any]) -> TaskCompletion:
    return TaskCompletion(
        id=str(record["id"]),
        task_id=str(record["task_id"]),
        user_id=record.get("user_id"),
        completed_at=record["completed_at"],
        expected_date=record.get("expected_date"),
        is_completed=bool(record.get("is_completed", 1)),
    )


async def _save_task(task: HouseholdTask) -> HouseholdTask:
    data = task_to_record(task)
    del data["id"]
    del data["created_at"]
    record = await db_client.update_record(collection=TASKS_COLLECTION, record_id=task.id, data=data)
    return task_from_record(record)


async def _record_completion(
    *,
    task_id: str,
    user_id: str | None,
    completed_at: datetime,
    expected_date: datetime | None,
    is_completed: bool,
) -> None:
    await db_client.create_record(
        collection=COMPLETIONS_COLLECTION,
        data={
            "id": uuid.uuid4().hex,
            "task_id": task_id,
            "user_id": user_id,
            "completed_at": to_iso(completed_at),
            "expected_date": to_iso(expected_date),
            "is_completed": int(is_completed),
        },
    )


async def _list_all(*, collection: str, filter_query: str = "", sort: str = "") -> list[dict[str, Any]]:
    """Fetch every matching record, page by page."""
    records: list[dict[str, Any]] = []
    page = 1
    while True:
        batch = await db_client.list_records(
            collection=collection,
            filter_query=filter_query,
            sort=sort,
            page=page,
            per_page=constants.DEFAULT_PER_PAGE_LIMIT,
        )
        records.extend(batch)
        if len(batch) < constants.DEFAULT_PER_PAGE_LIMIT:
            return records
        page += 1


def _due_date_sort_key(task: HouseholdTask) -> tuple[bool, datetime | str]:
    # Tasks without a deadline go last
    if task.due_date is None:
        return (True, task.created_at)
    return (False, task.due_date)


def _position_sort_key(task: HouseholdTask) -> tuple[int, datetime]:
    return (task.position, task.created_at)


def _owner_filter(owner_id: str) -> str:
    return f'owner_id = "{db_client.sanitize_param(owner_id)}"'


def _period_filter(task_id: str, start: datetime, end: datetime) -> str:
    return (
        f'task_id = "{db_client.sanitize_param(task_id)}"'
        f' && completed_at >= "{to_iso(start)}" && completed_at <= "{to_iso(end)}"'
    )


def _validate_period(start: datetime, end: datetime) -> None:
    if end < start:
        msg = "Period end must not be before its start"
        raise ValueError(msg)


async def _next_position(owner_id: str) -> int:
    """Return the position after the owner's last task (0 for the first one)."""
    last = await db_client.list_records(
        collection=TASKS_COLLECTION, filter_query=_owner_filter(owner_id), sort="-position", per_page=1
    )
    return int(last[0]["position"]) + 1 if last else 0


async def create_household_task(payload: TaskCreate, *, now: datetime | None = None) -> HouseholdTask:
    """Create and store a new household task.

    Args:
        payload: Raw task input (dates and recurrence are normalized, not rejected)
        now: Reference instant used for the audit timestamps

    Returns:
        The stored task

    Raises:
        pydantic.ValidationError: If the title is empty or the recurrence is malformed
    """
    with span("task_service.create_household_task"):
        task = task_lifecycle.create_task(
            owner_id=payload.owner_id,
            title=payload.title,
            description=payload.description,
            due_date=payload.due_date,
            recurrence=payload.recurrence,
            now=now,
            position=await _next_position(payload.owner_id),
        )
        record = await db_client.create_record(collection=TASKS_COLLECTION, data=task_to_record(task))
        logger.info("Created household task", extra={"task_id": task.id, "owner_id": task.owner_id})
        return task_from_record(record)


async def get_household_task(*, task_id: str) -> HouseholdTask:
    """Get a task by ID.

    Raises:
        KeyError: If the task does not exist
    """
    with span("task_service.get_household_task"):
        record = await db_client.get_record(collection=TASKS_COLLECTION, record_id=task_id)
        return task_from_record(record)


async def list_household_tasks(
    *,
    owner_id: str | None = None,
    completed: bool | None = None,
    order: Literal["due_date", "position"] = "due_date",
) -> list[HouseholdTask]:
    """List tasks ordered by due date (tasks without one last) or by manual position.

    Args:
        owner_id: Only tasks owned by this user
        completed: Only tasks whose current occurrence is (or is not) completed
        order: "due_date" or "position"
    """
    with span("task_service.list_household_tasks"):
        filters = []
        if owner_id:
            filters.append(_owner_filter(owner_id))
        if completed is not None:
            filters.append(f'completed = "{int(completed)}"')

        records = await _list_all(collection=TASKS_COLLECTION, filter_query=" && ".join(filters), sort="created_at")
        tasks = [task_from_record(r) for r in records]
        return sorted(tasks, key=_position_sort_key if order == "position" else _due_date_sort_key)


async def update_household_task(
    *,
    task_id: str,
    changes: TaskUpdate,
    now: datetime | None = None,
) -> HouseholdTask:
    """Apply a partial update to a task.

    Raises:
        KeyError: If the task does not exist
        pydantic.ValidationError: If the new title or recurrence is invalid
    """
    with span("task_service.update_household_task"):
        task = await get_household_task(task_id=task_id)
        task_lifecycle.edit_task(task, changes, now=now)
        saved = await _save_task(task)
        logger.info(
            "Updated household task",
            extra={"task_id": task_id, "fields": sorted(changes.model_fields_set)},
        )
        return saved


async def complete_household_task(
    *,
    task_id: str,
    user_id: str | None = None,
    now: datetime | None = None,
) -> HouseholdTask:
    """Complete the current occurrence of a task and record it in the history.

    Completing a task that is already in a terminal state returns it unchanged
    and writes no history.

    Raises:
        KeyError: If the task does not exist
        UnsupportedPatternError: If the task's recurrence cannot be advanced
    """
    with span("task_service.complete_household_task"):
        task = await get_household_task(task_id=task_id)
        outcome = task_lifecycle.complete_task(task, now=now)

        if outcome.already_terminal:
            logger.info("Task already in terminal state", extra={"task_id": task_id})
            return task

        saved = await _save_task(outcome.task)
        await _record_completion(
            task_id=task_id,
            user_id=user_id,
            completed_at=outcome.completed_at,
            expected_date=outcome.expected_date,
            is_completed=True,
        )

        logger.info(
            "Completed household task",
            extra={
                "task_id": task_id,
                "user_id": user_id,
                "recurrence_ended": outcome.recurrence_ended,
                "next_due_date": to_iso(saved.due_date) if saved.recurrence else None,
            },
        )
        return saved


async def reopen_household_task(
    *,
    task_id: str,
    user_id: str | None = None,
    now: datetime | None = None,
) -> HouseholdTask:
    """Mark a completed one-time task as not done again.

    Raises:
        KeyError: If the task does not exist
        InvalidTransitionError: If the task is not a completed one-time task
    """
    with span("task_service.reopen_household_task"):
        task = await get_household_task(task_id=task_id)
        task_lifecycle.reopen_task(task, now=now)
        saved = await _save_task(task)
        await _record_completion(
            task_id=task_id,
            user_id=user_id,
            completed_at=saved.updated_at,
            expected_date=saved.due_date,
            is_completed=False,
        )
        logger.info("Reopened household task", extra={"task_id": task_id, "user_id": user_id})
        return saved


async def delete_household_task(*, task_id: str) -> None:
    """Delete a task; its completion history goes with it (ON DELETE CASCADE).

    Raises:
        KeyError: If the task does not exist
    """
    with span("task_service.delete_household_task"):
        await db_client.get_record(collection=TASKS_COLLECTION, record_id=task_id)
        await db_client.delete_record(collection=TASKS_COLLECTION, record_id=task_id)
        logger.info("Deleted household task", extra={"task_id": task_id})


async def get_completion_history(*, task_id: str) -> list[TaskCompletion]:
    """Return the completion history of a task, newest first.

    Raises:
        KeyError: If the task does not exist
    """
    with span("task_service.get_completion_history"):
        await db_client.get_record(collection=TASKS_COLLECTION, record_id=task_id)
        records = await _list_all(
            collection=COMPLETIONS_COLLECTION,
            filter_query=f'task_id = "{db_client.sanitize_param(task_id)}"',
            sort="-completed_at",
        )
        return [_completion_from_record(r) for r in records]


async def get_overdue_tasks(*, owner_id: str | None = None, now: datetime | None = None) -> list[HouseholdTask]:
    """Return open tasks whose due date has passed, most overdue first."""
    with span("task_service.get_overdue_tasks"):
        open_tasks = await list_household_tasks(owner_id=owner_id, completed=False)
        return [task for task in open_tasks if task_lifecycle.is_task_overdue(task, now)]


async def get_completion_history_for_period(
    *,
    task_id: str,
    start: datetime,
    end: datetime,
) -> list[TaskCompletion]:
    """Return the history entries recorded within [start, end], oldest first.

    Raises:
        KeyError: If the task does not exist
        ValueError: If the period ends before it starts
    """
    with span("task_service.get_completion_history_for_period"):
        _validate_period(start, end)
        await db_client.get_record(collection=TASKS_COLLECTION, record_id=task_id)
        records = await _list_all(
            collection=COMPLETIONS_COLLECTION,
            filter_query=_period_filter(task_id, start, end),
            sort="completed_at",
        )
        return [_completion_from_record(r) for r in records]


async def get_missed_tasks_for_period(*, owner_id: str, start: datetime, end: datetime) -> list[MissedTask]:
    """Return the owner's tasks whose completion was withdrawn (reopened) within [start, end].

    Raises:
        ValueError: If the period ends before it starts
    """
    with span("task_service.get_missed_tasks_for_period"):
        _validate_period(start, end)
        missed: list[MissedTask] = []
        for task in await list_household_tasks(owner_id=owner_id):
            records = await _list_all(
                collection=COMPLETIONS_COLLECTION,
                filter_query=f'{_period_filter(task.id, start, end)} && is_completed = "0"',
                sort="completed_at",
            )
            if records:
                missed.append(
                    MissedTask(task=task, missed_dates=[_completion_from_record(r).completed_at for r in records])
                )
        logger.info("Collected missed tasks", extra={"owner_id": owner_id, "count": len(missed)})
        return missed


async def reorder_household_tasks(*, positions: list[TaskPosition]) -> list[HouseholdTask]:
    """Store new manual positions in one transaction and return the reordered tasks.

    Unknown task IDs are skipped with a warning.

    Raises:
        KeyError: If none of the IDs belong to an existing task
    """
    with span("task_service.reorder_household_tasks"):
        known: dict[str, int] = {}
        for item in positions:
            try:
                await db_client.get_record(collection=TASKS_COLLECTION, record_id=item.id)
            except KeyError:
                logger.warning("Skipping unknown task in reorder", extra={"task_id": item.id})
                continue
            known[item.id] = item.position

        if not known:
            msg = "None of the tasks to reorder exist"
            raise db_client.RecordNotFoundError(msg)

        await db_client.update_records(
            collection=TASKS_COLLECTION,
            updates={task_id: {"position": position} for task_id, position in known.items()},
        )
        tasks = [await get_household_task(task_id=task_id) for task_id in known]
        return sorted(tasks, key=_position_sort_key)


async def get_task_occurrences(*, task_id: str, start: datetime, end: datetime) -> list[datetime]:
    """Return the task's upcoming due dates within [start, end], starting from its current due date.

    A one-time task yields its due date if it falls inside the window. Undated and
    finished tasks have no occurrences.

    Raises:
        KeyError: If the task does not exist
        ValueError: If the window ends before it starts
        UnsupportedPatternError: If the recurrence cannot be expanded
    """
    with span("task_service.get_task_occurrences"):
        _validate_period(start, end)
        task = await get_household_task(task_id=task_id)
        if task.due_date is None or task.completed:
            return []
        if task.recurrence is None:
            return [task.due_date] if start <= task.due_date <= end else []
        return expand_occurrences(task.due_date, task.recurrence, start, end)
