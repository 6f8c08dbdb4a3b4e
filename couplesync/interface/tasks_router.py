"""HTTP interface for household tasks."""

import logging
from datetime import datetime
from typing import Literal, NoReturn

from fastapi import APIRouter, HTTPException, Response, status
from pydantic import BaseModel

from couplesync.core.dates import validate_due_date
from couplesync.core.errors import classify_error_with_response
from couplesync.core.rrule import build_recurrence_rule, describe_recurrence
from couplesync.domain.household_task import (
    HouseholdTask,
    MissedTask,
    TaskCompletion,
    TaskCreate,
    TaskReorder,
    TaskUpdate,
)
from couplesync.services import task_service


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


class RecurrenceRuleResponse(BaseModel):
    """iCalendar export of a task's recurrence."""

    rule: str | None
    description: str


def _raise_http_error(exc: Exception) -> NoReturn:
    """Translate a service error into an HTTPException with a structured body."""
    error = classify_error_with_response(exc)
    logger.info(
        "task_request_rejected",
        extra={"code": error.code, "status_code": error.status_code, "error": str(exc)},
    )
    raise HTTPException(status_code=error.status_code, detail=error.model_dump(mode="json")) from exc


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_task(payload: TaskCreate) -> HouseholdTask:
    """Create a task. Unparseable due dates are stored as 'no deadline'."""
    try:
        return await task_service.create_household_task(payload)
    except ValueError as e:
        _raise_http_error(e)


@router.get("")
async def list_tasks(
    owner_id: str | None = None,
    completed: bool | None = None,
    overdue: bool = False,
    order: Literal["due_date", "position"] = "due_date",
) -> list[HouseholdTask]:
    """List tasks ordered by due date, or by manual position with `order=position`."""
    if overdue:
        return await task_service.get_overdue_tasks(owner_id=owner_id)
    return await task_service.list_household_tasks(owner_id=owner_id, completed=completed, order=order)


def _parse_period(start: str, end: str) -> tuple[datetime, datetime]:
    """Parse period bounds from query parameters."""
    period_start = validate_due_date(start)
    period_end = validate_due_date(end)
    if period_start is None or period_end is None:
        msg = "start and end must be ISO-8601 dates"
        raise ValueError(msg)
    return period_start, period_end


@router.get("/missed")
async def list_missed_tasks(owner_id: str, start: str, end: str) -> list[MissedTask]:
    """Tasks of `owner_id` whose completion was withdrawn within the period."""
    try:
        period_start, period_end = _parse_period(start, end)
        return await task_service.get_missed_tasks_for_period(owner_id=owner_id, start=period_start, end=period_end)
    except ValueError as e:
        _raise_http_error(e)


@router.put("/reorder")
async def reorder_tasks(payload: TaskReorder) -> list[HouseholdTask]:
    """Store a new manual order; unknown task IDs are ignored."""
    try:
        return await task_service.reorder_household_tasks(positions=payload.tasks)
    except KeyError as e:
        _raise_http_error(e)


@router.get("/{task_id}")
async def get_task(task_id: str) -> HouseholdTask:
    try:
        return await task_service.get_household_task(task_id=task_id)
    except KeyError as e:
        _raise_http_error(e)


@router.put("/{task_id}")
async def update_task(task_id: str, changes: TaskUpdate) -> HouseholdTask:
    """Partially update a task; only fields present in the body are changed."""
    try:
        return await task_service.update_household_task(task_id=task_id, changes=changes)
    except (KeyError, ValueError) as e:
        _raise_http_error(e)


@router.post("/{task_id}/complete")
async def complete_task(task_id: str, user_id: str | None = None) -> HouseholdTask:
    """Complete the current occurrence. Recurring tasks come back with their next due date."""
    try:
        return await task_service.complete_household_task(task_id=task_id, user_id=user_id)
    except (KeyError, ValueError) as e:
        _raise_http_error(e)


@router.post("/{task_id}/reopen")
async def reopen_task(task_id: str, user_id: str | None = None) -> HouseholdTask:
    try:
        return await task_service.reopen_household_task(task_id=task_id, user_id=user_id)
    except (KeyError, ValueError) as e:
        _raise_http_error(e)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: str) -> Response:
    try:
        await task_service.delete_household_task(task_id=task_id)
    except KeyError as e:
        _raise_http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{task_id}/history")
async def get_task_history(task_id: str, start: str | None = None, end: str | None = None) -> list[TaskCompletion]:
    """Completion history of a task, newest first; with `start` and `end`, that period oldest first."""
    try:
        if start is not None and end is not None:
            period_start, period_end = _parse_period(start, end)
            return await task_service.get_completion_history_for_period(
                task_id=task_id, start=period_start, end=period_end
            )
        return await task_service.get_completion_history(task_id=task_id)
    except (KeyError, ValueError) as e:
        _raise_http_error(e)


@router.get("/{task_id}/rrule")
async def get_task_rrule(task_id: str) -> RecurrenceRuleResponse:
    """Export the task's recurrence as an iCalendar RRULE with a readable description."""
    try:
        task = await task_service.get_household_task(task_id=task_id)
        if task.recurrence is None:
            return RecurrenceRuleResponse(rule=None, description="does not repeat")
        return RecurrenceRuleResponse(
            rule=build_recurrence_rule(task.recurrence),
            description=describe_recurrence(task.recurrence),
        )
    except (KeyError, ValueError) as e:
        _raise_http_error(e)


@router.get("/{task_id}/occurrences")
async def get_task_occurrences(task_id: str, start: str, end: str) -> list[datetime]:
    """Due dates of the task's series that fall within the window."""
    try:
        period_start, period_end = _parse_period(start, end)
        return await task_service.get_task_occurrences(task_id=task_id, start=period_start, end=period_end)
    except (KeyError, ValueError) as e:
        _raise_http_error(e)
