"""Unit tests for task_service module."""

from datetime import UTC, datetime

import pytest

from couplesync.core.db_client import RecordNotFoundError
from couplesync.core.errors import InvalidTransitionError
from couplesync.domain.household_task import TaskCreate, TaskPosition, TaskUpdate
from couplesync.services import task_service


def _utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


@pytest.mark.unit
class TestCreateHouseholdTask:
    """Tests for create_household_task."""

    async def test_create_stores_normalized_record(self, patched_db, sample_task_data):
        task = await task_service.create_household_task(TaskCreate(**sample_task_data), now=_utc(2024, 3, 1))

        stored = patched_db._collections["household_tasks"][task.id]
        assert stored["due_date"] == "2024-03-07T19:00:00Z"
        assert stored["next_due_date"] is None
        assert stored["completed"] == 0
        assert '"pattern": "weekly"' in stored["recurrence"]
        assert task.due_date == _utc(2024, 3, 7, 19)
        assert task.recurrence.pattern == "weekly"

    async def test_create_with_epoch_millis_due_date(self, patched_db):
        payload = TaskCreate(owner_id="user-ben", title="Pay rent", due_date=1709294400000)

        task = await task_service.create_household_task(payload, now=_utc(2024, 2, 1))

        assert task.due_date == _utc(2024, 3, 1, 12)

    async def test_create_with_garbage_due_date(self, patched_db):
        payload = TaskCreate(owner_id="user-ben", title="Call grandma", due_date="garbage")

        task = await task_service.create_household_task(payload)

        assert task.due_date is None


@pytest.mark.unit
class TestReadHouseholdTasks:
    """Tests for get/list operations."""

    async def test_get_missing_task_raises_key_error(self, patched_db):
        with pytest.raises(KeyError):
            await task_service.get_household_task(task_id="does-not-exist")

    async def test_list_orders_by_due_date_with_undated_last(self, patched_db):
        now = _utc(2024, 3, 1)
        for title, due in [("Later", "2024-03-20"), ("Undated", None), ("Sooner", "2024-03-05")]:
            await task_service.create_household_task(
                TaskCreate(owner_id="user-anna", title=title, due_date=due), now=now
            )

        tasks = await task_service.list_household_tasks()

        assert [t.title for t in tasks] == ["Sooner", "Later", "Undated"]

    async def test_list_filters_by_owner_and_completion(self, patched_db):
        now = _utc(2024, 3, 1)
        anna = await task_service.create_household_task(TaskCreate(owner_id="user-anna", title="Vacuum"), now=now)
        await task_service.create_household_task(TaskCreate(owner_id="user-ben", title="Laundry"), now=now)
        await task_service.complete_household_task(task_id=anna.id, now=now)

        assert [t.title for t in await task_service.list_household_tasks(owner_id="user-ben")] == ["Laundry"]
        assert [t.title for t in await task_service.list_household_tasks(completed=True)] == ["Vacuum"]
        assert [t.title for t in await task_service.list_household_tasks(completed=False)] == ["Laundry"]

    async def test_legacy_row_with_bad_dates_loads_as_null(self, patched_db):
        patched_db._collections["household_tasks"] = {
            "legacy-1": {
                "id": "legacy-1",
                "owner_id": "user-anna",
                "title": "Clean gutters",
                "description": None,
                "due_date": "Invalid Date",
                "next_due_date": "",
                "completed": 0,
                "recurrence": "daily",
                "created_at": "2023-05-01T10:00:00Z",
                "updated_at": "2023-05-01T10:00:00Z",
            }
        }

        task = await task_service.get_household_task(task_id="legacy-1")

        assert task.due_date is None
        assert task.next_due_date is None
        assert task.recurrence.pattern == "daily"

    async def test_get_overdue_tasks(self, patched_db):
        now = _utc(2024, 3, 10)
        for title, due in [("Overdue", "2024-03-01"), ("Upcoming", "2024-03-20"), ("Undated", None)]:
            await task_service.create_household_task(
                TaskCreate(owner_id="user-anna", title=title, due_date=due), now=_utc(2024, 2, 1)
            )

        overdue = await task_service.get_overdue_tasks(now=now)

        assert [t.title for t in overdue] == ["Overdue"]


@pytest.mark.unit
class TestLifecycleOperations:
    """Tests for update/complete/reopen/delete."""

    async def test_complete_recurring_task_persists_next_occurrence(self, patched_db):
        task = await task_service.create_household_task(
            TaskCreate(
                owner_id="user-anna",
                title="Water plants",
                due_date="2024-01-01T00:00:00Z",
                recurrence={"pattern": "daily"},
            ),
            now=_utc(2023, 12, 31),
        )

        completed = await task_service.complete_household_task(task_id=task.id, user_id="user-ben", now=_utc(2024, 1, 5))

        assert completed.due_date == _utc(2024, 1, 6)
        assert completed.next_due_date == _utc(2024, 1, 7)
        assert completed.completed is False

        history = await task_service.get_completion_history(task_id=task.id)
        assert len(history) == 1
        assert history[0].user_id == "user-ben"
        assert history[0].expected_date == _utc(2024, 1, 1)
        assert history[0].completed_at == _utc(2024, 1, 5)
        assert history[0].is_completed is True

    async def test_complete_terminal_task_writes_no_history(self, patched_db):
        task = await task_service.create_household_task(TaskCreate(owner_id="user-anna", title="Fix shelf"))
        await task_service.complete_household_task(task_id=task.id, now=_utc(2024, 1, 5))

        again = await task_service.complete_household_task(task_id=task.id, now=_utc(2024, 1, 6))

        assert again.completed is True
        assert len(await task_service.get_completion_history(task_id=task.id)) == 1

    async def test_reopen_records_history_entry(self, patched_db):
        task = await task_service.create_household_task(TaskCreate(owner_id="user-anna", title="Fix shelf"))
        await task_service.complete_household_task(task_id=task.id, now=_utc(2024, 1, 5))

        reopened = await task_service.reopen_household_task(task_id=task.id, user_id="user-anna", now=_utc(2024, 1, 6))

        assert reopened.completed is False
        history = await task_service.get_completion_history(task_id=task.id)
        assert [h.is_completed for h in history] == [False, True]

    async def test_reopen_open_task_raises(self, patched_db):
        task = await task_service.create_household_task(TaskCreate(owner_id="user-anna", title="Fix shelf"))

        with pytest.raises(InvalidTransitionError):
            await task_service.reopen_household_task(task_id=task.id)

    async def test_update_applies_partial_changes(self, patched_db):
        task = await task_service.create_household_task(
            TaskCreate(owner_id="user-anna", title="Mop", description="Kitchen", due_date="2024-03-05"),
            now=_utc(2024, 3, 1),
        )

        updated = await task_service.update_household_task(
            task_id=task.id,
            changes=TaskUpdate.model_validate({"description": None, "recurrence": "FREQ=MONTHLY;INTERVAL=3"}),
            now=_utc(2024, 3, 2),
        )

        assert updated.title == "Mop"
        assert updated.description is None
        assert updated.due_date == _utc(2024, 3, 5)
        assert updated.recurrence.pattern == "quarterly"
        assert updated.updated_at == _utc(2024, 3, 2)
        assert updated.created_at == _utc(2024, 3, 1)

    async def test_update_missing_task_raises(self, patched_db):
        with pytest.raises(KeyError):
            await task_service.update_household_task(task_id="nope", changes=TaskUpdate(title="x"))

    async def test_delete_removes_task_and_history(self, patched_db):
        task = await task_service.create_household_task(TaskCreate(owner_id="user-anna", title="Fix shelf"))
        await task_service.complete_household_task(task_id=task.id, now=_utc(2024, 1, 5))

        await task_service.delete_household_task(task_id=task.id)

        assert patched_db._collections["household_tasks"] == {}
        assert patched_db._collections["task_completions"] == {}
        with pytest.raises(RecordNotFoundError):
            await task_service.get_household_task(task_id=task.id)

    async def test_history_of_missing_task_raises(self, patched_db):
        with pytest.raises(KeyError):
            await task_service.get_completion_history(task_id="nope")

    async def test_delete_missing_task_leaves_other_history_alone(self, patched_db):
        task = await task_service.create_household_task(TaskCreate(owner_id="user-anna", title="Fix shelf"))
        await task_service.complete_household_task(task_id=task.id, now=_utc(2024, 1, 5))

        with pytest.raises(KeyError):
            await task_service.delete_household_task(task_id="nope")

        assert len(patched_db._collections["task_completions"]) == 1


async def _completed_and_reopened(*, title: str, owner_id: str = "user-anna", days: tuple[int, ...]) -> str:
    """Create a one-time task and alternate complete/reopen on the given January days."""
    task = await task_service.create_household_task(TaskCreate(owner_id=owner_id, title=title), now=_utc(2024, 1, 1))
    for index, day in enumerate(days):
        if index % 2 == 0:
            await task_service.complete_household_task(task_id=task.id, user_id=owner_id, now=_utc(2024, 1, day))
        else:
            await task_service.reopen_household_task(task_id=task.id, user_id=owner_id, now=_utc(2024, 1, day))
    return task.id


@pytest.mark.unit
class TestHistoryForPeriod:
    """Tests for period history and missed-task reporting."""

    async def test_period_history_is_inclusive_and_oldest_first(self, patched_db):
        task_id = await _completed_and_reopened(title="Fix shelf", days=(2, 5, 9, 20))

        history = await task_service.get_completion_history_for_period(
            task_id=task_id, start=_utc(2024, 1, 5), end=_utc(2024, 1, 9)
        )

        assert [h.completed_at for h in history] == [_utc(2024, 1, 5), _utc(2024, 1, 9)]
        assert [h.is_completed for h in history] == [False, True]

    async def test_period_history_rejects_inverted_period(self, patched_db):
        task_id = await _completed_and_reopened(title="Fix shelf", days=(2,))

        with pytest.raises(ValueError, match="Period end"):
            await task_service.get_completion_history_for_period(
                task_id=task_id, start=_utc(2024, 1, 9), end=_utc(2024, 1, 5)
            )

    async def test_period_history_of_missing_task_raises(self, patched_db):
        with pytest.raises(KeyError):
            await task_service.get_completion_history_for_period(
                task_id="nope", start=_utc(2024, 1, 1), end=_utc(2024, 1, 31)
            )

    async def test_missed_tasks_only_lists_withdrawn_completions(self, patched_db):
        shelf = await _completed_and_reopened(title="Fix shelf", days=(2, 5, 9, 12))
        await _completed_and_reopened(title="Clean oven", days=(3,))
        await _completed_and_reopened(title="Mow lawn", owner_id="user-ben", days=(2, 6))

        missed = await task_service.get_missed_tasks_for_period(
            owner_id="user-anna", start=_utc(2024, 1, 1), end=_utc(2024, 1, 10)
        )

        assert [m.task.id for m in missed] == [shelf]
        assert missed[0].missed_dates == [_utc(2024, 1, 5)]


@pytest.mark.unit
class TestTaskOrdering:
    """Tests for manual positions."""

    async def test_positions_are_assigned_per_owner(self, patched_db):
        first = await task_service.create_household_task(TaskCreate(owner_id="user-anna", title="Dust"))
        second = await task_service.create_household_task(TaskCreate(owner_id="user-anna", title="Sweep"))
        other = await task_service.create_household_task(TaskCreate(owner_id="user-ben", title="Iron"))

        assert (first.position, second.position, other.position) == (0, 1, 0)

    async def test_reorder_persists_new_order(self, patched_db):
        ids = []
        for title in ("Dust", "Sweep", "Mop"):
            task = await task_service.create_household_task(TaskCreate(owner_id="user-anna", title=title))
            ids.append(task.id)

        reordered = await task_service.reorder_household_tasks(
            positions=[TaskPosition(id=ids[2], position=0), TaskPosition(id=ids[0], position=2)]
        )
        listed = await task_service.list_household_tasks(owner_id="user-anna", order="position")

        assert [t.title for t in reordered] == ["Mop", "Dust"]
        assert [t.title for t in listed] == ["Mop", "Sweep", "Dust"]

    async def test_reorder_skips_unknown_ids(self, patched_db):
        task = await task_service.create_household_task(TaskCreate(owner_id="user-anna", title="Dust"))

        reordered = await task_service.reorder_household_tasks(
            positions=[TaskPosition(id="ghost", position=0), TaskPosition(id=task.id, position=5)]
        )

        assert [(t.id, t.position) for t in reordered] == [(task.id, 5)]

    async def test_reorder_with_only_unknown_ids_raises(self, patched_db):
        with pytest.raises(KeyError):
            await task_service.reorder_household_tasks(positions=[TaskPosition(id="ghost", position=0)])


@pytest.mark.unit
class TestTaskOccurrences:
    """Tests for get_task_occurrences."""

    async def test_recurring_task_expands_from_current_due_date(self, patched_db):
        task = await task_service.create_household_task(
            TaskCreate(
                owner_id="user-anna",
                title="Water plants",
                due_date="2024-03-01T08:00:00Z",
                recurrence={"pattern": "weekly", "endDate": "2024-03-20T00:00:00Z"},
            ),
            now=_utc(2024, 2, 1),
        )

        occurrences = await task_service.get_task_occurrences(
            task_id=task.id, start=_utc(2024, 3, 1), end=_utc(2024, 3, 31)
        )

        assert occurrences == [_utc(2024, 3, 1, 8), _utc(2024, 3, 8, 8), _utc(2024, 3, 15, 8)]

    async def test_one_time_and_completed_tasks(self, patched_db):
        one_time = await task_service.create_household_task(
            TaskCreate(owner_id="user-anna", title="Book dentist", due_date="2024-03-10T00:00:00Z")
        )
        window = {"start": _utc(2024, 3, 1), "end": _utc(2024, 3, 31)}

        assert await task_service.get_task_occurrences(task_id=one_time.id, **window) == [_utc(2024, 3, 10)]

        await task_service.complete_household_task(task_id=one_time.id, now=_utc(2024, 3, 9))
        assert await task_service.get_task_occurrences(task_id=one_time.id, **window) == []
