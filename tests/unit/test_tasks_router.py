"""Tests for the household task HTTP endpoints."""

import pytest
from fastapi.testclient import TestClient

from couplesync.main import app


@pytest.fixture
def client(patched_db) -> TestClient:
    """Create a test client backed by the in-memory database."""
    return TestClient(app)


def _create(client: TestClient, **overrides) -> dict:
    body = {"owner_id": "user-anna", "title": "Take out the recycling", **overrides}
    response = client.post("/api/tasks", json=body)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.unit
def test_health_endpoint_returns_healthy() -> None:
    """Test that health endpoint returns healthy status."""
    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.unit
def test_scheduler_health_endpoint_without_runs() -> None:
    """Test scheduler health reports healthy before any job has failed."""
    response = TestClient(app).get("/health/scheduler")

    body = response.json()
    assert "overdue_task_reminders" in body["jobs"]
    assert body["dead_letter_queue_size"] == len(body["dead_letter_queue"])


@pytest.mark.unit
class TestTaskEndpoints:
    """CRUD and lifecycle endpoints."""

    def test_create_returns_wire_shape(self, client):
        task = _create(
            client,
            due_date="2024-03-07T19:00:00+01:00",
            recurrence={"pattern": "monthly", "monthDay": 7, "endDate": "2024-12-31"},
        )

        assert task["due_date"] == "2024-03-07T18:00:00Z"
        assert task["next_due_date"] is None
        assert task["completed"] is False
        assert task["recurrence"]["monthDay"] == 7
        assert task["recurrence"]["endDate"] == "2024-12-31T00:00:00Z"

    def test_create_with_unparseable_due_date(self, client):
        assert _create(client, due_date="garbage")["due_date"] is None

    def test_create_with_empty_title_is_rejected(self, client):
        response = client.post("/api/tasks", json={"owner_id": "user-anna", "title": "  "})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "ERR_INVALID_INPUT"

    def test_get_and_list(self, client):
        task = _create(client, due_date="2024-03-07T19:00:00Z")
        _create(client, owner_id="user-ben", title="Laundry")

        assert client.get(f"/api/tasks/{task['id']}").json()["title"] == "Take out the recycling"
        listed = client.get("/api/tasks", params={"owner_id": "user-ben"}).json()
        assert [t["title"] for t in listed] == ["Laundry"]

    def test_get_missing_task_returns_404(self, client):
        response = client.get("/api/tasks/nope")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "ERR_TASK_NOT_FOUND"

    def test_list_overdue(self, client):
        _create(client, title="Old", due_date="2000-01-01T00:00:00Z")
        _create(client, title="Future", due_date="2999-01-01T00:00:00Z")

        overdue = client.get("/api/tasks", params={"overdue": "true"}).json()

        assert [t["title"] for t in overdue] == ["Old"]

    def test_update_partial(self, client):
        task = _create(client, description="Blue bin", due_date="2999-01-01T00:00:00Z")

        response = client.put(f"/api/tasks/{task['id']}", json={"description": None})

        assert response.status_code == 200
        assert response.json()["description"] is None
        assert response.json()["due_date"] == "2999-01-01T00:00:00Z"

    def test_complete_recurring_task_advances(self, client):
        task = _create(client, due_date="2999-01-01T08:00:00Z", recurrence={"pattern": "weekly"})

        response = client.post(f"/api/tasks/{task['id']}/complete", params={"user_id": "user-ben"})

        assert response.status_code == 200
        body = response.json()
        assert body["completed"] is False
        assert body["due_date"] == "2999-01-08T08:00:00Z"
        assert body["next_due_date"] == "2999-01-15T08:00:00Z"

        history = client.get(f"/api/tasks/{task['id']}/history").json()
        assert history[0]["user_id"] == "user-ben"
        assert history[0]["expected_date"] == "2999-01-01T08:00:00Z"

    def test_complete_custom_pattern_returns_400(self, client):
        task = _create(client, recurrence={"pattern": "custom", "weekdays": [1]})

        response = client.post(f"/api/tasks/{task['id']}/complete")

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "ERR_UNSUPPORTED_RECURRENCE_PATTERN"

    def test_reopen_open_task_returns_409(self, client):
        task = _create(client)

        response = client.post(f"/api/tasks/{task['id']}/reopen")

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "ERR_INVALID_STATE_TRANSITION"

    def test_complete_then_reopen(self, client):
        task = _create(client)
        client.post(f"/api/tasks/{task['id']}/complete")

        response = client.post(f"/api/tasks/{task['id']}/reopen")

        assert response.status_code == 200
        assert response.json()["completed"] is False

    def test_delete(self, client):
        task = _create(client)

        assert client.delete(f"/api/tasks/{task['id']}").status_code == 204
        assert client.get(f"/api/tasks/{task['id']}").status_code == 404
        assert client.delete(f"/api/tasks/{task['id']}").status_code == 404

    def test_rrule_export(self, client):
        task = _create(client, recurrence={"pattern": "biweekly", "endDate": "2024-06-30T00:00:00Z"})

        body = client.get(f"/api/tasks/{task['id']}/rrule").json()

        assert body == {
            "rule": "FREQ=WEEKLY;INTERVAL=2;UNTIL=20240630T000000Z",
            "description": "every 2 weeks until 2024-06-30",
        }

    def test_rrule_export_for_one_time_task(self, client):
        task = _create(client)

        assert client.get(f"/api/tasks/{task['id']}/rrule").json() == {"rule": None, "description": "does not repeat"}

    def test_create_with_oversized_interval_returns_400(self, client):
        response = client.post(
            "/api/tasks",
            json={"owner_id": "user-anna", "title": "Descale kettle", "recurrence": {"pattern": "daily", "interval": 10**9}},
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "ERR_INVALID_INPUT"

    def test_complete_past_last_representable_date_returns_400(self, client):
        task = _create(client, due_date="9999-12-31T12:00:00Z", recurrence={"pattern": "daily"})

        response = client.post(f"/api/tasks/{task['id']}/complete")

        assert response.status_code == 400
        assert client.get(f"/api/tasks/{task['id']}").json()["completed"] is False


@pytest.mark.unit
class TestOrderingAndPeriods:
    """Reorder, period history, missed tasks and occurrences."""

    def test_reorder_and_list_by_position(self, client):
        dust = _create(client, title="Dust")
        sweep = _create(client, title="Sweep")

        response = client.put(
            "/api/tasks/reorder",
            json={"tasks": [{"id": sweep["id"], "position": 0}, {"id": dust["id"], "position": 1}]},
        )
        listed = client.get("/api/tasks", params={"owner_id": "user-anna", "order": "position"}).json()

        assert response.status_code == 200
        assert [t["title"] for t in listed] == ["Sweep", "Dust"]

    def test_reorder_unknown_tasks_returns_404(self, client):
        response = client.put("/api/tasks/reorder", json={"tasks": [{"id": "ghost", "position": 0}]})

        assert response.status_code == 404

    def test_reorder_rejects_negative_position(self, client):
        task = _create(client)

        response = client.put("/api/tasks/reorder", json={"tasks": [{"id": task["id"], "position": -1}]})

        assert response.status_code == 422

    def test_history_for_period(self, client):
        task = _create(client)
        client.post(f"/api/tasks/{task['id']}/complete")

        inside = client.get(
            f"/api/tasks/{task['id']}/history", params={"start": "2000-01-01", "end": "2999-01-01"}
        ).json()
        outside = client.get(
            f"/api/tasks/{task['id']}/history", params={"start": "2000-01-01", "end": "2000-12-31"}
        ).json()

        assert len(inside) == 1
        assert outside == []

    def test_history_with_unparseable_period_returns_400(self, client):
        task = _create(client)

        response = client.get(f"/api/tasks/{task['id']}/history", params={"start": "soon", "end": "later"})

        assert response.status_code == 400

    def test_missed_tasks(self, client):
        task = _create(client, title="Clean windows")
        client.post(f"/api/tasks/{task['id']}/complete")
        client.post(f"/api/tasks/{task['id']}/reopen", params={"user_id": "user-anna"})

        missed = client.get(
            "/api/tasks/missed", params={"owner_id": "user-anna", "start": "2000-01-01", "end": "2999-01-01"}
        ).json()

        assert [m["task"]["title"] for m in missed] == ["Clean windows"]
        assert len(missed[0]["missed_dates"]) == 1

    def test_occurrences(self, client):
        task = _create(client, due_date="2999-01-01T08:00:00Z", recurrence={"pattern": "daily"})

        response = client.get(
            f"/api/tasks/{task['id']}/occurrences",
            params={"start": "2999-01-01T00:00:00Z", "end": "2999-01-03T23:59:59Z"},
        )

        assert response.json() == ["2999-01-01T08:00:00Z", "2999-01-02T08:00:00Z", "2999-01-03T08:00:00Z"]

    def test_occurrences_with_inverted_window_returns_400(self, client):
        task = _create(client, due_date="2999-01-01T08:00:00Z", recurrence={"pattern": "daily"})

        response = client.get(
            f"/api/tasks/{task['id']}/occurrences", params={"start": "2999-02-01", "end": "2999-01-01"}
        )

        assert response.status_code == 400
