"""Pytest configuration and fixtures for unit tests."""

from datetime import UTC, datetime

import pytest

from couplesync.core.notifier import LoggingNotifier
from tests.unit.mocks import InMemoryDBClient


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches couplesync.core.db_client functions to use InMemoryDBClient."""
    monkeypatch.setattr("couplesync.core.db_client.create_record", in_memory_db.create_record)
    monkeypatch.setattr("couplesync.core.db_client.get_record", in_memory_db.get_record)
    monkeypatch.setattr("couplesync.core.db_client.update_record", in_memory_db.update_record)
    monkeypatch.setattr("couplesync.core.db_client.update_records", in_memory_db.update_records)
    monkeypatch.setattr("couplesync.core.db_client.delete_record", in_memory_db.delete_record)
    monkeypatch.setattr("couplesync.core.db_client.list_records", in_memory_db.list_records)
    return in_memory_db


@pytest.fixture
def fixed_now():
    """A fixed reference instant for date arithmetic."""
    return datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def notifier():
    """Notifier that records messages instead of delivering them."""
    return LoggingNotifier()


@pytest.fixture
def sample_task_data():
    """Returns sample task creation data."""
    return {
        "owner_id": "user-anna",
        "title": "Take out the recycling",
        "description": "Blue bin, Thursday night",
        "due_date": "2024-03-07T19:00:00Z",
        "recurrence": {"pattern": "weekly", "interval": 1, "timezone": "UTC"},
    }
