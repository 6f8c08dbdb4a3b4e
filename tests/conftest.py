"""Pytest configuration and shared fixtures."""

import logging
from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from couplesync.core import db_client
from couplesync.core.config import settings


logger = logging.getLogger(__name__)


@pytest.fixture
def sqlite_db_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """Point the application at a throwaway SQLite file."""
    path = str(tmp_path / "couplesync-test.db")
    monkeypatch.setattr(settings, "sqlite_db_path", path)
    return path


@pytest.fixture
async def sqlite_db(sqlite_db_path: str) -> AsyncIterator[str]:
    """Initialized SQLite database, closed again after the test."""
    await db_client.init_db()
    logger.info("Test database initialized at %s", sqlite_db_path)
    yield sqlite_db_path
    await db_client.close_connection()
