"""SQLite schema for household tasks (code-first approach)."""

import logging

import aiosqlite

from couplesync.core import db_client


logger = logging.getLogger(__name__)


TABLE_SCHEMAS: dict[str, str] = {
    "household_tasks": """CREATE TABLE IF NOT EXISTS household_tasks (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        due_date TEXT,
        next_due_date TEXT,
        completed INTEGER NOT NULL DEFAULT 0 CHECK (completed IN (0, 1)),
        recurrence TEXT,
        position INTEGER NOT NULL DEFAULT 0 CHECK (position >= 0),
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )""",
    "task_completions": """CREATE TABLE IF NOT EXISTS task_completions (
        id TEXT PRIMARY KEY,
        task_id TEXT NOT NULL REFERENCES household_tasks(id) ON DELETE CASCADE,
        user_id TEXT,
        completed_at TEXT NOT NULL,
        expected_date TEXT,
        is_completed INTEGER NOT NULL DEFAULT 1 CHECK (is_completed IN (0, 1))
    )""",
}

INDEXES: list[str] = [
    "CREATE INDEX IF NOT EXISTS idx_household_tasks_owner_id ON household_tasks (owner_id)",
    "CREATE INDEX IF NOT EXISTS idx_household_tasks_due_date ON household_tasks (due_date)",
    "CREATE INDEX IF NOT EXISTS idx_household_tasks_completed ON household_tasks (completed)",
    "CREATE INDEX IF NOT EXISTS idx_household_tasks_owner_position ON household_tasks (owner_id, position)",
    "CREATE INDEX IF NOT EXISTS idx_task_completions_task_id ON task_completions (task_id)",
]

# Columns added after the first release; older databases get them via ALTER TABLE
ADDED_COLUMNS: dict[str, dict[str, str]] = {
    "household_tasks": {"position": "INTEGER NOT NULL DEFAULT 0"},
}


async def _add_missing_columns(conn: aiosqlite.Connection) -> None:
    for table_name, columns in ADDED_COLUMNS.items():
        cursor = await conn.execute(f"PRAGMA table_info({table_name})")
        existing = {row[1] for row in await cursor.fetchall()}
        for column, ddl in columns.items():
            if column not in existing:
                await conn.execute(f"ALTER TABLE {table_name} ADD COLUMN {column} {ddl}")
                logger.info("Added column", extra={"table": table_name, "column": column})


async def init_db(*, db_path: str | None = None) -> None:
    """Create all tables and indexes if they do not exist."""
    conn = await db_client.get_connection(db_path=db_path)

    for table_name, ddl in TABLE_SCHEMAS.items():
        await conn.execute(ddl)
        logger.debug("Ensured table exists", extra={"table": table_name})

    await _add_missing_columns(conn)

    for index_sql in INDEXES:
        await conn.execute(index_sql)

    await conn.commit()
    logger.info("Database schema initialized", extra={"tables": list(TABLE_SCHEMAS)})
