"""SQLite database client wrapper with CRUD operations."""

import asyncio
import json
import logging
import re
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from couplesync.core.config import settings
from couplesync.core.dates import to_iso


logger = logging.getLogger(__name__)


class DatabaseError(RuntimeError):
    """Raised when a database operation fails."""


class RecordNotFoundError(KeyError):
    """Raised when a record does not exist."""


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in filter queries via json.dumps."""
    return json.dumps(str(value))[1:-1]


def _encode_value(value: Any) -> Any:
    """Convert a Python value to something SQLite can store."""
    if isinstance(value, datetime):
        return to_iso(value)
    if isinstance(value, dict | list):
        return json.dumps(value)
    return value


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


# One comparison: field, operator, double-quoted value (escaped as by sanitize_param)
_CONDITION_RE = re.compile(r'\s*([A-Za-z_][A-Za-z0-9_]*)\s*(!=|>=|<=|=|>|<)\s*"((?:[^"\\]|\\.)*)"\s*')


def _decode_value(raw: str) -> str | int:
    """Undo sanitize_param(); all-digit values compare as integers (completed = "0")."""
    value = json.loads(f'"{raw}"')
    return int(value) if value.isascii() and value.isdigit() else value


def parse_filter(filter_query: str) -> tuple[str, list[str | int]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list.

    Only comparisons joined by `&&` are supported, e.g.
    'task_id = "abc" && completed_at >= "2024-03-01T00:00:00Z"'.

    Raises:
        ValueError: If the query does not follow that syntax
    """
    if not filter_query.strip():
        return "", []

    conditions: list[str] = []
    params: list[str | int] = []
    pos = 0
    while True:
        match = _CONDITION_RE.match(filter_query, pos)
        if match is None:
            msg = f"Invalid filter syntax: {filter_query}"
            raise ValueError(msg)

        field, op, raw_value = match.groups()
        conditions.append(f"{field} {op} ?")
        params.append(_decode_value(raw_value))

        pos = match.end()
        if pos == len(filter_query):
            return " AND ".join(conditions), params
        if not filter_query.startswith("&&", pos):
            msg = f"Invalid filter syntax: {filter_query}"
            raise ValueError(msg)
        pos += 2


def _parse_sort(sort: str) -> str:
    """Translate '+field' / '-field' / 'field [ASC|DESC]' into a safe ORDER BY clause."""
    safe_sort = "id ASC"
    if not sort:
        return safe_sort

    text = sort.strip()
    if text.startswith(("+", "-")):
        direction = "DESC" if text[0] == "-" else "ASC"
        text = f"{text[1:]} {direction}"

    if re.match(r"^[A-Za-z_][A-Za-z0-9_]*\s*(ASC|DESC)?$", text, re.IGNORECASE):
        return text

    logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
    return safe_sort


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_db_lock = asyncio.Lock()


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop = asyncio.get_running_loop()
    loop_id = id(loop)
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    if cache_key in _db_connections:
        return _db_connections[cache_key]

    async with _db_lock:
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(str(path))
        await conn.execute("PRAGMA foreign_keys = ON")
        await conn.execute("PRAGMA journal_mode = WAL")

        _db_connections[cache_key] = conn

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": str(path), "thread_id": thread_id, "loop_id": loop_id},
        )
        return conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop_id = id(asyncio.get_running_loop())
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    async with _db_lock:
        conn = _db_connections.pop(cache_key, None)
        if conn is None:
            return
        await conn.close()
        logger.info("Closed SQLite connection", extra={"db_path": str(path), "loop_id": loop_id})


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the database schema by delegating to schema.init_db()."""
    schema = __import__("couplesync.core.schema", fromlist=["init_db"])
    await schema.init_db(db_path=db_path)


def _row_to_record(cursor: aiosqlite.Cursor, row: Any) -> dict[str, Any]:
    columns = [description[0] for description in cursor.description]
    return dict(zip(columns, row, strict=True))


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new record and return it. A UUID hex id is assigned when `data` has none."""
    try:
        _validate_collection_name(collection)
        conn = await get_connection()

        record_data = {"id": uuid.uuid4().hex, **data}
        columns = list(record_data.keys())
        columns_str = ", ".join(columns)
        placeholders_str = ", ".join("?" for _ in columns)
        values = [_encode_value(record_data[key]) for key in columns]

        query = f"INSERT INTO {collection} ({columns_str}) VALUES ({placeholders_str})"  # noqa: S608 - collection is validated
        await conn.execute(query, values)
        await conn.commit()

        logger.info("Created record", extra={"collection": collection, "record_id": record_data["id"]})
        return await get_record(collection=collection, record_id=record_data["id"])
    except Exception as e:
        if isinstance(e, aiosqlite.OperationalError) and "no such table" in str(e):
            msg = f"Table '{collection}' does not exist. Call init_db() first."
            logger.error("Table not found", extra={"collection": collection})
            raise DatabaseError(msg) from e
        logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to create record in {collection}: {e}"
        raise DatabaseError(msg) from e


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single record by ID, raising RecordNotFoundError if not found."""
    try:
        _validate_collection_name(collection)
        conn = await get_connection()

        query = f"SELECT * FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, (record_id,))
        row = await cursor.fetchone()

        if row is None:
            msg = f"Record not found in {collection}: {record_id}"
            raise RecordNotFoundError(msg)

        return _row_to_record(cursor, row)
    except RecordNotFoundError:
        raise
    except Exception as e:
        logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to get record from {collection}: {e}"
        raise DatabaseError(msg) from e


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Update a record by ID and return the updated record."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    try:
        _validate_collection_name(collection)
        conn = await get_connection()

        set_clause = ", ".join(f"{key} = ?" for key in data)
        values = [_encode_value(val) for val in data.values()]
        values.append(record_id)

        query = f"UPDATE {collection} SET {set_clause} WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, values)
        await conn.commit()

        if cursor.rowcount == 0:
            msg = f"Record not found in {collection}: {record_id}"
            raise RecordNotFoundError(msg)

        logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
        return await get_record(collection=collection, record_id=record_id)
    except RecordNotFoundError:
        raise
    except Exception as e:
        logger.error("update_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to update record in {collection}: {e}"
        raise DatabaseError(msg) from e


async def update_records(*, collection: str, updates: dict[str, dict[str, Any]]) -> int:
    """Apply several updates in a single transaction and return the number of rows changed.

    IDs that do not exist are skipped. If any statement fails, nothing is applied.
    """
    if not updates or not all(updates.values()):
        msg = "Empty update payload"
        raise ValueError(msg)

    try:
        _validate_collection_name(collection)
        conn = await get_connection()
    except Exception as e:
        msg = f"Failed to update records in {collection}: {e}"
        raise DatabaseError(msg) from e

    changed = 0
    try:
        for record_id, data in updates.items():
            set_clause = ", ".join(f"{key} = ?" for key in data)
            values = [_encode_value(val) for val in data.values()]
            query = f"UPDATE {collection} SET {set_clause} WHERE id = ?"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, [*values, record_id])
            changed += cursor.rowcount
        await conn.commit()
    except Exception as e:
        await conn.rollback()
        logger.error("update_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to update records in {collection}: {e}"
        raise DatabaseError(msg) from e

    logger.info("Updated records", extra={"collection": collection, "requested": len(updates), "changed": changed})
    return changed


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a record by ID, raising RecordNotFoundError if not found."""
    try:
        _validate_collection_name(collection)
        conn = await get_connection()

        query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, (record_id,))
        await conn.commit()

        if cursor.rowcount == 0:
            msg = f"Record not found in {collection}: {record_id}"
            raise RecordNotFoundError(msg)

        logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})
    except RecordNotFoundError:
        raise
    except Exception as e:
        logger.error("delete_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to delete record from {collection}: {e}"
        raise DatabaseError(msg) from e


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = 50,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List records with optional filtering, sorting, and pagination."""
    try:
        _validate_collection_name(collection)
        conn = await get_connection()

        where_clause = ""
        params: list[Any] = []
        if filter_query:
            where_clause, params = parse_filter(filter_query)
            where_clause = f"WHERE {where_clause}"

        order_by = _parse_sort(sort)
        offset = (page - 1) * per_page

        query = f"SELECT * FROM {collection} {where_clause} ORDER BY {order_by} LIMIT ? OFFSET ?"  # noqa: S608 - collection is validated
        params.extend([per_page, offset])

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()
        records = [_row_to_record(cursor, row) for row in rows]

        logger.info("Listed records", extra={"collection": collection, "count": len(records)})
        return records
    except Exception as e:
        logger.error("list_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to list records from {collection}: {e}"
        raise DatabaseError(msg) from e

