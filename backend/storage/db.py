"""
SQLite persistence (aiosqlite): captured traffic and reported issues.

``request_logs`` doubles as the scan queue's request lookup; ``issues``
is the durable end of the issue sink.
"""

import json
import logging
from typing import Optional

import aiosqlite

from config import DB_PATH, ISSUE_LIST_LIMIT
from models.finding import Issue
from models.http import BaseRequest, RequestLog

log = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS request_logs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        method TEXT NOT NULL,
        url TEXT NOT NULL,
        host TEXT DEFAULT '',
        path TEXT DEFAULT '',
        request_headers TEXT DEFAULT '{}',
        request_body TEXT DEFAULT '',
        status_code INTEGER DEFAULT 0,
        response_headers TEXT DEFAULT '{}',
        response_body TEXT DEFAULT '',
        content_type TEXT DEFAULT '',
        duration_ms REAL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS issues (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        plugin_id TEXT NOT NULL,
        title TEXT NOT NULL,
        severity TEXT NOT NULL,
        confidence TEXT NOT NULL,
        description TEXT DEFAULT '',
        affected_request_id TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_request_logs_host ON request_logs(host)",
    "CREATE INDEX IF NOT EXISTS idx_issues_request ON issues(affected_request_id)",
)

# Insert order for request_logs; header dicts are stored as JSON text
_LOG_COLUMNS = (
    "timestamp", "method", "url", "host", "path",
    "request_headers", "request_body", "status_code",
    "response_headers", "response_body", "content_type", "duration_ms",
)
_JSON_COLUMNS = frozenset({"request_headers", "response_headers"})

_ISSUE_COLUMNS = (
    "timestamp", "plugin_id", "title", "severity",
    "confidence", "description", "affected_request_id",
)


async def init_db() -> None:
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(DB_PATH) as db:
        for statement in _SCHEMA:
            await db.execute(statement)
        await db.commit()


def _headers_from_json(raw) -> dict:
    """Stored header blob -> dict; anything unreadable becomes {}."""
    try:
        value = json.loads(raw) if raw else {}
    except (TypeError, ValueError):
        return {}
    return value if isinstance(value, dict) else {}


def _log_from_row(row: aiosqlite.Row) -> dict:
    record = dict(row)
    for column in _JSON_COLUMNS:
        record[column] = _headers_from_json(record.get(column))
    return record


# ── Request logs ──────────────────────────────────────────────────


async def save_request_log(entry: RequestLog) -> int:
    """Insert one captured exchange and return its row id."""
    data = entry.model_dump()
    values = [
        json.dumps(data[c]) if c in _JSON_COLUMNS else data[c]
        for c in _LOG_COLUMNS
    ]
    placeholders = ", ".join("?" for _ in _LOG_COLUMNS)
    async with aiosqlite.connect(DB_PATH) as db:
        cursor = await db.execute(
            f"INSERT INTO request_logs ({', '.join(_LOG_COLUMNS)}) VALUES ({placeholders})",
            values,
        )
        await db.commit()
        return cursor.lastrowid


async def get_request_logs(
    limit: int = 500,
    method_filter: Optional[str] = None,
    host_filter: Optional[str] = None,
    search: Optional[str] = None,
) -> list[dict]:
    """Newest-first listing.  *search* matches URL and both bodies."""
    clauses: list[str] = []
    params: list = []
    if method_filter:
        clauses.append("method = ?")
        params.append(method_filter.upper())
    if host_filter:
        clauses.append("host LIKE ?")
        params.append(f"%{host_filter}%")
    if search:
        clauses.append("(url LIKE ? OR request_body LIKE ? OR response_body LIKE ?)")
        params += [f"%{search}%"] * 3

    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    async with aiosqlite.connect(DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute(
            f"SELECT * FROM request_logs{where} ORDER BY id DESC LIMIT ?",
            [*params, limit],
        )
        return [_log_from_row(row) for row in await cursor.fetchall()]


async def get_request_log_by_id(log_id: int) -> Optional[dict]:
    async with aiosqlite.connect(DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute("SELECT * FROM request_logs WHERE id = ?", (log_id,))
        row = await cursor.fetchone()
    return _log_from_row(row) if row is not None else None


async def get_base_request(request_id: str) -> Optional[BaseRequest]:
    """Request lookup for the scan queue: log id -> BaseRequest, or None."""
    try:
        log_id = int(request_id)
    except (TypeError, ValueError):
        log.debug("non-numeric request id %r", request_id)
        return None
    record = await get_request_log_by_id(log_id)
    if record is None:
        return None
    return BaseRequest.from_log(RequestLog(**record))


async def clear_request_logs() -> None:
    async with aiosqlite.connect(DB_PATH) as db:
        await db.execute("DELETE FROM request_logs")
        await db.commit()


# ── Issues ────────────────────────────────────────────────────────


async def save_issue(issue: Issue) -> int:
    """Insert one issue and return its row id."""
    data = issue.model_dump(mode="json")
    placeholders = ", ".join("?" for _ in _ISSUE_COLUMNS)
    async with aiosqlite.connect(DB_PATH) as db:
        cursor = await db.execute(
            f"INSERT INTO issues ({', '.join(_ISSUE_COLUMNS)}) VALUES ({placeholders})",
            [data[c] for c in _ISSUE_COLUMNS],
        )
        await db.commit()
        return cursor.lastrowid


async def get_issues(
    limit: int = ISSUE_LIST_LIMIT,
    request_id: Optional[str] = None,
) -> list[dict]:
    """Newest first, optionally only those raised against *request_id*."""
    where, params = ("", []) if not request_id else (" WHERE affected_request_id = ?", [request_id])
    async with aiosqlite.connect(DB_PATH) as db:
        db.row_factory = aiosqlite.Row
        cursor = await db.execute(
            f"SELECT * FROM issues{where} ORDER BY id DESC LIMIT ?",
            [*params, limit],
        )
        return [dict(row) for row in await cursor.fetchall()]


async def clear_issues() -> None:
    async with aiosqlite.connect(DB_PATH) as db:
        await db.execute("DELETE FROM issues")
        await db.commit()
