"""SQLite storage shared by all record modules."""

from __future__ import annotations

import re
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping, TypeVar

DRIVER_MYSQL = "mysql"
DRIVER_POSTGRES = "postgres"
DRIVER_SQLITE = "sqlite"

DB_FILENAME = "oms.db"
DEFAULT_PAGE_SIZE = 20
DEFAULT_SORT = "id DESC"

T = TypeVar("T")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS tags (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS host_groups (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    mode INTEGER NOT NULL DEFAULT 0,
    params TEXT NOT NULL DEFAULT ''
);
CREATE TABLE IF NOT EXISTS private_keys (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    key_file TEXT NOT NULL DEFAULT '',
    passphrase TEXT NOT NULL DEFAULT ''
);
CREATE TABLE IF NOT EXISTS hosts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    user TEXT NOT NULL,
    addr TEXT NOT NULL,
    port INTEGER NOT NULL DEFAULT 22,
    vnc_port INTEGER NOT NULL DEFAULT 5900,
    password TEXT NOT NULL DEFAULT '',
    status INTEGER NOT NULL DEFAULT 0,
    private_key_id INTEGER REFERENCES private_keys(id) ON DELETE SET NULL,
    group_id INTEGER REFERENCES host_groups(id) ON DELETE SET NULL
);
CREATE TABLE IF NOT EXISTS host_tag (
    host_id INTEGER NOT NULL REFERENCES hosts(id) ON DELETE CASCADE,
    tag_id INTEGER NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (host_id, tag_id)
);
CREATE TABLE IF NOT EXISTS tunnels (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    mode TEXT NOT NULL DEFAULT '',
    source TEXT NOT NULL,
    destination TEXT NOT NULL,
    status INTEGER NOT NULL DEFAULT 0,
    error_msg TEXT NOT NULL DEFAULT '',
    host_id INTEGER REFERENCES hosts(id) ON DELETE CASCADE
);
CREATE TABLE IF NOT EXISTS jobs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL DEFAULT '',
    type TEXT NOT NULL,
    spec TEXT NOT NULL DEFAULT '',
    cmd TEXT NOT NULL DEFAULT '',
    cmd_id INTEGER NOT NULL DEFAULT 0,
    cmd_type TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'ready',
    execute_id INTEGER NOT NULL DEFAULT 0,
    execute_type TEXT NOT NULL DEFAULT ''
);
CREATE TABLE IF NOT EXISTS task_instances (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    uid TEXT NOT NULL DEFAULT '',
    job_id INTEGER REFERENCES jobs(id) ON DELETE CASCADE,
    start_time TEXT,
    end_time TEXT,
    status TEXT NOT NULL DEFAULT 'ready',
    log_path TEXT NOT NULL DEFAULT '',
    log_data TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_task_instances_start_time ON task_instances(start_time);
CREATE TABLE IF NOT EXISTS playbooks (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL DEFAULT '',
    steps TEXT NOT NULL DEFAULT ''
);
CREATE TABLE IF NOT EXISTS command_histories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    cmd TEXT NOT NULL UNIQUE,
    times INTEGER NOT NULL DEFAULT 0
);
CREATE INDEX IF NOT EXISTS idx_times ON command_histories(times);
CREATE TABLE IF NOT EXISTS quickly_commands (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    cmd TEXT NOT NULL,
    append_cr INTEGER NOT NULL DEFAULT 0
);
"""


class RecordNotFound(LookupError):
    """Raised when a looked-up record does not exist."""


class Database:
    """A thread-safe SQLite connection holding every table of the application."""

    def __init__(self, path: str | Path) -> None:
        self._conn = sqlite3.connect(str(path), check_same_thread=False, timeout=30)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.executescript(_SCHEMA)
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Hold the lock and yield the connection; commit on success, roll back on error."""
        with self._lock:
            try:
                yield self._conn
            except BaseException:
                self._conn.rollback()
                raise
            else:
                self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def init_models(
    dsn: str, db_name: str, user: str, password: str, driver: str, data_path: str | Path
) -> Database:
    """Open the application database, creating the data directory when needed."""
    if driver == DRIVER_POSTGRES and len(dsn.split(":")) < 2:
        raise ValueError("dsn parse error")
    if driver in (DRIVER_MYSQL, DRIVER_POSTGRES):
        raise ValueError(f"database driver {driver!r} is not supported")
    root = Path(data_path)
    root.mkdir(parents=True, exist_ok=True)
    return Database(root / DB_FILENAME)


def _table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    if not _IDENTIFIER.match(table):
        raise ValueError(f"invalid table name {table!r}")
    columns = {row["name"] for row in conn.execute(f"PRAGMA table_info({table})")}
    if not columns:
        raise ValueError(f"unknown table {table!r}")
    return columns


def paginate(
    db: Database,
    table: str,
    factory: Callable[[sqlite3.Row], T],
    page_size: int,
    page: int,
    params: Mapping[str, Any] | None = None,
) -> tuple[int, list[T]]:
    """Return the total count matching ``params`` and one page of records, newest first."""
    if page_size <= 0:
        page_size = DEFAULT_PAGE_SIZE
    elif page <= 0:
        page = 1
    offset = max((page - 1) * page_size, 0)

    filters = dict(params or {})
    with db.transaction() as conn:
        unknown = set(filters) - _table_columns(conn, table)
        if unknown:
            raise ValueError(f"unknown columns: {', '.join(sorted(unknown))}")
        clause = ""
        if filters:
            clause = " WHERE " + " AND ".join(f"{column} = ?" for column in filters)
        values = list(filters.values())
        total = conn.execute(f"SELECT COUNT(*) FROM {table}{clause}", values).fetchone()[0]
        rows = conn.execute(
            f"SELECT * FROM {table}{clause} ORDER BY {DEFAULT_SORT} LIMIT ? OFFSET ?",
            [*values, page_size, offset],
        ).fetchall()
    return total, [factory(row) for row in rows]