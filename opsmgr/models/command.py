"""Shell command history and saved quick commands."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from opsmgr.models.database import Database, RecordNotFound

DEFAULT_SEARCH_LIMIT = 10


@dataclass
class CommandHistory:
    id: int
    cmd: str
    times: int


@dataclass
class QuicklyCommand:
    id: int
    name: str
    cmd: str
    append_cr: bool = False


def _to_history(row: sqlite3.Row) -> CommandHistory:
    return CommandHistory(id=row["id"], cmd=row["cmd"], times=row["times"])


def _to_quick(row: sqlite3.Row) -> QuicklyCommand:
    return QuicklyCommand(
        id=row["id"], name=row["name"], cmd=row["cmd"], append_cr=bool(row["append_cr"])
    )


def record_command(db: Database, cmd: str) -> None:
    """Count one more use of ``cmd``, adding it to the history on first use."""
    with db.transaction() as conn:
        row = conn.execute(
            "SELECT id, times FROM command_histories WHERE cmd = ?", (cmd,)
        ).fetchone()
        if row is None:
            conn.execute("INSERT INTO command_histories (cmd, times) VALUES (?, 1)", (cmd,))
        else:
            conn.execute(
                "UPDATE command_histories SET times = ? WHERE id = ?", (row["times"] + 1, row["id"])
            )


def delete_command_history(db: Database, history_id: int) -> None:
    with db.transaction() as conn:
        conn.execute("DELETE FROM command_histories WHERE id = ?", (history_id,))


def search_command_history(db: Database, keyword: str, limit: int) -> list[CommandHistory]:
    """Most used commands starting with ``keyword``; a zero limit means ten."""
    if limit == 0:
        limit = DEFAULT_SEARCH_LIMIT
    keyword = keyword.rstrip(" ")
    with db.transaction() as conn:
        if not keyword:
            rows = conn.execute(
                "SELECT id, cmd, times FROM command_histories ORDER BY times DESC LIMIT ?",
                (limit,),
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT id, cmd, times FROM command_histories WHERE cmd LIKE ? "
                "ORDER BY times DESC LIMIT ?",
                (keyword + "%", limit),
            ).fetchall()
    return [_to_history(row) for row in rows]


def _fetch_quick(conn: sqlite3.Connection, command_id: int) -> QuicklyCommand:
    row = conn.execute(
        "SELECT id, name, cmd, append_cr FROM quickly_commands WHERE id = ?", (command_id,)
    ).fetchone()
    if row is None:
        raise RecordNotFound(f"quick command {command_id} not found")
    return _to_quick(row)


def get_all_quickly_commands(db: Database) -> list[QuicklyCommand]:
    with db.transaction() as conn:
        rows = conn.execute(
            "SELECT id, name, cmd, append_cr FROM quickly_commands ORDER BY id"
        ).fetchall()
    return [_to_quick(row) for row in rows]


def get_quickly_command_by_id(db: Database, command_id: int) -> QuicklyCommand:
    with db.transaction() as conn:
        return _fetch_quick(conn, command_id)


def insert_quickly_command(db: Database, name: str, cmd: str, append_cr: bool) -> QuicklyCommand:
    with db.transaction() as conn:
        cursor = conn.execute(
            "INSERT INTO quickly_commands (name, cmd, append_cr) VALUES (?, ?, ?)",
            (name, cmd, int(append_cr)),
        )
        return QuicklyCommand(id=cursor.lastrowid, name=name, cmd=cmd, append_cr=bool(append_cr))


def update_quickly_command(
    db: Database, command_id: int, name: str, cmd: str, append_cr: bool
) -> QuicklyCommand:
    """Update non-empty name and cmd; ``append_cr`` is always applied."""
    with db.transaction() as conn:
        record = _fetch_quick(conn, command_id)
        if name:
            record.name = name
        if cmd:
            record.cmd = cmd
        record.append_cr = bool(append_cr)
        conn.execute(
            "UPDATE quickly_commands SET name = ?, cmd = ?, append_cr = ? WHERE id = ?",
            (record.name, record.cmd, int(record.append_cr), record.id),
        )
        return record


def delete_quickly_command(db: Database, command_id: int) -> None:
    with db.transaction() as conn:
        record = _fetch_quick(conn, command_id)
        conn.execute("DELETE FROM quickly_commands WHERE id = ?", (record.id,))