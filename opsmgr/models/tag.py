"""Host tags."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass

from opsmgr.models.database import Database, RecordNotFound


@dataclass
class Tag:
    id: int
    name: str


def _to_tag(row: sqlite3.Row) -> Tag:
    return Tag(id=row["id"], name=row["name"])


def _fetch(conn: sqlite3.Connection, tag_id: int) -> Tag:
    row = conn.execute("SELECT id, name FROM tags WHERE id = ?", (tag_id,)).fetchone()
    if row is None:
        raise RecordNotFound(f"tag {tag_id} not found")
    return _to_tag(row)


def get_all_tags(db: Database) -> list[Tag]:
    with db.transaction() as conn:
        rows = conn.execute("SELECT id, name FROM tags ORDER BY id").fetchall()
    return [_to_tag(row) for row in rows]


def get_tag_by_id(db: Database, tag_id: int) -> Tag:
    with db.transaction() as conn:
        return _fetch(conn, tag_id)


def get_tag_by_name(db: Database, name: str) -> Tag:
    with db.transaction() as conn:
        row = conn.execute(
            "SELECT id, name FROM tags WHERE name = ? ORDER BY id LIMIT 1", (name,)
        ).fetchone()
    if row is None:
        raise RecordNotFound(f"tag {name!r} not found")
    return _to_tag(row)


def tag_exists(db: Database, name: str) -> bool:
    with db.transaction() as conn:
        row = conn.execute("SELECT 1 FROM tags WHERE name = ? LIMIT 1", (name,)).fetchone()
    return row is not None


def insert_tag(db: Database, name: str) -> Tag:
    with db.transaction() as conn:
        cursor = conn.execute("INSERT INTO tags (name) VALUES (?)", (name,))
        return Tag(id=cursor.lastrowid, name=name)


def update_tag(db: Database, tag_id: int, name: str) -> Tag:
    """Rename a tag; an empty name leaves it unchanged."""
    with db.transaction() as conn:
        tag = _fetch(conn, tag_id)
        if name:
            tag.name = name
        conn.execute("UPDATE tags SET name = ? WHERE id = ?", (tag.name, tag.id))
        return tag


def delete_tag(db: Database, tag_id: int) -> None:
    """Delete a tag and detach it from every host."""
    with db.transaction() as conn:
        tag = _fetch(conn, tag_id)
        conn.execute("DELETE FROM host_tag WHERE tag_id = ?", (tag.id,))
        conn.execute("DELETE FROM tags WHERE id = ?", (tag.id,))