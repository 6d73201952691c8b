"""Host groups."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from opsmgr.models.database import Database, RecordNotFound

_SELECT = "SELECT id, name, mode, params FROM host_groups"


class GroupMode(enum.IntEnum):
    """HOST groups list their hosts; OTHER groups select hosts by a pattern in params."""

    HOST = 0
    OTHER = 1


@dataclass
class Group:
    id: int
    name: str
    mode: int = GroupMode.HOST
    params: str = ""


def _first(conn, column: str, value) -> Group | None:
    row = conn.execute(f"{_SELECT} WHERE {column} = ? ORDER BY id LIMIT 1", (value,)).fetchone()
    return None if row is None else Group(**dict(row))


def get_all_groups(db: Database) -> list[Group]:
    with db.transaction() as conn:
        return [Group(**dict(row)) for row in conn.execute(f"{_SELECT} ORDER BY id")]


def get_group_by_id(db: Database, group_id: int) -> Group:
    with db.transaction() as conn:
        group = _first(conn, "id", group_id)
    if group is None:
        raise RecordNotFound(f"group {group_id} not found")
    return group


def get_group_by_name(db: Database, name: str) -> Group:
    with db.transaction() as conn:
        group = _first(conn, "name", name)
    if group is None:
        raise RecordNotFound(f"group {name!r} not found")
    return group


def group_exists(db: Database, name: str) -> bool:
    with db.transaction() as conn:
        return _first(conn, "name", name) is not None


def insert_group(db: Database, name: str, params: str, mode: int) -> Group:
    with db.transaction() as conn:
        cursor = conn.execute(
            "INSERT INTO host_groups (name, params, mode) VALUES (?, ?, ?)",
            (name, params, int(mode)),
        )
        return Group(id=cursor.lastrowid, name=name, mode=mode, params=params)


def update_group(db: Database, group_id: int, name: str, params: str, mode: int) -> Group:
    """Update a group, creating an empty one when the id does not exist.

    Empty name or params and a negative mode keep the stored value.
    """
    with db.transaction() as conn:
        group = _first(conn, "id", group_id)
        if group is None:
            cursor = conn.execute("INSERT INTO host_groups (name) VALUES ('')")
            group = _first(conn, "id", cursor.lastrowid)
        group.name = name or group.name
        group.params = params or group.params
        if mode >= 0:
            group.mode = mode
        conn.execute(
            "UPDATE host_groups SET name = ?, params = ?, mode = ? WHERE id = ?",
            (group.name, group.params, int(group.mode), group.id),
        )
        return group


def delete_group(db: Database, group_id: int) -> None:
    with db.transaction() as conn:
        conn.execute("DELETE FROM host_groups WHERE id = ?", (group_id,))