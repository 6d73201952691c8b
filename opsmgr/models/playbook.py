"""Playbooks: ordered lists of steps stored as JSON."""

from __future__ import annotations

import contextlib
import json
import os
from dataclasses import dataclass, field, fields

from opsmgr.models.database import Database, RecordNotFound


@dataclass
class Step:
    seq: int = 0
    type: str = ""
    name: str = ""
    caches: str = ""
    params: str = ""

    def get_caches(self) -> list[str]:
        """Paths of cached upload files named by this step; empty when unreadable."""
        try:
            caches = json.loads(self.caches)
        except ValueError:
            return []
        if isinstance(caches, list) and all(isinstance(c, str) for c in caches):
            return caches
        return []


_STEP_TYPES = {f.name: (int if f.name == "seq" else str) for f in fields(Step)}


def _parse(text: str) -> list[Step]:
    data = json.loads(text)
    if data is None:
        return []
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ValueError("steps must be a JSON array of objects")
    steps = []
    for item in data:
        values = {k: v for k, v in item.items() if k in _STEP_TYPES and v is not None}
        for key, value in values.items():
            if isinstance(value, bool) or not isinstance(value, _STEP_TYPES[key]):
                raise ValueError(f"step {key} has the wrong type")
        steps.append(Step(**values))
    return steps


@dataclass
class PlayBook:
    id: int
    name: str
    steps: str = ""
    steps_obj: list[Step] = field(default_factory=list)

    def parse_steps(self) -> list[Step]:
        """Decode ``steps`` into ``steps_obj``; raises ValueError on bad JSON."""
        self.steps_obj = _parse(self.steps)
        return self.steps_obj


def _fetch(conn, playbook_id: int) -> PlayBook:
    row = conn.execute("SELECT id, name, steps FROM playbooks WHERE id = ?", (playbook_id,)).fetchone()
    if row is None:
        raise RecordNotFound(f"playbook {playbook_id} not found")
    return PlayBook(**dict(row))


def get_all_playbooks(db: Database) -> list[PlayBook]:
    with db.transaction() as conn:
        rows = conn.execute("SELECT id, name, steps FROM playbooks ORDER BY id").fetchall()
    records = [PlayBook(**dict(row)) for row in rows]
    for record in records:
        record.parse_steps()
    return records


def get_playbook_by_id(db: Database, playbook_id: int) -> PlayBook:
    with db.transaction() as conn:
        record = _fetch(conn, playbook_id)
    record.parse_steps()
    return record


def insert_playbook(db: Database, name: str, steps: str) -> PlayBook:
    with db.transaction() as conn:
        cursor = conn.execute("INSERT INTO playbooks (name, steps) VALUES (?, ?)", (name, steps))
        return PlayBook(id=cursor.lastrowid, name=name, steps=steps)


def playbook_exists(db: Database, name: str, steps: str) -> bool:
    with db.transaction() as conn:
        row = conn.execute(
            "SELECT 1 FROM playbooks WHERE name = ? AND steps = ? LIMIT 1", (name, steps)
        ).fetchone()
    return row is not None


def update_playbook(db: Database, playbook_id: int, name: str, steps: str) -> PlayBook:
    """Update the non-empty fields of a playbook."""
    with db.transaction() as conn:
        record = _fetch(conn, playbook_id)
        record.name = name or record.name
        record.steps = steps or record.steps
        conn.execute(
            "UPDATE playbooks SET name = ?, steps = ? WHERE id = ?",
            (record.name, record.steps, record.id),
        )
        return record


def delete_playbook(db: Database, playbook_id: int) -> None:
    """Delete a playbook and remove the cached files its steps refer to."""
    with db.transaction() as conn:
        record = _fetch(conn, playbook_id)
        conn.execute("DELETE FROM playbooks WHERE id = ?", (record.id,))
    try:
        steps = _parse(record.steps)
    except ValueError:
        steps = []
    for cache in (c for step in steps for c in step.get_caches()):
        with contextlib.suppress(OSError):
            os.remove(cache)