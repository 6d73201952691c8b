"""SSH private keys stored for hosts."""

from __future__ import annotations

from dataclasses import dataclass, field

from opsmgr.models.database import Database, RecordNotFound

_SELECT = "SELECT id, name, key_file, passphrase FROM private_keys"


@dataclass
class PrivateKey:
    id: int
    name: str
    key_file: str = field(default="", repr=False)
    passphrase: str = field(default="", repr=False)


def _fetch(conn, column: str, value) -> PrivateKey:
    row = conn.execute(f"{_SELECT} WHERE {column} = ? ORDER BY id LIMIT 1", (value,)).fetchone()
    if row is None:
        raise RecordNotFound(f"private key {value!r} not found")
    return PrivateKey(**dict(row))


def get_all_private_keys(db: Database) -> list[PrivateKey]:
    with db.transaction() as conn:
        return [PrivateKey(**dict(row)) for row in conn.execute(f"{_SELECT} ORDER BY id")]


def get_private_key_by_id(db: Database, key_id: int) -> PrivateKey:
    with db.transaction() as conn:
        return _fetch(conn, "id", key_id)


def get_private_key_by_name(db: Database, name: str) -> PrivateKey:
    with db.transaction() as conn:
        return _fetch(conn, "name", name)


def insert_private_key(db: Database, name: str, key_file: str, passphrase: str) -> PrivateKey:
    with db.transaction() as conn:
        cursor = conn.execute(
            "INSERT INTO private_keys (name, key_file, passphrase) VALUES (?, ?, ?)",
            (name, key_file, passphrase),
        )
        return PrivateKey(id=cursor.lastrowid, name=name, key_file=key_file, passphrase=passphrase)


def update_private_key(
    db: Database, key_id: int, name: str, key_file: str, passphrase: str
) -> PrivateKey:
    """Update the non-empty fields of a key."""
    with db.transaction() as conn:
        key = _fetch(conn, "id", key_id)
        key.name = name or key.name
        key.key_file = key_file or key.key_file
        key.passphrase = passphrase or key.passphrase
        conn.execute(
            "UPDATE private_keys SET name = ?, key_file = ?, passphrase = ? WHERE id = ?",
            (key.name, key.key_file, key.passphrase, key.id),
        )
        return key


def delete_private_key(db: Database, key_id: int) -> None:
    with db.transaction() as conn:
        key = _fetch(conn, "id", key_id)
        conn.execute("DELETE FROM private_keys WHERE id = ?", (key.id,))


def private_key_exists(db: Database, key_file: str) -> bool:
    """Whether a key with this content is stored; an empty content matches any key."""
    where, args = ("WHERE key_file = ?", (key_file,)) if key_file else ("", ())
    with db.transaction() as conn:
        return conn.execute(f"SELECT 1 FROM private_keys {where} LIMIT 1", args).fetchone() is not None