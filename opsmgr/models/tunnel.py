"""SSH tunnels attached to hosts."""

from __future__ import annotations

from dataclasses import dataclass, field

from opsmgr.models.database import Database, RecordNotFound
from opsmgr.models.host import Host, get_host_by_id

_FIELDS = ("id", "mode", "source", "destination", "status", "error_msg", "host_id")
_SELECT = f"SELECT {', '.join(_FIELDS)} FROM tunnels"


@dataclass
class Tunnel:
    id: int
    mode: str
    source: str
    destination: str
    status: int = 0
    error_msg: str = ""
    host_id: int = 0
    host: Host | None = field(default=None, repr=False)


def _to_tunnel(row) -> Tunnel:
    tunnel = Tunnel(**dict(row))
    tunnel.host_id = tunnel.host_id or 0
    return tunnel


def _fetch(conn, tunnel_id: int) -> Tunnel:
    row = conn.execute(f"{_SELECT} WHERE id = ?", (tunnel_id,)).fetchone()
    if row is None:
        raise RecordNotFound(f"tunnel {tunnel_id} not found")
    return _to_tunnel(row)


def _with_hosts(db: Database, tunnels: list[Tunnel]) -> list[Tunnel]:
    for tunnel in tunnels:
        try:
            tunnel.host = get_host_by_id(db, tunnel.host_id)
        except RecordNotFound:
            tunnel.host = None
    return tunnels


def _query(db: Database, where: str = "", args: tuple = ()) -> list[Tunnel]:
    with db.transaction() as conn:
        rows = conn.execute(f"{_SELECT} {where} ORDER BY id", args).fetchall()
    return _with_hosts(db, [_to_tunnel(row) for row in rows])


def get_tunnels_by_host_id(db: Database, host_id: int) -> list[Tunnel]:
    return _query(db, "WHERE host_id = ?", (host_id,))


def get_all_tunnels(db: Database) -> list[Tunnel]:
    return _query(db)


def get_tunnel_by_id(db: Database, tunnel_id: int) -> Tunnel:
    with db.transaction() as conn:
        tunnel = _fetch(conn, tunnel_id)
    return _with_hosts(db, [tunnel])[0]


def tunnel_exists(db: Database, tunnel_id: int) -> bool:
    with db.transaction() as conn:
        return conn.execute("SELECT 1 FROM tunnels WHERE id = ?", (tunnel_id,)).fetchone() is not None


def insert_tunnel(db: Database, mode: str, source: str, destination: str, host: Host) -> Tunnel:
    with db.transaction() as conn:
        cursor = conn.execute(
            "INSERT INTO tunnels (mode, source, destination, host_id) VALUES (?, ?, ?, ?)",
            (mode, source, destination, host.id),
        )
    return Tunnel(cursor.lastrowid, mode, source, destination, host_id=host.id)


def update_tunnel(db: Database, tunnel_id: int, mode: str, source: str, destination: str) -> Tunnel:
    """Update the non-empty fields of a tunnel."""
    with db.transaction() as conn:
        tunnel = _fetch(conn, tunnel_id)
        tunnel.mode = mode or tunnel.mode
        tunnel.source = source or tunnel.source
        tunnel.destination = destination or tunnel.destination
        conn.execute(
            "UPDATE tunnels SET mode = ?, source = ?, destination = ? WHERE id = ?",
            (tunnel.mode, tunnel.source, tunnel.destination, tunnel.id),
        )
    return _with_hosts(db, [tunnel])[0]


def update_tunnel_status(db: Database, tunnel_id: int, status: bool, message: str) -> Tunnel:
    """Mark a tunnel up when ``status`` is true and record a non-empty error message.

    A false status keeps the stored status.
    """
    with db.transaction() as conn:
        tunnel = _fetch(conn, tunnel_id)
        if status:
            tunnel.status = 1
        tunnel.error_msg = message or tunnel.error_msg
        conn.execute(
            "UPDATE tunnels SET status = ?, error_msg = ? WHERE id = ?",
            (tunnel.status, tunnel.error_msg, tunnel.id),
        )
        return tunnel


def delete_tunnel(db: Database, tunnel_id: int) -> None:
    with db.transaction() as conn:
        tunnel = _fetch(conn, tunnel_id)
        conn.execute("DELETE FROM tunnels WHERE id = ?", (tunnel.id,))


def refresh_tunnel(db: Database, tunnel: Tunnel) -> Tunnel:
    """Reload the stored fields of ``tunnel`` in place; without an id, load the first tunnel."""
    with db.transaction() as conn:
        if tunnel.id:
            fresh = _fetch(conn, tunnel.id)
        else:
            row = conn.execute(f"{_SELECT} ORDER BY id LIMIT 1").fetchone()
            if row is None:
                raise RecordNotFound("no tunnel stored")
            fresh = _to_tunnel(row)
    for name in _FIELDS:
        setattr(tunnel, name, getattr(fresh, name))
    return tunnel