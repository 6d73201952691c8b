"""Managed hosts and the ways of selecting them."""

from __future__ import annotations

import logging
import re
import sqlite3
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from opsmgr.models.database import Database, RecordNotFound, paginate
from opsmgr.models.group import Group, GroupMode, get_group_by_id
from opsmgr.models.private_key import PrivateKey
from opsmgr.models.tag import Tag, get_tag_by_id

if TYPE_CHECKING:
    from opsmgr.models.tunnel import Tunnel

log = logging.getLogger(__name__)

DEFAULT_PORT = 22
DEFAULT_VNC_PORT = 5900

_COLUMNS = "id, name, user, addr, port, vnc_port, password, status, private_key_id, group_id"


@dataclass
class HostExport:
    """A flat host record as written to and read from CSV exports."""

    name: str = ""
    user: str = ""
    addr: str = ""
    port: int = 0
    vnc_port: int = 0
    password: str = field(default="", repr=False)
    group: str = ""
    group_params: str = ""
    tags: list[str] = field(default_factory=list)
    key_file: str = field(default="", repr=False)
    key_name: str = ""
    key_phrase: str = field(default="", repr=False)


@dataclass
class Host:
    id: int
    name: str
    user: str
    addr: str
    port: int = DEFAULT_PORT
    vnc_port: int = DEFAULT_VNC_PORT
    password: str = field(default="", repr=False)
    status: bool = False
    private_key_id: int = 0
    group_id: int = 0
    group: Group | None = None
    tags: list[Tag] = field(default_factory=list)
    tunnels: list[Tunnel] = field(default_factory=list)
    private_key: PrivateKey | None = field(default=None, repr=False)


def _to_host(row: sqlite3.Row) -> Host:
    return Host(
        id=row["id"],
        name=row["name"],
        user=row["user"],
        addr=row["addr"],
        port=row["port"],
        vnc_port=row["vnc_port"],
        password=row["password"],
        status=bool(row["status"]),
        private_key_id=row["private_key_id"] or 0,
        group_id=row["group_id"] or 0,
    )


def _fetch(conn: sqlite3.Connection, host_id: int) -> Host:
    row = conn.execute(f"SELECT {_COLUMNS} FROM hosts WHERE id = ?", (host_id,)).fetchone()
    if row is None:
        raise RecordNotFound(f"host {host_id} not found")
    return _to_host(row)


def _select(db: Database, where: str = "", args: Iterable[Any] = ()) -> list[Host]:
    with db.transaction() as conn:
        rows = conn.execute(f"SELECT {_COLUMNS} FROM hosts{where} ORDER BY id", tuple(args)).fetchall()
    return [_to_host(row) for row in rows]


def _group_in(conn: sqlite3.Connection, group_id: int) -> Group | None:
    row = conn.execute(
        "SELECT id, name, mode, params FROM host_groups WHERE id = ?", (group_id,)
    ).fetchone()
    if row is None:
        return None
    return Group(id=row["id"], name=row["name"], mode=row["mode"], params=row["params"])


def _key_in(conn: sqlite3.Connection, key_id: int) -> PrivateKey | None:
    row = conn.execute(
        "SELECT id, name, key_file, passphrase FROM private_keys WHERE id = ?", (key_id,)
    ).fetchone()
    if row is None:
        return None
    return PrivateKey(
        id=row["id"], name=row["name"], key_file=row["key_file"], passphrase=row["passphrase"]
    )


def _tags_of(conn: sqlite3.Connection, host_id: int) -> list[Tag]:
    rows = conn.execute(
        "SELECT t.id, t.name FROM tags t JOIN host_tag ht ON ht.tag_id = t.id "
        "WHERE ht.host_id = ? ORDER BY t.id",
        (host_id,),
    ).fetchall()
    return [Tag(id=row["id"], name=row["name"]) for row in rows]


def _resolve_tags(conn: sqlite3.Connection, tag_ids: Iterable[int]) -> list[Tag]:
    found = []
    for tag_id in tag_ids:
        row = conn.execute("SELECT id, name FROM tags WHERE id = ?", (tag_id,)).fetchone()
        if row is None:
            log.error("tag %s not found, skipped", tag_id)
            continue
        found.append(Tag(id=row["id"], name=row["name"]))
    return found


def _attach_tags(conn: sqlite3.Connection, host_id: int, tags: Iterable[Tag]) -> None:
    conn.executemany(
        "INSERT OR IGNORE INTO host_tag (host_id, tag_id) VALUES (?, ?)",
        [(host_id, tag.id) for tag in tags],
    )


def _preload(db: Database, hosts: list[Host]) -> list[Host]:
    """Fill group, tags, private key and tunnels of each host."""
    from opsmgr.models.tunnel import get_tunnels_by_host_id

    with db.transaction() as conn:
        for host in hosts:
            host.tags = _tags_of(conn, host.id)
            host.group = _group_in(conn, host.group_id) if host.group_id else None
            host.private_key = _key_in(conn, host.private_key_id) if host.private_key_id else None
    for host in hosts:
        host.tunnels = get_tunnels_by_host_id(db, host.id)
    return hosts


def parse_host_list(db: Database, kind: str, target_id: int) -> list[Host]:
    """Resolve the hosts a job targets: one host, a tag, or a group.

    Groups in OTHER mode select hosts by their params: ``-G glob``,
    ``-L addr,addr``, ``-E regex``, or a bare glob as the first word.
    """
    if kind == "host":
        return [get_host_by_id(db, target_id)]
    if kind == "tag":
        return get_hosts_by_tag(db, get_tag_by_id(db, target_id))

    group = get_group_by_id(db, target_id)
    if group.mode == GroupMode.HOST:
        return get_hosts_by_group(db, group)

    args = group.params.split(" ")
    if len(args) < 2:
        return []
    option, pattern = args[0], args[1].replace('"', "")
    if option == "-G":
        return get_hosts_by_glob(db, pattern)
    if option == "-L":
        hosts: list[Host] = []
        for addr in pattern.split(","):
            hosts.extend(get_hosts_by_addr(db, addr))
        return hosts
    if option == "-E":
        return get_hosts_by_regex(db, pattern)
    return get_hosts_by_glob(db, option)


def get_host_by_id_with_preload(db: Database, host_id: int) -> Host:
    return _preload(db, [get_host_by_id(db, host_id)])[0]


def get_host_by_id(db: Database, host_id: int) -> Host:
    with db.transaction() as conn:
        return _fetch(conn, host_id)


def host_exists(db: Database, name: str, addr: str) -> bool:
    """Whether a host matches the non-empty of ``name`` and ``addr``."""
    clauses, args = [], []
    if name:
        clauses.append("name = ?")
        args.append(name)
    if addr:
        clauses.append("addr = ?")
        args.append(addr)
    where = " WHERE " + " AND ".join(clauses) if clauses else ""
    with db.transaction() as conn:
        row = conn.execute(f"SELECT 1 FROM hosts{where} LIMIT 1", args).fetchone()
    return row is not None


def delete_host(db: Database, host_id: int) -> Host:
    """Delete a host with its tag links and tunnels; return the deleted record."""
    with db.transaction() as conn:
        host = _fetch(conn, host_id)
        conn.execute("DELETE FROM host_tag WHERE host_id = ?", (host.id,))
        conn.execute("DELETE FROM hosts WHERE id = ?", (host.id,))
    return host


def insert_host(
    db: Database,
    name: str,
    user: str,
    addr: str,
    port: int,
    password: str,
    group_id: int,
    tags: Iterable[int],
    private_key_id: int,
    vnc_port: int,
) -> Host:
    """Add a host; unknown tags are skipped, and an unknown group or key is not linked.

    A missing group stops linking, so the private key is then not linked either.
    """
    with db.transaction() as conn:
        tag_objs = _resolve_tags(conn, tags)
        port = port or DEFAULT_PORT
        vnc_port = vnc_port or DEFAULT_VNC_PORT
        cursor = conn.execute(
            "INSERT INTO hosts (name, user, addr, port, vnc_port, password) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (name, user, addr, port, vnc_port, password),
        )
        host = Host(
            id=cursor.lastrowid,
            name=name,
            user=user,
            addr=addr,
            port=port,
            vnc_port=vnc_port,
            password=password,
            tags=tag_objs,
        )
        _attach_tags(conn, host.id, tag_objs)

        if group_id:
            group = _group_in(conn, group_id)
            if group is None:
                return host
            host.group_id = group.id
            host.group = group
            conn.execute("UPDATE hosts SET group_id = ? WHERE id = ?", (group.id, host.id))
        if private_key_id:
            key = _key_in(conn, private_key_id)
            if key is None:
                return host
            host.private_key_id = key.id
            host.private_key = key
            conn.execute("UPDATE hosts SET private_key_id = ? WHERE id = ?", (key.id, host.id))
        return host


def update_host(
    db: Database,
    host_id: int,
    name: str,
    user: str,
    addr: str,
    port: int,
    password: str,
    group_id: int,
    tags: Iterable[int],
    private_key_id: int,
    vnc_port: int,
) -> Host:
    """Update a host.

    Empty strings and zero ports keep stored values. An empty tag list clears
    the tags; a list naming only unknown tags leaves them as they are. A zero
    group or key id unlinks it; an unknown one keeps the current link.
    """
    tag_ids = list(tags)
    with db.transaction() as conn:
        host = _fetch(conn, host_id)

        if tag_ids:
            resolved = _resolve_tags(conn, tag_ids)
            if resolved:
                conn.execute("DELETE FROM host_tag WHERE host_id = ?", (host.id,))
                _attach_tags(conn, host.id, resolved)
                host.tags = resolved
        else:
            conn.execute("DELETE FROM host_tag WHERE host_id = ?", (host.id,))

        if name:
            host.name = name
        if user:
            host.user = user
        if port:
            host.port = port
        if addr:
            host.addr = addr
        if password:
            host.password = password
        if vnc_port:
            host.vnc_port = vnc_port

        if group_id:
            group = _group_in(conn, group_id)
            if group is not None:
                host.group = group
                host.group_id = group.id
        else:
            host.group = None
            host.group_id = 0

        if private_key_id:
            key = _key_in(conn, private_key_id)
            if key is not None:
                host.private_key = key
                host.private_key_id = key.id
        else:
            host.private_key = None
            host.private_key_id = 0

        conn.execute(
            "UPDATE hosts SET name = ?, user = ?, addr = ?, port = ?, vnc_port = ?, "
            "password = ?, group_id = ?, private_key_id = ? WHERE id = ?",
            (
                host.name,
                host.user,
                host.addr,
                host.port,
                host.vnc_port,
                host.password,
                host.group_id or None,
                host.private_key_id or None,
                host.id,
            ),
        )
        return host


def get_all_hosts(db: Database) -> list[Host]:
    return _preload(db, _select(db))


def get_all_hosts_without_preload(db: Database) -> list[Host]:
    return _select(db)


def get_hosts_by_glob(db: Database, glob: str) -> list[Host]:
    """Hosts whose address matches a pattern where ``*`` stands for any text."""
    return _select(db, " WHERE addr LIKE ?", (glob.replace("*", "%"),))


def get_hosts_by_regex(db: Database, pattern: str) -> list[Host]:
    """Hosts whose address contains a match of ``pattern``; none for an invalid pattern."""
    try:
        regex = re.compile(pattern)
    except re.error:
        return []
    return [host for host in _select(db) if regex.search(host.addr)]


def get_hosts_by_addr(db: Database, addr: str) -> list[Host]:
    return _select(db, " WHERE addr = ?", (addr,))


def get_hosts_by_tag(db: Database, tag: Tag) -> list[Host]:
    return _select(db, " WHERE id IN (SELECT host_id FROM host_tag WHERE tag_id = ?)", (tag.id,))


def get_hosts_by_group(db: Database, group: Group) -> list[Host]:
    return _select(db, " WHERE group_id = ?", (group.id,))


def update_host_status(db: Database, host: Host) -> None:
    """Store only the ``status`` field of ``host``."""
    with db.transaction() as conn:
        conn.execute("UPDATE hosts SET status = ? WHERE id = ?", (int(host.status), host.id))


def paginate_hosts(
    db: Database,
    page_size: int,
    page: int,
    params: Mapping[str, Any] | None,
    preload: bool,
) -> tuple[int, list[Host]]:
    """Return the total matching ``params`` and one page of hosts, newest first."""
    total, hosts = paginate(db, "hosts", _to_host, page_size, page, params)
    if preload:
        _preload(db, hosts)
    return total, hosts