"""Scheduled jobs and the instances of their runs."""

from __future__ import annotations

import contextlib
import posixpath
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

from opsmgr.models.database import Database, RecordNotFound, paginate

INSTANCE_STATUS_RUNNING = "running"
INSTANCE_STATUS_DONE = "done"
DEFAULT_STATUS = "ready"
LOG_DATE_FORMAT = "%Y%m%d"

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
_FIELDS = ("id", "name", "type", "spec", "cmd", "cmd_id", "cmd_type", "status",
           "execute_id", "execute_type")
_SELECT = f"SELECT {', '.join(_FIELDS)} FROM jobs"
_SELECT_INSTANCE = ("SELECT id, uid, job_id, start_time, end_time, status, log_path, log_data "
                    "FROM task_instances")


@dataclass
class TaskInstance:
    id: int
    uid: str
    job_id: int
    start_time: datetime | None = None
    end_time: datetime | None = None
    status: str = DEFAULT_STATUS
    log_path: str = ""
    log_data: str = ""
    job: Job | None = field(default=None, repr=False)

    def generate_log_path(self, tmp_path: str) -> str:
        """Path of this run's log: ``<tmp_path>/<YYYYMMDD of start>/<uid>.log``."""
        if self.start_time is None:
            raise ValueError("task instance has no start time")
        return posixpath.join(tmp_path, self.start_time.strftime(LOG_DATE_FORMAT), f"{self.uid}.log")


@dataclass
class Job:
    id: int
    name: str
    type: str
    spec: str = ""
    cmd: str = ""
    cmd_id: int = 0
    cmd_type: str = ""
    status: str = DEFAULT_STATUS
    execute_id: int = 0
    execute_type: str = ""
    instances: list[TaskInstance] = field(default_factory=list)


def _local_naive(value: datetime) -> datetime:
    return value.astimezone().replace(tzinfo=None) if value.tzinfo else value


def _to_db_time(value: datetime) -> str:
    return _local_naive(value).strftime(_TIME_FORMAT)


def _to_instance(row) -> TaskInstance:
    data = dict(row)
    for key in ("start_time", "end_time"):
        data[key] = datetime.strptime(data[key], _TIME_FORMAT) if data[key] else None
    data["job_id"] = data["job_id"] or 0
    return TaskInstance(**data)


def _fetch(conn, job_id: int) -> Job:
    row = conn.execute(f"{_SELECT} WHERE id = ?", (job_id,)).fetchone()
    if row is None:
        raise RecordNotFound(f"job {job_id} not found")
    return Job(**dict(row))


def get_all_jobs(db: Database) -> list[Job]:
    """Every job, newest first."""
    with db.transaction() as conn:
        return [Job(**dict(row)) for row in conn.execute(f"{_SELECT} ORDER BY id DESC")]


def get_job_by_id(db: Database, job_id: int) -> Job:
    with db.transaction() as conn:
        return _fetch(conn, job_id)


def insert_job(db: Database, name: str, job_type: str, spec: str, cmd: str, execute_id: int,
               cmd_id: int, execute_type: str, cmd_type: str) -> Job:
    with db.transaction() as conn:
        cursor = conn.execute(
            "INSERT INTO jobs (name, type, spec, cmd, cmd_id, cmd_type, execute_id, execute_type) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (name, job_type, spec, cmd, cmd_id, cmd_type, execute_id, execute_type),
        )
        return _fetch(conn, cursor.lastrowid)


def update_job(db: Database, job_id: int, name: str, job_type: str, spec: str, cmd: str,
               cmd_type: str, cmd_id: int, execute_id: int, execute_type: str) -> Job:
    """Update a job; empty strings and zero ids keep the stored values."""
    changes = {"name": name, "type": job_type, "spec": spec, "cmd": cmd, "cmd_type": cmd_type,
               "cmd_id": cmd_id, "execute_id": execute_id, "execute_type": execute_type}
    with db.transaction() as conn:
        job = _fetch(conn, job_id)
        for key, value in changes.items():
            if value:
                setattr(job, key, value)
        conn.execute(
            f"UPDATE jobs SET {', '.join(f'{k} = ?' for k in changes)} WHERE id = ?",
            (*(getattr(job, k) for k in changes), job.id),
        )
        return job


def update_job_status(db: Database, job_id: int, status: str) -> Job:
    """Store a new status; an empty status keeps it."""
    with db.transaction() as conn:
        job = _fetch(conn, job_id)
        job.status = status or job.status
        conn.execute("UPDATE jobs SET status = ? WHERE id = ?", (job.status, job.id))
        return job


def delete_job(db: Database, job_id: int) -> None:
    """Delete a job together with its instances."""
    with db.transaction() as conn:
        conn.execute("DELETE FROM jobs WHERE id = ?", (_fetch(conn, job_id).id,))


def refresh_job(db: Database, job: Job) -> Job:
    """Reload the stored fields of ``job`` in place."""
    fresh = get_job_by_id(db, job.id)
    for name in _FIELDS:
        setattr(job, name, getattr(fresh, name))
    return job


def set_instance_status(db: Database, instance: TaskInstance, status: str) -> None:
    with db.transaction() as conn:
        conn.execute("UPDATE task_instances SET status = ? WHERE id = ?", (status, instance.id))
    instance.status = status


def finish_instance(db: Database, instance: TaskInstance) -> None:
    """Stamp the end time with the local time now and mark the instance done."""
    instance.end_time = datetime.now()
    with db.transaction() as conn:
        conn.execute("UPDATE task_instances SET end_time = ? WHERE id = ?",
                     (_to_db_time(instance.end_time), instance.id))
    set_instance_status(db, instance, INSTANCE_STATUS_DONE)


def get_task_instance_by_id(db: Database, instance_id: int) -> TaskInstance:
    """An instance with its job loaded."""
    with db.transaction() as conn:
        row = conn.execute(f"{_SELECT_INSTANCE} WHERE id = ?", (instance_id,)).fetchone()
        if row is None:
            raise RecordNotFound(f"task instance {instance_id} not found")
        instance = _to_instance(row)
        job_row = conn.execute(f"{_SELECT} WHERE id = ?", (instance.job_id,)).fetchone()
    instance.job = None if job_row is None else Job(**dict(job_row))
    return instance


def update_task_instance_log_path(db: Database, instance: TaskInstance, log_path: str) -> None:
    instance.log_path = log_path
    with db.transaction() as conn:
        conn.execute("UPDATE task_instances SET log_path = ? WHERE id = ?", (log_path, instance.id))


def insert_task_instance(db: Database, job_id: int, start: datetime) -> TaskInstance:
    """Record a new run of a job started at ``start``."""
    with db.transaction() as conn:
        job = _fetch(conn, job_id)
        cursor = conn.execute(
            "INSERT INTO task_instances (uid, job_id, start_time) VALUES (?, ?, ?)",
            (str(uuid.uuid4()), job_id, _to_db_time(start)),
        )
        row = conn.execute(f"{_SELECT_INSTANCE} WHERE id = ?", (cursor.lastrowid,)).fetchone()
    instance = _to_instance(row)
    instance.start_time = _local_naive(start)
    instance.job = job
    return instance


def _clear_job_logs(log_root: Path, job: Job, since_before: datetime) -> None:
    cutoff = _local_naive(since_before)
    for entry in list((log_root / f"{job.id}-{job.name}").iterdir()):
        if len(entry.name) != 8 or not entry.name.isdigit():
            continue
        try:
            day = datetime.strptime(entry.name, LOG_DATE_FORMAT)
        except ValueError:
            continue
        if day >= cutoff:
            continue
        if entry.is_dir():
            shutil.rmtree(entry, ignore_errors=True)
        else:
            with contextlib.suppress(OSError):
                entry.unlink()


def clear_instances(db: Database, since_before: datetime | None, job_id: int,
                    log_root: str | Path) -> int:
    """Delete instances that ended before ``since_before`` and older daily log folders.

    With a positive ``job_id`` only that job is cleared and a missing log folder
    is an error; otherwise every job is cleared and missing folders are skipped.
    Returns the number of instances deleted.
    """
    if since_before is None:
        raise ValueError("must have a since_before time")
    where, args = "(end_time IS NULL OR end_time < ?)", (_to_db_time(since_before),)
    job: Job | None = None
    with db.transaction() as conn:
        if job_id > 0:
            job = _fetch(conn, job_id)
            where, args = f"job_id = ? AND {where}", (job_id, *args)
        deleted = conn.execute(f"DELETE FROM task_instances WHERE {where}", args).rowcount

    root = Path(log_root)
    if job is not None:
        _clear_job_logs(root, job, since_before)
    else:
        for each in get_all_jobs(db):
            with contextlib.suppress(OSError):
                _clear_job_logs(root, each, since_before)
    return deleted


def paginate_task_instances(db: Database, page_size: int, page: int,
                            params: Mapping[str, Any] | None) -> tuple[int, list[TaskInstance]]:
    """Return the total matching ``params`` and one page of instances, newest first."""
    return paginate(db, "task_instances", _to_instance, page_size, page, params)