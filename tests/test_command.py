import sqlite3

import pytest

from opsmgr.models.command import (
    DEFAULT_SEARCH_LIMIT,
    QuicklyCommand,
    delete_command_history,
    delete_quickly_command,
    get_all_quickly_commands,
    get_quickly_command_by_id,
    insert_quickly_command,
    record_command,
    search_command_history,
    update_quickly_command,
)
from opsmgr.models.database import Database, RecordNotFound


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


def _record(db, cmd, times):
    for _ in range(times):
        record_command(db, cmd)


def test_record_counts_uses(db):
    _record(db, "uptime", 3)
    [entry] = search_command_history(db, "uptime", 0)
    assert (entry.cmd, entry.times) == ("uptime", 3)


def test_search_orders_by_times(db):
    _record(db, "ls -a", 3)
    _record(db, "ls -l", 1)
    _record(db, "pwd", 2)
    assert [h.cmd for h in search_command_history(db, "", 0)] == ["ls -a", "pwd", "ls -l"]


def test_search_prefix_strips_trailing_spaces(db):
    _record(db, "ls -a", 3)
    _record(db, "ls -l", 1)
    _record(db, "pwd", 2)
    assert [h.cmd for h in search_command_history(db, "ls   ", 0)] == ["ls -a", "ls -l"]


def test_search_default_limit(db):
    for i in range(DEFAULT_SEARCH_LIMIT + 2):
        record_command(db, f"echo {i}")
    assert len(search_command_history(db, "", 0)) == DEFAULT_SEARCH_LIMIT
    assert len(search_command_history(db, "echo", 3)) == 3


def test_delete_history(db):
    record_command(db, "pwd")
    [entry] = search_command_history(db, "", 0)
    delete_command_history(db, entry.id)
    assert search_command_history(db, "", 0) == []


def test_quick_command_crud(db):
    created = insert_quickly_command(db, "restart", "systemctl restart app", True)
    assert get_quickly_command_by_id(db, created.id) == QuicklyCommand(
        id=created.id, name="restart", cmd="systemctl restart app", append_cr=True
    )
    updated = update_quickly_command(db, created.id, "", "", False)
    assert (updated.name, updated.cmd, updated.append_cr) == ("restart", "systemctl restart app", False)
    updated = update_quickly_command(db, created.id, "reload", "systemctl reload app", True)
    assert get_all_quickly_commands(db) == [updated]
    delete_quickly_command(db, created.id)
    assert get_all_quickly_commands(db) == []


def test_quick_command_missing(db):
    with pytest.raises(RecordNotFound):
        get_quickly_command_by_id(db, 1)
    with pytest.raises(RecordNotFound):
        update_quickly_command(db, 1, "a", "b", False)
    with pytest.raises(RecordNotFound):
        delete_quickly_command(db, 1)


def test_quick_command_unique_name(db):
    insert_quickly_command(db, "x", "ls", False)
    with pytest.raises(sqlite3.IntegrityError):
        insert_quickly_command(db, "x", "pwd", False)