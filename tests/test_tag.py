import sqlite3

import pytest

from opsmgr.models.database import Database, RecordNotFound
from opsmgr.models.tag import (
    Tag,
    delete_tag,
    get_all_tags,
    get_tag_by_id,
    get_tag_by_name,
    insert_tag,
    tag_exists,
    update_tag,
)


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


def test_insert_and_get(db):
    tag = insert_tag(db, "web")
    assert get_tag_by_id(db, tag.id) == Tag(id=tag.id, name="web")
    assert get_tag_by_name(db, "web") == tag


def test_get_all_in_insertion_order(db):
    insert_tag(db, "a")
    insert_tag(db, "b")
    assert [t.name for t in get_all_tags(db)] == ["a", "b"]


def test_missing_tag_raises(db):
    with pytest.raises(RecordNotFound):
        get_tag_by_id(db, 99)
    with pytest.raises(RecordNotFound):
        get_tag_by_name(db, "nope")


def test_exists(db):
    insert_tag(db, "db")
    assert tag_exists(db, "db") is True
    assert tag_exists(db, "cache") is False


def test_duplicate_name_rejected(db):
    insert_tag(db, "web")
    with pytest.raises(sqlite3.IntegrityError):
        insert_tag(db, "web")


def test_update_renames(db):
    tag = insert_tag(db, "web")
    updated = update_tag(db, tag.id, "frontend")
    assert updated.name == "frontend"
    assert get_tag_by_id(db, tag.id).name == "frontend"


def test_update_empty_name_keeps(db):
    tag = insert_tag(db, "web")
    assert update_tag(db, tag.id, "").name == "web"


def test_update_missing_raises(db):
    with pytest.raises(RecordNotFound):
        update_tag(db, 5, "x")


def test_delete_clears_host_association(db):
    tag = insert_tag(db, "web")
    with db.transaction() as conn:
        host_id = conn.execute(
            "INSERT INTO hosts (name, user, addr, password) VALUES ('h', 'root', '10.0.0.1', 'password')"
        ).lastrowid
        conn.execute("INSERT INTO host_tag (host_id, tag_id) VALUES (?, ?)", (host_id, tag.id))
    delete_tag(db, tag.id)
    with db.transaction() as conn:
        links = conn.execute("SELECT COUNT(*) FROM host_tag").fetchone()[0]
    assert links == 0
    assert get_all_tags(db) == []


def test_delete_missing_raises(db):
    with pytest.raises(RecordNotFound):
        delete_tag(db, 1)