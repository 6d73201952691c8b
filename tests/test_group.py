import pytest

from opsmgr.models.database import Database, RecordNotFound
from opsmgr.models.group import (
    Group,
    GroupMode,
    delete_group,
    get_all_groups,
    get_group_by_id,
    get_group_by_name,
    group_exists,
    insert_group,
    update_group,
)


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


def test_mode_stored_as_integer_round_trips(db):
    host_group = insert_group(db, "hosts", "", 0)
    other_group = insert_group(db, "other", "", 1)
    assert get_group_by_id(db, host_group.id).mode == GroupMode.HOST
    assert get_group_by_id(db, other_group.id).mode == GroupMode.OTHER


def test_insert_and_get(db):
    group = insert_group(db, "prod", "-G 10.0.*", GroupMode.OTHER)
    fetched = get_group_by_id(db, group.id)
    assert fetched == Group(id=group.id, name="prod", mode=GroupMode.OTHER, params="-G 10.0.*")
    assert get_group_by_name(db, "prod").id == group.id


def test_get_all(db):
    insert_group(db, "a", "", GroupMode.HOST)
    insert_group(db, "b", "", GroupMode.HOST)
    assert [g.name for g in get_all_groups(db)] == ["a", "b"]


def test_missing_raises(db):
    with pytest.raises(RecordNotFound):
        get_group_by_id(db, 3)
    with pytest.raises(RecordNotFound):
        get_group_by_name(db, "x")


def test_exists(db):
    insert_group(db, "prod", "", GroupMode.HOST)
    assert group_exists(db, "prod") is True
    assert group_exists(db, "dev") is False


def test_update_partial(db):
    group = insert_group(db, "prod", "p", GroupMode.OTHER)
    updated = update_group(db, group.id, "", "", -1)
    assert (updated.name, updated.params, updated.mode) == ("prod", "p", GroupMode.OTHER)
    updated = update_group(db, group.id, "live", "q", GroupMode.HOST)
    assert get_group_by_id(db, group.id) == Group(id=group.id, name="live", mode=GroupMode.HOST, params="q")


def test_update_missing_creates(db):
    created = update_group(db, 42, "new", "", GroupMode.HOST)
    assert created.name == "new"
    assert get_group_by_id(db, created.id).name == "new"
    assert len(get_all_groups(db)) == 1


def test_delete(db):
    group = insert_group(db, "prod", "", GroupMode.HOST)
    delete_group(db, group.id)
    with pytest.raises(RecordNotFound):
        get_group_by_id(db, group.id)


def test_delete_missing_is_silent(db):
    insert_group(db, "prod", "", GroupMode.HOST)
    delete_group(db, 999)
    assert [g.name for g in get_all_groups(db)] == ["prod"]