from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from core.database.session_store import SessionStore
from core.exceptions import PersistenceFailure


def test_create_and_find(store):
    created = store.create("session-1", "key-1")

    assert created.id == "session-1"
    assert created.is_active is True
    assert created.username is None

    found = store.find_by_credential("key-1")
    assert found.id == "session-1"
    assert found.storage_state is None
    assert store.find_by_credential("missing") is None


def test_credential_key_is_unique(store):
    store.create("session-1", "key-1")

    with pytest.raises(PersistenceFailure):
        store.create("session-2", "key-1")


def test_partial_update_leaves_other_columns(store):
    store.create("session-1", "key-1")
    store.update("key-1", username="user@x.com", storage_state='{"cookies": []}')

    assert store.update("key-1", storage_state='{"cookies": [1]}') is True

    record = store.find_by_credential("key-1")
    assert record.username == "user@x.com"
    assert record.storage_state == '{"cookies": [1]}'


def test_update_with_explicit_none_clears(store):
    store.create("session-1", "key-1")
    store.update("key-1", username="user@x.com", storage_state="{}")

    store.update("key-1", username=None, storage_state=None)

    record = store.find_by_credential("key-1")
    assert record.username is None
    assert record.storage_state is None


def test_update_sets_last_used(store):
    store.create("session-1", "key-1")
    when = datetime(2030, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    store.update("key-1", last_used_at=when)

    assert store.find_by_credential("key-1").last_used_at.replace(tzinfo=None) == when.replace(tzinfo=None)


def test_update_unknown_key_returns_false(store):
    assert store.update("missing", username="x") is False


def test_list_all_oldest_first(store):
    store.create("session-1", "key-1")
    store.create("session-2", "key-2")

    assert [record.id for record in store.list_all()] == ["session-1", "session-2"]


def test_delete(store):
    store.create("session-1", "key-1")

    assert store.delete("key-1") is True
    assert store.delete("key-1") is False
    assert store.find_by_credential("key-1") is None


def test_database_errors_become_persistence_failures():
    broken = MagicMock(side_effect=OperationalError("SELECT 1", {}, Exception("database is locked")))
    store = SessionStore(broken)

    with pytest.raises(PersistenceFailure):
        store.find_by_credential("key-1")
    with pytest.raises(PersistenceFailure):
        store.list_all()
