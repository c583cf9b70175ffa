"""Tests for key-value backends and the admin exclusion list."""
import json
import sqlite3

import pytest

from feed_engine.core.errors import StorageError
from feed_engine.models import ContentItem
from feed_engine.storage.exclusions import DEFAULT_EXCLUSIONS_KEY, AdminExclusionList
from feed_engine.storage.kv import MemoryKeyValueStore, SQLiteConfig, SQLiteKeyValueStore


@pytest.fixture
def sqlite_store(tmp_path):
    return SQLiteKeyValueStore(SQLiteConfig(db_path=str(tmp_path / "state" / "engine.db")))


def test_sqlite_get_missing_key(sqlite_store):
    assert sqlite_store.get("missing") is None


def test_sqlite_set_overwrites(sqlite_store):
    sqlite_store.set("k", "one")
    sqlite_store.set("k", "two")
    assert sqlite_store.get("k") == "two"


def test_sqlite_persists_across_instances(tmp_path):
    path = str(tmp_path / "engine.db")
    SQLiteKeyValueStore(SQLiteConfig(db_path=path)).set("k", "v")
    assert SQLiteKeyValueStore(SQLiteConfig(db_path=path)).get("k") == "v"


def test_sqlite_in_memory_keeps_data():
    store = SQLiteKeyValueStore(SQLiteConfig(db_path=":memory:"))
    store.set("k", "v")
    assert store.get("k") == "v"


def test_sqlite_write_error_raises_storage_error(sqlite_store, mocker):
    failing = mocker.MagicMock()
    failing.__enter__.return_value.execute.side_effect = sqlite3.OperationalError("database is locked")
    mocker.patch.object(sqlite_store, "_get_connection", return_value=failing)

    with pytest.raises(StorageError):
        sqlite_store.set("k", "v")


def test_exclusion_list_appends_and_persists(backend):
    exclusions = AdminExclusionList.open(backend)

    assert exclusions.exclude("v1") is True
    assert exclusions.exclude("v1") is False
    assert exclusions.exclude("https://cdn.test/v2.mp4") is True

    assert json.loads(backend.get(DEFAULT_EXCLUSIONS_KEY)) == ["v1", "https://cdn.test/v2.mp4"]
    assert AdminExclusionList.open(backend).snapshot() == {"v1", "https://cdn.test/v2.mp4"}


def test_exclude_item_records_every_identifier(backend):
    exclusions = AdminExclusionList.open(backend)
    item = ContentItem(id="v1", alternate_id="pub/v1", media_url="https://cdn.test/v1.mp4", kind="short")

    exclusions.exclude_item(item)

    assert set(exclusions) == {"v1", "pub/v1", "https://cdn.test/v1.mp4"}
    assert exclusions.is_excluded(item)


def test_is_excluded_matches_any_identifier(exclusions):
    exclusions.exclude("pub/v1")
    item = ContentItem(id="v1", alternate_id="pub/v1", kind="long")
    other = ContentItem(id="v2", kind="long")

    assert exclusions.is_excluded(item)
    assert not exclusions.is_excluded(other)


@pytest.mark.parametrize("blob", ["{oops", '{"a": 1}', '["a", 3, "a"]'])
def test_exclusion_list_tolerates_bad_blobs(blob):
    backend = MemoryKeyValueStore({DEFAULT_EXCLUSIONS_KEY: blob})
    exclusions = AdminExclusionList.open(backend)

    assert set(exclusions) <= {"a"}
    assert len(exclusions) == len(set(exclusions))
