# tests/test_store.py

from __future__ import annotations

from pathlib import Path

import pytest

from allyhub.cache.store import SqliteBlobStore, namespaced_key
from allyhub.errors import PersistenceError


def test_sqlite_store_save_load_overwrite_delete(tmp_path: Path) -> None:
    store = SqliteBlobStore(tmp_path / "nested" / "cache.sqlite3")
    key = namespaced_key("tasks")

    assert store.load(key) is None
    store.save(key, b'{"version": 1, "items": []}')
    store.save(key, b'{"version": 1, "items": [1]}')
    assert store.load(key) == b'{"version": 1, "items": [1]}'
    assert store.keys() == ["allyhub.cache.tasks"]

    store.delete(key)
    store.delete(key)
    assert store.load(key) is None


def test_sqlite_store_survives_reopen(tmp_path: Path) -> None:
    path = tmp_path / "cache.sqlite3"
    SqliteBlobStore(path).save("k", b"\x00\x01binary")
    assert SqliteBlobStore(path).load("k") == b"\x00\x01binary"


def test_unusable_database_raises_persistence_error(tmp_path: Path) -> None:
    # A directory where the database file should be.
    path = tmp_path / "cache.sqlite3"
    path.mkdir()
    with pytest.raises(PersistenceError):
        SqliteBlobStore(path)
