"""Unit tests for DatabaseManager: connection pooling, schema, CRUD ops."""

import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

import sqlite3
import threading
from unittest.mock import patch

import pytest

from api_endpoints.database.manager import DatabaseManager


@pytest.fixture(scope="function")
def db():
    dbm = DatabaseManager(":memory:")
    yield dbm
    dbm.close()


def test_schema_created(db):
    tables = db.execute_query("SELECT name FROM sqlite_master WHERE type='table';")
    table_names = {row[0] for row in tables}
    assert "store_entries" in table_names


def test_insert_and_query_entry(db):
    rc = db.execute_update(
        "INSERT INTO store_entries (store_key, value, compressed, created_at, ttl_seconds) VALUES (?, ?, ?, ?, ?)",
        ("abc", b"data", False, 1.0, 60),
    )
    assert rc == 1
    rows = db.execute_query("SELECT store_key, ttl_seconds FROM store_entries WHERE store_key=?", ("abc",))
    assert rows[0][0] == "abc"
    assert rows[0][1] == 60


def test_memory_databases_are_isolated():
    first = DatabaseManager(":memory:")
    second = DatabaseManager(":memory:")
    first.execute_update(
        "INSERT INTO store_entries (store_key, value, created_at, ttl_seconds) VALUES (?, ?, ?, ?)",
        ("k", b"v", 1.0, 60),
    )
    assert second.execute_query("SELECT COUNT(*) FROM store_entries")[0][0] == 0
    assert first.execute_query("SELECT COUNT(*) FROM store_entries")[0][0] == 1


def test_pooled_connections_share_memory_database(db):
    db.execute_update(
        "INSERT INTO store_entries (store_key, value, created_at, ttl_seconds) VALUES (?, ?, ?, ?)",
        ("k", b"v", 1.0, 60),
    )
    connections = [db.get_connection() for _ in range(3)]
    try:
        for conn in connections:
            assert conn.execute("SELECT COUNT(*) FROM store_entries").fetchone()[0] == 1
    finally:
        for conn in connections:
            db.return_connection(conn)


def test_file_database(tmp_path):
    path = str(tmp_path / "store.db")
    dbm = DatabaseManager(path)
    dbm.execute_update(
        "INSERT INTO store_entries (store_key, value, created_at, ttl_seconds) VALUES (?, ?, ?, ?)",
        ("k", b"v", 1.0, 60),
    )
    dbm.close()
    reopened = DatabaseManager(path)
    assert reopened.execute_query("SELECT COUNT(*) FROM store_entries")[0][0] == 1
    reopened.close()


def test_pool_does_not_grow_past_max(db):
    extra = [db.get_connection() for _ in range(db._max_pool_size + 2)]
    for conn in extra:
        db.return_connection(conn)
    assert len(db._pool) == db._max_pool_size


def test_concurrent_updates(tmp_path):
    dbm = DatabaseManager(str(tmp_path / "concurrent.db"))
    errors = []

    def writer(n):
        try:
            for i in range(10):
                dbm.execute_update(
                    "REPLACE INTO store_entries (store_key, value, created_at, ttl_seconds) VALUES (?, ?, ?, ?)",
                    (f"{n}-{i}", b"v", 1.0, 60),
                )
        except sqlite3.Error as e:
            errors.append(e)

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert errors == []
    assert dbm.execute_query("SELECT COUNT(*) FROM store_entries")[0][0] == 40
    dbm.close()


def test_locked_database_is_retried(db):
    real_get_connection = db.get_connection
    attempts = {"count": 0}

    class LockedOnceConnection:
        def __init__(self, conn):
            self._conn = conn

        def cursor(self):
            attempts["count"] += 1
            if attempts["count"] == 1:
                raise sqlite3.OperationalError("database is locked")
            return self._conn.cursor()

        def commit(self):
            self._conn.commit()

        def close(self):
            self._conn.close()

    with patch.object(db, "get_connection", side_effect=lambda: LockedOnceConnection(real_get_connection())):
        with patch.object(db, "return_connection", side_effect=lambda conn: db._pool.append(conn._conn)):
            with patch("api_endpoints.database.manager.time.sleep") as sleep:
                db.execute_update("DELETE FROM store_entries")
    assert attempts["count"] == 2
    sleep.assert_called_once()


def test_other_operational_errors_raise(db):
    with pytest.raises(sqlite3.OperationalError):
        db.execute_query("SELECT * FROM no_such_table")
