"""Database manager: connection pooling, schema, thread safety."""

import itertools
import random
import sqlite3
import threading
import time
from typing import Any, List

from api_endpoints.utils.logger import get_logger

SCHEMA = [
    """CREATE TABLE IF NOT EXISTS store_entries (
        store_key TEXT PRIMARY KEY,
        value BLOB NOT NULL,
        compressed BOOLEAN NOT NULL DEFAULT 0,
        created_at REAL NOT NULL,
        ttl_seconds INTEGER NOT NULL,
        access_count INTEGER DEFAULT 0
    );""",
    "CREATE INDEX IF NOT EXISTS idx_store_created_ttl " "ON store_entries(created_at, ttl_seconds);",
]

_memory_ids = itertools.count(1)


class DatabaseManager:
    """Manages SQLite database operations with thread safety and connection pooling."""

    def __init__(self, database_path: str):
        self.logger = get_logger("database.manager")
        if database_path == ":memory:":
            # Named shared-cache DB so pooled connections see the same data;
            # each manager gets its own so instances stay isolated
            self.database_path = f"file:api_endpoints_{next(_memory_ids)}?mode=memory&cache=shared"
            self._use_uri = True
        else:
            self.database_path = database_path
            self._use_uri = database_path.startswith("file:")
        self._lock = threading.Lock()
        self._pool: List[sqlite3.Connection] = []
        self._max_pool_size = 5
        self._initialize_connections()
        self._initialize_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.database_path, check_same_thread=False, uri=self._use_uri)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA temp_store=memory")
        # 5 second timeout on locks
        conn.execute("PRAGMA busy_timeout=5000")
        return conn

    def _initialize_connections(self):
        for _ in range(self._max_pool_size):
            self._pool.append(self._connect())

    def _initialize_schema(self):
        conn = self.get_connection()
        try:
            cur = conn.cursor()
            for stmt in SCHEMA:
                cur.execute(stmt)
            conn.commit()
        finally:
            self.return_connection(conn)

    def get_connection(self) -> sqlite3.Connection:
        with self._lock:
            if self._pool:
                return self._pool.pop()
        return self._connect()

    def return_connection(self, conn: sqlite3.Connection):
        with self._lock:
            if len(self._pool) < self._max_pool_size:
                self._pool.append(conn)
                return
        conn.close()

    def execute_query(self, query: str, params: tuple = (), retries: int = 10, delay: float = 0.05) -> List[Any]:
        for attempt in range(retries):
            conn = self.get_connection()
            try:
                cur = conn.cursor()
                cur.execute(query, params)
                return cur.fetchall()
            except sqlite3.OperationalError as e:
                if "locked" in str(e).lower() and attempt < retries - 1:
                    # Exponential backoff with jitter
                    backoff = delay * (2**attempt) + random.uniform(0, 0.1)
                    time.sleep(min(backoff, 1.0))
                    continue
                raise
            finally:
                self.return_connection(conn)
        return []

    def execute_update(self, query: str, params: tuple = (), retries: int = 10, delay: float = 0.05) -> int:
        for attempt in range(retries):
            conn = self.get_connection()
            try:
                cur = conn.cursor()
                cur.execute(query, params)
                conn.commit()
                return cur.rowcount
            except sqlite3.OperationalError as e:
                if "locked" in str(e).lower() and attempt < retries - 1:
                    backoff = delay * (2**attempt) + random.uniform(0, 0.1)
                    time.sleep(min(backoff, 1.0))
                    continue
                raise
            finally:
                self.return_connection(conn)
        return 0

    def close(self):
        """Close all pooled database connections."""
        with self._lock:
            while self._pool:
                conn = self._pool.pop()
                try:
                    conn.close()
                except sqlite3.Error as e:
                    self.logger.debug(f"Error closing connection: {e}")
