"""Response stores used to skip repeated identical GET fetches.

A store is anything with ``get(key) -> str | None`` and
``put(key, value, ttl_seconds)``. Keys are a hash of the request shape with
the Authorization header removed, so bearer tokens are never persisted,
hashed or otherwise, and a refreshed token still hits the same entry.
"""

import hashlib
import json
import threading
import time
import zlib
from typing import Any, Callable, Dict, Optional

from api_endpoints.database.manager import DatabaseManager
from api_endpoints.database.models import StoredEntry
from api_endpoints.utils.logger import get_logger

DEFAULT_TTL_SECONDS = 21600  # 6 hours


def compute_request_hash(url: str, params: Dict[str, Any]) -> str:
    """MD5 hex digest of the request shape, excluding any Authorization header.

    Example:
        >>> compute_request_hash("https://example.com/a", {"method": "get"})
        '...'
    """
    shape = {key: value for key, value in params.items() if key != "headers"}
    headers = {key: value for key, value in (params.get("headers") or {}).items() if key.lower() != "authorization"}
    if headers:
        shape["headers"] = headers
    shape["url"] = url
    key_string = json.dumps(shape, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.md5(key_string.encode("utf-8")).hexdigest()


class ResponseStore:
    """SQLite-backed response store with TTL expiry and compression.

    Example:
        >>> store = ResponseStore(DatabaseManager(":memory:"))
        >>> store.put("key", '{"a": 1}', 60)
        >>> store.get("key")
        '{"a": 1}'
    """

    def __init__(
        self,
        db_manager: DatabaseManager,
        compression_threshold: int = 1024,
        default_ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the store.

        Args:
            db_manager: Database manager for persistent storage
            compression_threshold: Minimum size for compression (bytes)
            default_ttl_seconds: TTL used when ``put`` is called without one
            clock: Time source in epoch seconds
        """
        self.db_manager = db_manager
        self.compression_threshold = compression_threshold
        self.default_ttl_seconds = default_ttl_seconds
        self.clock = clock
        self.logger = get_logger("cache.store")
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "expired": 0, "compressed": 0}
        self._cleanup_expired_entries()

    @classmethod
    def from_config(cls, cache_config: dict) -> "ResponseStore":
        """Build a store from the ``cache`` configuration section."""
        config = cache_config or {}
        return cls(
            DatabaseManager(config.get("database_path", ":memory:")),
            default_ttl_seconds=config.get("default_ttl_seconds", DEFAULT_TTL_SECONDS),
        )

    def get_entry(self, key: str) -> Optional[StoredEntry]:
        """Return the stored entry for ``key`` if present and not expired."""
        with self._lock:
            rows = self.db_manager.execute_query(
                "SELECT value, compressed, created_at, ttl_seconds, access_count "
                "FROM store_entries WHERE store_key = ?",
                (key,),
            )
            if not rows:
                self._stats["misses"] += 1
                return None
            data, compressed, created_at, ttl_seconds, access_count = rows[0]
            entry_value = zlib.decompress(data) if compressed else data
            entry = StoredEntry(
                key=key,
                value=bytes(entry_value).decode("utf-8"),
                created_at=created_at,
                ttl_seconds=ttl_seconds,
                access_count=access_count + 1,
            )
            if entry.is_expired(self.clock()):
                self.delete(key)
                self._stats["expired"] += 1
                self._stats["misses"] += 1
                return None
            self.db_manager.execute_update(
                "UPDATE store_entries SET access_count = access_count + 1 WHERE store_key = ?", (key,)
            )
            self._stats["hits"] += 1
            return entry

    def get(self, key: str) -> Optional[str]:
        entry = self.get_entry(key)
        return entry.value if entry is not None else None

    def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> bool:
        """Store ``value`` under ``key`` for ``ttl_seconds`` (default TTL when None)."""
        if ttl_seconds is None:
            ttl_seconds = self.default_ttl_seconds
        data = value.encode("utf-8")
        compressed = len(data) > self.compression_threshold
        if compressed:
            data = zlib.compress(data)

        with self._lock:
            self.db_manager.execute_update(
                "REPLACE INTO store_entries (store_key, value, compressed, created_at, ttl_seconds, access_count) "
                "VALUES (?, ?, ?, ?, ?, 0)",
                (key, data, compressed, self.clock(), ttl_seconds),
            )
            self._stats["sets"] += 1
            if compressed:
                self._stats["compressed"] += 1
        self.logger.debug(f"Stored {len(value)} characters under {key} for {ttl_seconds}s")
        return True

    def _cleanup_expired_entries(self) -> int:
        """Remove expired entries."""
        removed = self.db_manager.execute_update(
            "DELETE FROM store_entries WHERE created_at + ttl_seconds < ?", (self.clock(),)
        )
        if removed > 0:
            with self._lock:
                self._stats["expired"] += removed
        return removed

    def delete(self, key: str) -> int:
        return self.db_manager.execute_update("DELETE FROM store_entries WHERE store_key = ?", (key,))

    def clear(self) -> int:
        return self.db_manager.execute_update("DELETE FROM store_entries")

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._stats)

    def close(self) -> None:
        self.db_manager.close()


class MemoryStore:
    """In-process store with the same ``get`` / ``put`` contract."""

    def __init__(self, default_ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.time):
        self.default_ttl_seconds = default_ttl_seconds
        self.clock = clock
        self._entries: Dict[str, StoredEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self.clock()):
                del self._entries[key]
                return None
            entry.access_count += 1
            return entry.value

    def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        if ttl_seconds is None:
            ttl_seconds = self.default_ttl_seconds
        with self._lock:
            self._entries[key] = StoredEntry(key=key, value=value, created_at=self.clock(), ttl_seconds=ttl_seconds)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self):
        return len(self._entries)
