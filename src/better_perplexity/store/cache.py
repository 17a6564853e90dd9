"""Key/value cache capability with TTL.

Two interchangeable backends: SqliteCache (durable, shared across processes)
and MemoryCache (in-process fallback). build_cache() picks one from settings
once; the instance is then passed explicitly to whoever needs it.

Values are plain strings so this layer stays generic; callers serialize.
"""

import sqlite3
import threading
import time
from typing import Dict, Optional, Protocol, Tuple

from ..config import Settings, get_settings
from ..log import get_logger
from .db import get_db_connection, init_db

logger = get_logger("cache")


class Cache(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...


class MemoryCache:
    def __init__(self):
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            hit = self._entries.get(key)
            if hit is None:
                return None
            value, expires_at = hit
            if time.time() > expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._entries[key] = (value, time.time() + ttl_seconds)


class SqliteCache:
    def __init__(self, db_path: str):
        self.db_path = db_path
        init_db(db_path)

    def get(self, key: str) -> Optional[str]:
        with get_db_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT value FROM cache_entries WHERE key = ? AND expires_at > ?",
                (key, time.time())
            ).fetchone()
            return row["value"] if row else None

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        with get_db_connection(self.db_path) as conn:
            conn.execute(
                "INSERT OR REPLACE INTO cache_entries (key, value, expires_at) VALUES (?, ?, ?)",
                (key, value, time.time() + ttl_seconds)
            )
            conn.commit()

    def purge_expired(self) -> int:
        """Deletes expired rows. Returns how many were removed."""
        with get_db_connection(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM cache_entries WHERE expires_at <= ?", (time.time(),))
            conn.commit()
            return cursor.rowcount


def safe_get(cache: Optional[Cache], key: str) -> Optional[str]:
    """Best-effort read: a broken backend behaves like a miss."""
    if cache is None:
        return None
    try:
        return cache.get(key)
    except Exception as e:
        logger.warning(f"Cache get failed for {key}: {e}")
        return None


def safe_set(cache: Optional[Cache], key: str, value: str, ttl_seconds: int) -> None:
    if cache is None:
        return
    try:
        cache.set(key, value, ttl_seconds)
    except Exception as e:
        logger.warning(f"Cache set failed for {key}: {e}")


def build_cache(settings: Optional[Settings] = None) -> Cache:
    settings = settings or get_settings()
    if settings.CACHE_BACKEND == "sqlite":
        try:
            cache = SqliteCache(settings.CACHE_DB_PATH)
        except (sqlite3.Error, OSError) as e:
            logger.warning(f"SQLite cache unavailable ({e}); falling back to in-memory cache")
            return MemoryCache()
        try:
            removed = cache.purge_expired()
            if removed:
                logger.info(f"Purged {removed} expired cache entries")
        except sqlite3.Error as e:
            logger.warning(f"Could not purge expired cache entries: {e}")
        logger.info(f"Using SQLite cache at {settings.CACHE_DB_PATH}")
        return cache
    return MemoryCache()
