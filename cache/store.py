"""
cache/store.py -- Async key-value stores with per-key expiry.

Backs two things: password-reset tokens ("forget-password:<token>" -> user id)
and server-side sessions ("sess:<id>" -> JSON payload). Both need the same
three operations -- set with TTL, get, delete -- so one contract serves both.

Backends:
  RedisKeyValueStore  -- production. redis.asyncio client; TTL via SET EX.
  SQLiteKeyValueStore -- single-process fallback for development and tests.
                         Expiry is checked on read; purge_expired() trims rows.

Atomic consumption:
  delete() returns True only for the caller that actually removed a live key.
  Redis DEL and SQLite DELETE are each atomic, so when two requests race to
  consume the same reset token exactly one of them sees True.

Errors:
  Backend failures are raised as StoreError so callers can degrade without
  knowing which backend is configured.

Usage:
    store = SQLiteKeyValueStore(":memory:")
    await store.set("forget-password:abc", "42", ttl_seconds=600)
    await store.get("forget-password:abc")     # "42", or None once expired
    await store.delete("forget-password:abc")  # True the first time only
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
import time
from pathlib import Path
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger("threadline.cache")

_DEFAULT_DB = Path(__file__).parent / "threadline_kv.db"

_DDL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    expires_at  REAL NOT NULL
);
"""


class StoreError(Exception):
    """A key-value backend could not complete an operation."""


class KeyValueStore(Protocol):
    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...
    async def get(self, key: str) -> str | None: ...
    async def delete(self, key: str) -> bool: ...
    async def ping(self) -> bool: ...
    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# SQLite
# ---------------------------------------------------------------------------


class SQLiteKeyValueStore:
    """SQLite-backed TTL store.

    One connection shared across worker threads; a lock serializes statements
    on it. Each statement is offloaded with asyncio.to_thread so the event
    loop keeps serving other requests while SQLite works.
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB) -> None:
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._lock = threading.Lock()
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute(_DDL)
        self._conn.commit()

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._run(self._set, key, value, ttl_seconds)

    async def get(self, key: str) -> str | None:
        return await self._run(self._get, key)

    async def delete(self, key: str) -> bool:
        return await self._run(self._delete, key)

    async def ping(self) -> bool:
        try:
            await self._run(self._ping)
        except StoreError:
            return False
        return True

    async def close(self) -> None:
        with self._lock:
            self._conn.close()

    def purge_expired(self) -> int:
        """Delete all expired entries. Returns number of rows removed."""
        with self._lock:
            cursor = self._conn.execute("DELETE FROM kv_store WHERE expires_at <= ?", (time.time(),))
            self._conn.commit()
        return cursor.rowcount

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc

    def _ping(self) -> None:
        with self._lock:
            self._conn.execute("SELECT 1")

    def _set(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value, expires_at) VALUES (?, ?, ?)",
                (key, value, time.time() + ttl_seconds),
            )
            self._conn.commit()

    def _get(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value, expires_at FROM kv_store WHERE key = ?",
                (key,),
            ).fetchone()
            if row is None:
                return None
            value, expires_at = row
            if expires_at <= time.time():
                self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                self._conn.commit()
                return None
            return value

    def _delete(self, key: str) -> bool:
        # Only a live row counts as consumed; an expired one is already gone.
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM kv_store WHERE key = ? AND expires_at > ?",
                (key, time.time()),
            )
            self._conn.commit()
        return cursor.rowcount > 0


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


class RedisKeyValueStore:
    """Redis-backed TTL store. Expiry is enforced by Redis itself."""

    def __init__(self, url: str | None = None, *, client: redis.Redis | None = None) -> None:
        if client is None:
            if not url:
                raise ValueError("RedisKeyValueStore requires a url or a client")
            client = redis.from_url(url, decode_responses=True)
        self._client = client

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._client.set(key, value, ex=ttl_seconds)
        except RedisError as exc:
            raise StoreError(f"Redis SET failed: {exc}") from exc

    async def get(self, key: str) -> str | None:
        try:
            value = await self._client.get(key)
        except RedisError as exc:
            raise StoreError(f"Redis GET failed: {exc}") from exc
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    async def delete(self, key: str) -> bool:
        try:
            removed = await self._client.delete(key)
        except RedisError as exc:
            raise StoreError(f"Redis DEL failed: {exc}") from exc
        return removed > 0

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_kv_store(redis_url: str = "", kv_db_path: str = "") -> KeyValueStore:
    """Return the Redis store when a URL is configured, SQLite otherwise."""
    if redis_url:
        logger.info("Key-value store: redis")
        return RedisKeyValueStore(redis_url)
    logger.info("Key-value store: sqlite (%s)", kv_db_path or _DEFAULT_DB)
    return SQLiteKeyValueStore(kv_db_path or _DEFAULT_DB)
