"""Key-value persistence adapters.

Every adapter exposes the same asynchronous string-keyed contract:

- get(key) -> Optional[str]
- set(key, value) -> None
- remove(keys) -> None

Any I/O failure is raised as StorageUnavailable. Adapters hold no domain
knowledge; values are opaque strings.
"""
import asyncio
import logging
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, Optional

import asyncpg
import backoff

from ..exceptions import StorageUnavailable

logger = logging.getLogger(__name__)


class KeyValueAdapter(ABC):
    """Asynchronous string-keyed store."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value stored under key, or None."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""

    @abstractmethod
    async def remove(self, keys: Iterable[str]) -> None:
        """Remove every key in keys. Missing keys are ignored."""

    async def close(self) -> None:
        """Release any resources held by the adapter."""


class MemoryAdapter(KeyValueAdapter):
    """Process-local adapter backed by a dict."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    def dump(self) -> Dict[str, str]:
        """Copy of the raw stored values."""
        return dict(self._data)


class SQLiteAdapter(KeyValueAdapter):
    """On-device adapter storing every key in one SQLite table.

    Each call opens its own connection in a worker thread so the event loop
    never blocks on disk I/O.
    """

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self._ready = False

    def _get_connection(self) -> sqlite3.Connection:
        if not self._ready:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        if not self._ready:
            try:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL
                    )
                """)
                conn.commit()
            except sqlite3.Error:
                conn.close()
                raise
            self._ready = True
        return conn

    def _get(self, key: str) -> Optional[str]:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
            return row[0] if row else None
        finally:
            conn.close()

    def _set(self, key: str, value: str) -> None:
        conn = self._get_connection()
        try:
            conn.execute(
                "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                (key, value),
            )
            conn.commit()
        finally:
            conn.close()

    def _remove(self, keys) -> None:
        conn = self._get_connection()
        try:
            conn.executemany(
                "DELETE FROM kv_store WHERE key = ?", [(key,) for key in keys]
            )
            conn.commit()
        finally:
            conn.close()

    async def get(self, key: str) -> Optional[str]:
        try:
            return await asyncio.to_thread(self._get, key)
        except (sqlite3.Error, OSError) as e:
            raise StorageUnavailable("get", key, e) from e

    async def set(self, key: str, value: str) -> None:
        try:
            await asyncio.to_thread(self._set, key, value)
        except (sqlite3.Error, OSError) as e:
            raise StorageUnavailable("set", key, e) from e

    async def remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        try:
            await asyncio.to_thread(self._remove, keys)
        except (sqlite3.Error, OSError) as e:
            raise StorageUnavailable("remove", ", ".join(keys), e) from e


class PostgresAdapter(KeyValueAdapter):
    """Adapter over a PostgreSQL/CockroachDB table for multi-process deployments."""

    def __init__(self, db_url: Optional[str] = None, pool: Optional[asyncpg.Pool] = None):
        """Initialize the adapter.

        Args:
            db_url: Database URL used to create a pool on first use
            pool: Optional existing connection pool
        """
        self.db_url = db_url
        self.pool = pool

    @backoff.on_exception(
        backoff.expo,
        (asyncpg.exceptions.PostgresConnectionError, asyncpg.exceptions.CannotConnectNowError, OSError),
        max_tries=5
    )
    async def _create_pool(self) -> asyncpg.Pool:
        logger.info("Creating key-value store connection pool")
        return await asyncpg.create_pool(
            self.db_url,
            min_size=1,
            max_size=5,
            command_timeout=60.0,
        )

    async def ensure_pool(self) -> asyncpg.Pool:
        """Ensure we have a connection pool and the kv_store table exists."""
        if self.pool is None:
            if not self.db_url:
                raise StorageUnavailable("connect", "kv_store", ValueError("Database URL not provided"))
            try:
                self.pool = await self._create_pool()
                async with self.pool.acquire() as conn:
                    await conn.execute('''
                        CREATE TABLE IF NOT EXISTS kv_store (
                            key TEXT PRIMARY KEY,
                            value TEXT NOT NULL,
                            updated_at TIMESTAMP NOT NULL DEFAULT now()
                        )
                    ''')
            except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
                raise StorageUnavailable("connect", "kv_store", e) from e
        return self.pool

    async def get(self, key: str) -> Optional[str]:
        pool = await self.ensure_pool()
        try:
            async with pool.acquire() as conn:
                return await conn.fetchval(
                    'SELECT value FROM kv_store WHERE key = $1', key
                )
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise StorageUnavailable("get", key, e) from e

    async def set(self, key: str, value: str) -> None:
        pool = await self.ensure_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    '''
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES ($1, $2, now())
                    ON CONFLICT (key) DO UPDATE
                    SET value = EXCLUDED.value,
                        updated_at = now()
                    ''',
                    key,
                    value
                )
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise StorageUnavailable("set", key, e) from e

    async def remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        pool = await self.ensure_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    'DELETE FROM kv_store WHERE key = ANY($1::text[])', keys
                )
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise StorageUnavailable("remove", ", ".join(keys), e) from e

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None


def create_adapter(settings: Dict) -> KeyValueAdapter:
    """Create the adapter selected by the storage_backend setting."""
    backend = settings.get('storage_backend', 'sqlite')
    if backend == 'memory':
        return MemoryAdapter()
    if backend == 'postgres':
        return PostgresAdapter(settings.get('db_url'))
    if backend == 'sqlite':
        return SQLiteAdapter(settings['storage_path'])
    raise ValueError(f"Unknown storage backend: {backend}")
