"""JSON collection access over a key-value adapter.

Every collection is one JSON document under one key. Mutations read the whole
document, change it in memory and write it back, so writers of the same key
are serialized through a per-key asyncio.Lock.
"""
import asyncio
import json
import logging
from contextlib import AsyncExitStack
from typing import Any, Callable, Dict, Iterable

from .adapters import KeyValueAdapter
from ..exceptions import CorruptRecordError
from ..keys import lock_rank

logger = logging.getLogger(__name__)


class Database:
    """Schema-agnostic JSON store shared by every domain manager."""

    def __init__(self, adapter: KeyValueAdapter) -> None:
        self.adapter = adapter
        self._locks: Dict[str, asyncio.Lock] = {}

    def lock(self, key: str) -> asyncio.Lock:
        """Return the lock serializing writers of key."""
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def get_json(self, key: str, default: Any = None) -> Any:
        """Read and decode the document under key.

        Raises:
            StorageUnavailable: If the adapter fails
            CorruptRecordError: If the stored value is not valid JSON
        """
        raw = await self.adapter.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as e:
            raise CorruptRecordError(f"Value under {key} is not valid JSON: {e}") from e

    async def set_json(self, key: str, value: Any) -> None:
        """Encode and store value under key."""
        await self.adapter.set(key, json.dumps(value))

    async def update(self, key: str, fn: Callable[[Any], Any], default: Any = None) -> Any:
        """Read-modify-write the document under key while holding its lock.

        Args:
            key: Storage key
            fn: Receives the current document and returns the new one
            default: Document used when nothing is stored yet

        Returns:
            The document that was written
        """
        async with self.lock(key):
            current = await self.get_json(key, default)
            updated = fn(current)
            await self.set_json(key, updated)
            return updated

    async def remove(self, keys: Iterable[str]) -> None:
        """Remove keys once every in-flight writer of them has finished.

        Locks are taken in LOCK_ORDER, the order the sweep nests them in.
        """
        keys = sorted(set(keys), key=lock_rank)
        async with AsyncExitStack() as stack:
            for key in keys:
                await stack.enter_async_context(self.lock(key))
            await self.adapter.remove(keys)
        logger.debug(f"Removed keys: {', '.join(keys)}")

    async def close(self) -> None:
        await self.adapter.close()
