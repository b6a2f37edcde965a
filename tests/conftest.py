"""Shared fixtures for the local store tests."""

import asyncio

import pytest
import pytest_asyncio

from database import Database, MemoryAdapter, StorageUnavailable, KeyValueAdapter
from chats import ChatManager
from chats.models import Contact
from wallet import WalletManager
from expiry import DisappearingMessages
from sync import OfflineCache, CacheReconciler

START_MS = 1_700_000_000_000

class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now

class FailingAdapter(KeyValueAdapter):
    """Adapter whose every operation fails like an unavailable disk."""

    async def get(self, key):
        raise StorageUnavailable("get", key, OSError("disk unavailable"))

    async def set(self, key, value):
        raise StorageUnavailable("set", key, OSError("disk unavailable"))

    async def remove(self, keys):
        raise StorageUnavailable("remove", ", ".join(keys), OSError("disk unavailable"))

class YieldingAdapter(MemoryAdapter):
    """Memory adapter that yields to the event loop on every call."""

    async def get(self, key):
        await asyncio.sleep(0)
        return await super().get(key)

    async def set(self, key, value):
        await asyncio.sleep(0)
        await super().set(key, value)

@pytest.fixture
def clock():
    return FakeClock()

@pytest.fixture
def adapter():
    return MemoryAdapter()

@pytest_asyncio.fixture
async def db(adapter):
    """Create a database over an in-memory adapter."""
    database = Database(adapter)
    yield database
    await database.close()

@pytest.fixture
def failing_db():
    return Database(FailingAdapter())

@pytest.fixture
def chat_manager(db, clock):
    return ChatManager(db, clock)

@pytest.fixture
def wallet_manager(db, chat_manager, clock):
    return WalletManager(db, chat_manager, clock)

@pytest.fixture
def engine(db, chat_manager, clock):
    return DisappearingMessages(db, chat_manager, clock)

@pytest.fixture
def offline_cache(db, clock):
    return OfflineCache(db, clock=clock)

@pytest.fixture
def reconciler(db, chat_manager):
    return CacheReconciler(db, chat_manager)

@pytest.fixture
def alice():
    return Contact(id="u1", name="Alice", username="alice", avatar_id="a1")

@pytest.fixture
def bob():
    return Contact(id="u2", name="Bob", username="bob")

@pytest_asyncio.fixture
async def alice_chat(chat_manager, alice):
    """Create the 1:1 chat with Alice."""
    return await chat_manager.create_chat(alice)
