"""Tests for the JSON store, the schema version gate and init_db."""

import asyncio

import pytest

import database
from database import (
    Database,
    MemoryAdapter,
    SchemaManager,
    CorruptRecordError,
    DatabaseSchemaError,
    CURRENT_STORAGE_VERSION,
    init_db
)
from database.keys import (
    CHATS_KEY,
    MESSAGES_KEY,
    BALANCE_KEY,
    CHAT_BACKGROUNDS_KEY,
    PENDING_MESSAGES_KEY,
    STORAGE_VERSION_KEY,
    DOMAIN_KEYS,
    lock_rank
)
from conftest import FailingAdapter, YieldingAdapter

pytestmark = pytest.mark.asyncio

async def test_get_json_default_and_round_trip(db):
    assert await db.get_json(CHATS_KEY, []) == []

    await db.set_json(CHATS_KEY, [{"id": "c1"}])
    assert await db.get_json(CHATS_KEY) == [{"id": "c1"}]

async def test_corrupt_value_raises():
    db = Database(MemoryAdapter({CHATS_KEY: "{not json"}))

    with pytest.raises(CorruptRecordError):
        await db.get_json(CHATS_KEY)

async def test_concurrent_updates_are_serialized():
    """Test that interleaved read-modify-writes of one key lose nothing."""
    db = Database(YieldingAdapter())

    await asyncio.gather(*[
        db.update(BALANCE_KEY, lambda balance: balance + 1, 0) for _ in range(20)
    ])

    assert await db.get_json(BALANCE_KEY) == 20

async def test_remove_waits_for_writer():
    db = Database(YieldingAdapter())

    writer = asyncio.create_task(db.update(CHATS_KEY, lambda chats: chats + [{"id": "c1"}], []))
    await asyncio.sleep(0)
    await db.remove([CHATS_KEY])
    await writer

    assert await db.get_json(CHATS_KEY) is None

async def test_remove_follows_nested_lock_order():
    """Test that remove cannot deadlock with a holder of messages waiting on chats."""
    db = Database(YieldingAdapter())
    await db.set_json(MESSAGES_KEY, {})
    await db.set_json(CHATS_KEY, [])

    async def nested_writer():
        async with db.lock(MESSAGES_KEY):
            await db.get_json(MESSAGES_KEY)
            await db.update(CHATS_KEY, lambda chats: chats + [{"id": "c1"}], [])

    await asyncio.wait_for(
        asyncio.gather(nested_writer(), db.remove(DOMAIN_KEYS)),
        timeout=2
    )

    assert await db.get_json(CHATS_KEY) is None

async def test_lock_order_puts_messages_before_chats():
    keys = sorted(DOMAIN_KEYS + ["@other"], key=lock_rank)

    assert keys.index(MESSAGES_KEY) < keys.index(CHATS_KEY)
    assert keys[-1] == "@other"

async def test_version_mismatch_wipes_domain_collections():
    """Test that exactly the five domain collections are wiped."""
    stored = {key: "[]" for key in DOMAIN_KEYS}
    stored[STORAGE_VERSION_KEY] = "2"
    stored[CHAT_BACKGROUNDS_KEY] = '{"c1": {"type": "color", "value": "#000"}}'
    stored[PENDING_MESSAGES_KEY] = "[]"
    adapter = MemoryAdapter(stored)

    wiped = await SchemaManager(Database(adapter)).initialize()

    assert wiped is True
    remaining = adapter.dump()
    assert remaining[STORAGE_VERSION_KEY] == CURRENT_STORAGE_VERSION
    assert not any(key in remaining for key in DOMAIN_KEYS)
    assert CHAT_BACKGROUNDS_KEY in remaining
    assert PENDING_MESSAGES_KEY in remaining

async def test_missing_version_wipes_and_writes_marker():
    adapter = MemoryAdapter({MESSAGES_KEY: "{}"})

    assert await SchemaManager(Database(adapter)).initialize() is True
    assert adapter.dump() == {STORAGE_VERSION_KEY: CURRENT_STORAGE_VERSION}

async def test_matching_version_keeps_data():
    adapter = MemoryAdapter({STORAGE_VERSION_KEY: CURRENT_STORAGE_VERSION, CHATS_KEY: "[]"})
    manager = SchemaManager(Database(adapter))

    assert await manager.initialize() is False
    assert manager.current_version == CURRENT_STORAGE_VERSION
    assert CHATS_KEY in adapter.dump()

async def test_unavailable_storage_raises_schema_error():
    with pytest.raises(DatabaseSchemaError):
        await SchemaManager(Database(FailingAdapter())).initialize()

async def test_init_db_tolerates_failing_gate():
    """Test that init_db still returns a store when the gate cannot run."""
    db = await init_db(adapter=FailingAdapter())

    assert isinstance(db, Database)
    assert await database.get_db() is db
    await database.close()

async def test_init_db_from_settings():
    db = await init_db({'storage_backend': 'memory'})

    assert await db.adapter.get(STORAGE_VERSION_KEY) == CURRENT_STORAGE_VERSION
    await database.close()
