"""Tests for the background workers and the composition root."""

import asyncio

import pytest
from unittest.mock import AsyncMock

import database
from database import MemoryAdapter
from chats.models import Message
from sync import PendingMessage
from workers import ExpirySweeper, SyncWorker
from main import build_store, build_sync_worker
from conftest import FakeClock

pytestmark = pytest.mark.asyncio

def pending(message_id):
    return PendingMessage(id=message_id, chat_id="c1", content=f"text {message_id}", created_at=1)

@pytest.fixture
def deliver():
    return AsyncMock(return_value=True)

@pytest.fixture
def sync_worker(offline_cache, reconciler, deliver):
    return SyncWorker(offline_cache, reconciler, deliver, max_send_attempts=2)

async def test_drain_delivers_in_order(sync_worker, offline_cache, deliver):
    await offline_cache.add_pending_message(pending("p1"))
    await offline_cache.add_pending_message(pending("p2"))

    assert await sync_worker.drain_pending() == 2

    assert [call.args[0].id for call in deliver.await_args_list] == ["p1", "p2"]
    assert await offline_cache.get_pending_messages() == []
    assert offline_cache.get_sync_status().pending_count == 0

async def test_failed_delivery_is_retried_then_abandoned(sync_worker, offline_cache, deliver):
    """Test that a message is dropped after max_send_attempts failures."""
    deliver.side_effect = [False, ConnectionError("socket closed")]
    await offline_cache.add_pending_message(pending("p1"))

    assert await sync_worker.drain_pending() == 0
    remaining = await offline_cache.get_pending_messages()
    assert remaining[0].retry_count == 1

    assert await sync_worker.drain_pending() == 0
    assert await offline_cache.get_pending_messages() == []

async def test_drain_is_skipped_offline(sync_worker, offline_cache, deliver):
    await offline_cache.add_pending_message(pending("p1"))
    offline_cache.update_online_status(False)

    assert await sync_worker.drain_pending() == 0

    deliver.assert_not_awaited()
    assert offline_cache.get_sync_status().pending_count == 1

async def test_reconnect_resyncs_and_drains(offline_cache, reconciler, chat_manager, alice_chat, deliver, clock):
    server_message = Message(
        id="srv1", chat_id=alice_chat.id, sender_id="u1", content="while you were away", timestamp=clock.now + 5
    )
    fetch_since = AsyncMock(return_value={alice_chat.id: [server_message]})
    worker = SyncWorker(offline_cache, reconciler, deliver, fetch_since)
    await offline_cache.add_pending_message(pending("p1"))
    statuses = []
    offline_cache.subscribe_sync_status(statuses.append)

    await worker.handle_connectivity_change(False)
    clock.advance(1000)
    await worker.handle_connectivity_change(True)

    fetch_since.assert_awaited_once_with(None)
    assert await chat_manager.get_messages(alice_chat.id) == [server_message]
    assert await offline_cache.get_last_sync_time() == clock.now
    assert await offline_cache.get_pending_messages() == []
    assert any(status.is_syncing for status in statuses)

    status = offline_cache.get_sync_status()
    assert status.is_online is True
    assert status.is_syncing is False
    assert status.pending_count == 0

async def test_failed_fetch_keeps_last_sync(offline_cache, reconciler, deliver):
    fetch_since = AsyncMock(side_effect=OSError("network unreachable"))
    worker = SyncWorker(offline_cache, reconciler, deliver, fetch_since)
    offline_cache.update_online_status(False)

    await worker.handle_connectivity_change(True)

    assert await offline_cache.get_last_sync_time() is None
    assert offline_cache.get_sync_status().is_syncing is False

async def test_staying_online_does_not_sync(sync_worker, offline_cache, deliver):
    await offline_cache.add_pending_message(pending("p1"))

    await sync_worker.handle_connectivity_change(True)

    deliver.assert_not_awaited()

async def test_sweeper_runs_until_stopped():
    calls = []

    async def sweep():
        calls.append(len(calls))
        if len(calls) == 1:
            raise RuntimeError("boom")
        return 0

    engine = AsyncMock()
    engine.cleanup_expired_messages.side_effect = sweep
    sweeper = ExpirySweeper(engine, interval_seconds=0.01)

    task = asyncio.create_task(sweeper.run())
    await asyncio.sleep(0.05)
    sweeper.stop()
    await asyncio.wait_for(task, timeout=1)

    assert sweeper.running is False
    assert len(calls) >= 2

async def test_sweep_once_returns_count(engine, chat_manager, alice_chat, clock):
    await chat_manager.append_message(Message(
        id="m1", chat_id=alice_chat.id, sender_id="u1", content="x", timestamp=100, expires_at=200
    ))
    clock.now = 300

    assert await ExpirySweeper(engine).sweep_once() == 1

async def test_build_store_wires_managers():
    """Test that every manager shares one database and clock."""
    clock = FakeClock()
    store = await build_store(adapter=MemoryAdapter(), clock=clock)
    try:
        await store.wallet.add_funds(10)
        assert store.chats.db is store.db
        assert store.expiry.chats is store.chats
        assert store.offline_cache.clock is clock
        assert await store.wallet.get_balance() == 10.0
        assert store.offline_cache.get_sync_status().pending_count == 0
    finally:
        await database.close()

async def test_build_sync_worker_uses_configured_attempts(deliver):
    """Test that the configured max_send_attempts reaches the worker."""
    store = await build_store(adapter=MemoryAdapter(), clock=FakeClock())
    try:
        worker = build_sync_worker(store, deliver, settings={'max_send_attempts': 1})
        assert worker.max_send_attempts == 1
        assert worker.cache is store.offline_cache
        assert worker.reconciler is store.reconciler

        deliver.return_value = False
        await store.offline_cache.add_pending_message(pending("p1"))
        await worker.drain_pending()

        assert await store.offline_cache.get_pending_messages() == []
    finally:
        await database.close()

async def test_sweeper_creates_event_when_run():
    engine = AsyncMock()
    engine.cleanup_expired_messages.return_value = 0
    sweeper = ExpirySweeper(engine, interval_seconds=0.01)

    # Stopping a sweeper that never ran is harmless
    sweeper.stop()
    assert sweeper._stopped is None

    task = asyncio.create_task(sweeper.run())
    await asyncio.sleep(0.02)
    assert sweeper._stopped is not None
    sweeper.stop()
    await asyncio.wait_for(task, timeout=1)
