import asyncio
import signal
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from database import Database, KeyValueAdapter, init_db, close as db_close
from chats import ChatManager
from wallet import WalletManager
from expiry import DisappearingMessages
from sync import OfflineCache, CacheReconciler
from workers import ExpirySweeper, SyncWorker
from workers.sync_worker import DeliverFn, FetchSinceFn

logger = logging.getLogger(__name__)

@dataclass
class LocalStore:
    """Managers sharing one Database and one clock."""
    db: Database
    chats: ChatManager
    wallet: WalletManager
    expiry: DisappearingMessages
    offline_cache: OfflineCache
    reconciler: CacheReconciler

async def build_store(
    settings: Optional[Dict[str, Any]] = None,
    adapter: Optional[KeyValueAdapter] = None,
    clock: Optional[Callable[[], int]] = None
) -> LocalStore:
    """Open the local store and wire every manager to it.

    Args:
        settings: Optional settings dict. If not provided, will use settings.conf.
        adapter: Optional adapter overriding the configured backend
        clock: Optional millisecond clock shared by all managers

    Returns:
        The wired LocalStore with the sync status hydrated
    """
    db = await init_db(settings, adapter)
    chats = ChatManager(db, clock)
    offline_cache = OfflineCache(db, clock=clock)
    await offline_cache.initialize_offline_cache()

    return LocalStore(
        db=db,
        chats=chats,
        wallet=WalletManager(db, chats, clock),
        expiry=DisappearingMessages(db, chats, clock),
        offline_cache=offline_cache,
        reconciler=CacheReconciler(db, chats)
    )

def build_sync_worker(
    store: LocalStore,
    deliver: DeliverFn,
    fetch_since: Optional[FetchSinceFn] = None,
    settings: Optional[Dict[str, Any]] = None
) -> SyncWorker:
    """Create the reconnect worker for store with the configured send attempts.

    Args:
        store: The wired LocalStore
        deliver: Sends one pending message, returns True once confirmed
        fetch_since: Returns {chat_id: [Message]} created after a sync time
        settings: Optional settings dict. If not provided, will use settings.conf.
    """
    if settings is None:
        from config import settings_conf
        settings = settings_conf

    return SyncWorker(
        store.offline_cache,
        store.reconciler,
        deliver,
        fetch_since,
        max_send_attempts=settings['max_send_attempts']
    )

async def main(settings: Optional[Dict[str, Any]] = None):
    """Main application entry point."""
    if settings is None:
        from config import settings_conf
        settings = settings_conf

    logging.basicConfig(
        level=settings['log_level'],
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    logger.info(f"Opening {settings['storage_backend']} store...")
    store = await build_store(settings)
    sweeper = ExpirySweeper(store.expiry, settings['sweep_interval_seconds'])

    # Register shutdown handlers
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, sweeper.stop)

    try:
        await sweeper.run()
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        raise
    finally:
        logger.info("Shutting down...")
        await db_close()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
