"""Worker that reconciles the local store and drains the pending queue on reconnect."""

import logging
from typing import Awaitable, Callable, Dict, List, Optional

from chats.models import Message
from sync import OfflineCache, CacheReconciler, PendingMessage

# Configure logging
logger = logging.getLogger(__name__)

# Network collaborators, injected by the app
DeliverFn = Callable[[PendingMessage], Awaitable[bool]]
FetchSinceFn = Callable[[Optional[int]], Awaitable[Dict[str, List[Message]]]]

class SyncWorker:
    """Runs resync and pending-queue delivery when connectivity resumes."""

    def __init__(
        self,
        cache: OfflineCache,
        reconciler: CacheReconciler,
        deliver: DeliverFn,
        fetch_since: Optional[FetchSinceFn] = None,
        max_send_attempts: int = 5
    ):
        """Initialize the sync worker.

        Args:
            cache: Offline cache owning the queue and sync status
            reconciler: Merges fetched messages into the local store
            deliver: Sends one pending message, returns True once the server confirmed it
            fetch_since: Returns {chat_id: [Message]} created after a sync time (None = everything)
            max_send_attempts: Failed attempts after which a pending message is abandoned
        """
        self.cache = cache
        self.reconciler = reconciler
        self.deliver = deliver
        self.fetch_since = fetch_since
        self.max_send_attempts = max_send_attempts

    async def drain_pending(self) -> int:
        """Try to deliver every pending message in queue order.

        Returns:
            Number of messages delivered
        """
        if not self.cache.get_sync_status().is_online:
            logger.debug("Offline, leaving pending messages queued")
            return 0

        delivered = 0
        for message in await self.cache.get_pending_messages():
            try:
                ok = await self.deliver(message)
            except Exception as e:
                logger.warning(f"Delivery of pending message {message.id} failed: {e}")
                ok = False

            if ok:
                await self.cache.remove_pending_message(message.id)
                delivered += 1
                continue

            updated = await self.cache.increment_retry(message.id)
            if updated is not None and updated.retry_count >= self.max_send_attempts:
                logger.warning(
                    f"Abandoning pending message {message.id} after {updated.retry_count} attempts"
                )
                await self.cache.remove_pending_message(message.id)

        if delivered:
            logger.info(f"Delivered {delivered} pending messages")
        return delivered

    async def resync(self) -> int:
        """Merge messages created since the last sync into the local store.

        Returns:
            Number of messages in the merged chats
        """
        if self.fetch_since is None:
            return 0

        last_sync = await self.cache.get_last_sync_time()
        try:
            batches = await self.fetch_since(last_sync)
        except Exception as e:
            logger.error(f"Failed to fetch messages since {last_sync}: {e}")
            return 0

        total = 0
        for chat_id, messages in batches.items():
            total += len(await self.reconciler.cache_messages(chat_id, messages))

        await self.cache.update_last_sync_time()
        logger.info(f"Resynced {len(batches)} chats")
        return total

    async def sync_now(self) -> None:
        """Resync, then drain the queue, with is_syncing raised meanwhile."""
        if self.cache.get_sync_status().is_syncing:
            return
        self.cache.set_syncing(True)
        try:
            await self.resync()
            await self.drain_pending()
        finally:
            self.cache.set_syncing(False)

    async def handle_connectivity_change(self, is_online: bool) -> None:
        """Record connectivity and sync on an offline-to-online transition."""
        was_online = self.cache.get_sync_status().is_online
        self.cache.update_online_status(is_online)
        if is_online and not was_online:
            await self.sync_now()
