"""Offline sync module.

This module provides:
- The persisted queue of outgoing messages not yet confirmed as delivered
- The SyncStatus record and its subscriber broadcast
- Cache reconciliation used when connectivity resumes

The in-memory SyncStatus owned by each OfflineCache is the source of truth
during a session; the persisted queue and last-sync time only survive restarts.
pending_count always equals the length of the persisted queue.
"""

import logging
from typing import Callable, List, Optional

from database import Database
from database.keys import PENDING_MESSAGES_KEY, LAST_SYNC_KEY, SYNC_KEYS
from chats import STORE_ERRORS
from chats.models import dump, now_ms
from .broadcaster import SyncStatusBroadcaster, SyncStatusCallback
from .models import PendingMessage, PendingMessageType, PaymentData, SyncStatus
from .reconcile import CacheReconciler

logger = logging.getLogger(__name__)


class OfflineCache:
    """Pending-message queue and sync status for one app session."""

    def __init__(
        self,
        db: Database,
        broadcaster: Optional[SyncStatusBroadcaster] = None,
        clock: Optional[Callable[[], int]] = None
    ):
        """Initialize the offline cache.

        Args:
            db: Shared local store
            broadcaster: Optional status owner, a fresh one is created if omitted
            clock: Optional millisecond clock, defaults to wall-clock time
        """
        self.db = db
        self.broadcaster = broadcaster or SyncStatusBroadcaster()
        self.clock = clock or now_ms

    # Status

    def get_sync_status(self) -> SyncStatus:
        return self.broadcaster.snapshot()

    def subscribe_sync_status(self, callback: SyncStatusCallback) -> Callable[[], None]:
        return self.broadcaster.subscribe(callback)

    def update_online_status(self, is_online: bool) -> None:
        if self.get_sync_status().is_online != is_online:
            logger.info(f"Connectivity changed: {'online' if is_online else 'offline'}")
            self.broadcaster.publish(is_online=is_online)

    def set_syncing(self, is_syncing: bool) -> None:
        if self.get_sync_status().is_syncing != is_syncing:
            self.broadcaster.publish(is_syncing=is_syncing)

    # Pending queue

    async def get_pending_messages(self) -> List[PendingMessage]:
        try:
            return [PendingMessage.model_validate(p) for p in await self.db.get_json(PENDING_MESSAGES_KEY, [])]
        except STORE_ERRORS as e:
            logger.error(f"Failed to get pending messages: {e}")
            return []

    async def _update_pending(self, fn) -> bool:
        try:
            pending = await self.db.update(PENDING_MESSAGES_KEY, fn, [])
        except STORE_ERRORS as e:
            logger.error(f"Failed to update pending messages: {e}")
            return False
        self.broadcaster.publish(pending_count=len(pending))
        return True

    async def add_pending_message(self, message: PendingMessage) -> None:
        def append(pending):
            pending.append(dump(message))
            return pending

        if await self._update_pending(append):
            logger.debug(f"Queued pending message {message.id} for {message.chat_id}")

    async def remove_pending_message(self, message_id: str) -> None:
        await self._update_pending(
            lambda pending: [p for p in pending if p.get("id") != message_id]
        )

    async def increment_retry(self, message_id: str) -> Optional[PendingMessage]:
        """Bump retry_count of a pending message.

        Returns:
            The updated message, or None if it is not queued
        """
        updated = None

        def bump(pending):
            nonlocal updated
            for index, item in enumerate(pending):
                if item.get("id") == message_id:
                    message = PendingMessage.model_validate(item)
                    message.retry_count += 1
                    pending[index] = dump(message)
                    updated = message
            return pending

        await self._update_pending(bump)
        return updated

    async def clear_pending_messages(self) -> None:
        try:
            await self.db.remove([PENDING_MESSAGES_KEY])
        except STORE_ERRORS as e:
            logger.error(f"Failed to clear pending messages: {e}")
            return
        self.broadcaster.publish(pending_count=0)

    # Last sync

    async def get_last_sync_time(self) -> Optional[int]:
        try:
            value = await self.db.get_json(LAST_SYNC_KEY)
            return int(value) if value is not None else None
        except (TypeError, ValueError) as e:
            logger.error(f"Stored last sync time is not a number: {e}")
            return None
        except STORE_ERRORS as e:
            logger.error(f"Failed to get last sync time: {e}")
            return None

    async def update_last_sync_time(self) -> None:
        now = self.clock()
        try:
            await self.db.update(LAST_SYNC_KEY, lambda _: now)
        except STORE_ERRORS as e:
            logger.error(f"Failed to update last sync time: {e}")
            return
        self.broadcaster.publish(last_sync_time=now)

    # Lifecycle

    async def initialize_offline_cache(self) -> SyncStatus:
        """Hydrate pending_count and last_sync_time from the persisted copies."""
        pending = await self.get_pending_messages()
        last_sync = await self.get_last_sync_time()
        logger.info(f"Offline cache loaded: {len(pending)} pending, last sync {last_sync}")
        return self.broadcaster.publish(pending_count=len(pending), last_sync_time=last_sync)

    async def clear_all_cache(self) -> None:
        """Drop the pending queue and last-sync time and reset the status."""
        try:
            await self.db.remove(SYNC_KEYS)
        except STORE_ERRORS as e:
            logger.error(f"Failed to clear cache: {e}")
            return
        self.broadcaster.reset()


# Export public interface
__all__ = [
    'OfflineCache',
    'CacheReconciler',
    'SyncStatusBroadcaster',
    'SyncStatus',
    'PendingMessage',
    'PendingMessageType',
    'PaymentData'
]
