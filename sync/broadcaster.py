import itertools
import logging
from typing import Callable, Dict, Optional

from .models import SyncStatus

logger = logging.getLogger(__name__)

SyncStatusCallback = Callable[[SyncStatus], None]


class SyncStatusBroadcaster:
    """Owns the current SyncStatus and notifies subscribers of every change."""

    def __init__(self, initial: Optional[SyncStatus] = None):
        self._status = initial or SyncStatus()
        # handle -> callback, in subscription order
        self._subscribers: Dict[int, SyncStatusCallback] = {}
        self._handles = itertools.count(1)

    def snapshot(self) -> SyncStatus:
        return self._status

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: SyncStatusCallback) -> Callable[[], None]:
        """Register callback and call it once with the current status.

        Returns:
            A disposer that removes only this subscription
        """
        handle = next(self._handles)
        self._subscribers[handle] = callback
        self._deliver(handle, callback, self._status)

        def unsubscribe() -> None:
            self._subscribers.pop(handle, None)

        return unsubscribe

    def publish(self, **changes) -> SyncStatus:
        """Apply changes to the status and notify every subscriber."""
        self._status = self._status.model_copy(update=changes)
        self._notify()
        return self._status

    def reset(self) -> SyncStatus:
        """Restore the initial status and notify every subscriber."""
        self._status = SyncStatus()
        self._notify()
        return self._status

    def _notify(self) -> None:
        status = self._status
        # Subscribers may unsubscribe from inside their callback
        for handle, callback in list(self._subscribers.items()):
            self._deliver(handle, callback, status)

    @staticmethod
    def _deliver(handle: int, callback: SyncStatusCallback, status: SyncStatus) -> None:
        try:
            callback(status)
        except Exception as e:
            logger.error(f"Sync status subscriber {handle} failed: {e}")
