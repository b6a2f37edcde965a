"""Background workers driving the passive store components."""

from .expiry_sweeper import ExpirySweeper
from .sync_worker import SyncWorker

__all__ = ['ExpirySweeper', 'SyncWorker']
