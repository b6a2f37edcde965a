"""Worker that periodically sweeps expired disappearing messages."""

import asyncio
import logging
from typing import Optional

from expiry import DisappearingMessages

# Configure logging
logger = logging.getLogger(__name__)

class ExpirySweeper:
    """Runs the disappearing-message sweep on a fixed interval."""

    def __init__(self, engine: DisappearingMessages, interval_seconds: float = 60):
        """Initialize the sweeper.

        Args:
            engine: Engine whose sweep is run
            interval_seconds: Seconds to wait between sweeps
        """
        self.engine = engine
        self.interval_seconds = interval_seconds
        self.running = False
        self._stopped: Optional[asyncio.Event] = None

    async def sweep_once(self) -> int:
        deleted = await self.engine.cleanup_expired_messages()
        if deleted:
            logger.info(f"Periodic sweep removed {deleted} expired messages")
        return deleted

    async def run(self) -> None:
        """Sweep until stop() is called."""
        self.running = True
        # Bound to the running loop
        self._stopped = asyncio.Event()
        logger.info(f"Starting expiry sweeper every {self.interval_seconds}s")

        while self.running:
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error(f"Error during expiry sweep: {e}")

            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        logger.info("Stopping expiry sweeper...")
        self.running = False
        if self._stopped is not None:
            self._stopped.set()
