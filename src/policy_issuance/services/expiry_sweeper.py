"""Periodic expiry of unsaved simulation quotes."""

import asyncio

from ..core.logging_utils import get_logger
from .quote_lifecycle import QuoteLifecycle

logger = get_logger(__name__)


class ExpirySweeper:
    """Background task running :meth:`QuoteLifecycle.sweep_expired`.

    One sweep runs right after :meth:`start`, then one every ``interval``
    seconds. Sweeps never overlap: :meth:`run_once` skips while another
    sweep holds the slot.
    """

    def __init__(self, lifecycle: QuoteLifecycle, interval: float = 3600.0) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._lifecycle = lifecycle
        self._interval = interval
        self._slot = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the sweep loop; a second call is a no-op."""
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="quote-expiry-sweeper")
        logger.info("Expiry sweeper started (every %.0fs)", self._interval)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Expiry sweeper stopped")

    async def run_once(self) -> int | None:
        """Run one sweep now.

        Returns:
            Number of quotes expired, or None when a sweep was already
            running and this one was skipped.
        """
        if self._slot.locked():
            logger.debug("Expiry sweep already running, skipping")
            return None
        async with self._slot:
            return await self._lifecycle.sweep_expired()

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Expiry sweep failed")
            await asyncio.sleep(self._interval)
