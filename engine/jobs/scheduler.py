"""Periodic portfolio refresh job."""

import asyncio
import logging
from typing import Optional

from engine.domain.models import PortfolioState
from engine.services.portfolio_service import PortfolioService

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 300
ERROR_BACKOFF_SECONDS = 30


class RefreshScheduler:
    """
    Runs PortfolioService.refresh() now and then every interval.

    Legacy position names are repaired once before the first cycle, outside
    the refresh itself.
    """

    def __init__(self, service: PortfolioService, interval_seconds: int = DEFAULT_INTERVAL_SECONDS):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.service = service
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Start the background loop (idempotent). Requires a running event loop."""
        if not self.running:
            self._task = asyncio.create_task(self._run(), name="portfolio-refresh")
            logger.info("Refresh scheduler started (interval: %ds)", self.interval_seconds)
        return self._task

    async def _run(self) -> None:
        try:
            await self.service.repair_legacy_names()
        except Exception as e:
            logger.warning("Legacy name repair failed: %s", e)

        while True:
            try:
                await self.service.refresh()
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                logger.info("Refresh scheduler stopped")
                raise
            except Exception as e:
                logger.error("Refresh cycle error: %s", e, exc_info=True)
                await asyncio.sleep(min(ERROR_BACKOFF_SECONDS, self.interval_seconds))

    async def trigger(self) -> PortfolioState:
        """On-demand refresh; waits behind any cycle already running."""
        logger.info("Manual refresh requested")
        return await self.service.refresh()

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
