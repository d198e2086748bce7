"""
Expansion Scheduler

Background asyncio task that keeps every current series version
materialized up to the expansion horizon as days pass.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .series_service import SeriesService

logger = logging.getLogger("timeslot.services.scheduler")


class ExpansionScheduler:
    """
    Periodic top-up of open-ended series.

    Every poll_interval seconds each group's current version is expanded
    to today + horizon; dates that already have an instance are skipped,
    so a run after a restart never duplicates occurrences.
    """

    def __init__(
        self,
        series_service: SeriesService,
        poll_interval: int = 3600,
        enabled: bool = True,
    ):
        self.series_service = series_service
        self.poll_interval = poll_interval
        self.enabled = enabled
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """Start the expansion background task"""
        if not self.enabled:
            logger.info("Expansion scheduler is disabled (EXPANSION_ENABLED=false)")
            return

        if self._running:
            logger.warning("Expansion scheduler is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._poll_loop())
        logger.info(f"Expansion scheduler started (poll_interval={self.poll_interval}s)")

    async def stop(self):
        """Stop the expansion background task"""
        self._running = False
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("Expansion scheduler stopped")

    async def _poll_loop(self):
        """Main polling loop"""
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Expansion poll error: {e}")

            try:
                await asyncio.sleep(self.poll_interval)
            except asyncio.CancelledError:
                break

    async def run_once(self) -> int:
        """Expand all current versions once; returns occurrences created"""
        results = await self.series_service.expand_current_versions()
        created = 0
        for result in results:
            if result.success:
                created += result.data.get("instances_created", 0)
            else:
                logger.warning(f"Expansion failed: {result.message}")
        if created:
            logger.info(f"Expansion created {created} occurrence(s) across {len(results)} series")
        return created
