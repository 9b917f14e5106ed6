"""Health check scheduler — re-runs the aggregator at a fixed interval.

Off by default (``CHECK_INTERVAL_SECONDS=0``): checks then run only when a
caller asks for a snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from .aggregator import HealthAggregator, Snapshot

logger = logging.getLogger(__name__)


class HealthScheduler:
    """Single background loop around ``HealthAggregator.run_all_checks``."""

    def __init__(
        self,
        aggregator: HealthAggregator,
        interval: float,
        on_snapshot: Callable[[Snapshot], Any] | None = None,
    ) -> None:
        self.aggregator = aggregator
        self.interval = interval
        self.on_snapshot = on_snapshot
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the loop. A non-positive interval leaves the scheduler idle."""
        if self._running:
            return
        if self.interval <= 0:
            logger.info("No check interval configured — scheduler idle")
            return
        self._running = True
        self._task = asyncio.create_task(self._check_loop(), name="health-checks")
        logger.info("Health scheduler started (interval=%ss)", self.interval)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Health scheduler stopped")

    async def _check_loop(self) -> None:
        while self._running:
            try:
                snapshot = await self.aggregator.run_all_checks()
                if self.on_snapshot:
                    try:
                        self.on_snapshot(snapshot)
                    except Exception:
                        logger.exception("Snapshot callback error")
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Scheduled health run failed")
            await asyncio.sleep(self.interval)
