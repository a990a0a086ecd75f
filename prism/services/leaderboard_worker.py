"""
Leaderboard worker - periodic leaderboard recomputation

Rebuilds every leaderboard scope on a fixed cadence. A failed cycle is logged
and the previous leaderboard keeps being served until the next cycle succeeds.
"""

import asyncio
from typing import Optional

from prism.config import Config
from prism.data_models.leaderboard import RebuildResult
from prism.services.leaderboard import LeaderboardService
from prism.utils.leaderboard_exceptions import RebuildError
from prism.utils.logger import setup_logger

logger = setup_logger(__name__)


class LeaderboardWorker:
    """Background task that refreshes the leaderboard cache every interval."""

    def __init__(self, leaderboard_service: LeaderboardService,
                 interval: float = Config.WORKER_INTERVAL_SECONDS,
                 enabled: bool = Config.WORKER_ENABLED):
        self.leaderboard_service = leaderboard_service
        self.interval = interval
        self.enabled = enabled
        self._task: Optional[asyncio.Task] = None
        self.completed_cycles = 0
        self.failed_cycles = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Optional[RebuildResult]:
        """Run a single rebuild cycle; returns None when the cycle failed."""
        try:
            result = await self.leaderboard_service.refresh()
        except RebuildError as e:
            self.failed_cycles += 1
            logger.error(f"Leaderboard worker cycle failed: {e}")
            return None

        self.completed_cycles += 1
        if result.skipped_users:
            logger.warning(f"Leaderboard worker cycle skipped {result.skipped_users} user(s)")
        return result

    def start(self):
        """Start the periodic loop in the background."""
        if not self.enabled:
            logger.info("Leaderboard worker disabled")
            return
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name="leaderboard-worker")
        logger.info(f"Leaderboard worker started (interval {self.interval}s)")

    async def _run(self):
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval)

    async def stop(self):
        """Stop the loop and wait for the current cycle to unwind."""
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("Leaderboard worker stopped")
