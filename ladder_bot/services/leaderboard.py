"""
Leaderboard refresh service.

Rendering is owned by the transport layer; this service reads the current
ladder and hands it to whichever renderer is registered. Render failures
are logged and never reach the domain operation that asked for them.
"""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Set

from ladder_bot.database.models import Player
from ladder_bot.operations.player_operations import PlayerOperations
from ladder_bot.utils.clock import Clock, utc_now
from ladder_bot.utils.logger import setup_logger

logger = setup_logger(__name__)

LeaderboardRenderer = Callable[[List[Player]], Awaitable[None]]

# Refresh a moment after the cooldown lapses so the render sees it expired
REFRESH_BUFFER_SECONDS = 1.0


class LeaderboardService:
    """Best-effort leaderboard re-rendering with one-shot scheduled refreshes."""

    def __init__(self, players: PlayerOperations, renderer: Optional[LeaderboardRenderer] = None,
                 clock: Clock = utc_now):
        self.players = players
        self.renderer = renderer
        self.clock = clock
        self._background_tasks: Set[asyncio.Task] = set()

    def set_renderer(self, renderer: Optional[LeaderboardRenderer]):
        self.renderer = renderer

    async def refresh(self) -> bool:
        """Render the current ladder. Returns False when rendering failed or no renderer is set."""
        if self.renderer is None:
            logger.debug("No leaderboard renderer registered, skipping refresh")
            return False
        try:
            ladder = await self.players.get_leaderboard()
            await self.renderer(ladder)
            return True
        except Exception as e:
            logger.error(f"Leaderboard refresh failed: {e}", exc_info=True)
            return False

    def schedule_refresh(self, at: datetime) -> Optional[asyncio.Task]:
        """Refresh once shortly after ``at``. Past instants are ignored."""
        delay = (at - self.clock()).total_seconds()
        if delay <= 0:
            return None
        task = asyncio.create_task(self._delayed_refresh(delay + REFRESH_BUFFER_SECONDS))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        logger.debug(f"Scheduled leaderboard refresh in {delay:.0f}s")
        return task

    async def _delayed_refresh(self, delay: float):
        await asyncio.sleep(delay)
        await self.refresh()

    @property
    def pending_refreshes(self) -> int:
        return len(self._background_tasks)

    async def shutdown(self):
        """Cancel scheduled refreshes."""
        if not self._background_tasks:
            return
        logger.info(f"Cancelling {len(self._background_tasks)} scheduled leaderboard refreshes...")
        for task in self._background_tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()
