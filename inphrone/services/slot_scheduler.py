"""Background sweep that drives the time-based slot transitions."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Dict, Optional

from inphrone.core import get_logger
from inphrone.core.constants import SlotStatus
from inphrone.database.your_turn_repository import YourTurnRepository
from inphrone.services.preferences import PreferenceStore
from inphrone.services.your_turn import YourTurnService

logger = get_logger(__name__)


class SlotScheduler:
    """Creates tomorrow's slots, opens and expires today's, archives older ones.

    Each sweep also drops expired preference flags.
    """

    def __init__(
        self,
        your_turn: YourTurnService,
        interval: float = 1.0,
        preferences: Optional[PreferenceStore] = None,
    ) -> None:
        self.your_turn = your_turn
        self.preferences = preferences
        self.interval = interval
        self.running = False
        self._task: Optional[asyncio.Task] = None

    async def tick(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Run one sweep. Returns slot counts per new state and purged preference rows."""
        now = now or self.your_turn.clock()
        today = self.your_turn.today(now)
        stats = {"created": 0, "opened": 0, "expired": 0, "archived": 0, "purged": 0}

        for day in (today, today + timedelta(days=1)):
            stats["created"] += await YourTurnRepository.ensure_slots(day, self.your_turn.slot_times)

        due = await YourTurnRepository.list_by_status((SlotStatus.SCHEDULED, SlotStatus.OPEN), today)
        for slot in due:
            for status in await self.your_turn.advance_slot(slot.id, now):
                key = "opened" if status == SlotStatus.OPEN else "expired"
                stats[key] += 1

        for slot in await YourTurnRepository.list_resolved_before(today):
            if await self.your_turn.archive_slot(slot.id, now):
                stats["archived"] += 1

        if self.preferences is not None:
            stats["purged"] = await self.preferences.purge_expired()

        if any(stats.values()):
            logger.info("Slot sweep: %s", stats)
        return stats

    async def run_loop(self) -> None:
        logger.info("Slot scheduler started (interval: %.1fs)", self.interval)
        while self.running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Slot sweep failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval)

    async def start(self) -> None:
        if self.running:
            logger.warning("Slot scheduler is already running")
            return
        self.running = True
        self._task = asyncio.create_task(self.run_loop())

    async def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Slot scheduler stopped")
