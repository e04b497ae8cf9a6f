"""Maintenance scheduler -- cron-driven cleanup of expired memory records."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime

from croniter import croniter

from chatbridge.log import logger
from chatbridge.memory import MemoryStore


class MaintenanceScheduler:
    """Run ``memory.delete_expired`` whenever ``cron`` is due.

    Checks once per ``interval`` seconds; an empty cron expression disables
    the scheduler entirely.
    """

    def __init__(self, memory: MemoryStore, cron: str, interval: float = 60.0) -> None:
        self._memory = memory
        self._cron = cron
        self._interval = interval
        self._last_check = datetime.now()
        self._running = False

    @property
    def enabled(self) -> bool:
        return bool(self._cron)

    def due(self, now: datetime) -> bool:
        next_run = croniter(self._cron, self._last_check).get_next(datetime)
        return next_run <= now

    def run_once(self) -> int:
        try:
            removed = self._memory.delete_expired()
        except sqlite3.Error as e:
            logger.error(f"Expired memory cleanup failed: {e}")
            return 0
        logger.debug(f"Maintenance cleanup removed {removed} records")
        return removed

    def tick(self, now: datetime | None = None) -> int | None:
        now = now or datetime.now()
        removed = self.run_once() if self.due(now) else None
        self._last_check = now
        return removed

    async def run(self) -> None:
        if not self.enabled:
            logger.info("Maintenance scheduler disabled (no cleanup cron)")
            return
        logger.info(f"Maintenance scheduler started: cleanup_cron='{self._cron}'")
        self._running = True
        while self._running:
            await asyncio.sleep(self._interval)
            self.tick()

    def stop(self) -> None:
        self._running = False
