"""
Scheduling of the reconciliation sweeps around the application lifespan.

Startup schedules cleanup plus backup after a settle delay (optionally
repeating). Shutdown cancels a sweep that is still waiting, waits for one
that is already running, then takes a final backup.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from catalog_backend.reconciliation import BackupReport, ReconciliationService

logger = logging.getLogger(__name__)


class SweepScheduler:
    def __init__(
        self,
        reconciliation: ReconciliationService,
        delay_seconds: float = 5.0,
        interval_seconds: Optional[float] = None,
    ):
        self.reconciliation = reconciliation
        self.delay_seconds = delay_seconds
        self.interval_seconds = interval_seconds
        self.runs = 0
        self._task: Optional[asyncio.Task] = None
        self._sweeping = False
        self._stopping = False

    @property
    def started(self) -> bool:
        return self._task is not None

    async def _loop(self) -> None:
        await asyncio.sleep(self.delay_seconds)
        while True:
            self._sweeping = True
            try:
                await asyncio.to_thread(self.reconciliation.run_startup_sweeps)
                self.runs += 1
            finally:
                self._sweeping = False
            if self._stopping or not self.interval_seconds:
                return
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self._task is not None:
            return
        logger.info("Image sweeps scheduled in %.1fs", self.delay_seconds)
        self._task = asyncio.create_task(self._loop())

    async def _stop_task(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        self._stopping = True
        if self._sweeping:
            # The sweep runs in a worker thread and cannot be interrupted.
            logger.info("Waiting for in-flight image sweep before shutdown")
            await task
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def shutdown(self) -> Optional[BackupReport]:
        await self._stop_task()
        report = await asyncio.to_thread(self.reconciliation.run_backup_safely)
        if report is not None:
            logger.info("Images backed up before shutdown")
        return report
