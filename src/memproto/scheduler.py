"""Consolidation scheduler - runs periodic maintenance against a memory protocol."""

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from memproto.core.logging import get_logger
from memproto.protocol.service import MemoryProtocol

logger = get_logger("scheduler")


@dataclass
class MaintenanceJob:
    """A recurring job."""

    name: str
    callback: Callable
    interval: timedelta
    next_run: datetime = field(default_factory=datetime.now)
    last_run: datetime | None = None
    running: bool = False


class ConsolidationScheduler:
    """Drives consolidation (and optional ttl eviction) on an interval."""

    def __init__(self, protocol: MemoryProtocol, tick: float = 1.0):
        self.protocol = protocol
        self.tick = tick
        self._jobs: dict[str, MaintenanceJob] = {}
        self._running = False
        self._task: asyncio.Task | None = None

        settings = protocol.settings
        interval = timedelta(seconds=settings.consolidation_interval)
        if settings.consolidation_enabled:
            self.add_job("consolidate", self._consolidate, interval, delay=interval)
        if settings.eviction_enabled:
            self.add_job("evict_expired", self.protocol.evict_expired, interval, delay=interval)

    @property
    def jobs(self) -> list[str]:
        return list(self._jobs)

    def add_job(
        self,
        name: str,
        callback: Callable,
        interval: timedelta,
        delay: timedelta | None = None,
    ) -> None:
        next_run = datetime.now() + (delay or timedelta(0))
        self._jobs[name] = MaintenanceJob(name=name, callback=callback, interval=interval, next_run=next_run)
        logger.info(f"Scheduled job: {name} (interval: {interval})")

    def remove_job(self, name: str) -> bool:
        return self._jobs.pop(name, None) is not None

    async def _consolidate(self) -> None:
        horizon = timedelta(seconds=self.protocol.settings.consolidation_horizon)
        report = await self.protocol.consolidate(horizon)
        logger.info(f"Scheduled consolidation folded {report.total_folded} records")

    async def run_pending(self, now: datetime | None = None) -> list[str]:
        """Run every due job once, returning the names that ran."""
        now = now or datetime.now()
        due = [j for j in self._jobs.values() if not j.running and j.next_run <= now]
        ran = []

        for job in due:
            job.running = True
            try:
                result = job.callback()
                if asyncio.iscoroutine(result):
                    await result
                ran.append(job.name)
            except Exception as e:
                logger.error(f"Job {job.name} failed: {e}")
            finally:
                job.running = False
                job.last_run = datetime.now()
                job.next_run = job.last_run + job.interval
        return ran

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Consolidation scheduler started")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Consolidation scheduler stopped")

    async def _loop(self) -> None:
        while self._running:
            await self.run_pending()
            await asyncio.sleep(self.tick)
