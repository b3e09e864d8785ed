"""Periodic staleness sweep over the worker registry.

An ``active`` worker whose ``last_updated`` is older than the staleness
threshold is demoted to ``inactive``. The monitor never promotes a worker
back; ``last_updated`` only moves on status transitions, so a demoted
worker stays inactive until it is re-registered or its status is set
explicitly.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from agenthub.registry.worker_registry import WorkerRegistry, WorkerStatus

logger = logging.getLogger(__name__)


class HealthMonitor:
    """Demotes stale workers on a fixed interval.

    Args:
        registry: Registry to sweep; its clock is used when ``sweep`` gets no time
        interval_seconds: Delay between sweeps
        stale_threshold_seconds: Age of ``last_updated`` after which an active
            worker is considered stale
    """

    def __init__(
        self,
        registry: WorkerRegistry,
        interval_seconds: float = 60.0,
        stale_threshold_seconds: float = 300.0,
    ) -> None:
        self.registry = registry
        self.interval_seconds = interval_seconds
        self.stale_threshold = timedelta(seconds=stale_threshold_seconds)
        self.sweeps = 0
        self.last_sweep: Optional[datetime] = None
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """Run one pass and return the ids demoted to inactive."""
        now = now or self.registry.clock()
        demoted: List[str] = []
        for record in self.registry.all_workers():
            if record.status != WorkerStatus.ACTIVE:
                continue
            if now - record.last_updated > self.stale_threshold:
                logger.warning(
                    f"Worker {record.worker_id} stale since {record.last_updated.isoformat()}, "
                    f"marking inactive"
                )
                await self.registry.set_status(record.worker_id, WorkerStatus.INACTIVE)
                demoted.append(record.worker_id)
        self.sweeps += 1
        self.last_sweep = now
        return demoted

    async def start(self) -> None:
        if not self._running:
            self._running = True
            self._task = asyncio.create_task(self._run())
            logger.info(f"Health monitor started (interval={self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._running:
            self._running = False
            if self._task:
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
                self._task = None
            logger.info("Health monitor stopped")

    async def _run(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Error in health sweep: {e}", exc_info=True)
