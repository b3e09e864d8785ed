"""Tests for agenthub.monitoring.health_monitor."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from agenthub.interfaces import WorkerDescriptor
from agenthub.monitoring import HealthMonitor
from agenthub.registry import WorkerRegistry, WorkerStatus


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return WorkerRegistry(clock=clock)


async def _register(registry, *worker_ids):
    for worker_id in worker_ids:
        await registry.register(
            WorkerDescriptor(name=worker_id, capabilities=["lead_management"])
        )


class TestSweep:

    @pytest.mark.asyncio
    async def test_demotes_stale_active_workers(self, registry, clock):
        monitor = HealthMonitor(registry, stale_threshold_seconds=300)
        await _register(registry, "stale", "fresh")

        clock.advance(200)
        await registry.set_status("fresh", WorkerStatus.ACTIVE)
        clock.advance(150)

        demoted = await monitor.sweep()
        assert demoted == ["stale"]
        assert registry.get("stale").status == WorkerStatus.INACTIVE
        assert registry.get("fresh").status == WorkerStatus.ACTIVE
        assert [r.worker_id for r in registry.discover("lead_management")] == ["fresh"]

    @pytest.mark.asyncio
    async def test_threshold_is_exclusive(self, registry, clock):
        monitor = HealthMonitor(registry, stale_threshold_seconds=300)
        await _register(registry, "edge")
        clock.advance(300)
        assert await monitor.sweep() == []

    @pytest.mark.asyncio
    async def test_only_active_workers_are_demoted(self, registry, clock):
        monitor = HealthMonitor(registry, stale_threshold_seconds=300)
        await _register(registry, "busy", "broken")
        await registry.set_status("busy", WorkerStatus.BUSY)
        await registry.set_status("broken", WorkerStatus.ERROR)
        clock.advance(1000)

        assert await monitor.sweep() == []
        assert registry.get("busy").status == WorkerStatus.BUSY
        assert registry.get("broken").status == WorkerStatus.ERROR

    @pytest.mark.asyncio
    async def test_never_promotes(self, registry, clock):
        monitor = HealthMonitor(registry, stale_threshold_seconds=300)
        await _register(registry, "w")
        clock.advance(301)
        await monitor.sweep()
        clock.advance(1)

        assert await monitor.sweep() == []
        assert registry.get("w").status == WorkerStatus.INACTIVE
        assert monitor.sweeps == 2
        assert monitor.last_sweep == clock.now

    @pytest.mark.asyncio
    async def test_explicit_time(self, registry, clock):
        monitor = HealthMonitor(registry, stale_threshold_seconds=60)
        await _register(registry, "w")
        assert await monitor.sweep(now=clock.now + timedelta(seconds=61)) == ["w"]


class TestBackgroundLoop:

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        registry = WorkerRegistry()
        monitor = HealthMonitor(registry, interval_seconds=0.01, stale_threshold_seconds=300)

        await monitor.start()
        assert monitor.is_running
        await asyncio.sleep(0.05)
        await monitor.stop()

        assert not monitor.is_running
        assert monitor.sweeps >= 1

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        monitor = HealthMonitor(WorkerRegistry())
        await monitor.stop()
        assert not monitor.is_running
