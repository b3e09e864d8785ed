"""Tests for agenthub.registry.worker_registry."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from agenthub.event_bus import InMemoryEventBus
from agenthub.exceptions_unified import ValidationError, WorkerRegistrationError
from agenthub.interfaces import EventType, WorkerDescriptor
from agenthub.registry import WorkerRegistry, WorkerStatus


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def registry():
    return WorkerRegistry()


def _desc(worker_id, capabilities=("lead_management",), specializations=()):
    return WorkerDescriptor(
        name=worker_id,
        worker_id=worker_id,
        capabilities=list(capabilities),
        specializations=list(specializations),
    )


# ── Registration ──────────────────────────────────────────────────────


class TestRegistration:

    @pytest.mark.asyncio
    async def test_register_starts_active(self, registry):
        worker_id = await registry.register(_desc("lead_agent"))
        assert worker_id == "lead_agent"
        record = registry.get("lead_agent")
        assert record.status == WorkerStatus.ACTIVE
        assert record.performance.total_count == 0
        assert "lead_agent" in registry
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_id_falls_back_to_name(self, registry):
        worker_id = await registry.register(WorkerDescriptor(name="deal_agent"))
        assert worker_id == "deal_agent"

    @pytest.mark.asyncio
    async def test_missing_id_and_name_raises(self, registry):
        with pytest.raises(ValidationError):
            await registry.register(WorkerDescriptor(name=""))

    @pytest.mark.asyncio
    async def test_duplicate_raises(self, registry):
        await registry.register(_desc("lead_agent"))
        with pytest.raises(WorkerRegistrationError, match="already registered"):
            await registry.register(_desc("lead_agent"))

    @pytest.mark.asyncio
    async def test_unregister(self, registry):
        await registry.register(_desc("lead_agent"))
        assert await registry.unregister("lead_agent") is True
        assert registry.discover("lead_management") == []
        assert await registry.unregister("lead_agent") is False

    @pytest.mark.asyncio
    async def test_unregister_removes_every_advertised_capability(self, registry):
        await registry.register(_desc(
            "sales_agent",
            capabilities=["lead_management", "deal_management", "natural_language_processing"],
            specializations=["enterprise_sales"],
        ))
        await registry.register(_desc("deal_agent", capabilities=["deal_management"]))

        await registry.unregister("sales_agent")

        for capability in ("lead_management", "natural_language_processing", "enterprise_sales"):
            assert registry.discover(capability) == []
        assert [r.worker_id for r in registry.discover("deal_management")] == ["deal_agent"]
        assert "sales_agent" not in registry

    @pytest.mark.asyncio
    async def test_events_published(self):
        bus = InMemoryEventBus()
        registry = WorkerRegistry(event_bus=bus)
        await registry.register(_desc("lead_agent"))
        await registry.set_status("lead_agent", WorkerStatus.BUSY)
        await registry.unregister("lead_agent")

        types = [e["event_type"] for e in bus.recent_events()]
        assert types == [
            EventType.WORKER_REGISTERED.value,
            EventType.WORKER_STATUS_CHANGED.value,
            EventType.WORKER_UNREGISTERED.value,
        ]
        changed = bus.recent_events(EventType.WORKER_STATUS_CHANGED)[0]["data"]
        assert changed["previous"] == "active"
        assert changed["status"] == "busy"

    @pytest.mark.asyncio
    async def test_publishes_through_injected_bus(self):
        bus = AsyncMock()
        registry = WorkerRegistry(event_bus=bus)
        await registry.register(_desc("lead_agent", capabilities=["lead_management"]))

        bus.publish.assert_awaited_once_with(
            EventType.WORKER_REGISTERED,
            {"worker_id": "lead_agent", "capabilities": ["lead_management"]},
            source="worker_registry",
        )


# ── Discovery ─────────────────────────────────────────────────────────


class TestDiscovery:

    @pytest.mark.asyncio
    async def test_matches_capability_or_specialization(self, registry):
        await registry.register(_desc("a", capabilities=["lead_management"]))
        await registry.register(_desc("b", capabilities=["deal_management"], specializations=["leads"]))
        await registry.register(_desc("c", capabilities=["deal_management"]))

        assert [r.worker_id for r in registry.discover("lead_management")] == ["a"]
        assert [r.worker_id for r in registry.discover("leads")] == ["b"]
        assert registry.discover("unknown") == []

    @pytest.mark.asyncio
    async def test_only_active_workers(self, registry):
        for wid in ("a", "b", "c", "d"):
            await registry.register(_desc(wid))
        await registry.set_status("b", WorkerStatus.BUSY)
        await registry.set_status("c", WorkerStatus.ERROR)
        await registry.set_status("d", WorkerStatus.INACTIVE)

        assert [r.worker_id for r in registry.discover("lead_management")] == ["a"]

    @pytest.mark.asyncio
    async def test_ranked_by_score(self, registry):
        await registry.register(_desc("B"))
        await registry.register(_desc("A"))
        # A: 100% success, 50ms average
        registry.record_outcome("A", True, 50)
        # B: 90% success, 10ms average
        for _ in range(9):
            registry.record_outcome("B", True, 10)
        registry.record_outcome("B", False, 10)

        ranked = registry.discover("lead_management")
        assert [r.worker_id for r in ranked] == ["A", "B"]
        assert ranked[0].score == pytest.approx(100 - 0.05)
        assert ranked[1].score == pytest.approx(90 - 0.01)

    @pytest.mark.asyncio
    async def test_ties_keep_registration_order(self, registry):
        for wid in ("first", "second", "third"):
            await registry.register(_desc(wid))
        assert [r.worker_id for r in registry.discover("lead_management")] == [
            "first", "second", "third",
        ]

    @pytest.mark.asyncio
    async def test_unused_worker_outranks_failing_one(self, registry):
        await registry.register(_desc("failing"))
        await registry.register(_desc("fresh"))
        registry.record_outcome("failing", False, 0)
        assert [r.worker_id for r in registry.discover("lead_management")] == ["fresh", "failing"]


# ── Performance ───────────────────────────────────────────────────────


class TestPerformance:

    @pytest.mark.asyncio
    async def test_success_rate_is_exact_ratio(self, registry):
        await registry.register(_desc("a"))
        registry.record_outcome("a", True, 10)
        registry.record_outcome("a", True, 20)
        registry.record_outcome("a", False, 30)

        perf = registry.get("a").performance
        assert perf.success_count == 2
        assert perf.failure_count == 1
        assert perf.total_count == 3
        assert perf.success_rate == pytest.approx(200 / 3)
        assert perf.avg_response_time_ms == pytest.approx(20.0)

    @pytest.mark.asyncio
    async def test_new_worker_reports_full_success(self, registry):
        await registry.register(_desc("a"))
        assert registry.get("a").performance.success_rate == 100.0

    def test_record_outcome_for_unknown_worker_is_ignored(self, registry):
        registry.record_outcome("ghost", True, 10)
        assert len(registry) == 0


# ── Status ────────────────────────────────────────────────────────────


class TestStatus:

    @pytest.mark.asyncio
    async def test_set_status_bumps_last_updated(self):
        clock = FakeClock()
        registry = WorkerRegistry(clock=clock)
        await registry.register(_desc("a"))
        registered = registry.get("a").last_updated

        clock.advance(42)
        await registry.set_status("a", WorkerStatus.BUSY)

        record = registry.get("a")
        assert record.status == WorkerStatus.BUSY
        assert record.last_updated - registered == timedelta(seconds=42)

    @pytest.mark.asyncio
    async def test_set_status_unknown_worker_is_noop(self, registry):
        await registry.set_status("ghost", WorkerStatus.ERROR)
        assert registry.get("ghost") is None

    @pytest.mark.asyncio
    async def test_snapshot_and_counts(self, registry):
        await registry.register(_desc("a"))
        await registry.register(_desc("b"))
        await registry.set_status("b", WorkerStatus.ERROR)

        snapshot = registry.get_registry()
        assert snapshot["a"]["status"] == "active"
        assert snapshot["b"]["status"] == "error"
        assert snapshot["a"]["performance"]["success_rate"] == 100.0
        assert "handle" not in snapshot["a"]
        assert registry.count_by_status(WorkerStatus.ACTIVE) == 1
        assert [r.worker_id for r in registry] == ["a", "b"]
