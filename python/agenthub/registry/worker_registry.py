"""
Worker Registry - capability-based service registry with performance ranking

Holds one WorkerRecord per registered worker and answers discovery queries
by capability. Ranking uses the score ``success_rate - avg_response_time_ms / 1000``
with ties broken by registration order.

Only ``set_status`` and ``record_outcome`` mutate a record after
registration; both are called by the router and the health monitor.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Set

from agenthub.exceptions_unified import ValidationError, WorkerRegistrationError
from agenthub.interfaces import EventType, IEventBus, Routable, WorkerDescriptor

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WorkerStatus(str, Enum):
    """Registry-level availability of a worker."""
    ACTIVE = "active"
    BUSY = "busy"
    ERROR = "error"
    INACTIVE = "inactive"


@dataclass
class WorkerPerformance:
    """Rolling outcome counters for one worker.

    The integer counters are the source of truth; the success rate is
    derived on read.
    """
    success_count: int = 0
    failure_count: int = 0
    total_count: int = 0
    avg_response_time_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.total_count == 0:
            return 100.0
        return self.success_count / self.total_count * 100

    def record(self, success: bool, response_time_ms: float) -> None:
        if success:
            self.success_count += 1
        else:
            self.failure_count += 1
        self.total_count += 1
        n = self.total_count
        self.avg_response_time_ms = (
            self.avg_response_time_ms * (n - 1) + response_time_ms
        ) / n

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "total_count": self.total_count,
            "avg_response_time_ms": self.avg_response_time_ms,
            "success_rate": self.success_rate,
        }


@dataclass
class WorkerRecord:
    """Registry entry for one worker."""
    worker_id: str
    name: str
    role: str
    capabilities: Set[str]
    specializations: Set[str]
    status: WorkerStatus
    last_updated: datetime
    registered_at: datetime
    registration_order: int
    handle: Optional[Routable] = None
    tools: List[str] = field(default_factory=list)
    endpoint_compatibility: List[str] = field(default_factory=list)
    performance: WorkerPerformance = field(default_factory=WorkerPerformance)

    @property
    def score(self) -> float:
        return self.performance.success_rate - self.performance.avg_response_time_ms / 1000

    def advertises(self, capability: str) -> bool:
        return capability in self.capabilities or capability in self.specializations

    def to_dict(self) -> Dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "name": self.name,
            "role": self.role,
            "capabilities": sorted(self.capabilities),
            "specializations": sorted(self.specializations),
            "tools": list(self.tools),
            "endpoint_compatibility": list(self.endpoint_compatibility),
            "status": self.status.value,
            "last_updated": self.last_updated.isoformat(),
            "registered_at": self.registered_at.isoformat(),
            "performance": self.performance.to_dict(),
        }


class WorkerRegistry:
    """Capability registry with performance-aware discovery.

    Args:
        event_bus: Optional bus receiving WORKER_* events
        clock: Returns the current time; injectable for staleness tests
    """

    def __init__(
        self,
        event_bus: Optional[IEventBus] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.event_bus = event_bus
        self.clock = clock
        self._workers: Dict[str, WorkerRecord] = {}
        self._next_order = 0

    # ── Registration ────────────────────────────────────────────────────

    async def register(self, descriptor: WorkerDescriptor) -> str:
        """Register a worker and return its id.

        Raises:
            ValidationError: descriptor has neither id nor name
            WorkerRegistrationError: id already registered
        """
        worker_id = descriptor.worker_id or descriptor.name
        if not worker_id:
            raise ValidationError("Worker descriptor needs a worker_id or a name")
        if worker_id in self._workers:
            raise WorkerRegistrationError(f"Worker {worker_id} already registered")

        now = self.clock()
        record = WorkerRecord(
            worker_id=worker_id,
            name=descriptor.name or worker_id,
            role=descriptor.role,
            capabilities=set(descriptor.capabilities),
            specializations=set(descriptor.specializations),
            status=WorkerStatus.ACTIVE,
            last_updated=now,
            registered_at=now,
            registration_order=self._next_order,
            handle=descriptor.handle,
            tools=list(descriptor.tools),
            endpoint_compatibility=list(descriptor.endpoint_compatibility),
        )
        self._next_order += 1
        self._workers[worker_id] = record

        logger.info(
            f"Registered worker {worker_id} "
            f"(role={record.role or 'n/a'}, capabilities={sorted(record.capabilities)})"
        )
        await self._publish(
            EventType.WORKER_REGISTERED,
            {"worker_id": worker_id, "capabilities": sorted(record.capabilities)},
        )
        return worker_id

    async def unregister(self, worker_id: str) -> bool:
        """Remove a worker. Returns False when it was not registered."""
        record = self._workers.pop(worker_id, None)
        if record is None:
            return False
        logger.info(f"Unregistered worker {worker_id}")
        await self._publish(EventType.WORKER_UNREGISTERED, {"worker_id": worker_id})
        return True

    # ── Discovery ───────────────────────────────────────────────────────

    def discover(self, capability: str) -> List[WorkerRecord]:
        """Active workers advertising *capability*, best score first."""
        matches = [
            record for record in self._workers.values()
            if record.status == WorkerStatus.ACTIVE and record.advertises(capability)
        ]
        # sorted() is stable and dict order is registration order
        return sorted(matches, key=lambda r: r.score, reverse=True)

    # ── Mutation (router / health monitor) ──────────────────────────────

    async def set_status(self, worker_id: str, status: WorkerStatus) -> None:
        record = self._workers.get(worker_id)
        if record is None:
            logger.warning(f"set_status for unknown worker {worker_id}")
            return
        previous = record.status
        record.status = WorkerStatus(status)
        record.last_updated = self.clock()
        logger.debug(f"Worker {worker_id} status {previous.value} -> {record.status.value}")
        await self._publish(
            EventType.WORKER_STATUS_CHANGED,
            {
                "worker_id": worker_id,
                "previous": previous.value,
                "status": record.status.value,
            },
        )

    def record_outcome(self, worker_id: str, success: bool, response_time_ms: float) -> None:
        record = self._workers.get(worker_id)
        if record is None:
            logger.warning(f"record_outcome for unknown worker {worker_id}")
            return
        record.performance.record(success, response_time_ms)

    # ── Queries ─────────────────────────────────────────────────────────

    def get(self, worker_id: str) -> Optional[WorkerRecord]:
        return self._workers.get(worker_id)

    def all_workers(self) -> List[WorkerRecord]:
        return list(self._workers.values())

    def get_registry(self) -> Dict[str, Dict[str, Any]]:
        """Serialisable snapshot of every record (handles omitted)."""
        return {worker_id: record.to_dict() for worker_id, record in self._workers.items()}

    def count_by_status(self, status: WorkerStatus) -> int:
        return sum(1 for r in self._workers.values() if r.status == status)

    def __contains__(self, worker_id: object) -> bool:
        return worker_id in self._workers

    def __len__(self) -> int:
        return len(self._workers)

    def __iter__(self) -> Iterator[WorkerRecord]:
        return iter(list(self._workers.values()))

    # ── Internals ───────────────────────────────────────────────────────

    async def _publish(self, event_type: EventType, data: Dict[str, Any]) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish(event_type, data, source="worker_registry")
