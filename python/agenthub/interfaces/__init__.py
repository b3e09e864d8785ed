"""Agent hub interface contracts (Protocol-based dependency injection)."""

from agenthub.interfaces.event_bus import IEventBus, EventType
from agenthub.interfaces.reasoning import IReasoningService, ChatResult
from agenthub.interfaces.crm_store import ICRMStore, CRMResult
from agenthub.interfaces.worker import (
    HealthCheckable,
    Registrable,
    Routable,
    TaskResult,
    WorkerDescriptor,
    WorkRequest,
)

__all__ = [
    "IEventBus",
    "EventType",
    "IReasoningService",
    "ChatResult",
    "ICRMStore",
    "CRMResult",
    "HealthCheckable",
    "Registrable",
    "Routable",
    "TaskResult",
    "WorkerDescriptor",
    "WorkRequest",
]
