"""Event contract between the hub components and their observers.

The registry, task runtimes, router and orchestrator publish lifecycle
events; observers (dashboards, audit logs, tests) subscribe without the
publishers knowing about them.
"""

from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union

EventHandler = Callable[[Dict[str, Any]], Union[Awaitable[None], None]]


class EventType(Enum):
    """Events emitted by the orchestration core."""
    # Registry
    WORKER_REGISTERED = "worker_registered"
    WORKER_UNREGISTERED = "worker_unregistered"
    WORKER_STATUS_CHANGED = "worker_status_changed"
    # Routing
    REQUEST_FAILED = "request_failed"
    # Task runtime
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"
    # Workflow
    WORKFLOW_STARTED = "workflow_started"
    WORKFLOW_COMPLETED = "workflow_completed"
    # Worker log lines for external logging systems
    LOG = "log"


class IEventBus(Protocol):
    """Publish/subscribe channel injected into every hub component."""

    async def publish(
        self,
        event_type: EventType,
        data: Dict[str, Any],
        source: Optional[str] = None,
    ) -> None:
        """Deliver *data* to every subscriber of *event_type*.

        *source* names the publishing component (``worker_registry``,
        ``request_router``, a worker id...).
        """
        ...

    async def subscribe(self, event_type: EventType, handler: EventHandler) -> str:
        """Register *handler* and return a subscription id."""
        ...

    async def unsubscribe(self, subscription_id: str) -> None:
        ...
