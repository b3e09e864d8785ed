"""Capability interfaces implemented by workers.

A worker does not inherit from a shared base to take part in the hub; it
only needs to satisfy these protocols structurally.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Protocol

if TYPE_CHECKING:
    from agenthub.runtime.cancellation import CancellationToken


@dataclass
class WorkRequest:
    """A routed unit of work: which action to run with what payload."""
    action: str
    payload: Any = None
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WorkerDescriptor:
    """What a worker tells the registry about itself.

    ``worker_id`` falls back to ``name`` when omitted.
    """
    name: str
    worker_id: Optional[str] = None
    role: str = ""
    capabilities: List[str] = field(default_factory=list)
    specializations: List[str] = field(default_factory=list)
    tools: List[str] = field(default_factory=list)
    endpoint_compatibility: List[str] = field(default_factory=list)
    handle: Optional["Routable"] = None


@dataclass
class TaskResult:
    """Result envelope produced by a worker for one task."""
    success: bool
    task_id: str
    worker_id: str
    action: str
    data: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    response_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "success": self.success,
            "task_id": self.task_id,
            "worker_id": self.worker_id,
            "action": self.action,
            "response_time_ms": self.response_time_ms,
        }
        if self.success:
            result["data"] = self.data
        else:
            result["error"] = self.error
            result["error_type"] = self.error_type
        return result


class Routable(Protocol):
    """Something the request router can dispatch a WorkRequest to."""

    async def handle_request(
        self,
        request: WorkRequest,
        cancel: Optional["CancellationToken"] = None,
    ) -> TaskResult:
        ...


class Registrable(Protocol):
    """Something that can describe itself to the worker registry."""

    def describe(self) -> WorkerDescriptor:
        ...


class HealthCheckable(Protocol):
    async def health_check(self) -> Dict[str, Any]:
        ...
