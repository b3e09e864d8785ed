"""
Request Router - dispatches work to the best worker for a capability

``route`` resolves candidates (an explicit worker id, or discovery by
capability), picks the top-ranked one, marks it busy and races its
execution handle against a timer. Exactly one outcome is recorded per
request: a late result arriving after the timer fired is discarded.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from agenthub.exceptions_unified import (
    AgentHubException,
    ExecutionFailureError,
    NoAgentAvailableError,
    RequestTimeoutError,
    UnsupportedActionError,
    error_type_of,
)
from agenthub.interfaces import EventType, IEventBus, TaskResult, WorkRequest
from agenthub.registry.worker_registry import WorkerRecord, WorkerRegistry, WorkerStatus
from agenthub.runtime.cancellation import CancellationToken

logger = logging.getLogger(__name__)


@dataclass
class RouterMetrics:
    """Hub-level request counters."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_response_time: float = 0.0

    def record_success(self, response_time_ms: float) -> None:
        self.successful_requests += 1
        n = self.successful_requests
        self.average_response_time = (
            self.average_response_time * (n - 1) + response_time_ms
        ) / n


class RequestRouter:
    """Performance-aware router over a WorkerRegistry.

    Args:
        registry: Source of candidates and sink of outcomes
        event_bus: Receives REQUEST_FAILED
        default_timeout_ms: Used when ``route`` gets no timeout
        clock: Monotonic seconds; injectable for deterministic timings
    """

    def __init__(
        self,
        registry: WorkerRegistry,
        event_bus: Optional[IEventBus] = None,
        default_timeout_ms: float = 30000.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.event_bus = event_bus
        self.default_timeout_ms = default_timeout_ms
        self.clock = clock
        self.metrics = RouterMetrics()

    async def route(
        self,
        target: str,
        request: WorkRequest,
        timeout_ms: Optional[float] = None,
    ) -> TaskResult:
        """Dispatch *request* to the best worker for *target*.

        *target* is a registered worker id or a capability name.

        Raises:
            NoAgentAvailableError: no active candidate
            RequestTimeoutError: the worker did not answer within *timeout_ms*
            UnsupportedActionError: the worker rejected the action
            ExecutionFailureError: the worker's action failed
        """
        timeout_ms = self.default_timeout_ms if timeout_ms is None else timeout_ms
        start = self.clock()
        self.metrics.total_requests += 1

        try:
            candidates = self.resolve(target)
            if not candidates:
                raise NoAgentAvailableError(target)

            worker = candidates[0]
            logger.info(
                f"Routing {request.action} for {target} to worker {worker.worker_id}"
            )
            result = await self._dispatch(worker, request, timeout_ms, start)
        except AgentHubException as e:
            elapsed_ms = (self.clock() - start) * 1000
            self.metrics.failed_requests += 1
            logger.warning(f"Request for {target} failed after {elapsed_ms:.0f}ms: {e}")
            await self._publish(
                EventType.REQUEST_FAILED,
                {
                    "target": target,
                    "action": request.action,
                    "error": str(e),
                    "error_type": e.error_type,
                    "response_time_ms": elapsed_ms,
                },
            )
            raise

        self.metrics.record_success(result.response_time_ms)
        return result

    def resolve(self, target: str) -> List[WorkerRecord]:
        """Candidate workers for *target*, best first."""
        record = self.registry.get(target)
        if record is not None:
            return [record] if record.status == WorkerStatus.ACTIVE else []
        return self.registry.discover(target)

    async def _dispatch(
        self,
        worker: WorkerRecord,
        request: WorkRequest,
        timeout_ms: float,
        start: float,
    ) -> TaskResult:
        worker_id = worker.worker_id
        if worker.handle is None:
            raise ExecutionFailureError(f"Worker {worker_id} has no execution handle")

        await self.registry.set_status(worker_id, WorkerStatus.BUSY)

        cancel = CancellationToken()
        call = asyncio.ensure_future(worker.handle.handle_request(request, cancel))
        try:
            done, _ = await asyncio.wait({call}, timeout=timeout_ms / 1000)
        except asyncio.CancelledError:
            cancel.cancel("caller cancelled")
            call.add_done_callback(_discard_late_result)
            await self.registry.set_status(worker_id, WorkerStatus.ACTIVE)
            raise

        if not done:
            cancel.cancel(f"router timeout after {timeout_ms:.0f}ms")
            call.add_done_callback(_discard_late_result)
            elapsed_ms = (self.clock() - start) * 1000
            self.registry.record_outcome(worker_id, False, elapsed_ms)
            await self.registry.set_status(worker_id, WorkerStatus.ACTIVE)
            raise RequestTimeoutError(worker_id, timeout_ms)

        try:
            result = call.result()
        except Exception as e:
            self.registry.record_outcome(worker_id, False, 0)
            await self.registry.set_status(worker_id, WorkerStatus.ERROR)
            if isinstance(e, AgentHubException):
                raise
            raise ExecutionFailureError(
                f"Worker {worker_id} failed: {e}",
                details={"worker_id": worker_id, "exception_type": type(e).__name__},
            ) from e

        if not result.success:
            self.registry.record_outcome(worker_id, False, 0)
            await self.registry.set_status(worker_id, WorkerStatus.ERROR)
            if result.error_type == UnsupportedActionError.error_type:
                raise UnsupportedActionError(request.action, worker_id)
            raise ExecutionFailureError(
                result.error or f"Worker {worker_id} failed {request.action}",
                details={
                    "worker_id": worker_id,
                    "task_id": result.task_id,
                    "error_type": result.error_type,
                },
            )

        elapsed_ms = (self.clock() - start) * 1000
        self.registry.record_outcome(worker_id, True, elapsed_ms)
        await self.registry.set_status(worker_id, WorkerStatus.ACTIVE)
        result.response_time_ms = elapsed_ms
        logger.info(f"Request {request.action} completed by {worker_id} in {elapsed_ms:.0f}ms")
        return result

    async def broadcast(
        self,
        capability: str,
        request: WorkRequest,
    ) -> List[Dict[str, Any]]:
        """Send *request* to every active worker advertising *capability*.

        Workers are called one after another; a failing worker does not stop
        the broadcast and no performance outcome is recorded.
        """
        results: List[Dict[str, Any]] = []
        for worker in self.registry.discover(capability):
            if worker.handle is None:
                continue
            try:
                envelope = await worker.handle.handle_request(request, None)
            except Exception as e:
                logger.warning(f"Broadcast to {worker.worker_id} failed: {e}")
                results.append({
                    "worker_id": worker.worker_id,
                    "success": False,
                    "error": str(e),
                    "error_type": error_type_of(e),
                })
                continue
            if envelope.success:
                results.append({
                    "worker_id": worker.worker_id,
                    "success": True,
                    "result": envelope.data,
                })
            else:
                results.append({
                    "worker_id": worker.worker_id,
                    "success": False,
                    "error": envelope.error,
                    "error_type": envelope.error_type,
                })
        return results

    def get_performance_metrics(self) -> Dict[str, Any]:
        m = self.metrics
        return {
            "total_requests": m.total_requests,
            "successful_requests": m.successful_requests,
            "failed_requests": m.failed_requests,
            "average_response_time": m.average_response_time,
            "success_rate": (
                m.successful_requests / m.total_requests * 100 if m.total_requests else 0.0
            ),
            "active_agents": self.registry.count_by_status(WorkerStatus.ACTIVE),
            "total_agents": len(self.registry),
        }

    async def _publish(self, event_type: EventType, data: Dict[str, Any]) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish(event_type, data, source="request_router")


def _discard_late_result(call: "asyncio.Future[TaskResult]") -> None:
    if call.cancelled():
        return
    error = call.exception()
    if error is not None:
        logger.debug(f"Late failure after timeout discarded: {error}")
