"""
Task Runtime - per-worker bounded execution pool

Each worker owns one TaskRuntime. Work enters a FIFO backlog and is
dispatched while the active set is below ``max_concurrent_tasks``; every
completion frees a slot and drains the backlog again. Callers hold an
``asyncio.Future`` per task that resolves with the TaskResult envelope.

Actions are dispatched through an explicit ``action -> handler`` map built at
construction. An action without a handler is still supported when
``ACTION_CAPABILITY_MAP`` maps it to a capability the worker declares; the
generic handler then runs.
"""

import asyncio
import logging
import time
import uuid
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Deque,
    Dict,
    Iterable,
    List,
    Optional,
)

from agenthub.exceptions_unified import (
    AgentHubException,
    BacklogFullError,
    ExecutionFailureError,
    RequestCancelledError,
    UnsupportedActionError,
    WorkerStoppedError,
    error_type_of,
)
from agenthub.interfaces import (
    EventType,
    IEventBus,
    TaskResult,
    WorkerDescriptor,
    WorkRequest,
)
from agenthub.runtime.cancellation import CancellationToken

if TYPE_CHECKING:
    from agenthub.registry.worker_registry import WorkerRegistry
    from agenthub.routing.request_router import RequestRouter

logger = logging.getLogger(__name__)

Handler = Callable[[Any, Dict[str, Any]], Awaitable[Any]]
GenericHandler = Callable[[str, Any, Dict[str, Any]], Awaitable[Any]]

# Actions a worker supports implicitly by declaring the capability.
ACTION_CAPABILITY_MAP: Dict[str, str] = {
    "handle_query": "natural_language_processing",
    "create_lead": "lead_management",
    "update_lead": "lead_management",
    "create_deal": "deal_management",
    "update_deal": "deal_management",
    "calculate_pricing": "pricing_calculations",
    "generate_quotation": "quotation_management",
    "research_company": "company_research",
    "analyze_market": "market_analysis",
}

# Completed futures kept around for late result_for() lookups.
_RECENT_RESULTS_LIMIT = 1000


class RuntimeStatus(str, Enum):
    INITIALIZED = "initialized"
    STARTING = "starting"
    READY = "ready"
    STOPPING = "stopping"
    STOPPED = "stopped"


class BackpressurePolicy(str, Enum):
    """What happens when the backlog is at ``max_backlog``."""
    REJECT = "reject"            # new task raises BacklogFullError
    DROP_OLDEST = "drop_oldest"  # oldest queued task fails, new one is queued


@dataclass(eq=False)
class TaskRecord:
    """A queued or running task."""
    task_id: str
    action: str
    payload: Any
    context: Dict[str, Any]
    future: "asyncio.Future[TaskResult]"
    cancel: CancellationToken
    queued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    runner: Optional["asyncio.Task[None]"] = None


@dataclass
class RuntimeMetrics:
    tasks_processed: int = 0
    successful_tasks: int = 0
    failed_tasks: int = 0
    average_response_time: float = 0.0
    start_time: Optional[float] = None
    last_activity: Optional[float] = None

    def record(self, success: bool, response_time_ms: float) -> None:
        self.tasks_processed += 1
        if success:
            self.successful_tasks += 1
        else:
            self.failed_tasks += 1
        n = self.tasks_processed
        self.average_response_time = (
            self.average_response_time * (n - 1) + response_time_ms
        ) / n
        self.last_activity = time.monotonic()


class TaskRuntime:
    """Bounded task pool and lifecycle for one worker.

    Args:
        worker_id: Unique id (also used as the registry id)
        capabilities: Capabilities advertised for discovery
        handlers: Explicit ``action -> async handler(payload, context)`` map
        generic_handler: Runs actions supported only through
            ``ACTION_CAPABILITY_MAP``; the default raises
        registry: Registry to join on ``start()`` and leave on ``stop()``
        router: Used by ``send_message`` / ``broadcast``
        event_bus: Receives TASK_* and LOG events
    """

    def __init__(
        self,
        worker_id: str,
        name: Optional[str] = None,
        role: str = "",
        capabilities: Iterable[str] = (),
        specializations: Iterable[str] = (),
        handlers: Optional[Dict[str, Handler]] = None,
        generic_handler: Optional[GenericHandler] = None,
        registry: Optional["WorkerRegistry"] = None,
        router: Optional["RequestRouter"] = None,
        event_bus: Optional[IEventBus] = None,
        max_concurrent_tasks: int = 5,
        max_backlog: int = 100,
        backpressure_policy: BackpressurePolicy = BackpressurePolicy.REJECT,
        stop_timeout: float = 30.0,
        poll_interval: float = 0.1,
        tools: Iterable[str] = (),
        endpoint_compatibility: Iterable[str] = (),
    ) -> None:
        if max_concurrent_tasks < 1:
            raise ValueError("max_concurrent_tasks must be at least 1")
        self.worker_id = worker_id
        self.name = name or worker_id
        self.role = role
        self.capabilities = list(capabilities)
        self.specializations = list(specializations)
        self.tools = list(tools)
        self.endpoint_compatibility = list(endpoint_compatibility)
        self._handlers: Dict[str, Handler] = dict(handlers or {})
        self._generic_handler = generic_handler
        self.registry = registry
        self.router = router
        self.event_bus = event_bus
        self.max_concurrent_tasks = max_concurrent_tasks
        self.max_backlog = max_backlog
        self.backpressure_policy = BackpressurePolicy(backpressure_policy)
        self.stop_timeout = stop_timeout
        self.poll_interval = poll_interval

        self.status = RuntimeStatus.INITIALIZED
        self.metrics = RuntimeMetrics()
        self._backlog: Deque[TaskRecord] = deque()
        self._active: Dict[str, TaskRecord] = {}
        self._results: "OrderedDict[str, asyncio.Future[TaskResult]]" = OrderedDict()

    # ── Capabilities ────────────────────────────────────────────────────

    def supports_action(self, action: str) -> bool:
        if action in self._handlers:
            return True
        required = ACTION_CAPABILITY_MAP.get(action)
        return required is not None and required in self.capabilities

    def get_capabilities(self) -> Dict[str, Any]:
        return {
            "worker_id": self.worker_id,
            "name": self.name,
            "role": self.role,
            "capabilities": list(self.capabilities),
            "specializations": list(self.specializations),
            "tools": list(self.tools),
            "endpoint_compatibility": list(self.endpoint_compatibility),
            "actions": sorted(self._handlers),
        }

    def describe(self) -> WorkerDescriptor:
        return WorkerDescriptor(
            name=self.name,
            worker_id=self.worker_id,
            role=self.role,
            capabilities=list(self.capabilities),
            specializations=list(self.specializations),
            tools=list(self.tools),
            endpoint_compatibility=list(self.endpoint_compatibility),
            handle=self,
        )

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def backlog_size(self) -> int:
        return len(self._backlog)

    # ── Execution ───────────────────────────────────────────────────────

    async def execute(
        self,
        action: str,
        payload: Any = None,
        context: Optional[Dict[str, Any]] = None,
        cancel: Optional[CancellationToken] = None,
        task_id: Optional[str] = None,
    ) -> TaskResult:
        """Run one action and return its envelope. Never raises."""
        task_id = task_id or f"{self.worker_id}_{uuid.uuid4().hex[:12]}"
        context = context or {}
        start = time.perf_counter()

        try:
            if not self.supports_action(action):
                raise UnsupportedActionError(action, self.worker_id)
            handler = self._handlers.get(action)
            if handler is None:
                data = await self._run_cancellable(
                    self._call_generic(action, payload, context), cancel, task_id
                )
            else:
                data = await self._run_cancellable(handler(payload, context), cancel, task_id)
            result = TaskResult(
                success=True,
                task_id=task_id,
                worker_id=self.worker_id,
                action=action,
                data=data,
                response_time_ms=(time.perf_counter() - start) * 1000,
            )
        except Exception as e:
            if not isinstance(e, AgentHubException):
                logger.exception(f"Worker {self.worker_id} action {action} failed")
            result = TaskResult(
                success=False,
                task_id=task_id,
                worker_id=self.worker_id,
                action=action,
                error=str(e),
                error_type=error_type_of(e),
                response_time_ms=(time.perf_counter() - start) * 1000,
            )

        self.metrics.record(result.success, result.response_time_ms)
        if result.success:
            logger.debug(
                f"Worker {self.worker_id} completed {action} in {result.response_time_ms:.1f}ms"
            )
            await self._publish(EventType.TASK_COMPLETED, result.to_dict())
        else:
            logger.warning(
                f"Worker {self.worker_id} failed {action}: {result.error_type}: {result.error}"
            )
            await self._publish(EventType.TASK_FAILED, result.to_dict())
        return result

    async def _call_generic(self, action: str, payload: Any, context: Dict[str, Any]) -> Any:
        if self._generic_handler is None:
            raise ExecutionFailureError(
                f"Generic action '{action}' not implemented for worker {self.worker_id}"
            )
        return await self._generic_handler(action, payload, context)

    async def _run_cancellable(
        self,
        work: Awaitable[Any],
        cancel: Optional[CancellationToken],
        task_id: str,
    ) -> Any:
        if cancel is None:
            return await work
        if cancel.cancelled:
            if asyncio.iscoroutine(work):
                work.close()
            raise RequestCancelledError(f"Task {task_id} cancelled: {cancel.reason}")

        inner = asyncio.ensure_future(work)

        def _cancel_inner() -> None:
            inner.cancel()

        cancel.add_callback(_cancel_inner)
        try:
            return await inner
        except asyncio.CancelledError:
            if cancel.cancelled and inner.cancelled():
                raise RequestCancelledError(f"Task {task_id} cancelled: {cancel.reason}")
            raise
        finally:
            cancel.remove_callback(_cancel_inner)

    # ── Queue ───────────────────────────────────────────────────────────

    def queue_task(
        self,
        action: str,
        payload: Any = None,
        context: Optional[Dict[str, Any]] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> str:
        """Append a task to the backlog and return its id without waiting.

        Raises:
            WorkerStoppedError: runtime is stopping or stopped
            BacklogFullError: backlog is full under the reject policy
        """
        if self.status in (RuntimeStatus.STOPPING, RuntimeStatus.STOPPED):
            raise WorkerStoppedError(f"Worker {self.worker_id} is {self.status.value}")

        if len(self._backlog) >= self.max_backlog:
            if self.backpressure_policy == BackpressurePolicy.REJECT:
                raise BacklogFullError(
                    f"Backlog of worker {self.worker_id} is full ({self.max_backlog})",
                    details={"worker_id": self.worker_id, "max_backlog": self.max_backlog},
                )
            dropped = self._backlog.popleft()
            logger.warning(f"Worker {self.worker_id} dropped queued task {dropped.task_id}")
            self._fail_record(
                dropped,
                BacklogFullError(
                    f"Task {dropped.task_id} dropped from full backlog of worker {self.worker_id}"
                ),
            )

        loop = asyncio.get_running_loop()
        record = TaskRecord(
            task_id=f"{self.worker_id}_{uuid.uuid4().hex[:12]}",
            action=action,
            payload=payload,
            context=dict(context or {}),
            future=loop.create_future(),
            cancel=cancel or CancellationToken(),
        )
        self._remember(record)
        self._backlog.append(record)
        record.cancel.add_callback(lambda: self._cancel_queued(record))
        self.drain()
        return record.task_id

    def result_for(self, task_id: str) -> "asyncio.Future[TaskResult]":
        """Future resolving with the TaskResult of *task_id*."""
        try:
            return self._results[task_id]
        except KeyError:
            raise KeyError(f"Unknown task {task_id}") from None

    async def submit(
        self,
        action: str,
        payload: Any = None,
        context: Optional[Dict[str, Any]] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> TaskResult:
        """Queue a task and wait for its envelope."""
        task_id = self.queue_task(action, payload, context, cancel)
        return await self.result_for(task_id)

    async def handle_request(
        self,
        request: WorkRequest,
        cancel: Optional[CancellationToken] = None,
    ) -> TaskResult:
        """Execution handle used by the router; admission errors become envelopes."""
        try:
            return await self.submit(request.action, request.payload, request.context, cancel)
        except (BacklogFullError, WorkerStoppedError) as e:
            return TaskResult(
                success=False,
                task_id="",
                worker_id=self.worker_id,
                action=request.action,
                error=str(e),
                error_type=e.error_type,
            )

    def drain(self) -> None:
        """Dispatch queued tasks while the active set has room."""
        if self.status in (RuntimeStatus.STOPPING, RuntimeStatus.STOPPED):
            return
        while self._backlog and len(self._active) < self.max_concurrent_tasks:
            record = self._backlog.popleft()
            self._active[record.task_id] = record
            record.runner = asyncio.ensure_future(self._run_record(record))

    async def _run_record(self, record: TaskRecord) -> None:
        try:
            result = await self.execute(
                record.action,
                record.payload,
                record.context,
                cancel=record.cancel,
                task_id=record.task_id,
            )
            if not record.future.done():
                record.future.set_result(result)
        except asyncio.CancelledError:
            if not record.future.done():
                record.future.cancel()
            raise
        finally:
            self._active.pop(record.task_id, None)
            self.drain()

    def _cancel_queued(self, record: TaskRecord) -> None:
        if record in self._backlog:
            self._backlog.remove(record)
            self._fail_record(
                record,
                RequestCancelledError(f"Task {record.task_id} cancelled: {record.cancel.reason}"),
            )

    def _fail_record(self, record: TaskRecord, error: Exception) -> None:
        if not record.future.done():
            record.future.set_exception(error)
            # Mark retrieved so unobserved drops do not log "never retrieved".
            record.future.exception()

    def _remember(self, record: TaskRecord) -> None:
        self._results[record.task_id] = record.future
        excess = len(self._results) - _RECENT_RESULTS_LIMIT
        if excess <= 0:
            return
        # Unfinished futures stay reachable through result_for().
        evictable = [tid for tid, fut in self._results.items() if fut.done()][:excess]
        for task_id in evictable:
            del self._results[task_id]

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def start(self) -> None:
        if self.status == RuntimeStatus.READY:
            return
        self.status = RuntimeStatus.STARTING
        await self.log("info", f"Starting worker {self.name}")
        if self.registry is not None and self.worker_id not in self.registry:
            await self.registry.register(self.describe())
        self.metrics.start_time = time.monotonic()
        self.status = RuntimeStatus.READY
        await self.log("info", f"Worker {self.name} ready")

    async def stop(self) -> None:
        """Stop accepting work and wait for active tasks up to ``stop_timeout``."""
        if self.status == RuntimeStatus.STOPPED:
            return
        self.status = RuntimeStatus.STOPPING
        await self.log("info", f"Stopping worker {self.name}")

        while self._backlog:
            record = self._backlog.popleft()
            self._fail_record(
                record, WorkerStoppedError(f"Worker {self.worker_id} stopped before task ran")
            )

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.stop_timeout
        while self._active and loop.time() < deadline:
            await asyncio.sleep(self.poll_interval)
        if self._active:
            logger.warning(
                f"Worker {self.worker_id} stopped with {len(self._active)} task(s) still active"
            )

        self.status = RuntimeStatus.STOPPED
        if self.registry is not None:
            await self.registry.unregister(self.worker_id)
        await self.log("info", f"Worker {self.name} stopped")

    async def restart(self) -> None:
        await self.stop()
        await self.start()

    # ── Observability ───────────────────────────────────────────────────

    def get_metrics(self) -> Dict[str, Any]:
        m = self.metrics
        now = time.monotonic()
        success_rate = (
            m.successful_tasks / m.tasks_processed * 100 if m.tasks_processed else 0.0
        )
        return {
            "worker_id": self.worker_id,
            "status": self.status.value,
            "tasks_processed": m.tasks_processed,
            "successful_tasks": m.successful_tasks,
            "failed_tasks": m.failed_tasks,
            "average_response_time": m.average_response_time,
            "success_rate": success_rate,
            "active_tasks": len(self._active),
            "queued_tasks": len(self._backlog),
            "uptime_seconds": now - m.start_time if m.start_time is not None else 0.0,
            "seconds_since_last_activity": (
                now - m.last_activity if m.last_activity is not None else None
            ),
        }

    async def health_check(self) -> Dict[str, Any]:
        healthy = (
            self.status == RuntimeStatus.READY
            and len(self._active) < self.max_concurrent_tasks
        )
        return {
            "worker_id": self.worker_id,
            "healthy": healthy,
            "status": self.status.value,
            "active_tasks": len(self._active),
            "queued_tasks": len(self._backlog),
            "max_concurrent_tasks": self.max_concurrent_tasks,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def log(self, level: str, message: str, **data: Any) -> None:
        """Log through ``logging`` and mirror the line as a LOG event."""
        logger.log(
            getattr(logging, level.upper(), logging.INFO),
            f"[{self.name}] {message}",
        )
        await self._publish(
            EventType.LOG,
            {
                "worker_id": self.worker_id,
                "level": level,
                "message": message,
                "data": data,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    # ── Messaging ───────────────────────────────────────────────────────

    async def send_message(
        self,
        target: str,
        action: str,
        payload: Any = None,
        timeout_ms: Optional[float] = None,
    ) -> TaskResult:
        """Route a request to another worker or capability via the router."""
        if self.router is None:
            raise WorkerStoppedError(f"Worker {self.worker_id} has no router attached")
        request = WorkRequest(action=action, payload=payload, context={"source_worker": self.worker_id})
        return await self.router.route(target, request, timeout_ms)

    async def broadcast(self, capability: str, action: str, payload: Any = None) -> List[Dict[str, Any]]:
        if self.router is None:
            raise WorkerStoppedError(f"Worker {self.worker_id} has no router attached")
        request = WorkRequest(action=action, payload=payload, context={"source_worker": self.worker_id})
        return await self.router.broadcast(capability, request)

    # ── Internals ───────────────────────────────────────────────────────

    async def _publish(self, event_type: EventType, data: Dict[str, Any]) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish(event_type, data, source=self.worker_id)
