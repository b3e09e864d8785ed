"""Composition root for the agent hub.

Builds one event bus, registry, router, health monitor and orchestrator per
container and injects them explicitly. Services are created lazily on first
access. There is no process-wide container; callers own the instance
returned by ``create_container``.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from agenthub.config.settings import Settings, get_settings
from agenthub.enhanced_logging import configure_logging
from agenthub.exceptions_unified import HubNotRunningError
from agenthub.interfaces import ICRMStore, IReasoningService

logger = logging.getLogger(__name__)


class AgentHubContainer:
    """Service container for the orchestration core.

    Args:
        settings: Configuration; ``get_settings()`` when omitted
        reasoning: Override for the reasoning collaborator
        crm_store: Override for the CRM persistence collaborator
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        reasoning: Optional[IReasoningService] = None,
        crm_store: Optional[ICRMStore] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._reasoning = reasoning
        self._crm_store = crm_store
        self._event_bus = None
        self._registry = None
        self._router = None
        self._health_monitor = None
        self._orchestrator = None
        self._workers = None
        self._running = False

    @property
    def event_bus(self):
        if self._event_bus is None:
            from agenthub.event_bus import InMemoryEventBus
            self._event_bus = InMemoryEventBus()
        return self._event_bus

    @property
    def registry(self):
        if self._registry is None:
            from agenthub.registry.worker_registry import WorkerRegistry
            self._registry = WorkerRegistry(event_bus=self.event_bus)
        return self._registry

    @property
    def router(self):
        if self._router is None:
            from agenthub.routing.request_router import RequestRouter
            self._router = RequestRouter(
                self.registry,
                event_bus=self.event_bus,
                default_timeout_ms=self.settings.route_timeout_ms,
            )
        return self._router

    @property
    def health_monitor(self):
        if self._health_monitor is None:
            from agenthub.monitoring.health_monitor import HealthMonitor
            self._health_monitor = HealthMonitor(
                self.registry,
                interval_seconds=self.settings.health_check_interval_seconds,
                stale_threshold_seconds=self.settings.stale_threshold_seconds,
            )
        return self._health_monitor

    @property
    def reasoning(self):
        if self._reasoning is None:
            from agenthub.reasoning.client import ReasoningClient
            self._reasoning = ReasoningClient.from_settings(self.settings)
        return self._reasoning

    @property
    def crm_store(self):
        if self._crm_store is None:
            from agenthub.crm.http_store import HttpCRMStore
            self._crm_store = HttpCRMStore.from_settings(self.settings)
        return self._crm_store

    @property
    def orchestrator(self):
        if self._orchestrator is None:
            from agenthub.orchestration.workflow_orchestrator import create_orchestrator
            self._orchestrator = create_orchestrator(
                self.router,
                self.reasoning,
                settings=self.settings,
                event_bus=self.event_bus,
            )
        return self._orchestrator

    @property
    def workers(self):
        if self._workers is None:
            from agenthub.workers.crm_workers import build_standard_workers
            self._workers = build_standard_workers(
                self.crm_store,
                self.reasoning,
                registry=self.registry,
                router=self.router,
                event_bus=self.event_bus,
                max_concurrent_tasks=self.settings.max_concurrent_tasks,
                max_backlog=self.settings.max_backlog,
                backpressure_policy=self.settings.backpressure_policy,
                stop_timeout=self.settings.stop_timeout_seconds,
            )
        return self._workers

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start every worker (registering it) and the health monitor."""
        if self._running:
            return
        for worker in self.workers:
            await worker.start()
        await self.health_monitor.start()
        self._running = True
        logger.info(f"Agent hub started with {len(self.registry)} workers")

    async def stop(self) -> None:
        if not self._running:
            return
        await self.health_monitor.stop()
        for worker in self.workers:
            await worker.stop()
        for adapter in (self._reasoning, self._crm_store):
            close = getattr(adapter, "aclose", None)
            if close is not None:
                await close()
        self._running = False
        logger.info("Agent hub stopped")

    async def health(self) -> Dict[str, Any]:
        """Aggregated health of workers and the orchestrator."""
        workers: List[Dict[str, Any]] = [await w.health_check() for w in self.workers]
        return {
            "running": self._running,
            "healthy": self._running and all(w["healthy"] for w in workers),
            "workers": workers,
            "orchestrator": await self.orchestrator.health_check(),
            "hub_metrics": self.router.get_performance_metrics(),
        }

    async def process_business_workflow(self, workflow_type: str, data: Any) -> Dict[str, Any]:
        """Run a workflow of *workflow_type* through the orchestrator.

        Raises:
            HubNotRunningError: the container has not been started
        """
        if not self._running:
            raise HubNotRunningError()
        logger.info(f"Processing business workflow: {workflow_type}")
        start = time.monotonic()
        result = await self.orchestrator.orchestrate_workflow({
            "type": workflow_type,
            "data": data,
            "context": {
                "source": "business_process",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        })
        return {
            "success": result.success,
            "workflow_result": result,
            "processing_time_ms": (time.monotonic() - start) * 1000,
        }

    def get_system_metrics(self) -> Dict[str, Any]:
        """Hub, orchestrator, reasoning and per-worker metrics in one report."""
        if not self._running:
            return {"error": "Agent hub not started"}
        reasoning_metrics = getattr(self.reasoning, "get_metrics", None)
        return {
            "system": self.status(),
            "hub": self.router.get_performance_metrics(),
            "orchestrator": self.orchestrator.get_workflow_metrics(),
            "reasoning": reasoning_metrics() if reasoning_metrics is not None else {},
            "agents": {w.worker_id: w.get_metrics() for w in self.workers},
        }

    def status(self) -> Dict[str, Any]:
        """Report which services are initialized."""
        return {
            "event_bus": self._event_bus is not None,
            "registry": self._registry is not None,
            "router": self._router is not None,
            "health_monitor": self._health_monitor is not None,
            "reasoning": self._reasoning is not None,
            "crm_store": self._crm_store is not None,
            "orchestrator": self._orchestrator is not None,
            "workers": self._workers is not None,
            "running": self._running,
        }


def create_container(
    settings: Optional[Settings] = None,
    reasoning: Optional[IReasoningService] = None,
    crm_store: Optional[ICRMStore] = None,
) -> AgentHubContainer:
    """Build a container and configure logging from its settings."""
    container = AgentHubContainer(settings=settings, reasoning=reasoning, crm_store=crm_store)
    configure_logging(container.settings.log_level, container.settings.log_format)
    return container
