"""
Workflow Orchestrator - plans and runs multi-step business workflows

Flow for one business request:
1. plan_workflow: ask the reasoning service for a JSON plan; an unusable
   reply yields a one-step fallback workflow
2. execute_workflow: route each step through the RequestRouter
   - DEPENDENCY_GRAPH (default): DAG ready-set, bounded concurrency, a failed
     step cancels its transitive dependents
   - SINGLE_PASS: plan order, once; a step with unfinished dependencies is
     skipped and never retried
3. coordinate_follow_up: ask the reasoning service to review the outcome

``orchestrate_workflow`` never raises; a top-level failure returns the fixed
fallback actions instead.
"""

import asyncio
import copy
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from agenthub.enhanced_logging import track_performance
from agenthub.exceptions_unified import (
    AgentHubException,
    ExecutionFailureError,
    FollowUpParseError,
    PlanParseError,
    error_type_of,
)
from agenthub.interfaces import EventType, IEventBus, IReasoningService, WorkRequest
from agenthub.orchestration.dependency_resolver import DependencyResolver
from agenthub.orchestration.models import (
    FALLBACK_ACTIONS,
    ExecutionMode,
    FollowUp,
    StepOutcome,
    WorkflowExecution,
    WorkflowRecord,
    WorkflowResult,
    WorkflowStatus,
    WorkflowStep,
)
from agenthub.orchestration.plan_parser import (
    default_follow_up,
    fallback_workflow,
    parse_follow_up,
    parse_plan,
)
from agenthub.reasoning.prompts import PromptTemplates
from agenthub.registry.worker_registry import WorkerRegistry
from agenthub.routing.request_router import RequestRouter

logger = logging.getLogger(__name__)

CANCELLED_UPSTREAM = "cancelled: upstream step failed"


@dataclass
class TargetPerformance:
    """Per-target step statistics (``success_rate`` is a 0..1 fraction)."""
    total_tasks: int = 0
    successful_tasks: int = 0
    failed_tasks: int = 0

    @property
    def success_rate(self) -> float:
        return self.successful_tasks / self.total_tasks if self.total_tasks else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_tasks": self.total_tasks,
            "successful_tasks": self.successful_tasks,
            "failed_tasks": self.failed_tasks,
            "success_rate": self.success_rate,
        }


@dataclass
class OrchestratorMetrics:
    workflows_completed: int = 0
    workflows_failed: int = 0
    fully_successful: int = 0
    steps_executed: int = 0
    average_processing_time: float = 0.0

    def record_workflow(self, fully_successful: bool, duration_ms: float) -> None:
        self.workflows_completed += 1
        if fully_successful:
            self.fully_successful += 1
        n = self.workflows_completed
        self.average_processing_time = (
            self.average_processing_time * (n - 1) + duration_ms
        ) / n


class WorkflowOrchestrator:
    """Coordinates multi-worker workflows on top of the router.

    Args:
        router: Dispatches every step
        reasoning: Plans workflows and reviews their results
        registry: Lists available workers in the planning prompt
        execution_mode: Default mode for ``execute_workflow``
        max_concurrency: Parallel steps per workflow in DEPENDENCY_GRAPH mode
        default_target: Target of the fallback workflow
        default_action: Action of the fallback workflow
        step_timeout_ms: Per-step router timeout; router default when None
    """

    def __init__(
        self,
        router: RequestRouter,
        reasoning: IReasoningService,
        registry: Optional[WorkerRegistry] = None,
        event_bus: Optional[IEventBus] = None,
        execution_mode: ExecutionMode = ExecutionMode.DEPENDENCY_GRAPH,
        max_concurrency: int = 3,
        default_target: str = "natural_language_processing",
        default_action: str = "handle_query",
        step_timeout_ms: Optional[float] = None,
    ) -> None:
        self.router = router
        self.reasoning = reasoning
        self.registry = registry if registry is not None else router.registry
        self.event_bus = event_bus
        self.execution_mode = ExecutionMode(execution_mode)
        self.max_concurrency = max(1, max_concurrency)
        self.default_target = default_target
        self.default_action = default_action
        self.step_timeout_ms = step_timeout_ms
        self.metrics = OrchestratorMetrics()
        self.target_performance: Dict[str, TargetPerformance] = {}
        self.active_workflows = 0

    # ========================================================================
    # ORCHESTRATION
    # ========================================================================

    @track_performance
    async def orchestrate_workflow(self, request: Dict[str, Any]) -> WorkflowResult:
        """Plan, execute and review one business request. Never raises."""
        request_type = request.get("type", "unknown")
        logger.info(f"Orchestrating workflow for {request_type}")
        start = time.monotonic()
        self.active_workflows += 1
        try:
            plan = await self.plan_workflow(request)
            logger.info(f"Planned workflow {plan.workflow_id} with {len(plan.steps)} steps")
            execution = await self.execute_workflow(plan, request)
            follow_up = await self.coordinate_follow_up(execution, request)
        except Exception as e:
            self.metrics.workflows_failed += 1
            logger.error(f"Workflow orchestration failed: {e}", exc_info=True)
            return WorkflowResult(
                success=False,
                request_type=request_type,
                error=str(e),
                error_type=error_type_of(e),
                fallback_actions=copy.deepcopy(FALLBACK_ACTIONS),
            )
        finally:
            self.active_workflows -= 1

        self.metrics.record_workflow(execution.success, (time.monotonic() - start) * 1000)
        return WorkflowResult(
            success=True,
            request_type=request_type,
            workflow_id=plan.workflow_id,
            execution=execution,
            follow_up=follow_up,
            next_actions=list(follow_up.recommended_actions),
            metrics=self.get_workflow_metrics(),
        )

    async def plan_workflow(self, request: Dict[str, Any]) -> WorkflowRecord:
        """Ask the reasoning service for a plan; fall back to a one-step workflow."""
        request_type = request.get("type", "unknown")
        messages = PromptTemplates.planning_messages(request, self._available_workers())
        try:
            reply = await self.reasoning.chat(
                messages,
                {"agent_type": "master_agent", "temperature": 0.3, "max_tokens": 800},
            )
            if not reply.success:
                raise PlanParseError(f"Reasoning service failed: {reply.error}")
            return parse_plan(reply.content, request_type)
        except PlanParseError as e:
            logger.warning(f"Using fallback workflow for {request_type}: {e}")
        except AgentHubException as e:
            logger.warning(f"Planning unavailable for {request_type}, using fallback: {e}")
        return fallback_workflow(
            request.get("data"), request_type, self.default_target, self.default_action
        )

    async def execute_workflow(
        self,
        plan: WorkflowRecord,
        original_request: Dict[str, Any],
        mode: Optional[ExecutionMode] = None,
    ) -> WorkflowExecution:
        """Run every step of *plan* through the router.

        Raises:
            PlanInvalidError: DEPENDENCY_GRAPH mode and the plan has unknown
                dependencies or a cycle (nothing is dispatched)
        """
        mode = ExecutionMode(mode or self.execution_mode)
        start = time.monotonic()

        if mode == ExecutionMode.DEPENDENCY_GRAPH:
            resolver = DependencyResolver.from_steps(
                (s.step_id, s.depends_on) for s in plan.steps
            )

        plan.status = WorkflowStatus.EXECUTING
        await self._publish(
            EventType.WORKFLOW_STARTED,
            {"workflow_id": plan.workflow_id, "steps": len(plan.steps), "mode": mode.value},
        )

        if mode == ExecutionMode.DEPENDENCY_GRAPH:
            completed, failed, skipped = await self._execute_graph(plan, resolver, original_request)
        else:
            completed, failed, skipped = await self._execute_single_pass(plan, original_request)

        plan.status = WorkflowStatus.COMPLETED
        plan.completed_at = datetime.now(timezone.utc)
        execution = WorkflowExecution(
            workflow_id=plan.workflow_id,
            mode=mode,
            results=dict(plan.results),
            completed_steps=completed,
            failed_steps=failed,
            skipped_steps=skipped,
            total_steps=len(plan.steps),
            duration_ms=(time.monotonic() - start) * 1000,
        )
        logger.info(
            f"Workflow {plan.workflow_id} finished: {len(completed)}/{len(plan.steps)} steps completed"
        )
        await self._publish(
            EventType.WORKFLOW_COMPLETED,
            {
                "workflow_id": plan.workflow_id,
                "success": execution.success,
                "completed_steps": completed,
                "failed_steps": failed,
                "skipped_steps": skipped,
            },
        )
        return execution

    async def coordinate_follow_up(
        self,
        execution: WorkflowExecution,
        original_request: Dict[str, Any],
    ) -> FollowUp:
        """Ask the reasoning service to review *execution*; conservative default on failure."""
        messages = PromptTemplates.follow_up_messages(execution.to_dict(), original_request)
        try:
            reply = await self.reasoning.chat(
                messages,
                {"agent_type": "master_agent", "temperature": 0.4, "max_tokens": 600},
            )
            if not reply.success:
                raise FollowUpParseError(f"Reasoning service failed: {reply.error}")
            return parse_follow_up(reply.content)
        except FollowUpParseError as e:
            logger.warning(f"Follow-up analysis unavailable for {execution.workflow_id}: {e}")
        except AgentHubException as e:
            logger.warning(f"Follow-up reasoning failed for {execution.workflow_id}: {e}")
        return default_follow_up(execution.success)

    # ========================================================================
    # BUSINESS ENTRY POINTS
    # ========================================================================

    async def handle_customer_inquiry(self, inquiry: Dict[str, Any]) -> WorkflowResult:
        return await self.orchestrate_workflow(
            self._business_request("customer_inquiry", inquiry, "customer_direct")
        )

    async def process_lead(self, lead_data: Dict[str, Any]) -> WorkflowResult:
        return await self.orchestrate_workflow(
            self._business_request("lead_processing", lead_data, "lead_generation")
        )

    async def manage_deal_opportunity(self, deal_data: Dict[str, Any]) -> WorkflowResult:
        return await self.orchestrate_workflow(
            self._business_request("deal_management", deal_data, "opportunity_creation")
        )

    async def process_quotation_request(self, quotation_data: Dict[str, Any]) -> WorkflowResult:
        return await self.orchestrate_workflow(
            self._business_request("quotation_processing", quotation_data, "pricing_request")
        )

    async def perform_business_analysis(self, analysis_request: Dict[str, Any]) -> WorkflowResult:
        return await self.orchestrate_workflow(
            self._business_request("business_analysis", analysis_request, "strategic_planning")
        )

    # ========================================================================
    # PLANNING HELPERS
    # ========================================================================

    def estimate_duration_ms(self, plan: WorkflowRecord) -> float:
        """Critical-path duration of *plan* from the steps' estimates.

        Raises:
            PlanInvalidError: unknown dependencies or a cycle
        """
        resolver = DependencyResolver.from_steps((s.step_id, s.depends_on) for s in plan.steps)
        steps = {s.step_id: s for s in plan.steps}
        finish: Dict[str, float] = {}
        for wave in resolver.get_execution_waves():
            for step_id in wave:
                step = steps[step_id]
                ready_at = max((finish[d] for d in step.depends_on), default=0.0)
                finish[step_id] = ready_at + step.estimated_duration_ms
        return max(finish.values(), default=0.0)

    # ========================================================================
    # METRICS & HEALTH
    # ========================================================================

    def get_workflow_metrics(self) -> Dict[str, Any]:
        m = self.metrics
        total = m.workflows_completed + m.workflows_failed
        return {
            "workflows_completed": m.workflows_completed,
            "workflows_failed": m.workflows_failed,
            "steps_executed": m.steps_executed,
            "average_processing_time": m.average_processing_time,
            "success_rate": m.fully_successful / total if total else 0.0,
            "active_workflows": self.active_workflows,
            "agent_performance": {
                target: perf.to_dict() for target, perf in self.target_performance.items()
            },
        }

    async def optimize_system_performance(self) -> Dict[str, Any]:
        """Ask the reasoning service for tuning advice based on current metrics.

        The metrics snapshot is returned with the analysis; ``analysis`` is
        None when the reasoning service is unavailable.
        """
        logger.info("Analyzing system performance")
        performance_data = {
            "agent_metrics": {
                target: perf.to_dict() for target, perf in self.target_performance.items()
            },
            "workflow_metrics": self.get_workflow_metrics(),
            "hub_metrics": self.router.get_performance_metrics(),
        }
        messages = PromptTemplates.optimization_messages(performance_data)
        result: Dict[str, Any] = {
            "success": False,
            "analysis": None,
            "performance_data": performance_data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            reply = await self.reasoning.chat(
                messages,
                {"agent_type": "master_agent", "temperature": 0.3, "max_tokens": 600},
            )
        except AgentHubException as e:
            logger.warning(f"Performance analysis unavailable: {e}")
            result["error"] = str(e)
            return result

        if not reply.success:
            logger.warning(f"Performance analysis unavailable: {reply.error}")
            result["error"] = reply.error
            return result
        result["success"] = True
        result["analysis"] = reply.content
        return result

    async def health_check(self) -> Dict[str, Any]:
        return {
            "healthy": True,
            "orchestration_capable": True,
            "execution_mode": self.execution_mode.value,
            "router_connected": self.router is not None,
            "workflow_metrics": self.get_workflow_metrics(),
            "hub_metrics": self.router.get_performance_metrics(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    # ========================================================================
    # EXECUTION INTERNALS
    # ========================================================================

    async def _execute_single_pass(
        self,
        plan: WorkflowRecord,
        original_request: Dict[str, Any],
    ):
        completed: List[str] = []
        failed: List[str] = []
        skipped: List[str] = []
        done = set()

        for step in plan.steps:
            if not all(dep in done for dep in step.depends_on):
                logger.info(f"Skipping step {step.step_id}: dependencies not completed")
                skipped.append(step.step_id)
                continue
            outcome = await self._run_step(plan, step, original_request)
            plan.results[step.step_id] = outcome
            if outcome.success:
                done.add(step.step_id)
                completed.append(step.step_id)
            else:
                failed.append(step.step_id)
        return completed, failed, skipped

    async def _execute_graph(
        self,
        plan: WorkflowRecord,
        resolver: DependencyResolver,
        original_request: Dict[str, Any],
    ):
        steps = {s.step_id: s for s in plan.steps}
        completed: List[str] = []
        failed: List[str] = []
        skipped: List[str] = []
        running: Dict["asyncio.Future[StepOutcome]", str] = {}

        try:
            while True:
                # A routed worker is busy until its step returns, so steps
                # sharing a target run one at a time.
                busy_targets = {steps[s].target for s in running.values()}
                for step_id in resolver.get_ready_steps():
                    if len(running) >= self.max_concurrency:
                        break
                    target = steps[step_id].target
                    if target in busy_targets:
                        continue
                    busy_targets.add(target)
                    resolver.mark_running(step_id)
                    task = asyncio.ensure_future(
                        self._run_step(plan, steps[step_id], original_request)
                    )
                    running[task] = step_id
                if not running:
                    break

                finished, _ = await asyncio.wait(
                    set(running), return_when=asyncio.FIRST_COMPLETED
                )
                for task in finished:
                    step_id = running.pop(task)
                    outcome = task.result()
                    plan.results[step_id] = outcome
                    if outcome.success:
                        completed.append(step_id)
                        resolver.mark_completed(step_id)
                        continue
                    failed.append(step_id)
                    for cancelled_id in resolver.mark_failed(step_id):
                        cancelled = steps[cancelled_id]
                        logger.info(f"Cancelling step {cancelled_id}: upstream {step_id} failed")
                        plan.results[cancelled_id] = StepOutcome(
                            step_id=cancelled_id,
                            success=False,
                            worker=cancelled.target,
                            action=cancelled.action,
                            error=CANCELLED_UPSTREAM,
                            error_type="Cancelled",
                        )
                        skipped.append(cancelled_id)
        finally:
            for task in running:
                task.cancel()

        return completed, failed, skipped

    async def _run_step(
        self,
        plan: WorkflowRecord,
        step: WorkflowStep,
        original_request: Dict[str, Any],
    ) -> StepOutcome:
        """Route one step; router errors become a failed outcome."""
        payload = {
            **step.payload,
            "workflow_id": plan.workflow_id,
            "previous_results": {k: v.to_dict() for k, v in plan.results.items()},
            "original_request": original_request,
        }
        request = WorkRequest(
            action=step.action,
            payload=payload,
            context={"workflow_id": plan.workflow_id, "step_id": step.step_id},
        )
        logger.info(f"Executing step {step.step_id} with {step.target}")
        self.metrics.steps_executed += 1

        try:
            envelope = await self.router.route(step.target, request, self.step_timeout_ms)
        except Exception as e:
            error = e
            if not isinstance(error, AgentHubException):
                logger.exception(f"Step {step.step_id} raised unexpectedly")
                error = ExecutionFailureError(str(e))
            logger.warning(f"Step {step.step_id} failed: {error}")
            self._track_target(step.target, False)
            return StepOutcome(
                step_id=step.step_id,
                success=False,
                worker=step.target,
                action=step.action,
                error=str(error),
                error_type=error.error_type,
            )

        self._track_target(step.target, True)
        return StepOutcome(
            step_id=step.step_id,
            success=True,
            worker=step.target,
            action=step.action,
            data=envelope.data,
            response_time_ms=envelope.response_time_ms,
        )

    # ========================================================================
    # UTILITIES
    # ========================================================================

    def _track_target(self, target: str, success: bool) -> None:
        perf = self.target_performance.setdefault(target, TargetPerformance())
        perf.total_tasks += 1
        if success:
            perf.successful_tasks += 1
        else:
            perf.failed_tasks += 1

    def _available_workers(self) -> List[Dict[str, Any]]:
        if self.registry is None:
            return []
        return [
            {"worker_id": r.worker_id, "capabilities": sorted(r.capabilities)}
            for r in self.registry.all_workers()
        ]

    @staticmethod
    def _business_request(request_type: str, data: Dict[str, Any], source: str) -> Dict[str, Any]:
        return {
            "type": request_type,
            "data": data,
            "context": {
                "source": source,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        }

    async def _publish(self, event_type: EventType, data: Dict[str, Any]) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish(event_type, data, source="workflow_orchestrator")


def create_orchestrator(
    router: RequestRouter,
    reasoning: IReasoningService,
    settings: Any = None,
    event_bus: Optional[IEventBus] = None,
) -> WorkflowOrchestrator:
    """Build an orchestrator configured from *settings* (defaults when None)."""
    if settings is None:
        return WorkflowOrchestrator(router, reasoning, event_bus=event_bus)
    return WorkflowOrchestrator(
        router,
        reasoning,
        event_bus=event_bus,
        execution_mode=ExecutionMode(settings.workflow_execution_mode),
        max_concurrency=settings.workflow_max_concurrency,
        default_target=settings.default_capability,
        default_action=settings.default_action,
        step_timeout_ms=settings.route_timeout_ms,
    )
