from agenthub.orchestration.dependency_resolver import DependencyResolver, StepState
from agenthub.orchestration.models import (
    ExecutionMode,
    FollowUp,
    StepOutcome,
    WorkflowExecution,
    WorkflowRecord,
    WorkflowResult,
    WorkflowStatus,
    WorkflowStep,
)
from agenthub.orchestration.workflow_orchestrator import (
    WorkflowOrchestrator,
    create_orchestrator,
)

__all__ = [
    "DependencyResolver",
    "StepState",
    "ExecutionMode",
    "FollowUp",
    "StepOutcome",
    "WorkflowExecution",
    "WorkflowRecord",
    "WorkflowResult",
    "WorkflowStatus",
    "WorkflowStep",
    "WorkflowOrchestrator",
    "create_orchestrator",
]
