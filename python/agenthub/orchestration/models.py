"""Workflow data model shared by the planner, the executor and callers."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def new_workflow_id() -> str:
    return f"workflow_{uuid.uuid4().hex[:12]}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# ENUMS
# ============================================================================


class WorkflowStatus(str, Enum):
    PLANNED = "planned"
    EXECUTING = "executing"
    COMPLETED = "completed"


class ExecutionMode(str, Enum):
    """How ``execute_workflow`` walks the steps."""
    SINGLE_PASS = "single_pass"            # plan order, once; unmet deps are skipped
    DEPENDENCY_GRAPH = "dependency_graph"  # DAG ready-set with bounded concurrency


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ============================================================================
# DATA MODELS
# ============================================================================


@dataclass
class WorkflowStep:
    """One delegated unit of a workflow.

    ``target`` is a worker id or a capability; the router resolves either.
    """
    step_id: str
    target: str
    action: str
    payload: Dict[str, Any] = field(default_factory=dict)
    depends_on: List[str] = field(default_factory=list)
    estimated_duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "target": self.target,
            "action": self.action,
            "payload": self.payload,
            "depends_on": list(self.depends_on),
            "estimated_duration_ms": self.estimated_duration_ms,
        }


@dataclass
class StepOutcome:
    """Recorded result of one step (executed, failed or cancelled)."""
    step_id: str
    success: bool
    worker: str
    action: str
    data: Any = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    response_time_ms: float = 0.0
    executed_at: datetime = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "success": self.success,
            "worker": self.worker,
            "action": self.action,
            "executed_at": self.executed_at.isoformat(),
            "response_time_ms": self.response_time_ms,
        }
        if self.success:
            result["data"] = self.data
        else:
            result["error"] = self.error
            result["error_type"] = self.error_type
        return result


@dataclass
class WorkflowRecord:
    """A planned workflow and, once executed, its per-step outcomes."""
    workflow_id: str
    steps: List[WorkflowStep]
    priority: str = Priority.MEDIUM.value
    expected_outcome: str = ""
    request_type: str = ""
    status: WorkflowStatus = WorkflowStatus.PLANNED
    results: Dict[str, StepOutcome] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None
    is_fallback: bool = False

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        for step in self.steps:
            if step.step_id == step_id:
                return step
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "priority": self.priority,
            "expected_outcome": self.expected_outcome,
            "request_type": self.request_type,
            "status": self.status.value,
            "steps": [s.to_dict() for s in self.steps],
            "results": {k: v.to_dict() for k, v in self.results.items()},
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "is_fallback": self.is_fallback,
        }


@dataclass
class WorkflowExecution:
    """Outcome of ``execute_workflow``."""
    workflow_id: str
    mode: ExecutionMode
    results: Dict[str, StepOutcome]
    completed_steps: List[str]
    failed_steps: List[str]
    skipped_steps: List[str]
    total_steps: int
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return len(self.completed_steps) == self.total_steps

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "mode": self.mode.value,
            "success": self.success,
            "results": {k: v.to_dict() for k, v in self.results.items()},
            "completed_steps": list(self.completed_steps),
            "failed_steps": list(self.failed_steps),
            "skipped_steps": list(self.skipped_steps),
            "total_steps": self.total_steps,
            "duration_ms": self.duration_ms,
        }


@dataclass
class FollowUp:
    """Review of a finished workflow. ``success_rate`` is a 0..1 fraction."""
    summary: str
    success_rate: float
    recommended_actions: List[Dict[str, Any]] = field(default_factory=list)
    risks: List[str] = field(default_factory=list)
    opportunities: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary,
            "success_rate": self.success_rate,
            "recommended_actions": list(self.recommended_actions),
            "risks": list(self.risks),
            "opportunities": list(self.opportunities),
        }


@dataclass
class WorkflowResult:
    """Top-level answer of ``orchestrate_workflow``."""
    success: bool
    request_type: str
    workflow_id: Optional[str] = None
    execution: Optional[WorkflowExecution] = None
    follow_up: Optional[FollowUp] = None
    next_actions: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
    error_type: Optional[str] = None
    fallback_actions: List[Dict[str, Any]] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {
                "success": False,
                "request_type": self.request_type,
                "error": self.error,
                "error_type": self.error_type,
                "fallback_actions": list(self.fallback_actions),
            }
        return {
            "success": True,
            "request_type": self.request_type,
            "workflow_id": self.workflow_id,
            "execution": self.execution.to_dict() if self.execution else None,
            "results": self.follow_up.to_dict() if self.follow_up else None,
            "next_actions": list(self.next_actions),
            "metrics": self.metrics,
        }


# Returned when orchestration fails before producing any results.
FALLBACK_ACTIONS: List[Dict[str, str]] = [
    {
        "action": "manual_review",
        "description": "Route to human agent for manual handling",
        "priority": Priority.HIGH.value,
    },
    {
        "action": "system_check",
        "description": "Perform system health check",
        "priority": Priority.MEDIUM.value,
    },
]
