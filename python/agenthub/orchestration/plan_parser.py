"""Defensive parsing of reasoning-service replies into workflow objects.

Replies are untrusted text. JSON may be wrapped in a markdown code fence;
anything that is not a well-formed plan or follow-up raises a typed parse
error that the orchestrator recovers from.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from agenthub.exceptions_unified import FollowUpParseError, PlanParseError
from agenthub.orchestration.models import (
    FollowUp,
    Priority,
    WorkflowRecord,
    WorkflowStep,
    new_workflow_id,
)

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```[a-zA-Z]*\s*(.*?)\s*```$", re.DOTALL)


# ---------------------------------------------------------------------------
# Reply schemas
# ---------------------------------------------------------------------------


class PlanStepModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    step_id: str = Field(alias="stepId", min_length=1)
    target: str = Field(alias="agent", min_length=1)
    action: str = Field(min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict, alias="data")
    depends_on: List[str] = Field(default_factory=list, alias="dependencies")
    # Seconds, as the planner is asked to estimate
    estimated_time: float = Field(default=0.0, alias="estimatedTime", ge=0)

    @field_validator("payload", mode="before")
    @classmethod
    def none_payload(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("depends_on", mode="before")
    @classmethod
    def none_dependencies(cls, v: Any) -> Any:
        return [] if v is None else v


class PlanModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    priority: str = Priority.MEDIUM.value
    steps: List[PlanStepModel] = Field(min_length=1)
    expected_outcome: str = Field(default="", alias="expectedOutcome")

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, v: Any) -> str:
        value = str(v or Priority.MEDIUM.value).lower()
        return value if value in {p.value for p in Priority} else Priority.MEDIUM.value


class FollowUpModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    summary: str
    success_rate: float = Field(alias="successRate", ge=0.0, le=1.0)
    recommended_actions: List[Dict[str, Any]] = Field(
        default_factory=list, alias="recommendedActions"
    )
    risks: List[str] = Field(default_factory=list)
    opportunities: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def extract_json(content: Optional[str]) -> Any:
    """Load JSON from *content*, tolerating a surrounding code fence.

    Raises:
        ValueError: content is empty or not JSON
    """
    if not content or not content.strip():
        raise ValueError("empty reply")
    text = content.strip()
    match = _FENCE.match(text)
    if match:
        text = match.group(1)
    return json.loads(text)


def parse_plan(content: Optional[str], request_type: str = "") -> WorkflowRecord:
    """Turn a planner reply into a WorkflowRecord.

    Raises:
        PlanParseError: reply is not JSON or does not match the plan schema
    """
    try:
        raw = extract_json(content)
        plan = PlanModel.model_validate(raw)
    except (ValueError, ValidationError) as e:
        raise PlanParseError(
            f"Failed to parse workflow plan: {e}",
            details={"content_preview": (content or "")[:200]},
        ) from e

    steps = [
        WorkflowStep(
            step_id=s.step_id,
            target=s.target,
            action=s.action,
            payload=dict(s.payload),
            depends_on=list(s.depends_on),
            estimated_duration_ms=s.estimated_time * 1000,
        )
        for s in plan.steps
    ]
    return WorkflowRecord(
        workflow_id=plan.id or new_workflow_id(),
        steps=steps,
        priority=plan.priority,
        expected_outcome=plan.expected_outcome,
        request_type=request_type,
    )


def parse_follow_up(content: Optional[str]) -> FollowUp:
    """Turn a reviewer reply into a FollowUp.

    Raises:
        FollowUpParseError: reply is not JSON or does not match the schema
    """
    try:
        raw = extract_json(content)
        model = FollowUpModel.model_validate(raw)
    except (ValueError, ValidationError) as e:
        raise FollowUpParseError(
            f"Failed to parse follow-up analysis: {e}",
            details={"content_preview": (content or "")[:200]},
        ) from e
    return FollowUp(
        summary=model.summary,
        success_rate=model.success_rate,
        recommended_actions=list(model.recommended_actions),
        risks=list(model.risks),
        opportunities=list(model.opportunities),
    )


def default_follow_up(workflow_success: bool) -> FollowUp:
    """Conservative review used when the reviewer's reply is unusable."""
    return FollowUp(
        summary="Workflow completed with mixed results",
        success_rate=1.0 if workflow_success else 0.5,
        recommended_actions=[],
        risks=["Unable to analyze results properly"],
        opportunities=[],
    )


def fallback_workflow(
    payload: Optional[Dict[str, Any]],
    request_type: str,
    target: str,
    action: str,
) -> WorkflowRecord:
    """One-step workflow sending the request to the general-purpose worker."""
    return WorkflowRecord(
        workflow_id=new_workflow_id(),
        steps=[
            WorkflowStep(
                step_id="fallback_step",
                target=target,
                action=action,
                payload=dict(payload or {}),
                depends_on=[],
                estimated_duration_ms=30000.0,
            )
        ],
        priority=Priority.MEDIUM.value,
        expected_outcome="Fallback response to customer",
        request_type=request_type,
        is_fallback=True,
    )
