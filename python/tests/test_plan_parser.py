"""Tests for agenthub.orchestration.plan_parser."""

import json

import pytest

from agenthub.exceptions_unified import FollowUpParseError, PlanParseError
from agenthub.orchestration.plan_parser import (
    default_follow_up,
    extract_json,
    fallback_workflow,
    parse_follow_up,
    parse_plan,
)


def _step(step_id, **extra):
    data = {"stepId": step_id, "agent": "lead_management", "action": "create_lead"}
    data.update(extra)
    return data


class TestExtractJson:

    def test_plain(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_code_fence(self):
        assert extract_json('```json\n{"a": 1}\n```') == {"a": 1}
        assert extract_json('```\n[1, 2]\n```') == [1, 2]

    @pytest.mark.parametrize("content", [None, "", "   ", "not json"])
    def test_invalid(self, content):
        with pytest.raises(ValueError):
            extract_json(content)


class TestParsePlan:

    def test_aliases_and_conversion(self):
        content = json.dumps({
            "id": "wf-9",
            "priority": "High",
            "steps": [
                _step("s1", data={"name": "Acme"}, estimatedTime=2.5),
                _step("s2", dependencies=["s1"]),
            ],
            "expectedOutcome": "Lead created",
        })
        plan = parse_plan(content, "lead_processing")

        assert plan.workflow_id == "wf-9"
        assert plan.priority == "high"
        assert plan.expected_outcome == "Lead created"
        assert plan.request_type == "lead_processing"
        assert plan.is_fallback is False
        first, second = plan.steps
        assert first.target == "lead_management"
        assert first.payload == {"name": "Acme"}
        assert first.estimated_duration_ms == 2500
        assert second.depends_on == ["s1"]
        assert second.estimated_duration_ms == 0

    def test_generated_id_and_default_priority(self):
        plan = parse_plan(json.dumps({"priority": "urgent", "steps": [_step("s1")]}))
        assert plan.workflow_id.startswith("workflow_")
        assert plan.priority == "medium"

    def test_null_payload_and_dependencies(self):
        plan = parse_plan(json.dumps({"steps": [_step("s1", data=None, dependencies=None)]}))
        assert plan.steps[0].payload == {}
        assert plan.steps[0].depends_on == []

    def test_snake_case_fields_accepted(self):
        content = json.dumps({
            "steps": [{"step_id": "s1", "target": "deal_agent", "action": "create_deal", "depends_on": []}]
        })
        assert parse_plan(content).steps[0].target == "deal_agent"

    @pytest.mark.parametrize(
        "content",
        [
            "I'd suggest calling the customer.",
            json.dumps({"steps": []}),
            json.dumps({"priority": "high"}),
            json.dumps({"steps": [{"stepId": "s1", "action": "run"}]}),
            json.dumps({"steps": [_step("s1", estimatedTime=-1)]}),
            json.dumps([1, 2, 3]),
        ],
    )
    def test_malformed(self, content):
        with pytest.raises(PlanParseError) as exc_info:
            parse_plan(content)
        assert exc_info.value.error_type == "PlanParseFailure"


class TestFollowUp:

    def test_parse(self):
        follow_up = parse_follow_up(json.dumps({
            "summary": "Lead captured",
            "successRate": 0.75,
            "recommendedActions": [{"action": "call", "priority": "high"}],
            "risks": ["budget"],
        }))
        assert follow_up.summary == "Lead captured"
        assert follow_up.success_rate == 0.75
        assert follow_up.recommended_actions == [{"action": "call", "priority": "high"}]
        assert follow_up.risks == ["budget"]
        assert follow_up.opportunities == []

    @pytest.mark.parametrize(
        "content",
        [
            "",
            "looks fine to me",
            json.dumps({"successRate": 0.5}),
            json.dumps({"summary": "x", "successRate": 1.5}),
        ],
    )
    def test_malformed(self, content):
        with pytest.raises(FollowUpParseError):
            parse_follow_up(content)

    def test_default(self):
        assert default_follow_up(True).success_rate == 1.0
        partial = default_follow_up(False)
        assert partial.success_rate == 0.5
        assert partial.summary == "Workflow completed with mixed results"
        assert partial.risks == ["Unable to analyze results properly"]
        assert partial.recommended_actions == []


class TestFallbackWorkflow:

    def test_single_step(self):
        plan = fallback_workflow({"query": "hi"}, "customer_inquiry", "natural_language_processing", "handle_query")

        assert plan.is_fallback is True
        assert plan.request_type == "customer_inquiry"
        assert len(plan.steps) == 1
        step = plan.steps[0]
        assert step.step_id == "fallback_step"
        assert step.target == "natural_language_processing"
        assert step.action == "handle_query"
        assert step.payload == {"query": "hi"}
        assert step.depends_on == []
        assert step.estimated_duration_ms == 30000

    def test_none_payload(self):
        assert fallback_workflow(None, "x", "t", "a").steps[0].payload == {}
