"""Tests for agenthub.orchestration.dependency_resolver."""

import pytest

from agenthub.exceptions_unified import PlanInvalidError
from agenthub.orchestration.dependency_resolver import DependencyResolver, StepState


def _diamond():
    # A -> B, A -> C, B+C -> D
    return DependencyResolver.from_steps(
        [("A", []), ("B", ["A"]), ("C", ["A"]), ("D", ["B", "C"])]
    )


# ========================================================================
# CONSTRUCTION & VALIDATION
# ========================================================================


class TestValidation:

    def test_initial_states(self):
        resolver = _diamond()
        assert resolver.get_ready_steps() == ["A"]
        assert resolver.get_state("D") == StepState.PENDING
        assert resolver.get_blocked_steps() == {"B": {"A"}, "C": {"A"}, "D": {"B", "C"}}

    def test_forward_reference_allowed(self):
        resolver = DependencyResolver.from_steps([("B", ["A"]), ("A", [])])
        assert resolver.get_ready_steps() == ["A"]

    def test_unknown_dependency(self):
        with pytest.raises(PlanInvalidError) as exc_info:
            DependencyResolver.from_steps([("A", []), ("B", ["X", "A"])])
        assert exc_info.value.unknown_dependencies == {"B": ["X"]}
        assert exc_info.value.error_type == "PlanInvalid"

    def test_cycle(self):
        with pytest.raises(PlanInvalidError, match="cycle") as exc_info:
            DependencyResolver.from_steps([("A", ["B"]), ("B", ["A"]), ("C", [])])
        cycle = exc_info.value.cycle
        assert cycle[0] == cycle[-1]
        assert set(cycle) == {"A", "B"}

    def test_self_dependency(self):
        with pytest.raises(PlanInvalidError) as exc_info:
            DependencyResolver.from_steps([("A", ["A"])])
        assert exc_info.value.cycle == ["A", "A"]

    def test_duplicate_step(self):
        resolver = DependencyResolver()
        resolver.add_step("A")
        with pytest.raises(PlanInvalidError, match="Duplicate"):
            resolver.add_step("A")

    def test_no_steps_after_validation(self):
        resolver = _diamond()
        with pytest.raises(PlanInvalidError):
            resolver.add_step("E")

    def test_find_cycle_none_for_dag(self):
        resolver = DependencyResolver()
        resolver.add_step("A")
        resolver.add_step("B", ["A"])
        assert resolver.find_cycle() is None
        assert resolver.unknown_dependencies() == {}


# ========================================================================
# STATE TRANSITIONS
# ========================================================================


class TestTransitions:

    def test_completion_unblocks_dependents(self):
        resolver = _diamond()
        resolver.mark_running("A")
        assert resolver.mark_completed("A") == ["B", "C"]

        resolver.mark_running("B")
        assert resolver.mark_completed("B") == []
        assert resolver.get_blocked_steps() == {"D": {"C"}}

        resolver.mark_running("C")
        assert resolver.mark_completed("C") == ["D"]

        resolver.mark_running("D")
        resolver.mark_completed("D")
        assert resolver.is_finished()

    def test_failure_cancels_transitive_dependents(self):
        resolver = DependencyResolver.from_steps(
            [("A", []), ("B", ["A"]), ("C", ["B"]), ("D", [])]
        )
        resolver.mark_running("A")
        assert resolver.mark_failed("A") == ["B", "C"]
        assert resolver.get_state("C") == StepState.CANCELLED
        assert resolver.get_ready_steps() == ["D"]
        assert not resolver.is_finished()

        resolver.mark_running("D")
        resolver.mark_completed("D")
        assert resolver.is_finished()
        assert resolver.stats["cancelled"] == 2
        assert resolver.stats["failed"] == 1
        assert resolver.stats["completed"] == 1

    def test_failure_does_not_touch_finished_steps(self):
        resolver = _diamond()
        resolver.mark_running("A")
        resolver.mark_completed("A")
        resolver.mark_running("B")
        resolver.mark_completed("B")
        resolver.mark_running("C")
        assert resolver.mark_failed("C") == ["D"]
        assert resolver.get_state("B") == StepState.COMPLETED

    def test_running_a_pending_step_raises(self):
        resolver = _diamond()
        with pytest.raises(ValueError, match="expected ready"):
            resolver.mark_running("D")

    def test_completing_a_ready_step_raises(self):
        resolver = _diamond()
        with pytest.raises(ValueError):
            resolver.mark_completed("A")


# ========================================================================
# QUERIES
# ========================================================================


class TestQueries:

    def test_execution_waves(self):
        assert _diamond().get_execution_waves() == [["A"], ["B", "C"], ["D"]]

    def test_waves_follow_plan_order(self):
        resolver = DependencyResolver.from_steps([("Z", []), ("Y", ["Z"]), ("X", [])])
        assert resolver.get_execution_waves() == [["Z", "X"], ["Y"]]

    def test_downstream(self):
        resolver = _diamond()
        assert resolver.get_downstream("A") == {"B", "C", "D"}
        assert resolver.get_downstream("D") == set()
