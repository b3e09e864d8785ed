"""DAG scheduler state for the steps of one workflow.

Pure Python, no orchestrator imports.

Provides:
- Graph construction from a complete plan (forward references allowed)
- Validation: unknown dependencies and cycles raise ``PlanInvalidError``
- Ready-set tracking as steps complete
- Failure propagation (BFS cancel of downstream steps)
- Execution waves (Kahn's algorithm) for duration estimates
"""

from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple

from agenthub.exceptions_unified import PlanInvalidError

logger = logging.getLogger(__name__)


# ── States ───────────────────────────────────────────────────────────


class StepState(str, Enum):
    """Lifecycle states tracked per step."""

    PENDING = "pending"  # waiting on unfinished deps
    READY = "ready"  # all deps completed, eligible for dispatch
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"  # an upstream step failed


_TERMINAL = (StepState.COMPLETED, StepState.FAILED, StepState.CANCELLED)


# ── Resolver ─────────────────────────────────────────────────────────


class DependencyResolver:
    """Dependency graph over workflow steps.

    Steps are added first and validated once; only then do states move.
    Not thread-safe; meant for a single asyncio event loop.
    """

    def __init__(self) -> None:
        # step_id → step_ids it depends ON (as declared)
        self._declared: Dict[str, Set[str]] = {}
        # step_id → unfinished deps (shrinks as deps complete)
        self._waiting_on: Dict[str, Set[str]] = {}
        # step_id → step_ids that depend on IT
        self._dependents: Dict[str, Set[str]] = {}
        self._states: Dict[str, StepState] = {}
        # Plan order for deterministic ready lists
        self._order: List[str] = []
        self._validated = False

    @classmethod
    def from_steps(cls, steps: Iterable[Tuple[str, Iterable[str]]]) -> "DependencyResolver":
        """Build and validate a graph from ``(step_id, depends_on)`` pairs.

        Raises:
            PlanInvalidError: duplicate ids, unknown dependencies or a cycle
        """
        resolver = cls()
        for step_id, depends_on in steps:
            resolver.add_step(step_id, depends_on)
        resolver.validate()
        return resolver

    # ── Graph construction ───────────────────────────────────────────

    def add_step(self, step_id: str, dependencies: Optional[Iterable[str]] = None) -> None:
        if self._validated:
            raise PlanInvalidError(f"Cannot add step {step_id!r} after validation")
        if step_id in self._declared:
            raise PlanInvalidError(f"Duplicate step id {step_id!r}")
        self._declared[step_id] = set(dependencies or ())
        self._order.append(step_id)

    def unknown_dependencies(self) -> Dict[str, List[str]]:
        """Steps mapped to the dependencies that name no step in the graph."""
        unknown: Dict[str, List[str]] = {}
        for step_id in self._order:
            missing = sorted(d for d in self._declared[step_id] if d not in self._declared)
            if missing:
                unknown[step_id] = missing
        return unknown

    def find_cycle(self) -> Optional[List[str]]:
        """Return one dependency cycle as a closed path, or ``None``."""
        visiting: Set[str] = set()
        done: Set[str] = set()

        def visit(node: str, path: List[str]) -> Optional[List[str]]:
            visiting.add(node)
            path.append(node)
            for dep in sorted(self._declared.get(node, ())):
                if dep not in self._declared:
                    continue
                if dep in visiting:
                    return path[path.index(dep):] + [dep]
                if dep not in done:
                    cycle = visit(dep, path)
                    if cycle:
                        return cycle
            path.pop()
            visiting.discard(node)
            done.add(node)
            return None

        for step_id in self._order:
            if step_id not in done:
                cycle = visit(step_id, [])
                if cycle:
                    return cycle
        return None

    def validate(self) -> None:
        """Check the graph and seed the initial READY set.

        Raises:
            PlanInvalidError: unknown dependencies or a cycle
        """
        unknown = self.unknown_dependencies()
        if unknown:
            detail = ", ".join(f"{s} -> {deps}" for s, deps in unknown.items())
            raise PlanInvalidError(
                f"Workflow references unknown steps: {detail}",
                unknown_dependencies=unknown,
            )
        cycle = self.find_cycle()
        if cycle:
            raise PlanInvalidError(
                f"Dependency cycle detected: {' -> '.join(cycle)}",
                cycle=cycle,
            )

        for step_id in self._order:
            deps = self._declared[step_id]
            self._waiting_on[step_id] = set(deps)
            self._dependents.setdefault(step_id, set())
            for dep in deps:
                self._dependents.setdefault(dep, set()).add(step_id)
            self._states[step_id] = StepState.READY if not deps else StepState.PENDING
        self._validated = True

    # ── State transitions ────────────────────────────────────────────

    def mark_running(self, step_id: str) -> None:
        self._expect(step_id, StepState.READY)
        self._states[step_id] = StepState.RUNNING

    def mark_completed(self, step_id: str) -> List[str]:
        """RUNNING → COMPLETED. Returns steps that became READY, in plan order."""
        self._expect(step_id, StepState.RUNNING)
        self._states[step_id] = StepState.COMPLETED

        newly_ready: List[str] = []
        for dependent in self._dependents.get(step_id, set()):
            self._waiting_on[dependent].discard(step_id)
            if not self._waiting_on[dependent] and self._states[dependent] == StepState.PENDING:
                self._states[dependent] = StepState.READY
                newly_ready.append(dependent)
        newly_ready.sort(key=self._order.index)
        return newly_ready

    def mark_failed(self, step_id: str) -> List[str]:
        """RUNNING → FAILED. BFS-cancels every transitive dependent.

        Returns cancelled step ids in plan order.
        """
        self._expect(step_id, StepState.RUNNING)
        self._states[step_id] = StepState.FAILED

        cancelled: List[str] = []
        queue: deque[str] = deque(self._dependents.get(step_id, set()))
        visited: Set[str] = set()
        while queue:
            dep_id = queue.popleft()
            if dep_id in visited:
                continue
            visited.add(dep_id)
            if self._states[dep_id] in (StepState.PENDING, StepState.READY):
                self._states[dep_id] = StepState.CANCELLED
                cancelled.append(dep_id)
                queue.extend(self._dependents.get(dep_id, set()))
        cancelled.sort(key=self._order.index)
        return cancelled

    # ── Queries ──────────────────────────────────────────────────────

    def get_ready_steps(self) -> List[str]:
        return [s for s in self._order if self._states.get(s) == StepState.READY]

    def get_state(self, step_id: str) -> Optional[StepState]:
        return self._states.get(step_id)

    def get_blocked_steps(self) -> Dict[str, Set[str]]:
        """PENDING steps mapped to their unfinished dependencies."""
        return {
            s: set(self._waiting_on[s])
            for s in self._order
            if self._states.get(s) == StepState.PENDING
        }

    def get_downstream(self, step_id: str) -> Set[str]:
        result: Set[str] = set()
        queue: deque[str] = deque(self._dependents.get(step_id, set()))
        while queue:
            nid = queue.popleft()
            if nid in result:
                continue
            result.add(nid)
            queue.extend(self._dependents.get(nid, set()))
        return result

    def get_execution_waves(self) -> List[List[str]]:
        """Kahn's algorithm over the declared graph.

        Each wave holds steps whose dependencies all sit in earlier waves.
        """
        in_degree = {s: len(self._declared[s]) for s in self._order}
        dependents: Dict[str, List[str]] = {s: [] for s in self._order}
        for s in self._order:
            for dep in self._declared[s]:
                if dep in dependents:
                    dependents[dep].append(s)

        current = [s for s in self._order if in_degree[s] == 0]
        waves: List[List[str]] = []
        while current:
            waves.append(current)
            nxt: List[str] = []
            for s in current:
                for d in dependents[s]:
                    in_degree[d] -= 1
                    if in_degree[d] == 0:
                        nxt.append(d)
            current = sorted(nxt, key=self._order.index)
        return waves

    def is_finished(self) -> bool:
        return all(state in _TERMINAL for state in self._states.values())

    @property
    def stats(self) -> Dict[str, int]:
        counts: Dict[str, int] = {s.value: 0 for s in StepState}
        for state in self._states.values():
            counts[state.value] += 1
        return counts

    # ── Internal helpers ─────────────────────────────────────────────

    def _expect(self, step_id: str, expected: StepState) -> None:
        state = self._states.get(step_id)
        if state != expected:
            raise ValueError(
                f"Step {step_id!r} is {state!r}, expected {expected.value}"
            )
