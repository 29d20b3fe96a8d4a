"""
pantheon-orchestrator workflow planner

File: src/pantheon_orchestrator/planning/planner.py

Purpose
- Turn a task plus its ``ComplexityAnalysis`` into a ``TaskGraph`` bound to worker types.

Strategy by score
- ``score <= simple_threshold``: one node, no fan-out.
- ``<= moderate_threshold``: a 2-3 node linear chain built from the suggested workers.
- ``<= complex_threshold``: a named template instantiated as a fixed graph.
- above: a dynamic multi-phase graph where each phase is a parallel batch that
  depends on the whole previous batch.

Functional requirements
- Every referenced worker type must exist in the registry; anything else is a
  ``PlanningError`` raised before execution starts.
- Planning never yields an empty graph: an empty suggestion list falls back to
  the configured default worker.
- Produced graphs are acyclic and every dependency sits in a strictly earlier phase.

Non-functional requirements
- Deterministic: same task text and analysis always give the same graph.
- `structlog` for machine-parseable plan decisions.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog

from pantheon_orchestrator.domain.errors import PlanningError
from pantheon_orchestrator.domain.models import Task
from pantheon_orchestrator.planning.task_graph import (
    CycleError,
    PlanMetadata,
    TaskGraph,
    TaskNode,
)
from pantheon_orchestrator.planning.templates import (
    EXTREME_CORE_TEAM,
    EXTREME_PHASES,
    WorkflowTemplate,
    describe_subtask,
    get_template,
)
from pantheon_orchestrator.synthesis_plane.complexity import (
    DOMAIN_SPECIALISTS,
    Dimension,
)

if TYPE_CHECKING:
    from pantheon_orchestrator.synthesis_plane.complexity import ComplexityAnalysis
    from pantheon_orchestrator.synthesis_plane.registry import CapabilityRegistry, WorkerType

STRATEGY_SINGLE = "single"
STRATEGY_CHAIN = "chain"
STRATEGY_TEMPLATE = "template"
STRATEGY_DYNAMIC = "dynamic"

MAX_CHAIN_LENGTH = 3


@dataclass(frozen=True, slots=True)
class PlannerSettings:
    simple_threshold: int = 3
    moderate_threshold: int = 6
    complex_threshold: int = 8
    base_step_minutes: float = 30.0
    default_worker: str = "hephaestus"

    def __post_init__(self) -> None:
        thresholds = (self.simple_threshold, self.moderate_threshold, self.complex_threshold)
        for value in thresholds:
            if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 10:
                raise ValueError("planner thresholds must be integers within [1, 10]")
        if not self.simple_threshold < self.moderate_threshold < self.complex_threshold:
            raise ValueError(
                "planner thresholds must satisfy simple < moderate < complex, got "
                f"{self.simple_threshold}/{self.moderate_threshold}/{self.complex_threshold}"
            )
        if self.base_step_minutes <= 0:
            raise ValueError("base_step_minutes must be > 0")
        if not isinstance(self.default_worker, str) or not self.default_worker.strip():
            raise ValueError("default_worker cannot be empty")


class WorkflowPlanner:
    """Builds task graphs from analyses; holds no per-run state."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        settings: PlannerSettings | None = None,
        *,
        logger: Any | None = None,
    ) -> None:
        self._registry = registry
        self._settings = settings if settings is not None else PlannerSettings()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._require_worker(self._settings.default_worker)

    @property
    def settings(self) -> PlannerSettings:
        return self._settings

    def plan(self, task: Task | str, analysis: ComplexityAnalysis) -> TaskGraph:
        task_text = task.description if isinstance(task, Task) else str(task).strip()
        if not task_text:
            task_text = analysis.task
        if not task_text:
            raise PlanningError("cannot plan an empty task description")

        settings = self._settings
        if analysis.score <= settings.simple_threshold:
            graph = self._plan_single(task_text, analysis)
        elif analysis.score <= settings.moderate_threshold:
            graph = self._plan_chain(task_text, analysis)
        elif analysis.score <= settings.complex_threshold:
            graph = self.plan_from_template(task_text, self.select_template(analysis), analysis)
        else:
            graph = self._plan_dynamic(task_text, analysis)

        self._logger.info(
            "planner_plan_built",
            strategy=graph.metadata.strategy,
            template=graph.metadata.template,
            score=analysis.score,
            domain=analysis.domain,
            nodes=len(graph),
            phases=len(graph.phases()),
            parallel_width=graph.parallel_width(),
            estimated_minutes=graph.metadata.estimated_minutes,
        )
        return graph

    def select_template(self, analysis: ComplexityAnalysis) -> str:
        """Template name for complex-but-not-extreme work."""
        if analysis.domain == "product":
            return "product-planning"
        if analysis.domain == "ux":
            return "ui-enhancement"
        if analysis.dimensions.get(Dimension.SECURITY) > 6:
            return "security-review"
        if analysis.dimensions.get(Dimension.TIMELINE) > 7:
            return "rapid-prototype"
        return "analysis-to-implementation"

    def plan_from_template(
        self,
        task_text: str,
        template_name: str,
        analysis: ComplexityAnalysis | None = None,
    ) -> TaskGraph:
        try:
            template = get_template(template_name)
        except KeyError as exc:
            raise PlanningError(str(exc.args[0])) from exc
        capabilities = analysis.required_capabilities if analysis is not None else ()
        nodes = self._template_nodes(task_text, template, capabilities)
        graph = TaskGraph(nodes).with_assigned_phases()
        return self._finalize(graph, strategy=STRATEGY_TEMPLATE, template=template.name)

    def estimate_minutes(self, graph: TaskGraph) -> float:
        """Sum over phases of the slowest step; same-phase steps overlap."""
        total = 0.0
        for phase in graph.phases():
            total += max(
                self._settings.base_step_minutes
                * self._registry.complexity_factor(node.worker_type)
                for node in graph.nodes_in_phase(phase)
            )
        return round(total, 1)

    def _plan_single(self, task_text: str, analysis: ComplexityAnalysis) -> TaskGraph:
        worker = (
            analysis.suggested_workers[0]
            if analysis.suggested_workers
            else self._settings.default_worker
        )
        node = self._node(0, worker, task_text, analysis.required_capabilities, phase=0)
        return self._finalize(TaskGraph([node]), strategy=STRATEGY_SINGLE)

    def _plan_chain(self, task_text: str, analysis: ComplexityAnalysis) -> TaskGraph:
        team = self._chain_team(analysis)
        nodes: list[TaskNode] = []
        for index, worker in enumerate(team):
            dependencies = frozenset({nodes[-1].node_id}) if nodes else frozenset()
            nodes.append(
                self._node(
                    index,
                    worker,
                    task_text,
                    analysis.required_capabilities,
                    phase=index,
                    dependencies=dependencies,
                )
            )
        return self._finalize(TaskGraph(nodes), strategy=STRATEGY_CHAIN)

    def _chain_team(self, analysis: ComplexityAnalysis) -> list[str]:
        default = self._settings.default_worker
        team: list[str] = list(analysis.suggested_workers)
        if not team:
            team.append(DOMAIN_SPECIALISTS.get(analysis.domain, default))

        def add(worker: str) -> None:
            if worker not in team:
                team.append(worker)

        if "testing" in analysis.required_capabilities:
            add("themis")
        if analysis.dimensions.get(Dimension.SECURITY) > 5:
            add("aegis")
        if len(team) == 1:
            add("daedalus" if team[0] == default else default)
        return team[:MAX_CHAIN_LENGTH]

    def _template_nodes(
        self,
        task_text: str,
        template: WorkflowTemplate,
        capabilities: Sequence[str],
    ) -> list[TaskNode]:
        nodes: list[TaskNode] = []
        for index, step in enumerate(template.steps):
            dependencies = frozenset(nodes[dep].node_id for dep in step.depends_on)
            nodes.append(
                self._node(
                    index, step.worker_type, task_text, capabilities, dependencies=dependencies
                )
            )
        return nodes

    def _plan_dynamic(self, task_text: str, analysis: ComplexityAnalysis) -> TaskGraph:
        team = set(EXTREME_CORE_TEAM)
        if "ui-design" in analysis.required_capabilities:
            team.update(("apollo", "oracle", "harmonia"))
        if analysis.dimensions.get(Dimension.SECURITY) > 3:
            team.add("aegis")
        if analysis.domain == "product":
            team.update(("prometheus", "athena"))

        nodes: list[TaskNode] = []
        previous: frozenset[str] = frozenset()
        phase_names: list[tuple[int, str]] = []
        for phase_name, members in EXTREME_PHASES:
            present = [worker for worker in members if worker in team]
            if not present:
                continue
            phase = len(phase_names)
            phase_names.append((phase, phase_name))
            batch: list[str] = []
            for worker in present:
                node = self._node(
                    len(nodes),
                    worker,
                    task_text,
                    analysis.required_capabilities,
                    phase=phase,
                    dependencies=previous,
                    phase_name=phase_name,
                )
                nodes.append(node)
                batch.append(node.node_id)
            previous = frozenset(batch)

        return self._finalize(
            TaskGraph(nodes),
            strategy=STRATEGY_DYNAMIC,
            phase_names=tuple(phase_names),
        )

    def _node(
        self,
        index: int,
        worker_type: str,
        task_text: str,
        capabilities: Sequence[str],
        *,
        phase: int = 0,
        dependencies: frozenset[str] = frozenset(),
        phase_name: str | None = None,
    ) -> TaskNode:
        worker = self._require_worker(worker_type)
        required = frozenset(capabilities) & frozenset(worker.capabilities)
        task = Task(
            id=f"s{index:02d}-{worker.name}",
            description=describe_subtask(worker.name, task_text, phase_name=phase_name),
            required_capabilities=required,
        )
        return TaskNode(
            task=task,
            worker_type=worker.name,
            phase=phase,
            dependencies=dependencies,
            phase_name=phase_name,
        )

    def _finalize(
        self,
        graph: TaskGraph,
        *,
        strategy: str,
        template: str | None = None,
        phase_names: tuple[tuple[int, str], ...] = (),
    ) -> TaskGraph:
        if len(graph) == 0:
            raise PlanningError("planning produced an empty graph")
        try:
            graph.validate()
        except CycleError as exc:
            raise PlanningError(f"planned graph is cyclic: {exc}") from exc
        except ValueError as exc:
            raise PlanningError(f"planned graph is invalid: {exc}") from exc
        graph.metadata = PlanMetadata(
            strategy=strategy,
            template=template,
            estimated_minutes=self.estimate_minutes(graph),
            phase_names=phase_names,
        )
        return graph

    def _require_worker(self, worker_type: str) -> WorkerType:
        try:
            return self._registry.require(worker_type)
        except KeyError as exc:
            raise PlanningError(f"unknown worker type referenced by plan: {worker_type}") from exc


__all__ = [
    "PlannerSettings",
    "STRATEGY_CHAIN",
    "STRATEGY_DYNAMIC",
    "STRATEGY_SINGLE",
    "STRATEGY_TEMPLATE",
    "WorkflowPlanner",
]
