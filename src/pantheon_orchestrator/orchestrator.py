"""
pantheon-orchestrator facade

File: src/pantheon_orchestrator/orchestrator.py

Purpose
- Wire registry, analyzer, planner and messenger into one explicit context object.
- Give every ``execute`` call its own ``SafetyManager`` and engine; nested runs inside
  it share that manager.

Functional requirements
- ``analyze``, ``plan`` and ``execute`` stay separately callable so a caller can
  inspect or override the plan before executing it; ``run`` chains all three.
- Nothing here is process-global: two orchestrators never share limits or state.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from pantheon_orchestrator.config.schema import (
    assert_valid_config,
    default_config,
    engine_settings,
    messenger_settings,
    planner_settings,
    safety_limits,
)
from pantheon_orchestrator.control_plane.engine import (
    EngineSettings,
    ExecutionEngine,
    ExecutionResult,
)
from pantheon_orchestrator.control_plane.safety import SafetyLimits, SafetyManager
from pantheon_orchestrator.coordination_plane.messenger import Messenger
from pantheon_orchestrator.coordination_plane.session import SessionContext
from pantheon_orchestrator.domain import ids
from pantheon_orchestrator.domain.models import JSONValue, Task
from pantheon_orchestrator.observability.logging import correlation_scope
from pantheon_orchestrator.planning.planner import WorkflowPlanner
from pantheon_orchestrator.planning.task_graph import TaskGraph
from pantheon_orchestrator.synthesis_plane.complexity import (
    Classifier,
    ComplexityAnalysis,
    ComplexityAnalyzer,
)
from pantheon_orchestrator.synthesis_plane.dispatch import ExecutionInterface
from pantheon_orchestrator.synthesis_plane.registry import CapabilityRegistry, load_registry
from pantheon_orchestrator.utils.concurrency import CancellationToken


@dataclass(frozen=True, slots=True)
class OrchestrationRun:
    """Everything one ``run`` produced, kept together for inspection."""

    run_id: str
    analysis: ComplexityAnalysis
    graph: TaskGraph
    result: ExecutionResult

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "run_id": self.run_id,
            "analysis": self.analysis.to_dict(),
            "plan": self.graph.serialize(),
            "result": self.result.to_dict(),
        }


class Orchestrator:
    def __init__(
        self,
        *,
        registry: CapabilityRegistry,
        analyzer: ComplexityAnalyzer,
        planner: WorkflowPlanner,
        execution: ExecutionInterface,
        safety_limits: SafetyLimits,
        engine_settings: EngineSettings,
        messenger: Messenger,
        logger: Any | None = None,
    ) -> None:
        self.registry = registry
        self.analyzer = analyzer
        self.planner = planner
        self.execution = execution
        self.safety_limits = safety_limits
        self.engine_settings = engine_settings
        self.messenger = messenger
        self._injected_logger = logger
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, object] | None = None,
        *,
        execution: ExecutionInterface,
        classifier: Classifier | None = None,
        logger: Any | None = None,
    ) -> Orchestrator:
        """Build a fully wired orchestrator from a (validated or raw) config mapping."""

        effective = assert_valid_config(config if config is not None else default_config())
        catalog_path = effective["registry"].get("catalog_path")
        registry = load_registry(catalog_path)
        analyzer = ComplexityAnalyzer(registry, classifier=classifier)
        planner = WorkflowPlanner(registry, planner_settings(effective), logger=logger)
        messenger = Messenger(messenger_settings(effective), logger=logger)
        return cls(
            registry=registry,
            analyzer=analyzer,
            planner=planner,
            execution=execution,
            safety_limits=safety_limits(effective),
            engine_settings=engine_settings(effective),
            messenger=messenger,
            logger=logger,
        )

    def analyze(self, task_text: str) -> ComplexityAnalysis:
        return self.analyzer.analyze(task_text)

    def plan(self, task: Task | str, analysis: ComplexityAnalysis | None = None) -> TaskGraph:
        if analysis is None:
            analysis = self.analyze(task.description if isinstance(task, Task) else task)
        return self.planner.plan(task, analysis)

    def new_safety_manager(self) -> SafetyManager:
        """Fresh spawn gate under the configured limits, owned by a single run."""
        return SafetyManager(self.safety_limits, logger=self._injected_logger)

    async def execute(
        self,
        graph: TaskGraph,
        *,
        session: SessionContext | None = None,
        cancel_token: CancellationToken | None = None,
        run_id: str | None = None,
    ) -> ExecutionResult:
        engine = ExecutionEngine(
            self.execution,
            self.new_safety_manager(),
            self.engine_settings,
            planner=self.planner,
            analyzer=self.analyzer,
            logger=self._injected_logger,
        )
        return await engine.execute(
            graph, session=session, cancel_token=cancel_token, run_id=run_id
        )

    async def run(
        self,
        task: Task | str,
        *,
        session: SessionContext | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> OrchestrationRun:
        run_id = ids.generate_run_id()
        task_text = task.description if isinstance(task, Task) else task
        with correlation_scope(
            run_id=run_id,
            session_id=session.session_id if session is not None else None,
        ):
            analysis = self.analyze(task_text)
            graph = self.plan(task, analysis)
            self._logger.info(
                "orchestrator_run_planned",
                run_id=run_id,
                score=analysis.score,
                domain=analysis.domain,
                strategy=graph.metadata.strategy,
                nodes=len(graph),
            )
            result = await self.execute(
                graph, session=session, cancel_token=cancel_token, run_id=run_id
            )
        return OrchestrationRun(run_id=run_id, analysis=analysis, graph=graph, result=result)

    def new_session(self, *, initial: Mapping[str, JSONValue] | None = None) -> SessionContext:
        return SessionContext(initial=initial, logger=self._injected_logger)


__all__ = ["OrchestrationRun", "Orchestrator"]
