from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from pantheon_orchestrator.domain.errors import PlanningError
from pantheon_orchestrator.domain.models import Task
from pantheon_orchestrator.planning.planner import (
    STRATEGY_CHAIN,
    STRATEGY_DYNAMIC,
    STRATEGY_SINGLE,
    STRATEGY_TEMPLATE,
    PlannerSettings,
    WorkflowPlanner,
)
from pantheon_orchestrator.synthesis_plane.complexity import (
    ComplexityAnalysis,
    ComplexityAnalyzer,
    DimensionScores,
    EffortEstimate,
)
from pantheon_orchestrator.synthesis_plane.registry import load_registry

SCENARIO_B = "build a secure real-time chat platform with payments and mobile apps"


@dataclass(slots=True)
class RecordingLogger:
    events: list[tuple[str, dict[str, object]]] = field(default_factory=list)

    def info(self, event: str, **kwargs: object) -> None:
        self.events.append((event, kwargs))


def _analysis(
    score: int,
    *,
    domain: str = "general",
    capabilities: tuple[str, ...] = (),
    suggested: tuple[str, ...] = (),
    security: float = 0.0,
    timeline: float = 0.0,
    task: str = "do the thing",
) -> ComplexityAnalysis:
    return ComplexityAnalysis(
        task=task,
        score=score,
        dimensions=DimensionScores(
            technical=0.0,
            integration=0.0,
            security=security,
            coordination=0.0,
            timeline=timeline,
        ),
        domain=domain,
        required_capabilities=capabilities,
        suggested_workers=suggested,
        estimated_effort=EffortEstimate(level="medium", hours="4-8", confidence=0.7),
    )


def _planner(logger: RecordingLogger | None = None, **settings: object) -> WorkflowPlanner:
    return WorkflowPlanner(
        load_registry(),
        PlannerSettings(**settings),  # type: ignore[arg-type]
        logger=logger if logger is not None else RecordingLogger(),
    )


def test_simple_task_with_no_suggestion_falls_back_to_default_worker() -> None:
    logger = RecordingLogger()
    planner = _planner(logger)

    graph = planner.plan("fix a typo in the README", _analysis(3))

    assert graph.node_ids == ("s00-hephaestus",)
    node = graph.get("s00-hephaestus")
    assert node.task.description == "Implement the solution for: fix a typo in the README"
    assert node.dependencies == frozenset()
    assert graph.metadata.strategy == STRATEGY_SINGLE
    assert graph.metadata.estimated_minutes == 60.0
    assert logger.events[-1][0] == "planner_plan_built"
    assert logger.events[-1][1]["nodes"] == 1


def test_simple_task_uses_first_suggested_worker() -> None:
    graph = _planner().plan("restyle the button", _analysis(2, suggested=("apollo", "themis")))

    assert graph.node_ids == ("s00-apollo",)
    assert graph.worker_types() == ("apollo",)


def test_moderate_task_builds_linear_chain() -> None:
    analysis = _analysis(5, capabilities=("testing",), suggested=("themis",))

    graph = _planner().plan("add regression tests", analysis)

    assert graph.node_ids == ("s00-themis", "s01-hephaestus")
    assert graph.get("s01-hephaestus").dependencies == frozenset({"s00-themis"})
    assert [node.phase for node in graph.nodes] == [0, 1]
    assert graph.get("s00-themis").task.required_capabilities == frozenset({"testing"})
    assert graph.get("s01-hephaestus").task.required_capabilities == frozenset()
    assert graph.metadata.strategy == STRATEGY_CHAIN
    assert graph.metadata.estimated_minutes == 105.0


def test_chain_without_suggestions_pairs_domain_specialist_with_architect() -> None:
    graph = _planner().plan("tidy the module", _analysis(4))

    assert graph.node_ids == ("s00-hephaestus", "s01-daedalus")


def test_chain_is_truncated_to_three_workers() -> None:
    analysis = _analysis(
        6,
        capabilities=("testing",),
        suggested=("hephaestus", "aegis", "apollo"),
        security=6.0,
    )

    graph = _planner().plan("harden the login flow", analysis)

    assert graph.worker_types() == ("aegis", "apollo", "hephaestus")
    assert len(graph) == 3
    assert graph.topological_sort() == ("s00-hephaestus", "s01-aegis", "s02-apollo")


@pytest.mark.parametrize(
    ("analysis", "expected"),
    [
        (_analysis(7, domain="product"), "product-planning"),
        (_analysis(7, domain="ux"), "ui-enhancement"),
        (_analysis(7, security=7.0), "security-review"),
        (_analysis(7, security=6.0, timeline=8.0), "rapid-prototype"),
        (_analysis(7), "analysis-to-implementation"),
    ],
)
def test_select_template(analysis: ComplexityAnalysis, expected: str) -> None:
    assert _planner().select_template(analysis) == expected


def test_complex_task_instantiates_template_with_parallel_phase() -> None:
    graph = _planner().plan("polish the settings page", _analysis(7, domain="ux"))

    assert graph.metadata.strategy == STRATEGY_TEMPLATE
    assert graph.metadata.template == "ui-enhancement"
    assert {node.node_id: node.phase for node in graph.nodes} == {
        "s00-apollo": 0,
        "s01-oracle": 1,
        "s02-harmonia": 1,
        "s03-iris": 2,
    }
    assert graph.parallel_width() == 2
    assert graph.metadata.estimated_minutes == 135.0


def test_plan_from_template_full_stack_phases() -> None:
    graph = _planner().plan_from_template("ship the feature", "full-stack-dev")

    assert [node.phase for node in graph.nodes] == [0, 1, 1, 2, 3]
    assert graph.get("s03-themis").dependencies == frozenset({"s01-hephaestus", "s02-apollo"})
    assert graph.metadata.estimated_minutes == 213.0


def test_unknown_template_is_a_planning_error() -> None:
    with pytest.raises(PlanningError, match="unknown workflow template"):
        _planner().plan_from_template("anything", "does-not-exist")


def test_extreme_task_builds_phased_dynamic_plan() -> None:
    registry = load_registry()
    analysis = ComplexityAnalyzer(registry).analyze(SCENARIO_B)
    planner = WorkflowPlanner(registry, logger=RecordingLogger())

    graph = planner.plan(SCENARIO_B, analysis)

    assert graph.metadata.strategy == STRATEGY_DYNAMIC
    assert graph.metadata.phase_names == (
        (0, "architecture"),
        (1, "development"),
        (2, "quality"),
        (3, "refinement"),
        (4, "review"),
    )
    assert graph.node_ids == (
        "s00-daedalus",
        "s01-janus",
        "s02-hephaestus",
        "s03-apollo",
        "s04-themis",
        "s05-aegis",
        "s06-oracle",
        "s07-harmonia",
        "s08-argus",
    )
    assert graph.get("s02-hephaestus").dependencies == frozenset({"s00-daedalus", "s01-janus"})
    assert graph.get("s08-argus").dependencies == frozenset({"s06-oracle", "s07-harmonia"})
    assert graph.get("s02-hephaestus").task.required_capabilities == frozenset({"coding"})
    assert graph.get("s00-daedalus").task.description.startswith("[ARCHITECTURE] ")
    assert graph.metadata.estimated_minutes == 264.0
    graph.validate()


def test_extreme_product_plan_skips_empty_phases() -> None:
    graph = _planner().plan("launch the new product line", _analysis(9, domain="product"))

    assert [name for _, name in graph.metadata.phase_names] == [
        "discovery",
        "architecture",
        "development",
        "quality",
        "review",
    ]
    assert graph.node_ids == (
        "s00-prometheus",
        "s01-athena",
        "s02-daedalus",
        "s03-janus",
        "s04-hephaestus",
        "s05-themis",
        "s06-argus",
    )
    assert graph.metadata.estimated_minutes == 246.0


def test_task_objects_and_empty_text_fall_back_to_analysis_text() -> None:
    planner = _planner()

    from_task = planner.plan(Task(id="t-1", description="fix it"), _analysis(1))
    assert from_task.get("s00-hephaestus").task.description.endswith("fix it")

    from_analysis = planner.plan("   ", _analysis(1, task="from analysis"))
    assert from_analysis.get("s00-hephaestus").task.description.endswith("from analysis")

    with pytest.raises(PlanningError, match="empty task description"):
        planner.plan("", _analysis(1, task=""))


def test_unknown_worker_types_are_planning_errors() -> None:
    with pytest.raises(PlanningError, match="ghost"):
        _planner(default_worker="ghost")
    with pytest.raises(PlanningError, match="unknown worker type"):
        _planner().plan("anything", _analysis(2, suggested=("ghost",)))


def test_planner_settings_validation() -> None:
    with pytest.raises(ValueError, match="simple < moderate < complex"):
        PlannerSettings(simple_threshold=6, moderate_threshold=6)
    with pytest.raises(ValueError, match=r"within \[1, 10\]"):
        PlannerSettings(complex_threshold=11)
    with pytest.raises(ValueError, match="base_step_minutes"):
        PlannerSettings(base_step_minutes=0)


def test_same_analysis_always_yields_same_plan() -> None:
    registry = load_registry()
    analysis = ComplexityAnalyzer(registry).analyze(SCENARIO_B)

    first = _planner().plan(SCENARIO_B, analysis).serialize()
    second = _planner().plan(SCENARIO_B, analysis).serialize()

    assert first == second
