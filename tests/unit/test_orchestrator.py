from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

import pytest

from pantheon_orchestrator import Orchestrator
from pantheon_orchestrator.config.schema import apply_profile_overlay, default_config
from pantheon_orchestrator.control_plane.engine import WorkflowStatus
from pantheon_orchestrator.domain.models import JSONValue, Task
from pantheon_orchestrator.observability.logging import get_correlation_context
from pantheon_orchestrator.synthesis_plane.dispatch import CallableExecution, ScriptedExecution


@dataclass(slots=True)
class RecordingLogger:
    events: list[tuple[str, dict[str, object]]] = field(default_factory=list)

    def info(self, event: str, **kwargs: object) -> None:
        self.events.append((event, kwargs))


@pytest.mark.asyncio
async def test_run_chains_analysis_planning_and_execution() -> None:
    logger = RecordingLogger()
    seen_context: list[dict[str, object]] = []

    def dispatch(worker_type: str, task: Task, context: Mapping[str, JSONValue]) -> JSONValue:
        seen_context.append(get_correlation_context())
        return {"fixed": task.id}

    orchestrator = Orchestrator.from_config(execution=CallableExecution(dispatch), logger=logger)
    session = orchestrator.new_session(initial={"requirements": ["readme"]})

    run = await orchestrator.run("fix a typo in the README", session=session)

    assert run.run_id.startswith("run-")
    assert run.analysis.score == 3
    assert run.graph.node_ids == ("s00-hephaestus",)
    assert run.result.status is WorkflowStatus.SUCCEEDED
    assert run.result.outputs == {"s00-hephaestus": {"fixed": "s00-hephaestus"}}
    assert seen_context == [{"run_id": run.run_id, "session_id": session.session_id}]
    assert get_correlation_context() == {}
    planned = [fields for name, fields in logger.events if name == "orchestrator_run_planned"]
    assert planned == [
        {
            "run_id": run.run_id,
            "score": 3,
            "domain": "general",
            "strategy": "single",
            "nodes": 1,
        }
    ]
    payload = run.to_dict()
    assert payload["plan"]["metadata"]["strategy"] == "single"  # type: ignore[index, call-overload]
    assert payload["result"]["run_id"] == run.run_id  # type: ignore[index, call-overload]
    assert session.context["outputs"] == {"phase-0": {"hephaestus": {"fixed": "s00-hephaestus"}}}


@pytest.mark.asyncio
async def test_plan_can_be_inspected_before_execution() -> None:
    execution = ScriptedExecution()
    orchestrator = Orchestrator.from_config(execution=execution, logger=RecordingLogger())

    graph = orchestrator.plan(Task(id="req-1", description="fix a typo in the README"))
    assert execution.calls == []

    result = await orchestrator.execute(graph, run_id="run-manual")

    assert result.run_id == "run-manual"
    assert execution.calls == [("hephaestus", "s00-hephaestus")]


def test_from_config_applies_profile_limits() -> None:
    strict = apply_profile_overlay(default_config(), "strict")  # type: ignore[arg-type]

    orchestrator = Orchestrator.from_config(
        strict, execution=ScriptedExecution(), logger=RecordingLogger()
    )

    assert orchestrator.safety_limits.max_total_workers == 10
    assert orchestrator.safety_limits.max_depth == 2
    assert orchestrator.new_safety_manager().limits == orchestrator.safety_limits
    assert orchestrator.engine_settings.max_parallel_dispatches == 2
    assert "hephaestus" in orchestrator.registry


def test_orchestrators_and_runs_do_not_share_state() -> None:
    first = Orchestrator.from_config(execution=ScriptedExecution(), logger=RecordingLogger())
    second = Orchestrator.from_config(execution=ScriptedExecution(), logger=RecordingLogger())

    run_gate = first.new_safety_manager()
    run_gate.request_spawn(None, "hephaestus")

    assert run_gate.live_count == 1
    assert first.new_safety_manager().live_count == 0
    assert second.new_safety_manager().live_count == 0
    assert first.messenger is not second.messenger


@pytest.mark.asyncio
async def test_back_to_back_runs_each_get_a_fresh_spawn_budget() -> None:
    logger = RecordingLogger()
    orchestrator = Orchestrator.from_config(
        default_config(), execution=ScriptedExecution(), logger=logger
    )
    task = "build a secure real-time chat platform with payments and mobile apps"

    first = await orchestrator.run(task)
    second = await orchestrator.run(task)

    assert first.result.status is WorkflowStatus.SUCCEEDED
    assert second.result.status is WorkflowStatus.SUCCEEDED
    assert len(second.result.results) == len(first.result.results) == len(first.graph)
    denied = [
        fields for name, fields in logger.events
        if name == "safety_spawn_decision" and not fields["approved"]
    ]
    assert denied == []


@pytest.mark.asyncio
async def test_large_dynamic_plan_runs_under_default_limits() -> None:
    orchestrator = Orchestrator.from_config(
        default_config(), execution=ScriptedExecution(), logger=RecordingLogger()
    )

    run = await orchestrator.run(
        "product roadmap for a mobile payments platform with login, third-party api "
        "integrations, team collaboration, urgent deadline by friday"
    )

    assert run.graph.metadata.strategy == "dynamic"
    assert len(run.graph) > default_config()["safety"]["max_spawns_per_window"]
    assert run.result.status is WorkflowStatus.SUCCEEDED
    assert all(item.succeeded for item in run.result.results)
