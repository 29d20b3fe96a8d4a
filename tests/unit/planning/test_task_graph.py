"""Unit tests for planning.task_graph."""

from __future__ import annotations

import random

import pytest

from pantheon_orchestrator.domain.models import Task
from pantheon_orchestrator.planning.task_graph import (
    CycleError,
    PlanMetadata,
    TaskGraph,
    TaskNode,
)


def _node(
    node_id: str,
    *dependencies: str,
    phase: int = 0,
    worker: str = "hephaestus",
    phase_name: str | None = None,
) -> TaskNode:
    return TaskNode(
        task=Task(id=node_id, description=f"work for {node_id}"),
        worker_type=worker,
        phase=phase,
        dependencies=frozenset(dependencies),
        phase_name=phase_name,
    )


def _diamond() -> TaskGraph:
    return TaskGraph(
        (
            _node("A"),
            _node("B", "A", phase=1),
            _node("C", "A", phase=1),
            _node("D", "B", "C", phase=2),
        )
    )


def test_diamond_graph_critical_path_correctness() -> None:
    graph = _diamond()

    critical = graph.critical_path(weights={"A": 1.0, "B": 4.0, "C": 2.0, "D": 1.0})
    assert critical == ("A", "B", "D")
    assert graph.critical_path() == ("A", "B", "D")
    assert TaskGraph().critical_path() == ()


def test_cycle_detection_returns_cycle() -> None:
    graph = TaskGraph((_node("A"), _node("B", "A"), _node("C", "B"), _node("D", "C")))
    graph.add_edge("C", "A")

    assert graph.detect_cycles() == (("A", "B", "C", "A"),)
    with pytest.raises(CycleError) as error:
        graph.topological_sort()
    assert error.value.cycles == (("A", "B", "C", "A"),)
    assert "A -> B -> C -> A" in str(error.value)
    with pytest.raises(CycleError):
        graph.validate()


def test_validate_requires_dependencies_in_earlier_phases() -> None:
    same_phase = TaskGraph((_node("A"), _node("B", "A", phase=0)))
    with pytest.raises(ValueError, match="must be in an earlier phase"):
        same_phase.validate()

    _diamond().validate()


def test_with_assigned_phases_uses_longest_path_level() -> None:
    flat = TaskGraph(
        (_node("A"), _node("B", "A"), _node("C", "A"), _node("D", "B", "C"), _node("E", "A", "D"))
    )

    phased = flat.with_assigned_phases()

    assert {node.node_id: node.phase for node in phased} == {
        "A": 0,
        "B": 1,
        "C": 1,
        "D": 2,
        "E": 3,
    }
    assert phased.phases() == (0, 1, 2, 3)
    assert phased.parallel_width() == 2
    phased.validate()


def test_dependency_queries_and_runnable_nodes_are_deterministic() -> None:
    graph = _diamond()

    assert graph.node_ids == ("A", "B", "C", "D")
    assert graph.edges == (("A", "B"), ("A", "C"), ("B", "D"), ("C", "D"))
    assert graph.get_dependencies("D") == ("B", "C")
    assert graph.get_dependencies("D", transitive=True) == ("A", "B", "C")
    assert graph.get_dependents("A") == ("B", "C")
    assert graph.get_dependents("A", transitive=True) == ("B", "C", "D")
    assert graph.get_runnable(set()) == ("A",)
    assert graph.get_runnable({"A"}) == ("B", "C")
    assert graph.get_runnable({"A", "B"}) == ("C",)
    assert graph.topological_sort() == ("A", "B", "C", "D")
    assert [node.node_id for node in graph.nodes_in_phase(1)] == ["B", "C"]


def test_add_node_add_edge_and_remove_node() -> None:
    graph = _diamond()

    with pytest.raises(KeyError, match="Unknown dependencies"):
        graph.add_node(_node("E", "missing", phase=3))
    with pytest.raises(ValueError, match="Duplicate node"):
        graph.add_node(_node("A"))
    with pytest.raises(ValueError, match="cannot depend on itself"):
        graph.add_edge("A", "A")
    with pytest.raises(KeyError, match="Unknown node"):
        graph.get("Z")

    graph.add_node(_node("E", "D", phase=3))
    graph.add_edge("B", "E")
    assert graph.get("E").dependencies == frozenset({"B", "D"})

    graph.remove_node("B")
    assert "B" not in graph
    assert graph.get("D").dependencies == frozenset({"C"})
    assert graph.get("E").dependencies == frozenset({"D"})
    assert len(graph) == 4


def test_task_node_rejects_self_dependency_and_negative_phase() -> None:
    with pytest.raises(ValueError, match="cannot depend on itself"):
        _node("A", "A")
    with pytest.raises(ValueError, match="non-negative"):
        _node("A", phase=-1)
    with pytest.raises(ValueError, match="worker_type cannot be empty"):
        _node("A", worker=" ")


def test_phase_names_come_from_metadata_then_nodes() -> None:
    graph = TaskGraph(
        (_node("A", phase_name="discovery"), _node("B", "A", phase=1)),
        metadata=PlanMetadata(strategy="dynamic", phase_names=((1, "review"),)),
    )

    assert graph.phase_name(0) == "discovery"
    assert graph.phase_name(1) == "review"
    assert graph.phase_name(7) is None
    assert graph.worker_types() == ("hephaestus",)


def test_serialization_round_trip_keeps_nodes_edges_and_metadata() -> None:
    graph = TaskGraph(
        (
            _node("s00-daedalus", worker="daedalus", phase_name="architecture"),
            _node("s01-hephaestus", "s00-daedalus", phase=1, phase_name="development"),
        ),
        metadata=PlanMetadata(
            strategy="dynamic",
            estimated_minutes=114.0,
            phase_names=((0, "architecture"), (1, "development")),
        ),
    )

    payload = graph.serialize()
    assert payload["schema_version"] == 1
    assert payload["edges"] == [["s00-daedalus", "s01-hephaestus"]]
    assert payload["metadata"] == {
        "strategy": "dynamic",
        "template": None,
        "estimated_minutes": 114.0,
        "phase_names": {"0": "architecture", "1": "development"},
    }

    restored = TaskGraph.deserialize(payload)
    assert restored.serialize() == payload
    assert restored.metadata == graph.metadata


def test_deserialize_rejects_unknown_dependencies() -> None:
    payload = TaskGraph((_node("A"),)).serialize()
    node_payload = dict(payload["nodes"][0])  # type: ignore[index, arg-type]
    node_payload["dependencies"] = ["ghost"]

    with pytest.raises(ValueError, match="references unknown nodes"):
        TaskGraph.deserialize({"nodes": [node_payload]})
    with pytest.raises(TypeError, match="'nodes' must be a sequence"):
        TaskGraph.deserialize({"nodes": "A"})


def test_seeded_random_dag_topological_order_respects_every_edge() -> None:
    rng = random.Random(20_260_214)
    nodes: list[TaskNode] = []
    for index in range(300):
        candidates = [f"task-{other:04d}" for other in range(index)]
        picked = rng.sample(candidates, k=min(len(candidates), rng.randint(0, 3)))
        nodes.append(_node(f"task-{index:04d}", *picked))

    graph = TaskGraph(nodes).with_assigned_phases()
    order = graph.topological_sort()
    position = {node_id: offset for offset, node_id in enumerate(order)}

    assert len(order) == 300
    for parent, child in graph.edges:
        assert position[parent] < position[child]
    graph.validate()
