"""Worker-bound task nodes, their dependency edges and the phase layout built on them."""

from __future__ import annotations

from bisect import insort
from collections import deque
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence, Set
from dataclasses import dataclass, field, replace
from typing import cast

from pantheon_orchestrator.domain.models import JSONValue, Task

TASK_GRAPH_SCHEMA_VERSION = 1
_CYCLE_PREVIEW = 3


class CycleError(ValueError):
    """Dependency edges loop back on themselves."""

    def __init__(self, cycles: Iterable[Sequence[str]]) -> None:
        self.cycles: tuple[tuple[str, ...], ...] = tuple(tuple(loop) for loop in cycles)
        if self.cycles:
            shown = ", ".join(" -> ".join(loop) for loop in self.cycles[:_CYCLE_PREVIEW])
            more = ", ..." if len(self.cycles) > _CYCLE_PREVIEW else ""
            message = f"task graph has {len(self.cycles)} cycle(s): {shown}{more}"
        else:
            message = "task graph has a cycle"
        super().__init__(message)


@dataclass(frozen=True, slots=True)
class TaskNode:
    """One unit of work, the worker type that runs it and the phase it runs in."""

    task: Task
    worker_type: str
    phase: int = 0
    dependencies: frozenset[str] = field(default_factory=frozenset)
    phase_name: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.worker_type, str) or not self.worker_type.strip():
            raise ValueError("TaskNode.worker_type cannot be empty")
        if isinstance(self.phase, bool) or not isinstance(self.phase, int) or self.phase < 0:
            raise ValueError("TaskNode.phase must be a non-negative integer")
        needs = frozenset(self.dependencies)
        if self.task.id in needs:
            raise ValueError(f"TaskNode {self.task.id!r} cannot depend on itself")
        object.__setattr__(self, "dependencies", needs)

    @property
    def node_id(self) -> str:
        return self.task.id

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "task": self.task.to_dict(),
            "worker_type": self.worker_type,
            "phase": self.phase,
            "phase_name": self.phase_name,
            "dependencies": sorted(self.dependencies),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> TaskNode:
        task = payload.get("task")
        if not isinstance(task, Mapping):
            raise TypeError("node 'task' must be a mapping")
        needs = _sequence(payload.get("dependencies", ()), "dependencies")
        label = payload.get("phase_name")
        return cls(
            task=Task.from_dict(task),
            worker_type=str(payload.get("worker_type", "")),
            phase=cast("int", payload.get("phase", 0)),
            dependencies=frozenset(str(item) for item in needs),
            phase_name=None if label is None else str(label),
        )


@dataclass(frozen=True, slots=True)
class PlanMetadata:
    """Which strategy (and template, if any) produced a graph, plus its time estimate."""

    strategy: str = "custom"
    template: str | None = None
    estimated_minutes: float = 0.0
    phase_names: tuple[tuple[int, str], ...] = ()

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "strategy": self.strategy,
            "template": self.template,
            "estimated_minutes": self.estimated_minutes,
            "phase_names": {str(number): label for number, label in self.phase_names},
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> PlanMetadata:
        labels = payload.get("phase_names", {})
        template = payload.get("template")
        return cls(
            strategy=str(payload.get("strategy", "custom")),
            template=None if template is None else str(template),
            estimated_minutes=float(cast("float", payload.get("estimated_minutes", 0.0))),
            phase_names=tuple(
                sorted((int(number), str(label)) for number, label in labels.items())
            )
            if isinstance(labels, Mapping)
            else (),
        )


class TaskGraph:
    """Acyclic set of ``TaskNode`` keyed by node id.

    A node's ``dependencies`` are the only record of its inbound edges; the
    graph keeps a reverse index of dependents next to them. Every query
    returns ids in sorted order so plans and runs are reproducible.
    """

    __slots__ = ("_nodes", "_dependents", "metadata")

    def __init__(
        self,
        nodes: Iterable[TaskNode] | None = None,
        *,
        metadata: PlanMetadata | None = None,
    ) -> None:
        self._nodes: dict[str, TaskNode] = {}
        self._dependents: dict[str, set[str]] = {}
        self.metadata = metadata if metadata is not None else PlanMetadata()

        staged = list(nodes or ())
        for node in staged:
            self._store(node)
        for node in staged:
            for needed in node.dependencies:
                self._require(needed)
                self._dependents[needed].add(node.node_id)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __iter__(self) -> Iterator[TaskNode]:
        return iter(self.nodes)

    @property
    def node_ids(self) -> tuple[str, ...]:
        return tuple(sorted(self._nodes))

    @property
    def nodes(self) -> tuple[TaskNode, ...]:
        return tuple(self._nodes[node_id] for node_id in self.node_ids)

    @property
    def edges(self) -> tuple[tuple[str, str], ...]:
        """``(dependency, dependent)`` pairs."""
        return tuple(
            sorted(
                (needed, node_id)
                for node_id, node in self._nodes.items()
                for needed in node.dependencies
            )
        )

    def get(self, node_id: str) -> TaskNode:
        self._require(node_id)
        return self._nodes[node_id]

    def add_node(self, node: TaskNode) -> None:
        """Insert ``node``; everything it depends on has to be in the graph already."""
        if node.node_id in self._nodes:
            raise ValueError(f"Duplicate node '{node.node_id}'.")
        unknown = sorted(node.dependencies.difference(self._nodes))
        if unknown:
            raise KeyError(f"Unknown dependencies for '{node.node_id}': {unknown}")
        self._store(node)
        for needed in node.dependencies:
            self._dependents[needed].add(node.node_id)

    def add_edge(self, parent: str, child: str) -> None:
        """Make ``child`` wait for ``parent``. Adding an existing edge is a no-op."""
        self._require(parent)
        self._require(child)
        if parent == child:
            raise ValueError(f"Node '{parent}' cannot depend on itself.")
        node = self._nodes[child]
        if parent in node.dependencies:
            return
        self._nodes[child] = replace(node, dependencies=node.dependencies | {parent})
        self._dependents[parent].add(child)

    def remove_node(self, node_id: str) -> None:
        """Drop ``node_id`` and detach it from both sides of every edge it touches."""
        node = self.get(node_id)
        for needed in node.dependencies:
            self._dependents[needed].discard(node_id)
        for child in self._dependents.pop(node_id):
            waiting = self._nodes[child]
            self._nodes[child] = replace(waiting, dependencies=waiting.dependencies - {node_id})
        del self._nodes[node_id]

    def topological_sort(self) -> tuple[str, ...]:
        """Dependencies-first order, smallest id first among ready nodes.

        Raises ``CycleError`` naming every loop when no such order exists.
        """
        unmet = {node_id: len(node.dependencies) for node_id, node in self._nodes.items()}
        ready = sorted(node_id for node_id, count in unmet.items() if count == 0)
        order: list[str] = []
        while ready:
            current = ready.pop(0)
            order.append(current)
            for child in self._dependents[current]:
                unmet[child] -= 1
                if unmet[child] == 0:
                    insort(ready, child)
        if len(order) < len(self._nodes):
            raise CycleError(self.detect_cycles())
        return tuple(order)

    def detect_cycles(self) -> tuple[tuple[str, ...], ...]:
        """Every loop as a closed path rotated to its smallest id, e.g. ``("A", "B", "A")``."""
        finished: set[str] = set()
        loops: set[tuple[str, ...]] = set()
        for root in self.node_ids:
            if root in finished:
                continue
            trail = [root]
            # Each entry holds the unexplored dependents of the matching trail node.
            pending = [sorted(self._dependents[root], reverse=True)]
            while trail:
                if not pending[-1]:
                    finished.add(trail.pop())
                    pending.pop()
                    continue
                child = pending[-1].pop()
                if child in trail:
                    loops.add(_closed_loop(trail[trail.index(child) :]))
                elif child not in finished:
                    trail.append(child)
                    pending.append(sorted(self._dependents[child], reverse=True))
        return tuple(sorted(loops))

    def get_dependencies(self, node_id: str, *, transitive: bool = False) -> tuple[str, ...]:
        node = self.get(node_id)
        if transitive:
            return self._reachable(node_id, lambda current: self._nodes[current].dependencies)
        return tuple(sorted(node.dependencies))

    def get_dependents(self, node_id: str, *, transitive: bool = False) -> tuple[str, ...]:
        self._require(node_id)
        if transitive:
            return self._reachable(node_id, self._dependents.__getitem__)
        return tuple(sorted(self._dependents[node_id]))

    def get_runnable(self, completed: Set[str]) -> tuple[str, ...]:
        """Ids outside ``completed`` whose dependencies all sit inside it."""
        done = set(completed)
        return tuple(
            node_id
            for node_id in self.node_ids
            if node_id not in done and self._nodes[node_id].dependencies <= done
        )

    def phases(self) -> tuple[int, ...]:
        return tuple(sorted({node.phase for node in self._nodes.values()}))

    def nodes_in_phase(self, phase: int) -> tuple[TaskNode, ...]:
        return tuple(node for node in self.nodes if node.phase == phase)

    def phase_name(self, phase: int) -> str | None:
        for number, label in self.metadata.phase_names:
            if number == phase:
                return label
        for node in self.nodes_in_phase(phase):
            if node.phase_name:
                return node.phase_name
        return None

    def parallel_width(self) -> int:
        """Size of the most crowded phase."""
        return max((len(self.nodes_in_phase(phase)) for phase in self.phases()), default=0)

    def worker_types(self) -> tuple[str, ...]:
        return tuple(sorted({node.worker_type for node in self._nodes.values()}))

    def with_assigned_phases(self) -> TaskGraph:
        """Copy with every node moved to its longest-path level.

        Nodes on one level never depend on each other, so a level can run
        as a single parallel batch.
        """
        level: dict[str, int] = {}
        for node_id in self.topological_sort():
            needs = self._nodes[node_id].dependencies
            level[node_id] = max((level[needed] + 1 for needed in needs), default=0)
        return TaskGraph(
            (replace(node, phase=level[node.node_id]) for node in self.nodes),
            metadata=self.metadata,
        )

    def validate(self) -> None:
        """Raise when the graph loops or a dependency does not sit in an earlier phase."""
        self.topological_sort()
        for node in self.nodes:
            for needed in sorted(node.dependencies):
                earlier = self._nodes[needed].phase
                if earlier >= node.phase:
                    raise ValueError(
                        f"dependency '{needed}' of '{node.node_id}' must be in an "
                        f"earlier phase ({earlier} >= {node.phase})"
                    )

    def critical_path(self, weights: Mapping[str, float] | None = None) -> tuple[str, ...]:
        """Heaviest dependency chain; nodes missing from ``weights`` count ``1.0``.

        Ties go to the chain through the smaller id.
        """
        best: dict[str, tuple[float, tuple[str, ...]]] = {}
        for node_id in self.topological_sort():
            own = _node_weight(node_id, weights)
            needs = self._nodes[node_id].dependencies
            if not needs:
                best[node_id] = (own, (node_id,))
                continue
            lead = min(needs, key=lambda needed: (-best[needed][0], needed))
            cost, chain = best[lead]
            best[node_id] = (cost + own, (*chain, node_id))
        if not best:
            return ()
        last = min(best, key=lambda node_id: (-best[node_id][0], node_id))
        return best[last][1]

    def serialize(self) -> dict[str, JSONValue]:
        """Stable JSON-ready form, read back by :meth:`deserialize`."""
        return {
            "schema_version": TASK_GRAPH_SCHEMA_VERSION,
            "metadata": self.metadata.to_dict(),
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [[parent, child] for parent, child in self.edges],
        }

    @classmethod
    def deserialize(cls, payload: Mapping[str, object]) -> TaskGraph:
        entries = _sequence(payload.get("nodes", ()), "nodes")
        nodes: list[TaskNode] = []
        for position, entry in enumerate(entries):
            if not isinstance(entry, Mapping):
                raise TypeError(f"'nodes[{position}]' must be a mapping")
            nodes.append(TaskNode.from_dict(entry))

        known = {node.node_id for node in nodes}
        for node in nodes:
            dangling = sorted(node.dependencies - known)
            if dangling:
                raise ValueError(f"Node '{node.node_id}' references unknown nodes {dangling}.")

        extra = payload.get("metadata")
        metadata = PlanMetadata.from_dict(extra) if isinstance(extra, Mapping) else None
        return cls(nodes, metadata=metadata)

    def _store(self, node: TaskNode) -> None:
        if not isinstance(node, TaskNode):
            raise TypeError(f"expected a TaskNode, got {type(node).__name__}")
        if node.node_id in self._nodes:
            raise ValueError(f"Duplicate node '{node.node_id}'.")
        self._nodes[node.node_id] = node
        self._dependents[node.node_id] = set()

    def _require(self, node_id: str) -> None:
        if node_id not in self._nodes:
            raise KeyError(f"Unknown node: {node_id}")

    @staticmethod
    def _reachable(start: str, step: Callable[[str], Iterable[str]]) -> tuple[str, ...]:
        seen: set[str] = set()
        frontier = deque(step(start))
        while frontier:
            current = frontier.popleft()
            if current not in seen:
                seen.add(current)
                frontier.extend(step(current))
        return tuple(sorted(seen))


def _sequence(value: object, name: str) -> Sequence[object]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        raise TypeError(f"'{name}' must be a sequence")
    return value


def _node_weight(node_id: str, weights: Mapping[str, float] | None) -> float:
    value = 1.0 if weights is None else weights.get(node_id, 1.0)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"weight for node '{node_id}' must be numeric")
    return float(value)


def _closed_loop(trail: Sequence[str]) -> tuple[str, ...]:
    pivot = trail.index(min(trail))
    rotated = (*trail[pivot:], *trail[:pivot])
    return (*rotated, rotated[0])


__all__ = ["CycleError", "PlanMetadata", "TaskGraph", "TaskNode", "TASK_GRAPH_SCHEMA_VERSION"]
