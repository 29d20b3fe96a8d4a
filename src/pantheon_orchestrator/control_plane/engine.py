"""
pantheon-orchestrator execution engine

File: src/pantheon_orchestrator/control_plane/engine.py

Purpose
- Walk a ``TaskGraph`` phase by phase, gate every node through the ``SafetyManager``,
  dispatch approved nodes concurrently and collect per-node results.

Functional requirements
- Phases run strictly in order with a barrier between them; nodes inside a phase
  run concurrently (bounded by ``max_parallel_dispatches``).
- A safety denial fails the denied node and its transitive dependents with reason
  ``safety-denied``; the rest of the graph keeps running.
- If more than half of a phase's nodes fail, the run stops with ``failed`` and
  later phases do not appear in the results.
- Failed dependencies are simply absent from a node's ``dependency_outputs``.
- An operator abort skips in-flight and remaining nodes (reason ``aborted``).
- Dispatch errors are reported per node and never retried here.
- An archived session is rejected before any worker is spawned.

Non-functional requirements
- Every dispatch has a bounded wait; a timeout is a node failure, not a hang.
- `structlog` for machine-parseable phase and node events.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import structlog

from pantheon_orchestrator.domain import ids
from pantheon_orchestrator.domain.errors import (
    ContextConflict,
    DispatchFailure,
    DispatchTimeout,
    PlanningError,
)
from pantheon_orchestrator.domain.models import JSONValue, TaskStatus, WorkerStatus, utc_now
from pantheon_orchestrator.planning.task_graph import CycleError
from pantheon_orchestrator.synthesis_plane.dispatch import DispatchContext
from pantheon_orchestrator.utils.concurrency import (
    CancellationToken,
    DispatchSlots,
    run_with_timeout,
)

if TYPE_CHECKING:
    from pantheon_orchestrator.control_plane.safety import SafetyLimits, SafetyManager
    from pantheon_orchestrator.coordination_plane.session import SessionContext
    from pantheon_orchestrator.domain.models import WorkerHandle
    from pantheon_orchestrator.planning.planner import WorkflowPlanner
    from pantheon_orchestrator.planning.task_graph import TaskGraph, TaskNode
    from pantheon_orchestrator.synthesis_plane.complexity import ComplexityAnalyzer
    from pantheon_orchestrator.synthesis_plane.dispatch import ExecutionInterface

REASON_SAFETY_DENIED = "safety-denied"
REASON_DISPATCH_TIMEOUT = "dispatch-timeout"
REASON_DISPATCH_FAILURE = "dispatch-failure"
REASON_DISPATCH_ERROR = "dispatch-error"
REASON_ABORTED = "aborted"

ENGINE_CONTRIBUTOR = "engine"


class WorkflowStatus(StrEnum):
    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"
    ABORTED = "aborted"


@dataclass(frozen=True, slots=True)
class EngineSettings:
    dispatch_timeout_seconds: float = 300.0
    max_parallel_dispatches: int = 8

    def __post_init__(self) -> None:
        timeout = self.dispatch_timeout_seconds
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ValueError("dispatch_timeout_seconds must be > 0")
        parallel = self.max_parallel_dispatches
        if isinstance(parallel, bool) or not isinstance(parallel, int) or parallel <= 0:
            raise ValueError("max_parallel_dispatches must be a positive integer")


@dataclass(frozen=True, slots=True)
class NodeResult:
    node_id: str
    worker_type: str
    phase: int
    status: TaskStatus
    result: JSONValue = None
    error: str | None = None
    reason: str | None = None
    worker_id: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is TaskStatus.DONE

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "node_id": self.node_id,
            "worker_type": self.worker_type,
            "phase": self.phase,
            "status": self.status.value,
            "result": self.result,
            "error": self.error,
            "reason": self.reason,
            "worker_id": self.worker_id,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    """Workflow outcome; partial success is an explicit status."""

    run_id: str
    status: WorkflowStatus
    results: tuple[NodeResult, ...]
    phases_completed: tuple[int, ...] = ()

    def result_for(self, node_id: str) -> NodeResult:
        for item in self.results:
            if item.node_id == node_id:
                return item
        raise KeyError(f"no result for node: {node_id}")

    @property
    def node_ids(self) -> tuple[str, ...]:
        return tuple(item.node_id for item in self.results)

    @property
    def failed(self) -> tuple[NodeResult, ...]:
        return tuple(item for item in self.results if item.status is TaskStatus.FAILED)

    @property
    def outputs(self) -> dict[str, JSONValue]:
        return {item.node_id: item.result for item in self.results if item.succeeded}

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "phases_completed": list(self.phases_completed),
            "results": [item.to_dict() for item in self.results],
        }


class ExecutionEngine:
    """Phase-barrier executor over an external ``ExecutionInterface``."""

    def __init__(
        self,
        execution: ExecutionInterface,
        safety: SafetyManager,
        settings: EngineSettings | None = None,
        *,
        planner: WorkflowPlanner | None = None,
        analyzer: ComplexityAnalyzer | None = None,
        limits: SafetyLimits | None = None,
        logger: Any | None = None,
    ) -> None:
        self._execution = execution
        self._safety = safety
        self._settings = settings if settings is not None else EngineSettings()
        self._planner = planner
        self._analyzer = analyzer
        self._limits = limits
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._active_tokens: set[CancellationToken] = set()

    @property
    def safety(self) -> SafetyManager:
        return self._safety

    def abort(self) -> None:
        """Cancel every run currently executing on this engine."""
        for token in tuple(self._active_tokens):
            token.cancel()

    async def execute(
        self,
        graph: TaskGraph,
        *,
        session: SessionContext | None = None,
        parent_id: str | None = None,
        cancel_token: CancellationToken | None = None,
        run_id: str | None = None,
    ) -> ExecutionResult:
        try:
            graph.validate()
        except CycleError as exc:
            raise PlanningError(f"cannot execute a cyclic graph: {exc}") from exc
        except ValueError as exc:
            raise PlanningError(f"cannot execute graph: {exc}") from exc
        if len(graph) == 0:
            raise PlanningError("cannot execute an empty graph")
        if session is not None and session.archived:
            raise ContextConflict(
                f"session {session.session_id} is archived; it cannot record a new run"
            )

        run_id = run_id or ids.generate_run_id()
        token = cancel_token if cancel_token is not None else CancellationToken()
        slots = DispatchSlots(self._settings.max_parallel_dispatches)
        results: dict[str, NodeResult] = {}
        doomed: dict[str, NodeResult] = {}
        outputs: dict[str, JSONValue] = {}
        completed_phases: list[int] = []
        status = WorkflowStatus.SUCCEEDED

        self._active_tokens.add(token)
        self._logger.info(
            "engine_run_started",
            run_id=run_id,
            parent_id=parent_id,
            nodes=len(graph),
            phases=len(graph.phases()),
        )
        try:
            phases = graph.phases()
            for position, phase in enumerate(phases):
                if token.is_cancelled:
                    self._skip_remaining(graph, phases[position:], results, doomed)
                    status = WorkflowStatus.ABORTED
                    break

                phase_label = graph.phase_name(phase) or f"phase-{phase}"
                nodes = graph.nodes_in_phase(phase)
                if session is not None:
                    session.update_context(
                        ENGINE_CONTRIBUTOR,
                        {"current_phase": phase_label},
                        reason=f"phase {phase} started",
                    )
                self._logger.info(
                    "engine_phase_started",
                    run_id=run_id,
                    phase=phase,
                    phase_name=phase_label,
                    nodes=[node.node_id for node in nodes],
                )

                approved: list[tuple[TaskNode, WorkerHandle]] = []
                for node in nodes:
                    if node.node_id in doomed:
                        results[node.node_id] = doomed.pop(node.node_id)
                        continue
                    decision = self._safety.request_spawn(
                        parent_id, node.worker_type, limits=self._limits
                    )
                    if decision.handle is None:
                        results[node.node_id] = _failed(
                            node, REASON_SAFETY_DENIED, decision.reason or "denied"
                        )
                        self._doom_dependents(graph, node, decision.reason, doomed)
                        continue
                    approved.append((node, decision.handle))

                snapshot = dict(outputs)
                finished = await asyncio.gather(
                    *(
                        self._run_node(
                            node,
                            handle,
                            run_id=run_id,
                            outputs=snapshot,
                            token=token,
                            slots=slots,
                        )
                        for node, handle in approved
                    )
                )
                for item in finished:
                    results[item.node_id] = item
                    if item.succeeded:
                        outputs[item.node_id] = item.result
                        if session is not None:
                            session.record_phase_output(phase_label, item.worker_type, item.result)

                failed_count = sum(
                    1 for node in nodes if results[node.node_id].status is TaskStatus.FAILED
                )
                self._logger.info(
                    "engine_phase_completed",
                    run_id=run_id,
                    phase=phase,
                    phase_name=phase_label,
                    nodes=len(nodes),
                    failed=failed_count,
                    peak_parallel=slots.peak,
                )

                if token.is_cancelled:
                    self._skip_remaining(graph, phases[position + 1 :], results, doomed)
                    status = WorkflowStatus.ABORTED
                    break
                completed_phases.append(phase)
                if failed_count * 2 > len(nodes):
                    status = WorkflowStatus.FAILED
                    self._logger.info(
                        "engine_run_halted",
                        run_id=run_id,
                        phase=phase,
                        failed=failed_count,
                        nodes=len(nodes),
                    )
                    break
        finally:
            self._active_tokens.discard(token)

        if status is WorkflowStatus.SUCCEEDED and any(
            item.status is not TaskStatus.DONE for item in results.values()
        ):
            status = WorkflowStatus.PARTIAL

        ordered = tuple(
            sorted(results.values(), key=lambda item: (item.phase, item.node_id))
        )
        self._logger.info(
            "engine_run_finished",
            run_id=run_id,
            status=status.value,
            succeeded=sum(1 for item in ordered if item.succeeded),
            failed=sum(1 for item in ordered if item.status is TaskStatus.FAILED),
            skipped=sum(1 for item in ordered if item.status is TaskStatus.SKIPPED),
        )
        return ExecutionResult(
            run_id=run_id,
            status=status,
            results=ordered,
            phases_completed=tuple(completed_phases),
        )

    async def _run_node(
        self,
        node: TaskNode,
        handle: WorkerHandle,
        *,
        run_id: str,
        outputs: Mapping[str, JSONValue],
        token: CancellationToken,
        slots: DispatchSlots,
    ) -> NodeResult:
        context = DispatchContext(
            run_id=run_id,
            worker_id=handle.worker_id,
            phase=node.phase,
            phase_name=node.phase_name,
            dependency_outputs={
                dependency: outputs[dependency]
                for dependency in sorted(node.dependencies)
                if dependency in outputs
            },
        )
        started_at = utc_now()
        worker_status = WorkerStatus.FAILED
        result: JSONValue = None
        error: str | None = None
        reason: str | None = None
        status = TaskStatus.FAILED
        try:
            async with slots.slot():
                if node.task.nested:
                    result = await self._run_nested(node, handle, token)
                else:
                    result = await run_with_timeout(
                        self._execution.dispatch(node.worker_type, node.task, context.to_dict()),
                        self._settings.dispatch_timeout_seconds,
                        token,
                    )
            status = TaskStatus.DONE
            worker_status = WorkerStatus.COMPLETED
        except asyncio.CancelledError:
            if not token.is_cancelled:
                raise
            status, reason = TaskStatus.SKIPPED, REASON_ABORTED
            worker_status = WorkerStatus.TERMINATED
        except TimeoutError:
            reason = REASON_DISPATCH_TIMEOUT
            error = str(
                DispatchTimeout(
                    f"{node.worker_type} did not respond within "
                    f"{self._settings.dispatch_timeout_seconds} seconds"
                )
            )
        except DispatchFailure as exc:
            reason, error = REASON_DISPATCH_FAILURE, str(exc)
        except Exception as exc:  # noqa: BLE001
            reason, error = REASON_DISPATCH_ERROR, f"{type(exc).__name__}: {exc}"
        finally:
            self._safety.unregister(handle, status=worker_status)

        outcome = NodeResult(
            node_id=node.node_id,
            worker_type=node.worker_type,
            phase=node.phase,
            status=status,
            result=result,
            error=error,
            reason=reason,
            worker_id=handle.worker_id,
            started_at=started_at,
            ended_at=utc_now(),
        )
        self._logger.info(
            "engine_node_finished",
            run_id=run_id,
            node_id=node.node_id,
            worker_type=node.worker_type,
            worker_id=handle.worker_id,
            status=status.value,
            reason=reason,
        )
        return outcome

    async def _run_nested(
        self,
        node: TaskNode,
        handle: WorkerHandle,
        token: CancellationToken,
    ) -> JSONValue:
        if self._planner is None or self._analyzer is None:
            raise DispatchFailure(
                f"nested node {node.node_id} needs a planner and an analyzer to run"
            )
        analysis = self._analyzer.analyze(node.task.description)
        graph = self._planner.plan(node.task.description, analysis)
        child = ExecutionEngine(
            self._execution,
            self._safety,
            self._settings,
            planner=self._planner,
            analyzer=self._analyzer,
            limits=self._limits,
            logger=self._logger,
        )
        outcome = await child.execute(graph, parent_id=handle.worker_id, cancel_token=token)
        if outcome.status is WorkflowStatus.ABORTED:
            raise asyncio.CancelledError("nested run aborted")
        if outcome.status is WorkflowStatus.FAILED:
            raise DispatchFailure(
                f"nested run {outcome.run_id} failed: "
                f"{len(outcome.failed)} of {len(outcome.results)} nodes failed"
            )
        return {
            "nested_run_id": outcome.run_id,
            "status": outcome.status.value,
            "outputs": outcome.outputs,
        }

    def _doom_dependents(
        self,
        graph: TaskGraph,
        node: TaskNode,
        denial: str | None,
        doomed: dict[str, NodeResult],
    ) -> None:
        for dependent_id in graph.get_dependents(node.node_id, transitive=True):
            if dependent_id in doomed:
                continue
            dependent = graph.get(dependent_id)
            doomed[dependent_id] = _failed(
                dependent,
                REASON_SAFETY_DENIED,
                f"upstream node {node.node_id} was denied: {denial or 'denied'}",
            )
        self._logger.info(
            "engine_branch_denied",
            node_id=node.node_id,
            worker_type=node.worker_type,
            denial=denial,
            branch=list(graph.get_dependents(node.node_id, transitive=True)),
        )

    def _skip_remaining(
        self,
        graph: TaskGraph,
        phases: tuple[int, ...],
        results: dict[str, NodeResult],
        doomed: dict[str, NodeResult],
    ) -> None:
        for phase in phases:
            for node in graph.nodes_in_phase(phase):
                if node.node_id in results:
                    continue
                if node.node_id in doomed:
                    results[node.node_id] = doomed.pop(node.node_id)
                    continue
                results[node.node_id] = NodeResult(
                    node_id=node.node_id,
                    worker_type=node.worker_type,
                    phase=node.phase,
                    status=TaskStatus.SKIPPED,
                    reason=REASON_ABORTED,
                )


def _failed(node: TaskNode, reason: str, error: str) -> NodeResult:
    now = utc_now()
    return NodeResult(
        node_id=node.node_id,
        worker_type=node.worker_type,
        phase=node.phase,
        status=TaskStatus.FAILED,
        error=error,
        reason=reason,
        started_at=now,
        ended_at=now,
    )


__all__ = [
    "EngineSettings",
    "ExecutionEngine",
    "ExecutionResult",
    "NodeResult",
    "REASON_ABORTED",
    "REASON_DISPATCH_ERROR",
    "REASON_DISPATCH_FAILURE",
    "REASON_DISPATCH_TIMEOUT",
    "REASON_SAFETY_DENIED",
    "WorkflowStatus",
]
