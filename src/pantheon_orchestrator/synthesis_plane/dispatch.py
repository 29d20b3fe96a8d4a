"""
pantheon-orchestrator execution interface

File: src/pantheon_orchestrator/synthesis_plane/dispatch.py

Purpose
- The single seam between the orchestration core and the external reasoning service.
- A worker type only selects capability metadata; every worker is invoked through
  the same ``dispatch(worker_type, task, context)`` call.

Functional requirements
- A dispatch either returns a JSON-friendly result or raises ``DispatchFailure``.
- Timeouts are applied by the caller (execution engine), never by the interface.
- Must support scripted/mocked interfaces for offline tests.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Protocol, TypeAlias, runtime_checkable

from pantheon_orchestrator.domain.errors import DispatchFailure
from pantheon_orchestrator.domain.models import JSONValue, Task

DispatchFn: TypeAlias = Callable[
    [str, Task, Mapping[str, JSONValue]], Awaitable[JSONValue] | JSONValue
]


@runtime_checkable
class ExecutionInterface(Protocol):
    """Protocol implemented by adapters to the external reasoning service."""

    async def dispatch(
        self,
        worker_type: str,
        task: Task,
        context: Mapping[str, JSONValue],
    ) -> JSONValue:
        """Run ``task`` as ``worker_type`` and return its result."""


@dataclass(frozen=True, slots=True)
class DispatchContext:
    """Context handed to a worker alongside its task.

    ``dependency_outputs`` only holds outputs of dependencies that finished
    successfully; failed dependencies are absent.
    """

    run_id: str
    worker_id: str
    phase: int
    phase_name: str | None = None
    dependency_outputs: Mapping[str, JSONValue] = field(default_factory=dict)
    shared: Mapping[str, JSONValue] = field(default_factory=dict)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "run_id": self.run_id,
            "worker_id": self.worker_id,
            "phase": self.phase,
            "phase_name": self.phase_name,
            "dependency_outputs": dict(self.dependency_outputs),
            "shared": dict(self.shared),
        }


class CallableExecution:
    """Adapt a plain function (sync or async) to ``ExecutionInterface``."""

    def __init__(self, fn: DispatchFn) -> None:
        if not callable(fn):
            raise TypeError("fn must be callable")
        self._fn = fn

    async def dispatch(
        self,
        worker_type: str,
        task: Task,
        context: Mapping[str, JSONValue],
    ) -> JSONValue:
        outcome = self._fn(worker_type, task, context)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome


class ScriptedExecution:
    """Deterministic interface keyed by task id, for dry runs and tests.

    Entries may be a result value, an exception instance (raised as-is) or a
    callable receiving ``(worker_type, task, context)``. Unscripted tasks
    return ``default`` or fail when no default is set.
    """

    def __init__(
        self,
        script: Mapping[str, object] | None = None,
        *,
        default: JSONValue = None,
        fail_unscripted: bool = False,
    ) -> None:
        self._script = dict(script or {})
        self._default = default
        self._fail_unscripted = fail_unscripted
        self.calls: list[tuple[str, str]] = []

    async def dispatch(
        self,
        worker_type: str,
        task: Task,
        context: Mapping[str, JSONValue],
    ) -> JSONValue:
        self.calls.append((worker_type, task.id))
        if task.id not in self._script:
            if self._fail_unscripted:
                raise DispatchFailure(f"no scripted result for task {task.id!r}")
            if self._default is None:
                return {"worker_type": worker_type, "task": task.id}
            return self._default

        entry = self._script[task.id]
        if isinstance(entry, BaseException):
            raise entry
        if callable(entry):
            outcome = entry(worker_type, task, context)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            return outcome
        return entry  # type: ignore[return-value]


__all__ = [
    "CallableExecution",
    "DispatchContext",
    "DispatchFn",
    "ExecutionInterface",
    "ScriptedExecution",
]
