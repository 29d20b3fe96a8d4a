"""Unit tests for the execution interface adapters."""

from __future__ import annotations

import pytest

from pantheon_orchestrator.domain.errors import DispatchFailure
from pantheon_orchestrator.domain.models import Task
from pantheon_orchestrator.synthesis_plane.dispatch import (
    CallableExecution,
    DispatchContext,
    ExecutionInterface,
    ScriptedExecution,
)


def _task(task_id: str = "s00-hephaestus") -> Task:
    return Task(id=task_id, description="Implement the solution for: fix the build")


@pytest.mark.asyncio
async def test_callable_execution_wraps_sync_and_async_functions() -> None:
    def sync_fn(worker_type: str, task: Task, context: object) -> str:
        return f"{worker_type}:{task.id}"

    async def async_fn(worker_type: str, task: Task, context: object) -> dict[str, str]:
        return {"worker": worker_type}

    sync_adapter = CallableExecution(sync_fn)
    async_adapter = CallableExecution(async_fn)

    assert isinstance(sync_adapter, ExecutionInterface)
    assert await sync_adapter.dispatch("hephaestus", _task(), {}) == "hephaestus:s00-hephaestus"
    assert await async_adapter.dispatch("themis", _task(), {}) == {"worker": "themis"}

    with pytest.raises(TypeError, match="fn must be callable"):
        CallableExecution("not-callable")  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_scripted_execution_values_errors_and_callables() -> None:
    async def echo_context(worker_type: str, task: Task, context: object) -> object:
        return context

    execution = ScriptedExecution(
        {
            "ok": {"answer": 42},
            "boom": DispatchFailure("model refused"),
            "echo": echo_context,
        }
    )

    assert await execution.dispatch("athena", _task("ok"), {}) == {"answer": 42}
    with pytest.raises(DispatchFailure, match="model refused"):
        await execution.dispatch("athena", _task("boom"), {})
    assert await execution.dispatch("athena", _task("echo"), {"phase": 1}) == {"phase": 1}
    assert await execution.dispatch("argus", _task("other"), {}) == {
        "worker_type": "argus",
        "task": "other",
    }
    assert execution.calls == [
        ("athena", "ok"),
        ("athena", "boom"),
        ("athena", "echo"),
        ("argus", "other"),
    ]


@pytest.mark.asyncio
async def test_scripted_execution_default_and_strict_modes() -> None:
    with_default = ScriptedExecution(default="done")
    assert await with_default.dispatch("zeus", _task(), {}) == "done"

    strict = ScriptedExecution(fail_unscripted=True)
    with pytest.raises(DispatchFailure, match="no scripted result"):
        await strict.dispatch("zeus", _task(), {})


def test_dispatch_context_to_dict() -> None:
    context = DispatchContext(
        run_id="run-1",
        worker_id="wrk-1",
        phase=2,
        phase_name="development",
        dependency_outputs={"s00-daedalus": "design"},
    )
    assert context.to_dict() == {
        "run_id": "run-1",
        "worker_id": "wrk-1",
        "phase": 2,
        "phase_name": "development",
        "dependency_outputs": {"s00-daedalus": "design"},
        "shared": {},
    }
