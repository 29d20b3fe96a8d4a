"""Unit tests for coordination_plane.session."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime

import pytest

from pantheon_orchestrator.coordination_plane.session import (
    EventKind,
    SessionContext,
    role_for,
)
from pantheon_orchestrator.domain.errors import ContextConflict
from pantheon_orchestrator.domain.models import WorkerStatus

FIXED_TIME = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)


@dataclass(slots=True)
class RecordingLogger:
    events: list[tuple[str, dict[str, object]]] = field(default_factory=list)

    def info(self, event: str, **kwargs: object) -> None:
        self.events.append((event, kwargs))


def _session(**kwargs: object) -> SessionContext:
    return SessionContext(
        "ses-test",
        clock=lambda: FIXED_TIME,
        logger=RecordingLogger(),
        **kwargs,  # type: ignore[arg-type]
    )


def test_update_context_shadows_current_value_and_keeps_history() -> None:
    session = _session(initial={"requirements": ["chat"]})

    session.update_context("prometheus", {"requirements": ["chat", "payments"]}, reason="scope")
    session.update_context("daedalus", {"decisions": []})

    assert session.context == {"requirements": ["chat", "payments"], "decisions": []}
    assert session.history_of("requirements") == (["chat"], ["chat", "payments"])
    assert [event.seq for event in session.timeline] == [1, 2, 3]
    assert session.timeline[0].contributor == "session"
    assert session.timeline[1].keys == ("requirements",)


def test_context_returns_deep_copies() -> None:
    session = _session(initial={"artifacts": {"files": ["a.py"]}})

    view = session.context
    view["artifacts"]["files"].append("b.py")  # type: ignore[index, union-attr]

    assert session.context == {"artifacts": {"files": ["a.py"]}}


def test_update_context_rejects_non_mapping_patch() -> None:
    with pytest.raises(TypeError, match="patch must be a mapping"):
        _session().update_context("zeus", ["not", "a", "mapping"])  # type: ignore[arg-type]


def test_handoff_snapshot_is_frozen_at_handoff_time() -> None:
    session = _session(initial={"current_phase": "architecture"})

    handoff = session.record_handoff("daedalus", "hephaestus", "design complete")
    session.update_context("hephaestus", {"current_phase": "development"})

    assert handoff.kind is EventKind.HANDOFF
    assert dict(handoff.snapshot or {}) == {"current_phase": "architecture"}
    assert handoff.to_dict()["from"] == "daedalus"
    assert handoff.to_dict()["to"] == "hephaestus"
    assert session.participants["daedalus"].status is WorkerStatus.COMPLETED
    assert session.participants["hephaestus"].role == "development"


def test_role_filtered_view_keeps_always_visible_keys() -> None:
    session = _session(
        initial={
            "user": "ana",
            "requirements": ["chat"],
            "artifacts": ["api.md"],
            "current_phase": "quality",
            "budget": 10,
        }
    )
    session.add_participant("themis")

    view = session.get_context_for("themis")

    assert view.role == "testing"
    assert view.relevant == {
        "requirements": ["chat"],
        "artifacts": ["api.md"],
        "current_phase": "quality",
    }
    assert view.full["budget"] == 10
    assert session.get_context_for("janus").relevant == session.context
    assert session.get_context_for("stranger").relevant == {
        "requirements": ["chat"],
        "current_phase": "quality",
    }
    assert role_for("stranger") == "contributor"


def test_decisions_and_phase_outputs_accumulate() -> None:
    session = _session()

    session.record_decision("daedalus", "use postgres", "relational data")
    session.record_decision("aegis", "enforce mfa")
    session.record_phase_output("development", "hephaestus", {"files": 3})
    session.record_phase_output("development", "apollo", {"screens": 2})

    context = session.context
    decisions = context["decisions"]
    assert [item["decision"] for item in decisions] == [  # type: ignore[index, union-attr]
        "use postgres",
        "enforce mfa",
    ]
    assert context["outputs"] == {
        "development": {"hephaestus": {"files": 3}, "apollo": {"screens": 2}}
    }
    assert set(session.participants) == {"hephaestus", "apollo"}


def test_generate_artifacts_is_a_pure_replay() -> None:
    session = _session(initial={"current_phase": "review"})
    session.record_phase_output("review", "argus", "approved")
    session.record_handoff("argus", "zeus", "review finished")

    first = session.generate_artifacts()
    second = session.generate_artifacts()
    document = json.loads(first)

    assert first == second
    assert document["outputs"] == {"review": {"argus": "approved"}}
    assert document["conversation_summary"]["handoffs"] == [
        {"seq": 3, "from": "argus", "to": "zeus", "reason": "review finished"}
    ]
    assert document["conversation_summary"]["current_phase"] == "review"
    assert "timeline" not in document
    assert len(json.loads(session.generate_artifacts(include_timeline=True))["timeline"]) == 3

    session.update_context("zeus", {"next_steps": ["ship"]})
    assert session.generate_artifacts() != first


def test_archived_session_is_read_only() -> None:
    session = _session()
    session.archive()

    assert session.archived
    with pytest.raises(ContextConflict, match="archived"):
        session.update_context("zeus", {"a": 1})
    with pytest.raises(ContextConflict):
        session.record_handoff("zeus", "janus", "late")
    assert session.snapshot()["archived"] is True


def test_set_participant_status_requires_known_participant() -> None:
    session = _session()
    session.add_participant("aegis")

    assert session.set_participant_status("aegis", WorkerStatus.FAILED).status is (
        WorkerStatus.FAILED
    )
    with pytest.raises(KeyError, match="unknown participant"):
        session.set_participant_status("ghost", WorkerStatus.FAILED)


def test_concurrent_writers_keep_every_write_in_history() -> None:
    session = _session()
    barrier = threading.Barrier(8)

    def write(index: int) -> None:
        barrier.wait()
        for round_number in range(25):
            session.update_context(f"writer-{index}", {"shared": [index, round_number]})

    threads = [threading.Thread(target=write, args=(index,)) for index in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    history = session.history_of("shared")
    assert len(history) == 200
    assert [event.seq for event in session.timeline] == list(range(1, 201))
    assert session.context["shared"] == history[-1]
