"""
pantheon-orchestrator session context store

File: src/pantheon_orchestrator/coordination_plane/session.py

Purpose
- Shared, append-only context for one workflow or conversation: participants,
  the current context map, and a totally ordered timeline of updates and handoffs.

Functional requirements
- ``update_context`` is a shallow per-key merge plus an ``update`` timeline event;
  it shadows a key's current value but never rewrites history.
- Every handoff event carries a deep snapshot of the context at handoff time.
- ``generate_artifacts`` is a pure replay: no intervening writes = identical bytes.
- Archived sessions are read-only.

Non-functional requirements
- Each write is one atomic read-merge-append step; concurrent writers to the same
  key resolve last-write-wins on the current value while both stay in history.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Final

import structlog

from pantheon_orchestrator.domain import ids
from pantheon_orchestrator.domain.errors import ContextConflict
from pantheon_orchestrator.domain.models import JSONValue, WorkerStatus, canonical_json, utc_now

SESSION_CONTRIBUTOR: Final[str] = "session"
ALWAYS_VISIBLE_KEYS: Final[tuple[str, ...]] = ("current_phase", "next_steps")
DEFAULT_ROLE: Final[str] = "contributor"

# ``None`` means every key is relevant.
ROLE_FILTERS: Final[Mapping[str, tuple[str, ...] | None]] = MappingProxyType(
    {
        "orchestrator": None,
        "requirements": ("user", "project", "requirements"),
        "design": ("requirements", "decisions", "artifacts"),
        "development": ("requirements", "project", "decisions", "artifacts"),
        "testing": ("requirements", "artifacts", "outputs"),
        "security": ("requirements", "decisions", "artifacts"),
        "review": ("decisions", "artifacts", "outputs"),
    }
)
_FALLBACK_FILTER: Final[tuple[str, ...]] = ("requirements", "decisions")

ROLE_BY_WORKER: Final[Mapping[str, str]] = MappingProxyType(
    {
        "zeus": "orchestrator",
        "janus": "orchestrator",
        "concilium": "orchestrator",
        "prometheus": "requirements",
        "athena": "requirements",
        "hermes": "requirements",
        "daedalus": "design",
        "apollo": "design",
        "oracle": "design",
        "harmonia": "design",
        "iris": "design",
        "calliope": "design",
        "hephaestus": "development",
        "vulcan": "development",
        "themis": "testing",
        "aegis": "security",
        "argus": "review",
        "code-reviewer": "review",
    }
)


def role_for(worker_id: str) -> str:
    return ROLE_BY_WORKER.get(worker_id, DEFAULT_ROLE)


class EventKind(StrEnum):
    UPDATE = "update"
    HANDOFF = "handoff"


@dataclass(frozen=True, slots=True)
class TimelineEvent:
    seq: int
    kind: EventKind
    contributor: str
    reason: str
    recorded_at: datetime
    keys: tuple[str, ...] = ()
    values: Mapping[str, JSONValue] = field(default_factory=dict)
    recipient: str | None = None
    snapshot: Mapping[str, JSONValue] | None = None

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "seq": self.seq,
            "kind": self.kind.value,
            "contributor": self.contributor,
            "reason": self.reason,
            "recorded_at": self.recorded_at.isoformat(),
        }
        if self.kind is EventKind.UPDATE:
            payload["keys"] = list(self.keys)
            payload["values"] = copy.deepcopy(dict(self.values))
        else:
            payload["from"] = self.contributor
            payload["to"] = self.recipient
            payload["snapshot"] = copy.deepcopy(dict(self.snapshot or {}))
        return payload


@dataclass(frozen=True, slots=True)
class Participant:
    worker_id: str
    role: str
    status: WorkerStatus = WorkerStatus.ACTIVE

    def to_dict(self) -> dict[str, JSONValue]:
        return {"worker_id": self.worker_id, "role": self.role, "status": self.status.value}


@dataclass(frozen=True, slots=True)
class ContextView:
    """What one participant sees: everything, plus a role-filtered subset."""

    worker_id: str
    role: str
    full: dict[str, JSONValue]
    relevant: dict[str, JSONValue]
    timeline: tuple[TimelineEvent, ...]


class SessionContext:
    """Versioned shared context; safe for concurrent writers."""

    def __init__(
        self,
        session_id: str | None = None,
        *,
        initial: Mapping[str, JSONValue] | None = None,
        clock: Callable[[], datetime] = utc_now,
        logger: Any | None = None,
    ) -> None:
        self._session_id = session_id or ids.generate_session_id()
        self._clock = clock
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._lock = threading.Lock()
        self._participants: dict[str, Participant] = {}
        self._context: dict[str, JSONValue] = {}
        self._timeline: list[TimelineEvent] = []
        self._archived = False
        if initial:
            self.update_context(SESSION_CONTRIBUTOR, initial, reason="session started")

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def archived(self) -> bool:
        return self._archived

    @property
    def context(self) -> dict[str, JSONValue]:
        with self._lock:
            return copy.deepcopy(self._context)

    @property
    def timeline(self) -> tuple[TimelineEvent, ...]:
        with self._lock:
            return tuple(self._timeline)

    @property
    def participants(self) -> dict[str, Participant]:
        with self._lock:
            return dict(self._participants)

    def add_participant(self, worker_id: str, role: str | None = None) -> Participant:
        with self._lock:
            self._ensure_writable()
            return self._join_locked(worker_id, role)

    def set_participant_status(self, worker_id: str, status: WorkerStatus) -> Participant:
        with self._lock:
            self._ensure_writable()
            current = self._participants.get(worker_id)
            if current is None:
                raise KeyError(f"unknown participant: {worker_id}")
            updated = Participant(worker_id=worker_id, role=current.role, status=status)
            self._participants[worker_id] = updated
            return updated

    def update_context(
        self,
        contributor: str,
        patch: Mapping[str, JSONValue],
        reason: str = "",
    ) -> TimelineEvent:
        """Shallow-merge ``patch`` and append one update event."""
        if not isinstance(patch, Mapping):
            raise TypeError("patch must be a mapping")
        with self._lock:
            self._ensure_writable()
            event = self._append_update_locked(contributor, patch, reason)
        self._log_update(event)
        return event

    def history_of(self, key: str) -> tuple[JSONValue, ...]:
        """Every value ``key`` has held, oldest first."""
        with self._lock:
            return tuple(
                copy.deepcopy(event.values[key])
                for event in self._timeline
                if event.kind is EventKind.UPDATE and key in event.values
            )

    def get_context_for(self, worker_id: str, *, role: str | None = None) -> ContextView:
        with self._lock:
            participant = self._participants.get(worker_id)
            resolved_role = role or (participant.role if participant else role_for(worker_id))
            full = copy.deepcopy(self._context)
            timeline = tuple(self._timeline)

        wanted = ROLE_FILTERS.get(resolved_role, _FALLBACK_FILTER)
        if wanted is None:
            relevant = copy.deepcopy(full)
        else:
            keys = (*wanted, *ALWAYS_VISIBLE_KEYS)
            relevant = {key: copy.deepcopy(full[key]) for key in keys if key in full}
        return ContextView(
            worker_id=worker_id,
            role=resolved_role,
            full=full,
            relevant=relevant,
            timeline=timeline,
        )

    def record_handoff(self, sender: str, recipient: str, reason: str) -> TimelineEvent:
        """Move ownership to ``recipient`` and capture the context it inherits."""
        with self._lock:
            self._ensure_writable()
            self._join_locked(sender, None)
            self._join_locked(recipient, None)
            current = self._participants[sender]
            self._participants[sender] = Participant(
                worker_id=sender, role=current.role, status=WorkerStatus.COMPLETED
            )
            incoming = self._participants[recipient]
            self._participants[recipient] = Participant(
                worker_id=recipient, role=incoming.role, status=WorkerStatus.ACTIVE
            )
            event = TimelineEvent(
                seq=len(self._timeline) + 1,
                kind=EventKind.HANDOFF,
                contributor=sender,
                reason=reason,
                recorded_at=self._clock(),
                recipient=recipient,
                snapshot=MappingProxyType(copy.deepcopy(self._context)),
            )
            self._timeline.append(event)

        self._logger.info(
            "session_handoff_recorded",
            session_id=self._session_id,
            seq=event.seq,
            sender=sender,
            recipient=recipient,
            reason=reason,
        )
        return event

    def record_decision(
        self, contributor: str, decision: str, rationale: str = ""
    ) -> TimelineEvent:
        with self._lock:
            self._ensure_writable()
            existing = self._context.get("decisions")
            decisions = list(existing) if isinstance(existing, list) else []
            decisions.append(
                {"decision": decision, "rationale": rationale, "contributor": contributor}
            )
            event = self._append_update_locked(
                contributor, {"decisions": decisions}, "decision"
            )
        self._log_update(event)
        return event

    def record_phase_output(self, phase: str, worker_id: str, output: JSONValue) -> TimelineEvent:
        """Store ``output`` under ``outputs.<phase>.<worker_id>``."""
        with self._lock:
            self._ensure_writable()
            if worker_id not in self._participants:
                self._join_locked(worker_id, None)
            existing = self._context.get("outputs")
            outputs = dict(existing) if isinstance(existing, dict) else {}
            phase_outputs = outputs.get(phase)
            merged = dict(phase_outputs) if isinstance(phase_outputs, dict) else {}
            merged[worker_id] = output
            outputs[phase] = merged
            event = self._append_update_locked(
                worker_id, {"outputs": outputs}, f"{phase} output"
            )
        self._log_update(event)
        return event

    def archive(self) -> None:
        with self._lock:
            self._archived = True
            events = len(self._timeline)
        self._logger.info("session_archived", session_id=self._session_id, events=events)

    def snapshot(self) -> dict[str, JSONValue]:
        with self._lock:
            return {
                "session_id": self._session_id,
                "archived": self._archived,
                "participants": [
                    self._participants[key].to_dict() for key in sorted(self._participants)
                ],
                "context": copy.deepcopy(self._context),
                "timeline": [event.to_dict() for event in self._timeline],
            }

    def generate_artifacts(
        self,
        *,
        include_decision_log: bool = True,
        include_conversation_summary: bool = True,
        include_timeline: bool = False,
    ) -> str:
        """Replay the timeline into a canonical JSON summary document."""
        with self._lock:
            participants = [self._participants[key].to_dict() for key in sorted(self._participants)]
            timeline = list(self._timeline)

        replayed: dict[str, JSONValue] = {}
        handoffs: list[JSONValue] = []
        contributors: set[str] = set()
        for event in timeline:
            contributors.add(event.contributor)
            if event.kind is EventKind.UPDATE:
                replayed.update(copy.deepcopy(dict(event.values)))
            else:
                handoffs.append(
                    {
                        "seq": event.seq,
                        "from": event.contributor,
                        "to": event.recipient,
                        "reason": event.reason,
                    }
                )

        document: dict[str, JSONValue] = {
            "session_id": self._session_id,
            "participants": participants,
            "outputs": replayed.get("outputs", {}),
        }
        if include_decision_log:
            document["decisions"] = replayed.get("decisions", [])
        if include_conversation_summary:
            document["conversation_summary"] = {
                "events": len(timeline),
                "updates": sum(1 for event in timeline if event.kind is EventKind.UPDATE),
                "handoffs": handoffs,
                "contributors": sorted(contributors),
                "current_phase": replayed.get("current_phase"),
            }
        if include_timeline:
            document["timeline"] = [event.to_dict() for event in timeline]
        return canonical_json(document)

    def _append_update_locked(
        self,
        contributor: str,
        patch: Mapping[str, JSONValue],
        reason: str,
    ) -> TimelineEvent:
        values = copy.deepcopy(dict(patch))
        self._context.update(copy.deepcopy(values))
        event = TimelineEvent(
            seq=len(self._timeline) + 1,
            kind=EventKind.UPDATE,
            contributor=contributor,
            reason=reason,
            recorded_at=self._clock(),
            keys=tuple(sorted(values)),
            values=MappingProxyType(values),
        )
        self._timeline.append(event)
        return event

    def _log_update(self, event: TimelineEvent) -> None:
        self._logger.info(
            "session_context_updated",
            session_id=self._session_id,
            seq=event.seq,
            contributor=event.contributor,
            keys=list(event.keys),
            reason=event.reason,
        )

    def _join_locked(self, worker_id: str, role: str | None) -> Participant:
        existing = self._participants.get(worker_id)
        if existing is not None:
            if role is not None and role != existing.role:
                existing = Participant(worker_id=worker_id, role=role, status=existing.status)
                self._participants[worker_id] = existing
            return existing
        participant = Participant(worker_id=worker_id, role=role or role_for(worker_id))
        self._participants[worker_id] = participant
        return participant

    def _ensure_writable(self) -> None:
        if self._archived:
            raise ContextConflict(f"session {self._session_id} is archived and read-only")


__all__ = [
    "ContextView",
    "EventKind",
    "Participant",
    "ROLE_FILTERS",
    "SessionContext",
    "TimelineEvent",
    "role_for",
]
