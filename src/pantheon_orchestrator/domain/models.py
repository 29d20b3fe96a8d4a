"""Dataclass domain models shared across orchestration planes."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TypeAlias

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

BROADCAST: str = "*"


class TaskStatus(StrEnum):
    PENDING = "pending"
    READY = "ready"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.DONE, TaskStatus.FAILED, TaskStatus.SKIPPED)


class Priority(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Heap rank: lower ranks are delivered first."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK: dict[Priority, int] = {
    Priority.HIGH: 1,
    Priority.NORMAL: 2,
    Priority.LOW: 3,
}


class OrchestrationMode(StrEnum):
    """Default orchestration mode declared by a worker type."""

    FIXED = "fixed"
    ADAPTIVE = "adaptive"


class WorkerStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    TERMINATED = "terminated"


class MessageKind(StrEnum):
    DIRECT = "direct"
    BROADCAST = "broadcast"
    MULTICAST = "multicast"
    REPLY = "reply"
    INTRODUCTION = "introduction"


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def canonical_json(value: JSONValue) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _validate_non_empty_str(value: str, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")
    parsed = value.strip()
    if not parsed:
        raise ValueError(f"{field_name} cannot be empty")
    return parsed


def _normalize_str_set(values: Iterable[str], field_name: str) -> frozenset[str]:
    if isinstance(values, str):
        raise ValueError(f"{field_name} must be a collection of strings, not a string")
    return frozenset(_validate_non_empty_str(item, field_name) for item in values)


@dataclass(frozen=True, slots=True)
class Task:
    """Unit of work bound to one worker at execution time."""

    id: str
    description: str
    required_capabilities: frozenset[str] = field(default_factory=frozenset)
    status: TaskStatus = TaskStatus.PENDING
    nested: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _validate_non_empty_str(self.id, "Task.id"))
        object.__setattr__(
            self, "description", _validate_non_empty_str(self.description, "Task.description")
        )
        object.__setattr__(
            self,
            "required_capabilities",
            _normalize_str_set(self.required_capabilities, "Task.required_capabilities"),
        )
        object.__setattr__(self, "status", TaskStatus(self.status))

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "description": self.description,
            "required_capabilities": sorted(self.required_capabilities),
            "status": self.status.value,
            "nested": self.nested,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> Task:
        capabilities = payload.get("required_capabilities", ())
        if not isinstance(capabilities, (list, tuple)):
            raise ValueError("Task.required_capabilities must be a list")
        return cls(
            id=str(payload["id"]),
            description=str(payload["description"]),
            required_capabilities=frozenset(str(item) for item in capabilities),
            status=TaskStatus(str(payload.get("status", TaskStatus.PENDING.value))),
            nested=bool(payload.get("nested", False)),
        )


@dataclass(frozen=True, slots=True)
class WorkerHandle:
    """Live worker registered in the safety hierarchy."""

    worker_id: str
    worker_type: str
    parent_id: str | None
    depth: int
    created_at: datetime
    status: WorkerStatus = WorkerStatus.ACTIVE

    def __post_init__(self) -> None:
        _validate_non_empty_str(self.worker_id, "WorkerHandle.worker_id")
        _validate_non_empty_str(self.worker_type, "WorkerHandle.worker_type")
        if isinstance(self.depth, bool) or not isinstance(self.depth, int) or self.depth < 0:
            raise ValueError("WorkerHandle.depth must be a non-negative integer")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "worker_id": self.worker_id,
            "worker_type": self.worker_type,
            "parent_id": self.parent_id,
            "depth": self.depth,
            "created_at": self.created_at.isoformat(),
            "status": self.status.value,
        }


@dataclass(frozen=True, slots=True)
class Message:
    """Envelope routed through the messenger."""

    message_id: str
    sender: str
    recipient: str
    content: JSONValue
    priority: Priority = Priority.NORMAL
    requires_response: bool = False
    correlation_id: str | None = None
    kind: MessageKind = MessageKind.DIRECT
    sequence: int = 0
    sent_at: datetime = field(default_factory=utc_now)
    audience: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        _validate_non_empty_str(self.sender, "Message.sender")
        _validate_non_empty_str(self.recipient, "Message.recipient")
        object.__setattr__(self, "priority", Priority(self.priority))
        object.__setattr__(self, "kind", MessageKind(self.kind))
        if self.requires_response and not self.correlation_id:
            raise ValueError("Message.correlation_id is required when requires_response is set")
        object.__setattr__(self, "audience", tuple(self.audience))
        if self.kind is MessageKind.MULTICAST and not self.audience:
            raise ValueError("Message.audience cannot be empty for a multicast")

    @property
    def is_broadcast(self) -> bool:
        return self.kind is MessageKind.BROADCAST

    def addresses(self, worker_id: str) -> bool:
        if self.kind is MessageKind.BROADCAST:
            return worker_id != self.sender
        if self.kind is MessageKind.MULTICAST:
            return worker_id in self.audience
        return worker_id == self.recipient

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "message_id": self.message_id,
            "sender": self.sender,
            "recipient": self.recipient,
            "content": self.content,
            "priority": self.priority.value,
            "requires_response": self.requires_response,
            "correlation_id": self.correlation_id,
            "kind": self.kind.value,
            "sequence": self.sequence,
            "sent_at": self.sent_at.isoformat(),
            "audience": list(self.audience),
        }


__all__ = [
    "BROADCAST",
    "JSONScalar",
    "JSONValue",
    "Message",
    "MessageKind",
    "OrchestrationMode",
    "Priority",
    "Task",
    "TaskStatus",
    "WorkerHandle",
    "WorkerStatus",
    "canonical_json",
    "utc_now",
]
