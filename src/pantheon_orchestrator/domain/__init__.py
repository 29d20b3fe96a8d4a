"""
pantheon-orchestrator domain layer

Purpose
- Domain types shared across planes: Task, WorkerHandle, Message, statuses, ids, errors.

Non-functional requirements
- Domain layer stays free of IO side effects and third-party imports.
"""

from pantheon_orchestrator.domain import ids
from pantheon_orchestrator.domain.errors import (
    ContextConflict,
    DeliveryTimeout,
    DispatchError,
    DispatchFailure,
    DispatchTimeout,
    OrchestrationError,
    PlanningError,
    SafetyDenied,
)
from pantheon_orchestrator.domain.models import (
    BROADCAST,
    JSONValue,
    Message,
    MessageKind,
    OrchestrationMode,
    Priority,
    Task,
    TaskStatus,
    WorkerHandle,
    WorkerStatus,
)

__all__ = [
    "BROADCAST",
    "ContextConflict",
    "DeliveryTimeout",
    "DispatchError",
    "DispatchFailure",
    "DispatchTimeout",
    "JSONValue",
    "Message",
    "MessageKind",
    "OrchestrationError",
    "OrchestrationMode",
    "PlanningError",
    "Priority",
    "SafetyDenied",
    "Task",
    "TaskStatus",
    "WorkerHandle",
    "WorkerStatus",
    "ids",
]
