"""Error hierarchy shared by planning, safety, execution and coordination."""

from __future__ import annotations


class OrchestrationError(RuntimeError):
    """Base error for orchestration failures."""


class PlanningError(OrchestrationError, ValueError):
    """Raised when a plan cannot be built (unknown worker type, empty graph)."""


class SafetyDenied(OrchestrationError):
    """Raised when the safety gate rejects a spawn request."""

    def __init__(self, reason: str, *, worker_type: str, parent_id: str | None = None) -> None:
        self.reason = reason
        self.worker_type = worker_type
        self.parent_id = parent_id
        super().__init__(f"spawn of {worker_type!r} denied: {reason}")


class DispatchError(OrchestrationError):
    """Base error for calls into the external execution interface."""


class DispatchTimeout(DispatchError, TimeoutError):
    """Raised when a dispatch does not resolve within its bounded wait."""


class DispatchFailure(DispatchError):
    """Raised when the execution interface reports a semantic failure."""


class DeliveryTimeout(OrchestrationError, TimeoutError):
    """Raised when a message requiring a response is not answered in time."""

    def __init__(self, correlation_id: str, timeout_seconds: float) -> None:
        self.correlation_id = correlation_id
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"no response for correlation {correlation_id} after {timeout_seconds} seconds"
        )


class ContextConflict(OrchestrationError):
    """Raised when a session context cannot accept a write (e.g. it is archived)."""


__all__ = [
    "ContextConflict",
    "DeliveryTimeout",
    "DispatchError",
    "DispatchFailure",
    "DispatchTimeout",
    "OrchestrationError",
    "PlanningError",
    "SafetyDenied",
]
