"""
Spawn gate and live worker hierarchy.

Every worker spawn, including spawns requested by nested meta-orchestration,
goes through ``SafetyManager.request_spawn``. Checks run in a fixed order and
the first failing check names the denial:

1. live workers ``< max_total_workers``        -> "max agents reached"
2. ``parent.depth + 1 <= max_depth``           -> "max depth reached"
3. parent's spawns inside the rate window      -> "rate limited"
   (top-level spawns use ``root_spawns_per_window``, the run's own budget)
4. worker type allowed for the calling context -> "type not permitted for this parent"
5. parent's live children ``< max_children``   -> "max children reached"

It integrates with:
- `WorkerHandle` from the domain layer for the hierarchy tree
- `structlog` for machine-parseable spawn decisions
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

import structlog

from pantheon_orchestrator.domain import ids
from pantheon_orchestrator.domain.errors import SafetyDenied
from pantheon_orchestrator.domain.models import JSONValue, WorkerHandle, WorkerStatus, utc_now

Clock = Callable[[], float]

DENY_MAX_AGENTS = "max agents reached"
DENY_MAX_DEPTH = "max depth reached"
DENY_RATE_LIMITED = "rate limited"
DENY_TYPE_NOT_PERMITTED = "type not permitted for this parent"
DENY_MAX_CHILDREN = "max children reached"
DENY_UNKNOWN_PARENT = "unknown parent"


class HierarchyError(RuntimeError):
    """Raised when the hierarchy would be left inconsistent."""


def _positive_int(value: object, field_name: str, *, minimum: int = 1) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"SafetyLimits.{field_name} must be an integer")
    if value < minimum:
        raise ValueError(f"SafetyLimits.{field_name} must be >= {minimum}")
    return value


@dataclass(frozen=True, slots=True)
class SafetyLimits:
    """Spawn limits for one calling context; ``allowed_worker_types=None`` allows all."""

    max_total_workers: int = 50
    max_depth: int = 5
    rate_window_ms: int = 60_000
    max_spawns_per_window: int = 10
    max_children_per_parent: int = 10
    root_spawns_per_window: int = 50
    allowed_worker_types: frozenset[str] | None = None

    def __post_init__(self) -> None:
        _positive_int(self.max_total_workers, "max_total_workers")
        _positive_int(self.max_depth, "max_depth", minimum=0)
        _positive_int(self.rate_window_ms, "rate_window_ms")
        _positive_int(self.max_spawns_per_window, "max_spawns_per_window")
        _positive_int(self.max_children_per_parent, "max_children_per_parent")
        _positive_int(self.root_spawns_per_window, "root_spawns_per_window")
        if self.allowed_worker_types is not None:
            if isinstance(self.allowed_worker_types, str):
                raise ValueError("SafetyLimits.allowed_worker_types must be a collection")
            object.__setattr__(
                self,
                "allowed_worker_types",
                frozenset(item.strip().lower() for item in self.allowed_worker_types),
            )

    def permits(self, worker_type: str) -> bool:
        if self.allowed_worker_types is None:
            return True
        return worker_type.strip().lower() in self.allowed_worker_types

    def spawns_per_window(self, parent_id: str | None) -> int:
        """Rate cap for ``parent_id``; top-level spawns draw on the run budget."""
        return self.root_spawns_per_window if parent_id is None else self.max_spawns_per_window

    def narrowed(self, other: SafetyLimits | None) -> SafetyLimits:
        """Limits no looser than either side."""
        if other is None:
            return self
        if self.allowed_worker_types is None:
            allowed = other.allowed_worker_types
        elif other.allowed_worker_types is None:
            allowed = self.allowed_worker_types
        else:
            allowed = self.allowed_worker_types & other.allowed_worker_types
        return SafetyLimits(
            max_total_workers=min(self.max_total_workers, other.max_total_workers),
            max_depth=min(self.max_depth, other.max_depth),
            rate_window_ms=min(self.rate_window_ms, other.rate_window_ms),
            max_spawns_per_window=min(self.max_spawns_per_window, other.max_spawns_per_window),
            max_children_per_parent=min(
                self.max_children_per_parent, other.max_children_per_parent
            ),
            root_spawns_per_window=min(
                self.root_spawns_per_window, other.root_spawns_per_window
            ),
            allowed_worker_types=allowed,
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "max_total_workers": self.max_total_workers,
            "max_depth": self.max_depth,
            "rate_window_ms": self.rate_window_ms,
            "max_spawns_per_window": self.max_spawns_per_window,
            "max_children_per_parent": self.max_children_per_parent,
            "root_spawns_per_window": self.root_spawns_per_window,
            "allowed_worker_types": (
                "all"
                if self.allowed_worker_types is None
                else sorted(self.allowed_worker_types)
            ),
        }


@dataclass(frozen=True, slots=True)
class SpawnDecision:
    """Outcome of ``request_spawn``: an approved handle or a denial reason."""

    worker_type: str
    parent_id: str | None
    handle: WorkerHandle | None = None
    reason: str | None = None

    @property
    def approved(self) -> bool:
        return self.handle is not None

    def unwrap(self) -> WorkerHandle:
        """Return the handle or raise ``SafetyDenied``."""
        if self.handle is None:
            raise SafetyDenied(
                self.reason or "denied", worker_type=self.worker_type, parent_id=self.parent_id
            )
        return self.handle


class SafetyManager:
    """Owns the live worker tree; all mutation goes through spawn/unregister."""

    def __init__(
        self,
        limits: SafetyLimits | None = None,
        *,
        clock: Clock = time.monotonic,
        id_factory: Callable[[], str] | None = None,
        logger: Any | None = None,
    ) -> None:
        self._limits = limits if limits is not None else SafetyLimits()
        self._clock = clock
        self._id_factory = id_factory if id_factory is not None else ids.generate_worker_id
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

        self._lock = threading.Lock()
        self._workers: dict[str, WorkerHandle] = {}
        self._children: dict[str | None, dict[str, None]] = {None: {}}
        self._spawn_times: dict[str | None, deque[float]] = {}
        self._spawned_total = 0
        self._denied_total = 0

    @property
    def limits(self) -> SafetyLimits:
        return self._limits

    @property
    def live_count(self) -> int:
        with self._lock:
            return len(self._workers)

    def get(self, worker_id: str) -> WorkerHandle | None:
        with self._lock:
            return self._workers.get(worker_id)

    def is_live(self, worker_id: str) -> bool:
        with self._lock:
            return worker_id in self._workers

    def request_spawn(
        self,
        parent_id: str | None,
        worker_type: str,
        *,
        limits: SafetyLimits | None = None,
    ) -> SpawnDecision:
        """Approve and register a worker, or deny with the first failing check.

        ``limits`` tightens the manager's own limits for this calling context;
        it can never loosen them.
        """
        effective = self._limits.narrowed(limits)
        with self._lock:
            now_ms = self._clock() * 1000.0
            reason = self._first_violation(parent_id, worker_type, effective, now_ms)
            if reason is not None:
                self._denied_total += 1
                decision = SpawnDecision(
                    worker_type=worker_type, parent_id=parent_id, reason=reason
                )
            else:
                handle = self._register(parent_id, worker_type, now_ms)
                decision = SpawnDecision(
                    worker_type=worker_type, parent_id=parent_id, handle=handle
                )
            live = len(self._workers)

        self._logger.info(
            "safety_spawn_decision",
            approved=decision.approved,
            reason=decision.reason,
            worker_type=worker_type,
            parent_id=parent_id,
            worker_id=decision.handle.worker_id if decision.handle is not None else None,
            depth=decision.handle.depth if decision.handle is not None else None,
            live_workers=live,
        )
        return decision

    def unregister(
        self,
        worker: WorkerHandle | str,
        *,
        status: WorkerStatus = WorkerStatus.COMPLETED,
    ) -> WorkerHandle:
        """Remove a finished worker; its children must already be gone."""
        worker_id = worker.worker_id if isinstance(worker, WorkerHandle) else worker
        with self._lock:
            handle = self._workers.get(worker_id)
            if handle is None:
                raise KeyError(f"unknown worker: {worker_id}")
            children = tuple(self._children.get(worker_id, {}))
            if children:
                raise HierarchyError(
                    f"worker {worker_id} still has live children: {list(children)}"
                )
            self._remove(handle)
            live = len(self._workers)

        self._logger.info(
            "safety_worker_unregistered",
            worker_id=worker_id,
            worker_type=handle.worker_type,
            status=status.value,
            live_workers=live,
        )
        return replace(handle, status=status)

    def force_teardown(
        self, worker_id: str, *, reason: str = "safety violation"
    ) -> tuple[str, ...]:
        """Remove ``worker_id`` and its whole subtree, deepest first."""
        with self._lock:
            if worker_id not in self._workers:
                raise KeyError(f"unknown worker: {worker_id}")
            subtree = [worker_id, *self._descendants_locked(worker_id)]
            subtree.sort(key=lambda item: (-self._workers[item].depth, item))
            for item in subtree:
                self._remove(self._workers[item])
            live = len(self._workers)

        self._logger.info(
            "safety_forced_teardown",
            worker_id=worker_id,
            removed=list(subtree),
            reason=reason,
            live_workers=live,
        )
        return tuple(subtree)

    def descendants(self, worker_id: str) -> tuple[str, ...]:
        with self._lock:
            if worker_id not in self._workers:
                raise KeyError(f"unknown worker: {worker_id}")
            return tuple(sorted(self._descendants_locked(worker_id)))

    def hierarchy(self) -> list[dict[str, JSONValue]]:
        """Nested snapshot of the live tree, roots first in spawn order."""
        with self._lock:
            return [self._subtree_locked(root) for root in self._children[None]]

    def metrics(self) -> dict[str, JSONValue]:
        with self._lock:
            distribution: dict[str, int] = {}
            for handle in self._workers.values():
                key = str(handle.depth)
                distribution[key] = distribution.get(key, 0) + 1
            parents = [worker_id for worker_id in self._workers if self._children[worker_id]]
            child_counts = [len(self._children[worker_id]) for worker_id in parents]
            return {
                "live_workers": len(self._workers),
                "max_depth": max((handle.depth for handle in self._workers.values()), default=0),
                "depth_distribution": dict(sorted(distribution.items())),
                "average_children": (
                    round(sum(child_counts) / len(child_counts), 2) if child_counts else 0.0
                ),
                "spawned_total": self._spawned_total,
                "denied_total": self._denied_total,
                "limits": self._limits.to_dict(),
            }

    def _first_violation(
        self,
        parent_id: str | None,
        worker_type: str,
        limits: SafetyLimits,
        now_ms: float,
    ) -> str | None:
        if len(self._workers) >= limits.max_total_workers:
            return DENY_MAX_AGENTS

        if parent_id is None:
            depth = 0
        else:
            parent = self._workers.get(parent_id)
            if parent is None:
                return DENY_UNKNOWN_PARENT
            depth = parent.depth + 1
        if depth > limits.max_depth:
            return DENY_MAX_DEPTH

        window = self._spawn_times.get(parent_id)
        if window is not None:
            _prune(window, now_ms - limits.rate_window_ms)
            if len(window) >= limits.spawns_per_window(parent_id):
                return DENY_RATE_LIMITED

        if not limits.permits(worker_type):
            return DENY_TYPE_NOT_PERMITTED

        if len(self._children.get(parent_id, {})) >= limits.max_children_per_parent:
            return DENY_MAX_CHILDREN
        return None

    def _register(self, parent_id: str | None, worker_type: str, now_ms: float) -> WorkerHandle:
        depth = 0 if parent_id is None else self._workers[parent_id].depth + 1
        handle = WorkerHandle(
            worker_id=self._id_factory(),
            worker_type=worker_type,
            parent_id=parent_id,
            depth=depth,
            created_at=utc_now(),
        )
        if handle.worker_id in self._workers:
            raise HierarchyError(f"duplicate worker id: {handle.worker_id}")
        self._workers[handle.worker_id] = handle
        self._children.setdefault(parent_id, {})[handle.worker_id] = None
        self._children[handle.worker_id] = {}
        self._spawn_times.setdefault(parent_id, deque()).append(now_ms)
        self._spawned_total += 1
        return handle

    def _remove(self, handle: WorkerHandle) -> None:
        del self._workers[handle.worker_id]
        self._children.pop(handle.worker_id, None)
        siblings = self._children.get(handle.parent_id)
        if siblings is not None:
            siblings.pop(handle.worker_id, None)
        self._spawn_times.pop(handle.worker_id, None)

    def _descendants_locked(self, worker_id: str) -> list[str]:
        found: list[str] = []
        pending = list(self._children.get(worker_id, {}))
        while pending:
            current = pending.pop()
            found.append(current)
            pending.extend(self._children.get(current, {}))
        return found

    def _subtree_locked(self, worker_id: str) -> dict[str, JSONValue]:
        handle = self._workers[worker_id]
        return {
            "worker_id": handle.worker_id,
            "worker_type": handle.worker_type,
            "depth": handle.depth,
            "children": [self._subtree_locked(child) for child in self._children[worker_id]],
        }


def _prune(window: deque[float], cutoff_ms: float) -> None:
    while window and window[0] <= cutoff_ms:
        window.popleft()


__all__ = [
    "DENY_MAX_AGENTS",
    "DENY_MAX_CHILDREN",
    "DENY_MAX_DEPTH",
    "DENY_RATE_LIMITED",
    "DENY_TYPE_NOT_PERMITTED",
    "DENY_UNKNOWN_PARENT",
    "HierarchyError",
    "SafetyLimits",
    "SafetyManager",
    "SpawnDecision",
]
