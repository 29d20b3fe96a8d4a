"""
pantheon-orchestrator control plane

Purpose
- Spawn safety gate and the phase-barrier execution engine.

Functional requirements
- Every spawn, nested ones included, goes through one ``SafetyManager``.
"""

from pantheon_orchestrator.control_plane.engine import (
    EngineSettings,
    ExecutionEngine,
    ExecutionResult,
    NodeResult,
    WorkflowStatus,
)
from pantheon_orchestrator.control_plane.safety import (
    HierarchyError,
    SafetyLimits,
    SafetyManager,
    SpawnDecision,
)

__all__ = [
    "EngineSettings",
    "ExecutionEngine",
    "ExecutionResult",
    "HierarchyError",
    "NodeResult",
    "SafetyLimits",
    "SafetyManager",
    "SpawnDecision",
    "WorkflowStatus",
]
