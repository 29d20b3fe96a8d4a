"""
pantheon-orchestrator synthesis plane

Purpose
- Worker catalog, complexity analysis, and the execution interface workers are dispatched through.

Functional requirements
- Worker types select metadata only; dispatch is one generic call for every type.
"""

from pantheon_orchestrator.synthesis_plane.complexity import (
    Classifier,
    ComplexityAnalysis,
    ComplexityAnalyzer,
    Dimension,
    DimensionScores,
    EffortEstimate,
    HeuristicClassifier,
)
from pantheon_orchestrator.synthesis_plane.dispatch import (
    CallableExecution,
    DispatchContext,
    ExecutionInterface,
    ScriptedExecution,
)
from pantheon_orchestrator.synthesis_plane.registry import (
    CapabilityRegistry,
    WorkerType,
    load_registry,
)

__all__ = [
    "CallableExecution",
    "CapabilityRegistry",
    "Classifier",
    "ComplexityAnalysis",
    "ComplexityAnalyzer",
    "Dimension",
    "DimensionScores",
    "DispatchContext",
    "EffortEstimate",
    "ExecutionInterface",
    "HeuristicClassifier",
    "ScriptedExecution",
    "WorkerType",
    "load_registry",
]
