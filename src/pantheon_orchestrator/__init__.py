"""
pantheon-orchestrator

Purpose
- Multi-agent task orchestration: score a free-form task, plan a dependency graph of
  worker subtasks, execute it under recursive-spawn safety bounds, and coordinate the
  workers through a priority-ordered messenger with context handoff.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

from pantheon_orchestrator.orchestrator import OrchestrationRun, Orchestrator

__version__ = "0.1.0"

__all__ = ["OrchestrationRun", "Orchestrator", "__version__"]
