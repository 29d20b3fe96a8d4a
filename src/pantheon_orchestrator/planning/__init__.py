"""
pantheon-orchestrator planning

Purpose
- Task graph model, named workflow templates, and the planner that picks between them.

Functional requirements
- Plans are deterministic DAGs whose dependencies always point at earlier phases.
"""

from pantheon_orchestrator.planning.planner import PlannerSettings, WorkflowPlanner
from pantheon_orchestrator.planning.task_graph import (
    CycleError,
    PlanMetadata,
    TaskGraph,
    TaskNode,
)
from pantheon_orchestrator.planning.templates import (
    WorkflowTemplate,
    get_template,
    list_templates,
)

__all__ = [
    "CycleError",
    "PlanMetadata",
    "PlannerSettings",
    "TaskGraph",
    "TaskNode",
    "WorkflowPlanner",
    "WorkflowTemplate",
    "get_template",
    "list_templates",
]
