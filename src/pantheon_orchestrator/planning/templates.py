"""Named workflow templates, extreme-plan phases and per-worker subtask wording."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Final

from pantheon_orchestrator.domain.models import JSONValue


@dataclass(frozen=True, slots=True)
class TemplateStep:
    worker_type: str
    depends_on: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class WorkflowTemplate:
    """Fixed graph shape; ``depends_on`` entries index earlier steps."""

    name: str
    description: str
    steps: tuple[TemplateStep, ...]

    def __post_init__(self) -> None:
        if not self.steps:
            raise ValueError(f"template {self.name!r} has no steps")
        for index, step in enumerate(self.steps):
            for dependency in step.depends_on:
                if not 0 <= dependency < index:
                    raise ValueError(
                        f"template {self.name!r} step {index} depends on {dependency}, "
                        "which is not an earlier step"
                    )

    @property
    def worker_types(self) -> tuple[str, ...]:
        return tuple(step.worker_type for step in self.steps)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "name": self.name,
            "description": self.description,
            "steps": [
                {"worker_type": step.worker_type, "depends_on": list(step.depends_on)}
                for step in self.steps
            ],
        }


def _template(name: str, description: str, *steps: tuple[str, tuple[int, ...]]) -> WorkflowTemplate:
    return WorkflowTemplate(
        name=name,
        description=description,
        steps=tuple(TemplateStep(worker, deps) for worker, deps in steps),
    )


_TEMPLATES: Final[Mapping[str, WorkflowTemplate]] = MappingProxyType(
    {
        template.name: template
        for template in (
            _template(
                "analysis-to-implementation",
                "Architecture analysis, then implementation, then validation.",
                ("daedalus", ()),
                ("hephaestus", (0,)),
                ("themis", (1,)),
            ),
            _template(
                "security-review",
                "Threat review first, architecture adjustments, then verification.",
                ("aegis", ()),
                ("daedalus", (0,)),
                ("themis", (1,)),
            ),
            _template(
                "rapid-prototype",
                "Build quickly, then shape the experience.",
                ("hephaestus", ()),
                ("apollo", (0,)),
            ),
            _template(
                "ui-enhancement",
                "Interface design fanned out to style and tokens, joined by interaction work.",
                ("apollo", ()),
                ("oracle", (0,)),
                ("harmonia", (0,)),
                ("iris", (1, 2)),
            ),
            _template(
                "full-stack-dev",
                "Architecture, parallel backend and frontend, tests, then security sign-off.",
                ("daedalus", ()),
                ("hephaestus", (0,)),
                ("apollo", (0,)),
                ("themis", (1, 2)),
                ("aegis", (3,)),
            ),
            _template(
                "product-planning",
                "Requirements, user stories, then delivery planning.",
                ("prometheus", ()),
                ("athena", (0,)),
                ("hermes", (1,)),
            ),
            _template(
                "design-system",
                "Style guide, tokens and copy, then interaction and final review.",
                ("oracle", ()),
                ("harmonia", (0,)),
                ("calliope", (0,)),
                ("iris", (1,)),
                ("argus", (2, 3)),
            ),
        )
    }
)


def list_templates() -> tuple[str, ...]:
    return tuple(sorted(_TEMPLATES))


def get_template(name: str) -> WorkflowTemplate:
    try:
        return _TEMPLATES[name]
    except KeyError:
        raise KeyError(f"unknown workflow template: {name}") from None


# Extreme plans: ordered phases; each phase's present workers form one parallel batch.
EXTREME_PHASES: Final[tuple[tuple[str, tuple[str, ...]], ...]] = (
    ("discovery", ("prometheus", "athena")),
    ("architecture", ("daedalus", "janus")),
    ("development", ("hephaestus", "apollo")),
    ("quality", ("themis", "aegis")),
    ("refinement", ("oracle", "harmonia", "calliope")),
    ("review", ("argus", "code-reviewer")),
)

EXTREME_CORE_TEAM: Final[tuple[str, ...]] = ("daedalus", "hephaestus", "themis", "janus", "argus")

_SUBTASK_WORDING: Final[Mapping[str, str]] = MappingProxyType(
    {
        "daedalus": "Design the architecture and technical approach for: {task}",
        "hephaestus": "Implement the solution for: {task}",
        "apollo": "Design the user interface and experience for: {task}",
        "themis": "Create tests and validate the implementation of: {task}",
        "aegis": "Review security and ensure compliance for: {task}",
        "prometheus": "Define product requirements and success criteria for: {task}",
        "athena": "Write user stories and acceptance criteria for: {task}",
        "hermes": "Plan the development process and create stories for: {task}",
        "janus": "Coordinate and adapt the plan for: {task}",
        "argus": "Review and validate the final result of: {task}",
    }
)
_DEFAULT_WORDING: Final[str] = "Assist with: {task}"


def describe_subtask(worker_type: str, task_text: str, *, phase_name: str | None = None) -> str:
    """Subtask description for ``worker_type``; extreme plans prefix the phase."""
    wording = _SUBTASK_WORDING.get(worker_type, _DEFAULT_WORDING).format(task=task_text)
    if phase_name:
        return f"[{phase_name.upper()}] {wording}"
    return wording


__all__ = [
    "EXTREME_CORE_TEAM",
    "EXTREME_PHASES",
    "TemplateStep",
    "WorkflowTemplate",
    "describe_subtask",
    "get_template",
    "list_templates",
]
