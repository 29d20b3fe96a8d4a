"""Complexity analyzer for incoming task descriptions.

File: src/pantheon_orchestrator/synthesis_plane/complexity.py

Purpose
- Score a free-form task across five weighted dimensions and propose a domain,
  the capabilities it needs, and the workers that should take it.
- Pure function of the input text plus the capability registry: no network calls,
  same input = same output.

Scoring
- Each dimension starts from a base value and adds the weight of every matched
  indicator, clamped to ``[0, 10]``.
- The overall score is ``round_half_up(sum(dimension * weight) / 2)`` clamped to ``[1, 10]``.
- Domain selection is first-match over a fixed ordered list. This is a documented
  default, not semantic disambiguation; callers must not read more into it.

The dimension scoring sits behind the ``Classifier`` protocol so a learned or
rule-table-driven implementation can replace ``HeuristicClassifier`` without
touching the planner or engine.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Final, Protocol, runtime_checkable

from pantheon_orchestrator.domain.models import JSONValue

if TYPE_CHECKING:
    from collections.abc import Mapping

    from pantheon_orchestrator.synthesis_plane.registry import CapabilityRegistry

MIN_SCORE: Final[int] = 1
MAX_SCORE: Final[int] = 10
MAX_DIMENSION: Final[float] = 10.0
GENERAL_DOMAIN: Final[str] = "general"
EXTREME_SCORE_FOR_META: Final[int] = 9


class Dimension(StrEnum):
    TECHNICAL = "technical"
    INTEGRATION = "integration"
    SECURITY = "security"
    COORDINATION = "coordination"
    TIMELINE = "timeline"


DIMENSION_WEIGHTS: Final[Mapping[Dimension, float]] = {
    Dimension.TECHNICAL: 1.0,
    Dimension.INTEGRATION: 0.8,
    Dimension.SECURITY: 0.6,
    Dimension.COORDINATION: 0.7,
    Dimension.TIMELINE: 0.5,
}


@dataclass(frozen=True, slots=True)
class Indicator:
    """Weighted text pattern contributing to one dimension."""

    label: str
    pattern: re.Pattern[str]
    weight: float


@dataclass(frozen=True, slots=True)
class DimensionRule:
    base: float
    indicators: tuple[Indicator, ...]

    def evaluate(self, text: str) -> float:
        score = self.base
        for indicator in self.indicators:
            if indicator.pattern.search(text):
                score += indicator.weight
        return _clamp(score, 0.0, MAX_DIMENSION)


def _indicator(label: str, pattern: str, weight: float) -> Indicator:
    return Indicator(label=label, pattern=re.compile(pattern, re.IGNORECASE), weight=weight)


# --- Dimension indicator tables ---
DEFAULT_RULES: Final[Mapping[Dimension, DimensionRule]] = {
    Dimension.TECHNICAL: DimensionRule(
        base=3.0,
        indicators=(
            _indicator("distributed", r"\b(?:microservice|distributed|scalab|platform)", 2.0),
            _indicator("real-time", r"\b(?:real[- ]?time|websocket|streaming|chat)", 2.0),
            _indicator("machine-learning", r"\b(?:machine learning|ai|ml|neural)\b", 3.0),
            _indicator("security-sensitive", r"\b(?:blockchain|crypto|secur)", 2.0),
            _indicator("performance", r"\b(?:performance|optimi[sz]|benchmark)", 1.5),
            _indicator("integration", r"\b(?:integrat|api\b|webhook)", 1.5),
            _indicator("data-model", r"\b(?:database|migration|schema)", 1.0),
            _indicator("auth", r"\b(?:authenticat|authoriz|oauth|auth\b)", 1.5),
            _indicator("payments", r"\b(?:payment|billing|checkout|subscription)", 2.0),
            _indicator("mobile", r"\b(?:mobile|ios|android)\b", 1.5),
        ),
    ),
    Dimension.INTEGRATION: DimensionRule(
        base=0.0,
        indicators=(
            _indicator("connect", r"\b(?:integrat|connect|sync)", 2.0),
            _indicator("external", r"\b(?:third[- ]?party|external|service)", 2.0),
            _indicator("endpoint", r"\b(?:api|webhook|endpoint)", 2.0),
            _indicator("transfer", r"\b(?:import|export|migrat)", 2.0),
            _indicator("payment-provider", r"\b(?:payment|stripe|paypal|gateway)", 2.0),
            _indicator("client-apps", r"\b(?:mobile|multi[- ]?platform|cross[- ]?platform)", 2.0),
        ),
    ),
    Dimension.SECURITY: DimensionRule(
        base=0.0,
        indicators=(
            _indicator("secure", r"\b(?:secur|encrypt)", 2.5),
            _indicator("identity", r"\b(?:authenticat|authoriz|auth\b|login|password)", 2.5),
            _indicator("compliance", r"\b(?:compliance|gdpr|hipaa|pci)", 2.5),
            _indicator("threats", r"\b(?:vulnerab|threat|attack)", 2.5),
            _indicator("audit", r"\b(?:audit|logging|monitoring)", 2.5),
            _indicator("financial", r"\b(?:payment|financial|billing|credit card)", 2.5),
        ),
    ),
    Dimension.COORDINATION: DimensionRule(
        base=2.0,
        indicators=(
            _indicator(
                "multi-tier",
                r"frontend.*backend|backend.*frontend|\bfull[- ]?stack|\bend[- ]to[- ]end",
                3.0,
            ),
            _indicator("team", r"\b(?:team|collaborat|coordinat)", 2.0),
            _indicator("staged", r"\b(?:phase|stage|step|workflow)", 2.0),
            _indicator("multi-surface", r"\b(?:platform|ecosystem|mobile|cross[- ]?platform)", 2.0),
        ),
    ),
    Dimension.TIMELINE: DimensionRule(
        base=3.0,
        indicators=(
            _indicator("urgent", r"\b(?:urgent|asap|immediately|critical)", 4.0),
            _indicator("prototype", r"\b(?:mvp|prototype|poc|demo)\b", 2.0),
            _indicator("deadline", r"\b(?:deadline|by|before|within)\b", 3.0),
        ),
    ),
}

# --- Domain patterns (first match wins, in this order) ---
DOMAIN_PATTERNS: Final[tuple[tuple[str, re.Pattern[str]], ...]] = tuple(
    (name, re.compile(pattern, re.IGNORECASE))
    for name, pattern in (
        ("architecture", r"\b(?:architect|design|system|structure|pattern)"),
        ("development", r"\b(?:develop|implement|code|coding|build|create)"),
        ("ux", r"\b(?:ux|ui)\b|\b(?:user[- ]experience|interface|design)"),
        ("testing", r"\b(?:test|qa\b|quality|validat|verif)"),
        ("security", r"\b(?:secur|protect|vulnerab)"),
        ("product", r"\b(?:product|feature|requirement|story|stories|roadmap)"),
        ("data", r"\b(?:data|migration|analytics|etl\b)"),
        ("devops", r"\b(?:deploy|ci/?cd\b|docker|kubernetes|infrastructure)"),
    )
)

# --- Capability patterns (union of all matches) ---
CAPABILITY_PATTERNS: Final[tuple[tuple[str, re.Pattern[str]], ...]] = tuple(
    (name, re.compile(pattern, re.IGNORECASE))
    for name, pattern in (
        ("system-design", r"\b(?:architect|design|pattern|structure)"),
        ("coding", r"\b(?:implement|develop|code|coding|program|build)"),
        ("testing", r"\b(?:test|verif|validat|qa\b)"),
        ("security", r"\b(?:secur|auth|encrypt|protect)"),
        ("ui-design", r"\b(?:ui|ux)\b|\b(?:interface|frontend|front-end|mobile)"),
        ("database", r"\b(?:database|sql|query|schema)"),
        ("api", r"\b(?:api|rest|graphql|endpoints?)\b"),
        ("devops", r"\b(?:deploy\w*|ci|cd|docker|kubernetes)\b"),
        ("analytics", r"\b(?:analytics|metrics|data|reporting)\b"),
    )
)

DOMAIN_SPECIALISTS: Final[Mapping[str, str]] = {
    "architecture": "daedalus",
    "development": "hephaestus",
    "ux": "apollo",
    "testing": "themis",
    "security": "aegis",
    "product": "prometheus",
    "data": "daedalus",
    "devops": "hephaestus",
}

CAPABILITY_SPECIALISTS: Final[tuple[tuple[str, str], ...]] = (
    ("security", "aegis"),
    ("ui-design", "apollo"),
    ("testing", "themis"),
)

META_ORCHESTRATOR: Final[str] = "janus"


@dataclass(frozen=True, slots=True)
class DimensionScores:
    technical: float
    integration: float
    security: float
    coordination: float
    timeline: float

    def __post_init__(self) -> None:
        for dimension in Dimension:
            value = getattr(self, dimension.value)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"DimensionScores.{dimension.value} must be numeric")
            if not 0.0 <= float(value) <= MAX_DIMENSION:
                raise ValueError(f"DimensionScores.{dimension.value} must be within [0, 10]")
            object.__setattr__(self, dimension.value, float(value))

    def get(self, dimension: Dimension | str) -> float:
        return float(getattr(self, Dimension(dimension).value))

    def weighted_total(self, weights: Mapping[Dimension, float] = DIMENSION_WEIGHTS) -> float:
        return sum(self.get(dimension) * weights[dimension] for dimension in Dimension)

    def to_dict(self) -> dict[str, JSONValue]:
        return {dimension.value: self.get(dimension) for dimension in Dimension}


@runtime_checkable
class Classifier(Protocol):
    """Scores task text into the five complexity dimensions."""

    def score(self, text: str) -> DimensionScores: ...


class HeuristicClassifier:
    """Pattern-to-weight classifier; the default ``Classifier``."""

    def __init__(self, rules: Mapping[Dimension, DimensionRule] | None = None) -> None:
        selected = dict(DEFAULT_RULES if rules is None else rules)
        missing = [dimension.value for dimension in Dimension if dimension not in selected]
        if missing:
            raise ValueError(f"classifier rules missing dimensions: {missing}")
        self._rules = selected

    def score(self, text: str) -> DimensionScores:
        return DimensionScores(
            **{dimension.value: self._rules[dimension].evaluate(text) for dimension in Dimension}
        )

    def matched_indicators(self, text: str) -> dict[str, list[str]]:
        """Indicator labels that fired per dimension, for explaining a score."""
        return {
            dimension.value: [
                indicator.label
                for indicator in self._rules[dimension].indicators
                if indicator.pattern.search(text)
            ]
            for dimension in Dimension
        }


@dataclass(frozen=True, slots=True)
class EffortEstimate:
    level: str
    hours: str
    confidence: float

    def to_dict(self) -> dict[str, JSONValue]:
        return {"level": self.level, "hours": self.hours, "confidence": self.confidence}


@dataclass(frozen=True, slots=True)
class ComplexityAnalysis:
    """Result of ``ComplexityAnalyzer.analyze``."""

    task: str
    score: int
    dimensions: DimensionScores
    domain: str
    required_capabilities: tuple[str, ...]
    suggested_workers: tuple[str, ...]
    estimated_effort: EffortEstimate

    def __post_init__(self) -> None:
        if isinstance(self.score, bool) or not isinstance(self.score, int):
            raise ValueError("ComplexityAnalysis.score must be an integer")
        if not MIN_SCORE <= self.score <= MAX_SCORE:
            raise ValueError("ComplexityAnalysis.score must be within [1, 10]")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "task": self.task,
            "score": self.score,
            "dimensions": self.dimensions.to_dict(),
            "domain": self.domain,
            "required_capabilities": list(self.required_capabilities),
            "suggested_workers": list(self.suggested_workers),
            "estimated_effort": self.estimated_effort.to_dict(),
        }


class ComplexityAnalyzer:
    """Deterministic task analyzer backed by a pluggable ``Classifier``."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        *,
        classifier: Classifier | None = None,
    ) -> None:
        self._registry = registry
        self._classifier = classifier if classifier is not None else HeuristicClassifier()

    @property
    def classifier(self) -> Classifier:
        return self._classifier

    def analyze(self, task_text: str) -> ComplexityAnalysis:
        text = task_text.strip() if isinstance(task_text, str) else ""
        dimensions = self._classifier.score(text)
        score = overall_score(dimensions)
        domain = identify_domain(text)
        capabilities = identify_capabilities(text)
        suggested = self._suggest_workers(domain=domain, capabilities=capabilities, score=score)
        return ComplexityAnalysis(
            task=text,
            score=score,
            dimensions=dimensions,
            domain=domain,
            required_capabilities=capabilities,
            suggested_workers=suggested,
            estimated_effort=estimate_effort(score, domain=domain, capabilities=capabilities),
        )

    def _suggest_workers(
        self,
        *,
        domain: str,
        capabilities: tuple[str, ...],
        score: int,
    ) -> tuple[str, ...]:
        candidates: list[str] = []
        primary = DOMAIN_SPECIALISTS.get(domain)
        if primary is not None:
            candidates.append(primary)
        for capability, worker in CAPABILITY_SPECIALISTS:
            if capability in capabilities:
                candidates.append(worker)
        if score >= EXTREME_SCORE_FOR_META:
            candidates.append(META_ORCHESTRATOR)

        suggested: list[str] = []
        for worker in candidates:
            if worker in suggested or worker not in self._registry:
                continue
            suggested.append(worker)
        return tuple(suggested)


def overall_score(
    dimensions: DimensionScores,
    weights: Mapping[Dimension, float] = DIMENSION_WEIGHTS,
) -> int:
    normalized = _round_half_up(dimensions.weighted_total(weights) / 2)
    return int(_clamp(normalized, MIN_SCORE, MAX_SCORE))


def identify_domain(text: str) -> str:
    for domain, pattern in DOMAIN_PATTERNS:
        if pattern.search(text):
            return domain
    return GENERAL_DOMAIN


def identify_capabilities(text: str) -> tuple[str, ...]:
    return tuple(name for name, pattern in CAPABILITY_PATTERNS if pattern.search(text))


def estimate_effort(score: int, *, domain: str, capabilities: tuple[str, ...]) -> EffortEstimate:
    if score <= 3:
        level, hours = "low", "1-2"
    elif score <= 5:
        level, hours = "medium", "2-4"
    elif score <= 7:
        level, hours = "high", "4-8"
    elif score <= 9:
        level, hours = "very high", "8-16"
    else:
        level, hours = "extreme", "16+"

    confidence = 0.7
    if len(capabilities) > 3:
        confidence -= 0.1
    if domain != GENERAL_DOMAIN:
        confidence += 0.1
    return EffortEstimate(
        level=level,
        hours=hours,
        confidence=round(_clamp(confidence, 0.5, 0.9), 2),
    )


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


__all__ = [
    "CAPABILITY_PATTERNS",
    "Classifier",
    "ComplexityAnalysis",
    "ComplexityAnalyzer",
    "DIMENSION_WEIGHTS",
    "DOMAIN_PATTERNS",
    "Dimension",
    "DimensionRule",
    "DimensionScores",
    "EffortEstimate",
    "GENERAL_DOMAIN",
    "HeuristicClassifier",
    "Indicator",
    "estimate_effort",
    "identify_capabilities",
    "identify_domain",
    "overall_score",
]
