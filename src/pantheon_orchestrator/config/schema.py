"""
pantheon-orchestrator configuration schema and validation.

File: src/pantheon_orchestrator/config/schema.py

Purpose
- Hold the built-in defaults and the rules every config layer is checked against.
- Build the typed settings objects each component takes from a validated config.

Behavior
- Report every problem at once, each as a dotted field path plus a message.
- Support profile overlays (built-in ``strict`` and ``exploration``, plus user-defined).

Rules
- Each section is a table of ``_Field`` entries; a field's check both validates and
  normalizes its value. Profiles reuse the same tables with every field optional.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, NotRequired, TypedDict

from pantheon_orchestrator.control_plane.engine import EngineSettings
from pantheon_orchestrator.control_plane.safety import SafetyLimits
from pantheon_orchestrator.coordination_plane.messenger import MessengerSettings
from pantheon_orchestrator.planning.planner import PlannerSettings

CONFIG_SCHEMA_VERSION: Final[int] = 1
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("strict", "exploration")
ALL_WORKER_TYPES: Final[str] = "all"
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

_PROFILE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")
_WORD_BREAK = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|[^A-Za-z0-9]+")

_SECRET_WORDS: Final[tuple[str, ...]] = (
    "api_key",
    "access_token",
    "client_secret",
    "private_key",
    "password",
    "secret",
    "token",
)

# Config paths normalized relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (("registry", "catalog_path"),)


class MetaConfig(TypedDict):
    schema_version: int


class SafetyConfig(TypedDict):
    max_total_workers: int
    max_depth: int
    rate_window_ms: int
    max_spawns_per_window: int
    max_children_per_parent: int
    root_spawns_per_window: int
    allowed_worker_types: str | list[str]


class PlanningConfig(TypedDict):
    simple_threshold: int
    moderate_threshold: int
    complex_threshold: int
    base_step_minutes: float
    default_worker: str


class ExecutionConfig(TypedDict):
    dispatch_timeout_seconds: float
    max_parallel_dispatches: int


class MessagingConfig(TypedDict):
    response_timeout_seconds: float
    primary_orchestrator: str


class RegistryConfig(TypedDict):
    catalog_path: NotRequired[str]


class ObservabilityConfig(TypedDict):
    log_level: str
    log_format: str


class PantheonConfig(TypedDict):
    meta: MetaConfig
    safety: SafetyConfig
    planning: PlanningConfig
    execution: ExecutionConfig
    messaging: MessagingConfig
    registry: RegistryConfig
    observability: ObservabilityConfig
    profiles: dict[str, dict[str, Any]]


DEFAULT_CONFIG: Final[PantheonConfig] = {
    "meta": {"schema_version": CONFIG_SCHEMA_VERSION},
    "safety": {
        "max_total_workers": 50,
        "max_depth": 5,
        "rate_window_ms": 60_000,
        "max_spawns_per_window": 10,
        "max_children_per_parent": 10,
        "root_spawns_per_window": 50,
        "allowed_worker_types": ALL_WORKER_TYPES,
    },
    "planning": {
        "simple_threshold": 3,
        "moderate_threshold": 6,
        "complex_threshold": 8,
        "base_step_minutes": 30.0,
        "default_worker": "hephaestus",
    },
    "execution": {
        "dispatch_timeout_seconds": 300.0,
        "max_parallel_dispatches": 8,
    },
    "messaging": {
        "response_timeout_seconds": 30.0,
        "primary_orchestrator": "zeus",
    },
    "registry": {},
    "observability": {
        "log_level": "INFO",
        "log_format": "json",
    },
    "profiles": {
        "strict": {
            "safety": {
                "max_total_workers": 10,
                "max_depth": 2,
                "max_spawns_per_window": 5,
                "max_children_per_parent": 5,
            },
            "execution": {"max_parallel_dispatches": 2},
        },
        "exploration": {
            "safety": {"max_total_workers": 100, "max_depth": 8},
        },
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """One problem found in a config payload, addressed by dotted path."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """One or more config fields failed validation; ``issues`` lists them all."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "unknown validation failure"))


class _IssueCollector:
    __slots__ = ("_found",)

    def __init__(self) -> None:
        self._found: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._found.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._found)

    def __bool__(self) -> bool:
        return bool(self._found)


_Check = Callable[[object, str, _IssueCollector], Any]


@dataclass(frozen=True, slots=True)
class _Field:
    name: str
    check: _Check
    required: bool = True


def default_config() -> PantheonConfig:
    """Return a deep copy of the built-in defaults."""
    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < CONFIG_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is older than supported {CONFIG_SCHEMA_VERSION}; "
            "upgrade pantheon.toml to the current schema"
        )
    if found_version > CONFIG_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is newer than supported {CONFIG_SCHEMA_VERSION}; "
            "upgrade the pantheon-orchestrator runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; nested mappings merge key by key."""
    merged = _sorted_copy(base)
    _merge_into(merged, overlay)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Merge the named profile over ``config`` and validate the result."""
    materialized = _sorted_copy(config)
    selected = (profile or "").strip()
    if not selected:
        return materialized

    profiles = materialized.get("profiles")
    overlay = profiles.get(selected) if isinstance(profiles, Mapping) else None
    if overlay is None:
        raise ConfigValidationError(
            (ConfigValidationIssue("profiles", f"profile {selected!r} is not defined"),)
        )
    if not isinstance(overlay, Mapping):
        raise ConfigValidationError(
            (ConfigValidationIssue(f"profiles.{selected}", "profile overlay must be an object"),)
        )
    return assert_valid_config(merge_config(materialized, overlay))


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate every section and collect all issues instead of stopping at the first."""
    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    normalized = _validate_root(root, issues) if root is not None else None
    if issues or normalized is None:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Copy of ``config`` with secret-looking keys masked, keys sorted."""
    if not isinstance(config, Mapping):
        return {}
    return _redact(config)


def safety_limits(config: Mapping[str, Any]) -> SafetyLimits:
    section = config["safety"]
    allowed = section["allowed_worker_types"]
    return SafetyLimits(
        max_total_workers=section["max_total_workers"],
        max_depth=section["max_depth"],
        rate_window_ms=section["rate_window_ms"],
        max_spawns_per_window=section["max_spawns_per_window"],
        max_children_per_parent=section["max_children_per_parent"],
        root_spawns_per_window=section["root_spawns_per_window"],
        allowed_worker_types=None if allowed == ALL_WORKER_TYPES else frozenset(allowed),
    )


def planner_settings(config: Mapping[str, Any]) -> PlannerSettings:
    section = config["planning"]
    return PlannerSettings(
        simple_threshold=section["simple_threshold"],
        moderate_threshold=section["moderate_threshold"],
        complex_threshold=section["complex_threshold"],
        base_step_minutes=float(section["base_step_minutes"]),
        default_worker=section["default_worker"],
    )


def engine_settings(config: Mapping[str, Any]) -> EngineSettings:
    section = config["execution"]
    return EngineSettings(
        dispatch_timeout_seconds=float(section["dispatch_timeout_seconds"]),
        max_parallel_dispatches=section["max_parallel_dispatches"],
    )


def messenger_settings(config: Mapping[str, Any]) -> MessengerSettings:
    section = config["messaging"]
    return MessengerSettings(
        response_timeout_seconds=float(section["response_timeout_seconds"]),
        primary_orchestrator=section["primary_orchestrator"],
    )


# --- field checks: return the normalized value, or None after recording an issue ---


def _integer(minimum: int, maximum: int | None = None) -> _Check:
    def check(value: object, path: str, issues: _IssueCollector) -> int | None:
        if isinstance(value, bool) or not isinstance(value, int):
            issues.add(path, f"expected integer, got {type(value).__name__}")
        elif value < minimum:
            issues.add(path, f"must be >= {minimum}")
        elif maximum is not None and value > maximum:
            issues.add(path, f"must be <= {maximum}")
        else:
            return value
        return None

    return check


def _number(minimum: float) -> _Check:
    def check(value: object, path: str, issues: _IssueCollector) -> float | None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            issues.add(path, f"expected number, got {type(value).__name__}")
            return None
        parsed = float(value)
        if not math.isfinite(parsed):
            issues.add(path, "must be finite")
        elif parsed < minimum:
            issues.add(path, f"must be >= {minimum}")
        else:
            return parsed
        return None

    return check


def _text(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    stripped = value.strip()
    if not stripped:
        issues.add(path, "must not be empty")
        return None
    return stripped


def _worker_name(value: object, path: str, issues: _IssueCollector) -> str | None:
    name = _text(value, path, issues)
    return name.lower() if name is not None else None


def _file_path(value: object, path: str, issues: _IssueCollector) -> str | None:
    raw = _text(value, path, issues)
    if raw is not None and "\x00" in raw:
        issues.add(path, "must not contain NUL bytes")
        return None
    return raw


def _choice(*allowed: str) -> _Check:
    expected = ", ".join(sorted(allowed))

    def check(value: object, path: str, issues: _IssueCollector) -> str | None:
        picked = _text(value, path, issues)
        if picked is not None and picked not in allowed:
            issues.add(path, f"invalid value {picked!r}; expected one of: {expected}")
            return None
        return picked

    return check


def _worker_types(value: object, path: str, issues: _IssueCollector) -> str | list[str] | None:
    if isinstance(value, str):
        if value.strip().lower() == ALL_WORKER_TYPES:
            return ALL_WORKER_TYPES
        issues.add(path, f"expected {ALL_WORKER_TYPES!r} or a list of worker type names")
        return None
    if not isinstance(value, (list, tuple)):
        issues.add(path, f"expected string or list, got {type(value).__name__}")
        return None
    names = {
        name
        for index, item in enumerate(value)
        if (name := _worker_name(item, f"{path}[{index}]", issues)) is not None
    }
    return sorted(names)


def _schema_version(value: object, path: str, issues: _IssueCollector) -> int | None:
    version = _integer(1)(value, path, issues)
    if version is not None and version != CONFIG_SCHEMA_VERSION:
        issues.add(path, migration_guidance(version))
        return None
    return version


_THRESHOLD_RANGE: Final[_Check] = _integer(1, 10)
_THRESHOLD_KEYS: Final[tuple[str, ...]] = (
    "simple_threshold",
    "moderate_threshold",
    "complex_threshold",
)

_META_FIELDS: Final[tuple[_Field, ...]] = (_Field("schema_version", _schema_version),)

_SECTION_FIELDS: Final[Mapping[str, tuple[_Field, ...]]] = {
    "safety": (
        _Field("max_total_workers", _integer(1)),
        _Field("max_depth", _integer(0)),
        _Field("rate_window_ms", _integer(1)),
        _Field("max_spawns_per_window", _integer(1)),
        _Field("max_children_per_parent", _integer(1)),
        _Field("root_spawns_per_window", _integer(1)),
        _Field("allowed_worker_types", _worker_types),
    ),
    "planning": (
        _Field("simple_threshold", _THRESHOLD_RANGE),
        _Field("moderate_threshold", _THRESHOLD_RANGE),
        _Field("complex_threshold", _THRESHOLD_RANGE),
        _Field("base_step_minutes", _number(0.1)),
        _Field("default_worker", _worker_name),
    ),
    "execution": (
        _Field("dispatch_timeout_seconds", _number(0.001)),
        _Field("max_parallel_dispatches", _integer(1)),
    ),
    "messaging": (
        _Field("response_timeout_seconds", _number(0.001)),
        _Field("primary_orchestrator", _text),
    ),
    "registry": (_Field("catalog_path", _file_path, required=False),),
    "observability": (
        _Field("log_level", _choice(*LOG_LEVELS)),
        _Field("log_format", _choice("json", "console")),
    ),
}


def _validate_root(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    sections: dict[str, tuple[_Field, ...]] = {"meta": _META_FIELDS, **_SECTION_FIELDS}
    _reject_unknown_keys(payload, {*sections, "profiles"}, "", issues)

    out: dict[str, Any] = {}
    for name, fields in sections.items():
        if name not in payload:
            issues.add(name, "missing required field")
            continue
        body = _as_object(payload[name], name, issues)
        if body is not None:
            out[name] = _check_section(body, fields, name, issues, partial=False)

    planning = out.get("planning", {})
    thresholds = [planning.get(key) for key in _THRESHOLD_KEYS]
    if None not in thresholds and not thresholds[0] < thresholds[1] < thresholds[2]:
        issues.add(
            "planning",
            "thresholds must satisfy simple_threshold < moderate_threshold < complex_threshold",
        )

    profiles = _as_object(payload.get("profiles", {}), "profiles", issues)
    out["profiles"] = _validate_profiles(profiles, issues) if profiles is not None else {}
    return out


def _check_section(
    payload: Mapping[str, object],
    fields: tuple[_Field, ...],
    path: str,
    issues: _IssueCollector,
    *,
    partial: bool,
) -> dict[str, Any]:
    _reject_unknown_keys(payload, {field.name for field in fields}, path, issues)
    out: dict[str, Any] = {}
    for field in fields:
        field_path = _join(path, field.name)
        if field.name not in payload:
            if field.required and not partial:
                issues.add(field_path, "missing required field")
            continue
        value = field.check(payload[field.name], field_path, issues)
        if value is not None:
            out[field.name] = value
    return out


def _validate_profiles(payload: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name in sorted(payload):
        profile_path = _join("profiles", name)
        if not _PROFILE_NAME_PATTERN.fullmatch(name):
            issues.add(profile_path, f"profile name must match {_PROFILE_NAME_PATTERN.pattern}")
            continue
        body = _as_object(payload[name], profile_path, issues)
        if body is None:
            continue
        _reject_unknown_keys(body, set(_SECTION_FIELDS), profile_path, issues)
        overlay: dict[str, Any] = {}
        for section in sorted(body.keys() & _SECTION_FIELDS.keys()):
            section_path = _join(profile_path, section)
            section_body = _as_object(body[section], section_path, issues)
            if section_body is not None:
                overlay[section] = _check_section(
                    section_body, _SECTION_FIELDS[section], section_path, issues, partial=True
                )
        out[name] = overlay
    return out


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if isinstance(key, str):
            out[key] = item
        else:
            issues.add(path, f"object key must be string, got {type(key).__name__}")
    return out


def _reject_unknown_keys(
    payload: Mapping[str, object],
    known: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(set(payload) - known):
        message = (
            "embedded secret values are forbidden in config"
            if _is_secret_key(key)
            else "unknown field"
        )
        issues.add(_join(path, key), message)


def _is_secret_key(key: str) -> bool:
    words = "_".join(part for part in _WORD_BREAK.split(key.strip()) if part).lower()
    return any(word in words for word in _SECRET_WORDS)


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if not isinstance(value, Mapping):
            target[key] = copy.deepcopy(value)
            continue
        existing = target.get(key)
        if not isinstance(existing, dict):
            existing = {}
            target[key] = existing
        _merge_into(existing, value)


def _sorted_copy(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: copy.deepcopy(value[key]) for key in sorted(value)}


def _redact(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            key: "<redacted>" if _is_secret_key(key) else _redact(value[key])
            for key in sorted(value)
        }
    if isinstance(value, (list, tuple)):
        return [_redact(item) for item in value]
    return value


__all__ = [
    "ALL_WORKER_TYPES",
    "BUILTIN_PROFILE_NAMES",
    "CONFIG_SCHEMA_VERSION",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "PantheonConfig",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "engine_settings",
    "merge_config",
    "messenger_settings",
    "migration_guidance",
    "planner_settings",
    "redact_config",
    "safety_limits",
    "validate_config",
]
