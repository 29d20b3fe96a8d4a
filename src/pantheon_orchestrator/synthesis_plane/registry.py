"""
pantheon-orchestrator capability registry

Purpose
- Read-only catalog of worker types: declared capabilities, permitted tools,
  default orchestration mode and duration complexity factor.

Functional requirements
- Loaded once from ``workers.yaml`` (or an operator-supplied file) and immutable thereafter.
- ``find_by_capability`` and ``describe`` are deterministic.
- Unknown worker types are reported immediately through ``require``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import cast

import yaml

from pantheon_orchestrator.domain.models import JSONValue, OrchestrationMode

ALL_TOOLS = "*"
DEFAULT_COMPLEXITY_FACTOR = 1.5
CATALOG_SCHEMA_VERSION = 1

_REQUIRED_WORKER_FIELDS = frozenset({"name", "capabilities", "tools", "mode"})
_ALLOWED_WORKER_FIELDS = _REQUIRED_WORKER_FIELDS | {
    "display_name",
    "purpose",
    "complexity_factor",
}


def _validate_non_empty_str(value: object, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")
    parsed = value.strip()
    if not parsed:
        raise ValueError(f"{field_name} cannot be empty")
    return parsed


def _normalize_identifier(value: object, field_name: str) -> str:
    parsed = _validate_non_empty_str(value, field_name).lower()
    parts = parsed.replace("_", " ").replace("-", " ").split()
    return "-".join(parts)


def _as_name_tuple(values: object, field_name: str) -> tuple[str, ...]:
    if isinstance(values, str) or not isinstance(values, Sequence):
        raise ValueError(f"{field_name} must be a sequence of strings")
    seen: set[str] = set()
    ordered: list[str] = []
    for index, item in enumerate(values):
        parsed = _validate_non_empty_str(item, f"{field_name}[{index}]")
        if parsed not in seen:
            seen.add(parsed)
            ordered.append(parsed)
    return tuple(sorted(ordered))


@dataclass(frozen=True, slots=True)
class WorkerType:
    """Capability metadata for one worker type.

    The type never changes engine behavior; it only selects metadata used for
    planning and for the generic dispatch call.
    """

    name: str
    capabilities: tuple[str, ...]
    tools: tuple[str, ...]
    mode: OrchestrationMode = OrchestrationMode.FIXED
    display_name: str = ""
    purpose: str = ""
    complexity_factor: float = DEFAULT_COMPLEXITY_FACTOR

    def __post_init__(self) -> None:
        name = _normalize_identifier(self.name, "WorkerType.name")
        object.__setattr__(self, "name", name)
        object.__setattr__(
            self, "capabilities", _as_name_tuple(self.capabilities, "WorkerType.capabilities")
        )
        object.__setattr__(self, "tools", _as_name_tuple(self.tools, "WorkerType.tools"))
        try:
            object.__setattr__(self, "mode", OrchestrationMode(self.mode))
        except ValueError as exc:
            allowed = ", ".join(item.value for item in OrchestrationMode)
            raise ValueError(
                f"WorkerType.mode {self.mode!r} is invalid; expected one of: {allowed}"
            ) from exc
        if not self.display_name:
            object.__setattr__(self, "display_name", name.replace("-", " ").title())
        factor = self.complexity_factor
        if isinstance(factor, bool) or not isinstance(factor, (int, float)) or factor <= 0:
            raise ValueError("WorkerType.complexity_factor must be a positive number")
        object.__setattr__(self, "complexity_factor", float(factor))

    @property
    def has_all_tools(self) -> bool:
        return ALL_TOOLS in self.tools

    def can_use(self, tool: str) -> bool:
        return self.has_all_tools or tool in self.tools

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "purpose": self.purpose,
            "capabilities": list(self.capabilities),
            "tools": list(self.tools),
            "mode": self.mode.value,
            "complexity_factor": self.complexity_factor,
        }

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object], *, location: str) -> WorkerType:
        keys = set(payload)
        missing = sorted(_REQUIRED_WORKER_FIELDS - keys)
        if missing:
            raise ValueError(f"{location}: missing required fields: {missing}")
        unknown = sorted(keys - _ALLOWED_WORKER_FIELDS)
        if unknown:
            raise ValueError(f"{location}: unexpected fields: {unknown}")

        try:
            return cls(
                name=cast("str", payload["name"]),
                capabilities=cast("tuple[str, ...]", payload["capabilities"]),
                tools=cast("tuple[str, ...]", payload["tools"]),
                mode=cast("OrchestrationMode", payload["mode"]),
                display_name=str(payload.get("display_name", "") or ""),
                purpose=str(payload.get("purpose", "") or ""),
                complexity_factor=cast(
                    "float", payload.get("complexity_factor", DEFAULT_COMPLEXITY_FACTOR)
                ),
            )
        except ValueError as exc:
            raise ValueError(f"{location}: {exc}") from exc


@dataclass(frozen=True, slots=True)
class CapabilityRegistry:
    """Immutable worker-type registry with deterministic lookup."""

    workers: tuple[WorkerType, ...]
    _by_name: Mapping[str, WorkerType] = field(init=False, repr=False, compare=False)
    _by_capability: Mapping[str, tuple[str, ...]] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        worker_list = tuple(self.workers)
        if not worker_list:
            raise ValueError("CapabilityRegistry.workers cannot be empty")

        lookup: dict[str, WorkerType] = {}
        for worker in worker_list:
            if not isinstance(worker, WorkerType):
                raise ValueError("CapabilityRegistry.workers entries must be WorkerType")
            if worker.name in lookup:
                raise ValueError(f"duplicate worker type: {worker.name}")
            lookup[worker.name] = worker

        by_capability: dict[str, list[str]] = {}
        for name in sorted(lookup):
            for capability in lookup[name].capabilities:
                by_capability.setdefault(capability, []).append(name)

        object.__setattr__(self, "workers", worker_list)
        object.__setattr__(self, "_by_name", MappingProxyType(lookup))
        object.__setattr__(
            self,
            "_by_capability",
            MappingProxyType({key: tuple(value) for key, value in by_capability.items()}),
        )

    @classmethod
    def from_mapping(cls, payload: Mapping[str, object]) -> CapabilityRegistry:
        version = payload.get("schema_version", CATALOG_SCHEMA_VERSION)
        if version != CATALOG_SCHEMA_VERSION:
            raise ValueError(
                f"unsupported worker catalog schema_version {version!r}; "
                f"expected {CATALOG_SCHEMA_VERSION}"
            )
        raw_workers = payload.get("workers")
        if isinstance(raw_workers, (str, bytes)) or not isinstance(raw_workers, Sequence):
            raise ValueError("worker catalog 'workers' must be a sequence")

        workers: list[WorkerType] = []
        for index, item in enumerate(raw_workers):
            location = f"workers[{index}]"
            if not isinstance(item, Mapping):
                raise ValueError(f"{location}: expected mapping, got {type(item).__name__}")
            workers.append(WorkerType.from_mapping(item, location=location))
        return cls(workers=tuple(workers))

    @classmethod
    def from_file(cls, path: str | Path) -> CapabilityRegistry:
        candidate = Path(path).expanduser().resolve()
        try:
            with candidate.open("r", encoding="utf-8") as handle:
                loaded = cast("object", yaml.safe_load(handle))
        except yaml.YAMLError as exc:
            raise ValueError(f"{candidate}: invalid YAML ({exc})") from exc
        except OSError as exc:
            raise ValueError(f"unable to read worker catalog {candidate}: {exc}") from exc

        if not isinstance(loaded, Mapping):
            raise ValueError(
                f"{candidate}: expected top-level YAML mapping, got {type(loaded).__name__}"
            )
        try:
            return cls.from_mapping(loaded)
        except ValueError as exc:
            raise ValueError(f"{candidate}: {exc}") from exc

    def __contains__(self, worker_type: object) -> bool:
        if not isinstance(worker_type, str) or not worker_type.strip():
            return False
        return _normalize_identifier(worker_type, "worker_type") in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)

    def get(self, worker_type: str) -> WorkerType | None:
        return self._by_name.get(_normalize_identifier(worker_type, "worker_type"))

    def require(self, worker_type: str) -> WorkerType:
        worker = self.get(worker_type)
        if worker is None:
            raise KeyError(f"unknown worker type: {worker_type}")
        return worker

    def worker_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._by_name))

    def capabilities(self) -> tuple[str, ...]:
        return tuple(sorted(self._by_capability))

    def find_by_capability(self, capability: str) -> tuple[str, ...]:
        """Worker types declaring ``capability``, sorted by name."""
        key = _normalize_identifier(capability, "capability")
        return self._by_capability.get(key, ())

    def describe(self, worker_type: str) -> dict[str, JSONValue]:
        return self.require(worker_type).to_dict()

    def tools_for(self, worker_type: str) -> tuple[str, ...]:
        return self.require(worker_type).tools

    def complexity_factor(self, worker_type: str) -> float:
        worker = self.get(worker_type)
        return worker.complexity_factor if worker is not None else DEFAULT_COMPLEXITY_FACTOR

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "schema_version": CATALOG_SCHEMA_VERSION,
            "workers": [self._by_name[name].to_dict() for name in sorted(self._by_name)],
        }


def bundled_catalog_path() -> Path:
    return Path(__file__).resolve().with_name("workers.yaml")


@lru_cache(maxsize=8)
def _load_cached(resolved: Path) -> CapabilityRegistry:
    return CapabilityRegistry.from_file(resolved)


def load_registry(path: str | Path | None = None) -> CapabilityRegistry:
    """Load the worker catalog; ``None`` selects the packaged ``workers.yaml``."""

    resolved = bundled_catalog_path() if path is None else Path(path).expanduser().resolve()
    return _load_cached(resolved)


__all__ = [
    "ALL_TOOLS",
    "CapabilityRegistry",
    "DEFAULT_COMPLEXITY_FACTOR",
    "WorkerType",
    "bundled_catalog_path",
    "load_registry",
]
