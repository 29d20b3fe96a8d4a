"""
pantheon-orchestrator runtime config loader.

File: src/pantheon_orchestrator/config/loader.py

Purpose
- Build the effective runtime config from built-in defaults, an optional ``pantheon.toml``,
  a named profile, ``PANTHEON_`` environment variables and caller overrides.

Precedence
- overrides > env (``PANTHEON_``) > profile overlay > file > defaults.
- ``PANTHEON_PROFILE`` selects a profile when no explicit one is given.
- ``PANTHEON_SAFETY_ALLOWED_WORKER_TYPES`` takes ``all`` or a comma-separated list.

Behavior
- The same file, environment and overrides always give the same config.
- Relative path fields are anchored at the directory holding the config file.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from pantheon_orchestrator.config.schema import (
    ALL_WORKER_TYPES,
    PATH_FIELDS,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "pantheon.toml"
ENV_PREFIX: Final[str] = "PANTHEON_"
PROFILE_ENV: Final[str] = f"{ENV_PREFIX}PROFILE"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})
_SKIPPED_SECTIONS: Final[frozenset[str]] = frozenset({"meta", "profiles"})

_Parser = Callable[[str], object]


class ConfigLoadError(ValueError):
    """A config source is missing, unreadable or holds a value that cannot be coerced."""


@dataclass(frozen=True, slots=True)
class _EnvVar:
    """One ``PANTHEON_*`` variable and the config field it feeds."""

    path: tuple[str, ...]
    parse: _Parser
    expects: str

    @property
    def name(self) -> str:
        return env_name_for(self.path)

    def read(self, raw: str) -> object:
        try:
            return self.parse(raw.strip())
        except ValueError as exc:
            raise ConfigLoadError(
                f"{self.name} -> {'.'.join(self.path)} must be {self.expects}"
            ) from exc


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config.

    Without ``config_path`` the loader looks for ``pantheon.toml`` in the working
    directory and quietly falls back to defaults when it is absent. An explicit
    path that does not exist is an error.
    """
    env = os.environ if environ is None else environ
    source = (
        Path.cwd() / DEFAULT_CONFIG_FILE
        if config_path is None
        else Path(config_path).expanduser()
    ).resolve()

    config = assert_valid_config(
        merge_config(default_config(), _read_toml(source, must_exist=config_path is not None))
    )
    chosen = profile if profile is not None else env.get(PROFILE_ENV)
    if chosen is not None and chosen.strip():
        config = apply_profile_overlay(config, chosen.strip())

    config = merge_config(config, _env_layer(env))
    config = merge_config(config, _override_layer(overrides or {}))
    return normalize_paths(assert_valid_config(config), base_dir=source.parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Copy of ``config`` with every path field made absolute against ``base_dir``."""
    result = merge_config({}, config)
    for path in PATH_FIELDS:
        *parents, leaf = path
        section: object = result
        for key in parents:
            section = section.get(key) if isinstance(section, dict) else None
        if isinstance(section, dict) and isinstance(section.get(leaf), str):
            section[leaf] = _absolute(section[leaf], base_dir)
    return result


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Compact, key-sorted JSON of ``config`` with secrets masked."""
    return json.dumps(
        redact_config(config), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def env_name_for(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


def _read_toml(path: Path, *, must_exist: bool) -> dict[str, Any]:
    if not path.is_file():
        if must_exist:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"cannot read config file {path}: {exc}") from exc


def _env_layer(env: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for var in _env_vars():
        raw = env.get(var.name)
        if raw is not None:
            _assign(layer, var.path, var.read(raw))
    return layer


def _env_vars() -> list[_EnvVar]:
    """Bindings derived from the scalar defaults, plus fields whose default hides their type."""
    bound = {
        path: var
        for path, value in _leaves(default_config())
        if path[0] not in _SKIPPED_SECTIONS and (var := _var_for(path, value)) is not None
    }
    bound[("safety", "allowed_worker_types")] = _EnvVar(
        ("safety", "allowed_worker_types"), _worker_type_list, "a list of worker types"
    )
    bound[("registry", "catalog_path")] = _EnvVar(("registry", "catalog_path"), str, "a path")
    return [bound[path] for path in sorted(bound)]


def _leaves(
    tree: Mapping[str, object], prefix: tuple[str, ...] = ()
) -> Iterator[tuple[tuple[str, ...], object]]:
    for key, value in sorted(tree.items()):
        if isinstance(value, Mapping):
            yield from _leaves(value, (*prefix, key))
        else:
            yield (*prefix, key), value


def _var_for(path: tuple[str, ...], default: object) -> _EnvVar | None:
    # bool first: it is a subclass of int.
    if isinstance(default, bool):
        return _EnvVar(path, _flag, "a boolean")
    if isinstance(default, int):
        return _EnvVar(path, int, "an integer")
    if isinstance(default, float):
        return _EnvVar(path, float, "a number")
    if isinstance(default, str):
        return _EnvVar(path, str, "a string")
    return None


def _flag(text: str) -> bool:
    lowered = text.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError(text)


def _worker_type_list(text: str) -> str | list[str]:
    if text.lower() == ALL_WORKER_TYPES:
        return ALL_WORKER_TYPES
    return [name.strip() for name in text.split(",") if name.strip()]


def _override_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    """Turn dotted keys (``safety.max_depth``) and nested mappings into one overlay."""
    layer: dict[str, Any] = {}
    for key in sorted(overrides):
        path = tuple(filter(None, key.split(".")))
        if not path:
            raise ConfigLoadError(f"invalid override key {key!r}")
        branch: dict[str, Any] = {}
        _assign(branch, path, overrides[key])
        layer = merge_config(layer, branch)
    return layer


def _assign(tree: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    *parents, leaf = path
    for key in parents:
        child = tree.get(key)
        if not isinstance(child, dict):
            child = tree[key] = {}
        tree = child
    tree[leaf] = value


def _absolute(raw: str, base_dir: Path) -> str:
    location = Path(os.path.expandvars(raw)).expanduser()
    if not location.is_absolute():
        location = base_dir / location
    return Path(os.path.normpath(location)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PROFILE_ENV",
    "dump_effective_config",
    "env_name_for",
    "load_config",
    "normalize_paths",
]
