"""
pantheon-orchestrator config package public API.

Purpose
- Export config loading/validation entrypoints, typed settings builders and error types.

Functional requirements
- Support loading from ``pantheon.toml`` + ``PANTHEON_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from pantheon_orchestrator.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    dump_effective_config,
    env_name_for,
    load_config,
    normalize_paths,
)
from pantheon_orchestrator.config.schema import (
    BUILTIN_PROFILE_NAMES,
    CONFIG_SCHEMA_VERSION,
    DEFAULT_CONFIG,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    PantheonConfig,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    engine_settings,
    merge_config,
    messenger_settings,
    planner_settings,
    redact_config,
    safety_limits,
    validate_config,
)

__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "CONFIG_SCHEMA_VERSION",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "PantheonConfig",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "engine_settings",
    "env_name_for",
    "load_config",
    "merge_config",
    "messenger_settings",
    "normalize_paths",
    "planner_settings",
    "redact_config",
    "safety_limits",
    "validate_config",
]
