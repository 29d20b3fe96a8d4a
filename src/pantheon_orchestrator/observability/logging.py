"""Structured logging setup: structlog events rendered as JSON lines through stdlib handlers."""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from dataclasses import dataclass
from typing import IO, Any, Final

import structlog

REDACTED_VALUE: Final[str] = "***REDACTED***"
DEFAULT_LOGGER_NAME: Final[str] = "pantheon_orchestrator"
LOG_FORMATS: Final[tuple[str, ...]] = ("json", "console")

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "private_key",
)

_SENSITIVE_ASSIGNMENT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
_BEARER_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for structured logging."""

    level: int | str = "INFO"
    log_format: str = "json"
    logger_name: str = DEFAULT_LOGGER_NAME
    stream: IO[str] | None = None

    def __post_init__(self) -> None:
        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {LOG_FORMATS}, got {self.log_format!r}")
        if not isinstance(self.logger_name, str) or not self.logger_name.strip():
            raise ValueError("logger_name must not be empty")
        _parse_log_level(self.level)

    @classmethod
    def from_observability(
        cls,
        section: Mapping[str, object] | None,
        *,
        stream: IO[str] | None = None,
    ) -> LoggingConfig:
        """Build from the ``[observability]`` config section."""
        cfg = dict(section or {})
        level = cfg.get("log_level", "INFO")
        log_format = cfg.get("log_format", "json")
        return cls(
            level=level if isinstance(level, (int, str)) else "INFO",
            log_format=log_format if isinstance(log_format, str) else "json",
            stream=stream,
        )


def configure_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """Route structlog through stdlib and attach one stream handler to the package logger.

    Calling again replaces the previous handler, so repeated configuration is safe.
    """
    cfg = config if config is not None else LoggingConfig()
    level = _parse_log_level(cfg.level)

    renderer: Any
    if cfg.log_format == "json":
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    # Plain stdlib records pass through the same chain, so both render as one line each.
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            redact_processor,
            renderer,
        ],
    )
    handler = logging.StreamHandler(cfg.stream if cfg.stream is not None else sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(formatter)

    logger = logging.getLogger(cfg.logger_name)
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def get_correlation_context() -> dict[str, Any]:
    """Return the fields currently bound for log events in this context."""
    return dict(structlog.contextvars.get_contextvars())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields such as ``run_id`` for log events inside the block."""
    bound = {key: value for key, value in fields.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


def redact_processor(
    logger: Any,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    del logger, method_name
    for key in list(event_dict):
        event_dict[key] = _redact_value(event_dict[key], key)
    return event_dict


def redact_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-redact secret-looking keys and inline credentials in string values."""
    return {key: _redact_value(value, key) for key, value in fields.items()}


def _redact_value(value: Any, key: str | None) -> Any:
    if key is not None and _is_sensitive_key(key):
        return REDACTED_VALUE
    if isinstance(value, str):
        redacted = _SENSITIVE_ASSIGNMENT_PATTERN.sub(
            lambda match: f"{match.group(1)}{match.group(2)}{REDACTED_VALUE}", value
        )
        return _BEARER_TOKEN_PATTERN.sub(f"Bearer {REDACTED_VALUE}", redacted)
    if isinstance(value, Mapping):
        return {str(k): _redact_value(v, str(k)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_redact_value(item, None) for item in value]
    return value


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(term in lowered for term in _SENSITIVE_KEY_TERMS)


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, bool):
        raise ValueError("level must be int or str")
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise ValueError(f"level must be int or str, got {type(value).__name__}")
    parsed = logging.getLevelName(value.strip().upper())
    if isinstance(parsed, int):
        return parsed
    raise ValueError(f"unsupported logging level {value!r}")


__all__ = [
    "DEFAULT_LOGGER_NAME",
    "LoggingConfig",
    "REDACTED_VALUE",
    "configure_logging",
    "correlation_scope",
    "get_correlation_context",
    "redact_fields",
    "redact_processor",
]
