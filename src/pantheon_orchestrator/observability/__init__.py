"""Logging configuration and correlation helpers."""

from pantheon_orchestrator.observability.logging import (
    DEFAULT_LOGGER_NAME,
    REDACTED_VALUE,
    LoggingConfig,
    configure_logging,
    correlation_scope,
    get_correlation_context,
    redact_fields,
)

__all__ = [
    "DEFAULT_LOGGER_NAME",
    "LoggingConfig",
    "REDACTED_VALUE",
    "configure_logging",
    "correlation_scope",
    "get_correlation_context",
    "redact_fields",
]
