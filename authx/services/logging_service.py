"""Structured logging configuration with redaction support."""

import logging
import sys
from typing import Any, Dict

import structlog

_SENSITIVE_SUBSTRINGS = ("password", "secret", "authorization")
_SENSITIVE_SUFFIXES = ("access_token", "refresh_token", "bearer")


def redact_sensitive(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Redact sensitive information from log entries.

    Redacts:
    - Any field containing 'password', 'secret' or 'authorization'
    - Raw bearer values (fields ending in access_token, refresh_token, bearer)

    Identifiers such as token_id, family_id or a token_hash_prefix are kept.
    """
    for key in list(event_dict.keys()):
        key_lower = key.lower()
        if any(s in key_lower for s in _SENSITIVE_SUBSTRINGS) or key_lower.endswith(
            _SENSITIVE_SUFFIXES
        ):
            event_dict[key] = "REDACTED"

    return event_dict


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog for JSON output with correlation ID support.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance.

    Args:
        name: Optional logger name for context

    Returns:
        Configured structlog logger
    """
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger_name=name)
    return logger
