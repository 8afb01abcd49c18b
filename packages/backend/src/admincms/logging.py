"""structlog configuration.

Learn: Called once from create_app(). Every module just does
`logger = structlog.get_logger()` and logs key/value events; the request ID
bound by RequestIdMiddleware is merged in from contextvars.
"""

import logging
from typing import Any

import structlog

_SENSITIVE_KEYS = ("password", "secret", "token", "authorization")


def _mask_secrets(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask values of keys that look like credentials."""
    for key, value in event_dict.items():
        if isinstance(value, str) and any(s in key.lower() for s in _SENSITIVE_KEYS):
            event_dict[key] = value[:2] + "***" if len(value) > 4 else "***"
    return event_dict


def configure_logging(log_level: str = "INFO", development: bool = True) -> None:
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        _mask_secrets,
        structlog.processors.StackInfoRenderer(),
    ]
    if development:
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )
