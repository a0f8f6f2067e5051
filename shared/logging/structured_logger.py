"""Structured logging configuration using structlog.

Provides JSON or console formatted logs with timestamps, bound context
and the stack identity (application image, network) on every entry.
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

APP_NAME = "bankapp-stack"


def add_app_context(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application context to log entries.

    Args:
        logger: The logger instance
        method_name: The logging method name
        event_dict: The event dictionary

    Returns:
        Updated event dictionary with application context
    """
    event_dict.setdefault("app", APP_NAME)
    return event_dict


def redact_secrets(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask password-like values before they are rendered.

    Container environments are logged as dicts, so nested values are
    checked too.
    """
    for key, value in list(event_dict.items()):
        if _is_secret_key(key) and value:
            event_dict[key] = "***"
        elif isinstance(value, dict):
            event_dict[key] = {
                k: ("***" if _is_secret_key(k) and v else v) for k, v in value.items()
            }
    return event_dict


def _is_secret_key(key: str) -> bool:
    return "password" in str(key).lower()


def configure_logging(
    log_level: str = "INFO",
    json_logs: bool = True,
    service_name: Optional[str] = None,
) -> None:
    """Configure structured logging for the application.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Whether to output logs in JSON format
        service_name: Name of the service for log tagging
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_app_context,
        redact_secrets,
    ]

    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Logs go to stderr so stdout stays clean for rendered Dockerfiles and commands
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
    )

    if service_name:
        structlog.contextvars.bind_contextvars(service=service_name)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables to all subsequent log entries in this context.

    Args:
        **kwargs: Context key-value pairs to bind
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Unbind context variables.

    Args:
        *keys: Context keys to unbind
    """
    structlog.contextvars.unbind_contextvars(*keys)
