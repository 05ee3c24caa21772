"""Structured logging for the FHIR bundle validator.

Every event carries the service name and version. Events logged during a
validation run also carry the run's ``validation_id``, mode and FHIR
version, bound through structlog context variables so concurrent runs never
share them.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, MutableMapping

import structlog
from structlog.stdlib import BoundLogger, LoggerFactory

from fhir_bundle_validator.config import get_settings

# fhirclient logs every skipped element in non-strict mode.
_NOISY_LOGGERS = ("fhirclient",)


def setup_logging() -> None:
    """Configure structured logging for the validator."""
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper())

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            add_service_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            render_processor(),
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def add_service_context(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Stamp the service name, version and environment on an event."""
    settings = get_settings()
    event_dict.setdefault("service", settings.app_name)
    event_dict.setdefault("version", settings.app_version)
    event_dict.setdefault("environment", settings.environment)
    return event_dict


def render_processor() -> Any:
    """Choose renderer based on environment."""
    settings = get_settings()

    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    else:
        return structlog.dev.ConsoleRenderer()


@contextmanager
def validation_context(mode: str, fhir_version: str) -> Iterator[Dict[str, Any]]:
    """Bind a fresh validation id, mode and FHIR version for one run.

    Yields:
        The bound values
    """
    context = {
        "validation_id": uuid.uuid4().hex,
        "mode": mode,
        "fhir_version": fhir_version,
    }
    with structlog.contextvars.bound_contextvars(**context):
        yield context


def get_logger(name: str) -> BoundLogger:
    """Get a configured logger instance."""
    bound_logger: BoundLogger = structlog.get_logger(name)
    return bound_logger
