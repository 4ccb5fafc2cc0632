"""
Structured logging configuration using structlog.

Log line shape:
{
    "ts": "2026-01-18T04:30:00.123456Z",
    "level": "info",
    "service": "hooklog",
    "correlation_id": "uuid-v4",
    "event": "event.ingested",
    "module": "hooklog.services.hooklog_service",
    "function": "ingest",
    "line": 42,
    ...additional context...
}
"""
import structlog
import logging
from typing import Any

from . import SERVICE_NAME


def service_name_adder(service_name: str):
    """Build a processor stamping every entry with the service name."""

    def add_service_name(logger: Any, method_name: str, event_dict: dict) -> dict:
        event_dict["service"] = service_name
        return event_dict

    return add_service_name


def rename_callsite_keys(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Map structlog's callsite keys onto module/function/line."""
    if "func_name" in event_dict:
        event_dict["function"] = event_dict.pop("func_name")
    if "lineno" in event_dict:
        event_dict["line"] = event_dict.pop("lineno")
    return event_dict


def setup_logging(json_output: bool = True, service_name: str = SERVICE_NAME, level: int = logging.INFO):
    """
    Configure structured logging.

    Args:
        json_output: If True, output JSON logs. If False, use console format.
        service_name: Name stamped on every entry.
        level: Minimum level emitted.
    """
    shared_processors = [
        # Includes correlation_id bound by the middleware
        structlog.contextvars.merge_contextvars,
        service_name_adder(service_name),
        structlog.processors.TimeStamper(fmt="iso", key="ts"),
        structlog.processors.add_log_level,
        structlog.processors.CallsiteParameterAdder(
            {
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            }
        ),
        rename_callsite_keys,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors = shared_processors + [structlog.processors.JSONRenderer()]
    else:
        processors = shared_processors + [structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=level,
    )

    # Silence uvicorn's default logging to avoid duplicate logs
    logging.getLogger("uvicorn.error").handlers = []
    logging.getLogger("uvicorn.access").handlers = []


def get_logger():
    """Get a configured structlog logger."""
    return structlog.get_logger()
