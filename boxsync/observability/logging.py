"""
Structured logging for the boxsync processes.

Every process (api, worker, reaper, client) routes stdlib logging and
structlog through one processor chain so log lines carry the component
name, the current trace ids and any job context bound by the worker.
Account details posted by boxes never reach the log output.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from opentelemetry import trace

from boxsync.config import get_settings

# Event keys that may carry account details (UPI ids, bank numbers)
REDACTED_KEYS = frozenset({"payload", "meta", "api_key"})

_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "aiosqlite")


def add_trace_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Attach trace_id and span_id of the active span, if one is recording."""
    span = trace.get_current_span()
    if span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def redact_account_fields(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Replace values under REDACTED_KEYS with a marker."""
    for key in REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "[redacted]"
    return event_dict


def component_adder(component: str) -> structlog.types.Processor:
    """Build a processor stamping ``component`` on every event."""

    def add_component(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("component", component)
        return event_dict

    return add_component


def setup_logging(component: str = "api") -> None:
    """
    Configure logging for one boxsync process.

    Args:
        component: Process name stamped on each line: api, worker, reaper
            or client.
    """
    settings = get_settings()
    log_level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        component_adder(component),
        add_trace_context,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
        redact_account_fields,
    ]

    renderer: structlog.types.Processor
    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Structured logger for ``name`` (usually ``__name__``)."""
    return structlog.get_logger(name)


@contextmanager
def job_log_context(queue: str, key: str, slot_id: str, attempt: int) -> Iterator[None]:
    """
    Bind the job being executed to every log line emitted inside the block.

    Args:
        queue: Job category.
        key: Idempotency key of the job.
        slot_id: Lease owner running the attempt.
        attempt: Attempt number, starting at 1.
    """
    with structlog.contextvars.bound_contextvars(
        queue=queue,
        job_key=key,
        worker_id=slot_id,
        attempt=attempt,
    ):
        yield
