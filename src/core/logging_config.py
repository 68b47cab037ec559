"""
NeuroNote - Structured Logging Configuration
============================================

Logging for pipeline runs with:
- JSON structured output (for log aggregation)
- Run correlation IDs (one per note-processing run)
- Context binding (run_id, note_id)
- Standard library integration (captures all loggers)

Usage:
    # At application startup
    from src.core.logging_config import configure_logging
    configure_logging(json_output=True)

    # In any module
    import logging
    logger = logging.getLogger(__name__)
    logger.info(f"Extracted {count} fields")

    # Correlate every log line of one run
    with run_context(note_id="note-17"):
        pipeline.process(text)

Environment Variables:
    LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    LOG_FORMAT: json, console (default: json in production, console in dev)
    ENVIRONMENT: production/staging enables JSON by default
"""

import logging
import logging.config
import os
import re
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Optional

import structlog
from structlog.types import EventDict, WrappedLogger


# =============================================================================
# CONTEXT VARIABLES (per-run context, safe across threads and tasks)
# =============================================================================

# Correlation ID for one pipeline invocation
run_id_var: ContextVar[Optional[str]] = ContextVar("run_id", default=None)

# Caller-supplied identifier of the note being processed
note_id_var: ContextVar[Optional[str]] = ContextVar("note_id", default=None)


def get_run_id() -> Optional[str]:
    """Get current run ID from context."""
    return run_id_var.get()


def generate_run_id() -> str:
    """Generate a new run ID."""
    return str(uuid.uuid4())[:8]


def bind_run(run_id: str, note_id: Optional[str] = None) -> None:
    """Bind run (and optionally note) ID to the current context."""
    run_id_var.set(run_id)
    if note_id is not None:
        note_id_var.set(note_id)


def clear_run_context() -> None:
    run_id_var.set(None)
    note_id_var.set(None)


@contextmanager
def run_context(note_id: Optional[str] = None, run_id: Optional[str] = None) -> Iterator[str]:
    """Bind a run ID for the duration of a block; restores the previous one."""
    run_token = run_id_var.set(run_id or generate_run_id())
    note_token = note_id_var.set(note_id)
    try:
        yield run_id_var.get()
    finally:
        run_id_var.reset(run_token)
        note_id_var.reset(note_token)


# =============================================================================
# CUSTOM PROCESSORS
# =============================================================================

def add_run_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict
) -> EventDict:
    """Add run context from context variables."""
    run_id = run_id_var.get()
    if run_id:
        event_dict["run_id"] = run_id

    note_id = note_id_var.get()
    if note_id:
        event_dict["note_id"] = note_id

    return event_dict


def add_service_info(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict
) -> EventDict:
    """Add service metadata."""
    event_dict["service"] = "neuronote"
    event_dict["version"] = os.getenv("APP_VERSION", "1.0.0")
    return event_dict


def add_timestamp_iso(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict
) -> EventDict:
    """Add ISO 8601 timestamp with timezone."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def rename_event_key(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict
) -> EventDict:
    """Rename 'event' to 'message' for consistency with common log formats."""
    if "event" in event_dict:
        event_dict["message"] = event_dict.pop("event")
    return event_dict


def drop_color_codes(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict
) -> EventDict:
    """Remove ANSI color codes from message for JSON output."""
    if "message" in event_dict and isinstance(event_dict["message"], str):
        event_dict["message"] = re.sub(r'\x1b\[[0-9;]*m', '', event_dict["message"])
    return event_dict


# =============================================================================
# CONFIGURATION
# =============================================================================

def configure_logging(
    json_output: Optional[bool] = None,
    log_level: Optional[str] = None,
    include_timestamp: bool = True
) -> None:
    """
    Configure structured logging for the engine.

    Args:
        json_output: If True, output JSON. If None, auto-detect from environment.
        log_level: Log level (DEBUG, INFO, WARNING, ERROR). Defaults to LOG_LEVEL env var.
        include_timestamp: Include ISO timestamp in logs.
    """
    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO")
    log_level = log_level.upper()

    if json_output is None:
        log_format = os.getenv("LOG_FORMAT", "").lower()
        if log_format == "json":
            json_output = True
        elif log_format == "console":
            json_output = False
        else:
            env = os.getenv("ENVIRONMENT", "development").lower()
            json_output = env in ("production", "prod", "staging")

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        add_run_context,
        add_service_info,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if include_timestamp:
        shared_processors.insert(0, add_timestamp_iso)

    if json_output:
        shared_processors.extend([
            rename_event_key,
            drop_color_codes,
            structlog.processors.format_exc_info,
        ])
        final_processor = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        final_processor = structlog.dev.ConsoleRenderer(
            colors=False,
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=shared_processors + [final_processor],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level, logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Module loggers use stdlib logging; route them through the same renderer
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structlog": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processors": [
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    final_processor,
                ],
                "foreign_pre_chain": shared_processors,
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "structlog",
            },
        },
        "loggers": {
            "": {
                "handlers": ["default"],
                "level": log_level,
                "propagate": True,
            },
            "anthropic": {"level": "WARNING"},
            "httpx": {"level": "WARNING"},
            "httpcore": {"level": "WARNING"},
            "asyncio": {"level": "WARNING"},
        },
    })

    logger = structlog.get_logger("logging_config")
    logger.info(
        "Logging configured",
        format="json" if json_output else "console",
        level=log_level,
    )
