"""Structured logging for plansync.

Every ``logging.getLogger(__name__)`` call site is rendered through
structlog's ProcessorFormatter, so records carry the acting user, the OTel
trace ids and a secret-free message without any change at the call site.

``fmt="text"`` renders for a terminal and ``fmt="json"`` emits JSON lines.
When ``log_root`` is set, JSON lines are also appended to
``{log_root}/plansync.log``.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from pathlib import Path

import structlog
from opentelemetry import trace

from plansync.errors import redact_secrets

_user_id: ContextVar[str | None] = ContextVar("plansync_user_id", default=None)

_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")
_LOG_FILE_NAME = "plansync.log"


def set_user_context(user_id: str | None) -> None:
    """Bind the acting user id to the current request task."""
    _user_id.set(user_id)


def get_user_context() -> str | None:
    return _user_id.get()


# ---------------------------------------------------------------------------
# Processors
# ---------------------------------------------------------------------------


def add_user_id(logger, method_name, event_dict: dict) -> dict:  # noqa: ARG001
    event_dict.setdefault("user_id", _user_id.get())
    return event_dict


def add_trace_ids(logger, method_name, event_dict: dict) -> dict:  # noqa: ARG001
    """Attach the current span's ids; records outside a span get none."""
    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def redact_event(logger, method_name, event_dict: dict) -> dict:  # noqa: ARG001
    """Scrub bearer and OAuth token values from the rendered message."""
    event = event_dict.get("event")
    if isinstance(event, str):
        event_dict["event"] = redact_secrets(event)
    return event_dict


def _pre_chain(timestamp_fmt: str) -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt=timestamp_fmt),
        add_user_id,
        add_trace_ids,
        structlog.stdlib.ExtraAdder(),
    ]


def _formatter(
    renderer: structlog.types.Processor, pre_chain: list[structlog.types.Processor]
) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            redact_event,
            renderer,
        ],
        foreign_pre_chain=pre_chain,
    )


def configure_logging(
    level: str = "INFO",
    fmt: str = "text",
    log_root: Path | None = None,
) -> None:
    """Install console (and optionally file) handlers on the root logger.

    Safe to call more than once; earlier handlers are replaced.
    """
    if fmt == "json":
        pre_chain = _pre_chain("iso")
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        pre_chain = _pre_chain("%H:%M:%S")
        renderer = structlog.dev.ConsoleRenderer()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(_formatter(renderer, pre_chain))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if log_root is not None:
        log_root = Path(log_root)
        log_root.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_root / _LOG_FILE_NAME)
        file_handler.setFormatter(
            _formatter(structlog.processors.JSONRenderer(), _pre_chain("iso"))
        )
        root.addHandler(file_handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
