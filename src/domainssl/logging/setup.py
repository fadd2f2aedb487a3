"""Structured logging configuration for domainssl.

Provides JSON and text formatters, a request-context filter that
injects Flask ``g`` attributes into every log record, and a
one-call ``configure_logging`` function driven by config settings.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from domainssl.logging.sanitize import sanitize_for_logs, sanitize_pem

if TYPE_CHECKING:
    from domainssl.config.settings import LoggingSettings

# Attributes that are part of the standard LogRecord; everything
# else is considered "extra" and gets included in structured output.
_STANDARD_ATTRS = frozenset(
    {
        "args",
        "created",
        "exc_info",
        "exc_text",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "message",
        "module",
        "msecs",
        "msg",
        "name",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "taskName",
        "thread",
        "threadName",
        # Context attributes (handled explicitly):
        "request_id",
        "client_ip",
        "method",
        "path",
    }
)


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


class StructuredFormatter(logging.Formatter):
    """JSON-lines formatter for production logging.

    Every record becomes a single JSON object on one line containing
    the standard fields plus any *extra* attributes passed by the
    caller or injected by filters.  PEM bodies are redacted from the
    message and from extra values.
    """

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()

        data: dict = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": sanitize_for_logs(record.message),
        }

        for attr in ("request_id", "client_ip", "method", "path"):
            value = getattr(record, attr, None)
            if value is not None:
                data[attr] = value

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith("_"):
                data.setdefault(key, sanitize_for_logs(value))

        if record.exc_info and record.exc_info[0] is not None:
            data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            data["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development / console use."""

    _FMT = "%(asctime)s %(levelname)-8s [%(request_id)s] %(name)s: %(message)s"

    def __init__(self) -> None:
        super().__init__(fmt=self._FMT, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        if "-----BEGIN " in text:
            return sanitize_pem(text)
        return text


# ---------------------------------------------------------------------------
# Filter
# ---------------------------------------------------------------------------


class RequestContextFilter(logging.Filter):
    """Inject Flask request context into every log record.

    Adds ``request_id``, ``client_ip``, ``method`` and ``path`` from
    ``flask.g`` / ``flask.request`` when a request context is active,
    otherwise falls back to ``"-"`` / ``None``.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if not hasattr(record, "request_id"):
            record.request_id = "-"  # type: ignore[attr-defined]
        if not hasattr(record, "client_ip"):
            record.client_ip = "-"  # type: ignore[attr-defined]
        if not hasattr(record, "method"):
            record.method = None  # type: ignore[attr-defined]
        if not hasattr(record, "path"):
            record.path = None  # type: ignore[attr-defined]

        from flask import g, has_request_context, request  # noqa: PLC0415

        if has_request_context():
            record.request_id = getattr(g, "request_id", record.request_id)  # type: ignore[attr-defined]
            record.client_ip = request.remote_addr or record.client_ip  # type: ignore[attr-defined]
            record.method = request.method  # type: ignore[attr-defined]
            record.path = request.path  # type: ignore[attr-defined]

        return True


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def configure_logging(settings: LoggingSettings) -> logging.Logger:
    """Configure the ``domainssl`` logger hierarchy from settings.

    Replaces any bootstrap handlers with properly formatted output and
    returns the root ``domainssl`` logger.
    """
    level = getattr(logging, settings.level.upper(), logging.INFO)

    root = logging.getLogger("domainssl")
    root.setLevel(level)
    root.handlers.clear()
    root.propagate = False

    formatter: logging.Formatter
    formatter = StructuredFormatter() if settings.format == "json" else TextFormatter()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.addFilter(RequestContextFilter())
    root.addHandler(console)

    access = logging.getLogger("domainssl.access")
    access.setLevel(logging.INFO)

    # Quieten noisy third-party loggers
    for lib in ("werkzeug", "urllib3"):
        logging.getLogger(lib).setLevel(logging.WARNING)

    return root
