"""Stdout logging for the feature flag backend.

One handler on the root logger. Records carry the service name plus the
audit correlation fields bound with ``log_context``.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from .context import audit_fields


class ContextFilter(logging.Filter):
    """Attach the service name and bound audit fields to each record."""

    def __init__(self, service: str | None = None) -> None:
        super().__init__()
        self.service = service

    def filter(self, record: logging.LogRecord) -> bool:
        context = audit_fields()
        if self.service:
            context["service"] = self.service
        record.context = context
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line, timestamped when the record was created."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **getattr(record, "context", {}),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, separators=(",", ":"))


class PlainFormatter(logging.Formatter):
    """Console format with the context appended as ``key=value`` pairs."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        context = getattr(record, "context", {})
        pairs = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
        return f"{message} {pairs}" if pairs else message


def configure_logging(
    *,
    level: str = "INFO",
    json_output: bool = True,
    service: str | None = None,
) -> None:
    """Route all logging to stdout, replacing existing root handlers."""
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.addFilter(ContextFilter(service))
    handler.setFormatter(JsonFormatter() if json_output else PlainFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level.upper())
