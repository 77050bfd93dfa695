"""JSON log formatter.

Emits each log record as a single-line JSON object that log aggregators
can index without regex parsing.  Enabled with
``COMMERCE_STRUCTURED_LOGGING=true``.

Output schema per line::

    {
        "timestamp": "2026-10-01T12:34:56.789012+00:00",
        "level": "INFO",
        "logger": "commerce_api.access",
        "message": "request completed",
        "request": { ... },          // RequestLoggingMiddleware records only
        "exc_info": "Traceback ..."  // exceptions only
    }
"""

from __future__ import annotations

import json
import logging
import traceback
from datetime import UTC, datetime
from typing import Any


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_data = getattr(record, "request", None)
        if request_data is not None:
            payload["request"] = request_data

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_structured_logging(level: int = logging.INFO) -> None:
    """Replace root handlers with a single JSON stream handler."""
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
