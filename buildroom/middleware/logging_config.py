"""
Logging setup for the workflow service.

Two output shapes share one handler on the root logger:
  - production: one JSON object per line for the log aggregator
  - development / testing: a coloured one-liner with the workflow tags

Service modules pass the entity they touched through ``extra=``::

    logger.info("Order %s status %s → %s", order.id, old, new,
                extra={"order_id": order.id, "user_id": actor.id, "action": "status_change"})

``WorkflowContextFilter`` fills ``request_id`` and ``user_id`` from the
request context when a record does not carry them, so log lines emitted deep
in a service can still be joined to the HTTP request that caused them.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Set by the timing middleware on its per-request line
REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr")

# Set by services on state transitions (and by the filter below)
WORKFLOW_FIELDS = ("request_id", "user_id", "action", "order_id", "system_id", "checklist_id")

_TAG_LABELS = {
    "order_id": "order",
    "system_id": "system",
    "checklist_id": "checklist",
    "user_id": "user",
}


class WorkflowContextFilter(logging.Filter):
    """Stamp ``request_id`` / ``user_id`` from ``flask.g`` onto records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = g.get("request_id")
            if getattr(record, "user_id", None) is None:
                record.user_id = g.get("jwt_user_id")
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record; only fields that are set are emitted."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in REQUEST_FIELDS + WORKFLOW_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 INFO     buildroom.services.order_service: ... [order=3 user=2]``"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:<8}"
        if self.color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"
        line = f"{ts} {level} {record.name}: {record.getMessage()}"

        tags = [f"{label}={getattr(record, key)}" for key, label in _TAG_LABELS.items()
                if getattr(record, key, None) is not None]
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            tags.append(f"{duration:.0f}ms")
        if tags:
            line += f" [{' '.join(tags)}]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """
    Install the root handler for ``app``.

    LOG_LEVEL overrides the level (DEBUG outside production, INFO in it).
    LOG_FORMAT=json|readable overrides the shape chosen from the config.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)
    use_json = os.getenv("LOG_FORMAT", "json" if is_prod else "readable").lower() == "json"

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if use_json
                         else ReadableFormatter(color=sys.stderr.isatty()))
    handler.addFilter(WorkflowContextFilter())
    handler.setLevel(level)

    # One handler only; test suites build several apps per process
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "json" if use_json else "readable")
