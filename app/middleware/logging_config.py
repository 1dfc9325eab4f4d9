"""
Structured logging configuration.

- Development / testing: human-readable colored format
- Production: JSON format (log aggregator compatible)
- Log level: controlled via LOG_LEVEL env variable

Request and orchestration context travels on records via ``extra=``:

    logger.info("Task assigned id=%s", task.id,
                extra={"task_id": task.id, "organization_id": org_id})
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Request context set by the timing middleware
REQUEST_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "request_id",
)

# Orchestration context set by the services
DOMAIN_FIELDS = (
    "organization_id",
    "timeline_id",
    "task_id",
    "bulk_operation_id",
)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production / log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        for key in REQUEST_FIELDS + DOMAIN_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Human-readable colored formatter; orchestration ids are appended as tags."""

    COLORS = {
        "DEBUG": "\033[36m",      # cyan
        "INFO": "\033[32m",       # green
        "WARNING": "\033[33m",    # yellow
        "ERROR": "\033[31m",      # red
        "CRITICAL": "\033[35m",   # magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.now().strftime("%H:%M:%S")
        duration = getattr(record, "duration_ms", None)
        dur_str = f" [{duration:.0f}ms]" if duration is not None else ""
        tags = " ".join(
            f"{key.replace('_id', '')}={getattr(record, key)}"
            for key in DOMAIN_FIELDS
            if getattr(record, key, None) is not None
        )
        tag_str = f" ({tags})" if tags else ""
        msg = record.getMessage()
        base = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {msg}{tag_str}{dur_str}"
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def _mode(app) -> str:
    if app.config.get("TESTING", False):
        return "testing"
    return "development" if app.config.get("DEBUG", False) else "production"


_DEFAULT_LEVELS = {"development": "DEBUG", "testing": "WARNING", "production": "INFO"}


def configure_logging(app):
    """Install one stderr handler on the root logger.

    Production emits JSON, other modes the readable format. LOG_LEVEL
    overrides the per-mode default. Calling it again (one app per test
    session, or a reload) replaces the handler instead of stacking one.
    """
    mode = _mode(app)
    level_name = os.getenv("LOG_LEVEL", _DEFAULT_LEVELS[mode]).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if mode == "production" else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if mode != "testing":
        app.logger.info("Logging configured: level=%s mode=%s", level_name, mode)
