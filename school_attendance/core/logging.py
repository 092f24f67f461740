"""
Logging configuration for the attendance service.

Console logging only; LOG_JSON switches to one JSON object per line for log
collectors, otherwise a plain human-readable format is used.
"""

import json
import logging
import sys
from datetime import datetime
from typing import Optional

_STANDARD_ATTRS = frozenset(
    {
        "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
        "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
        "created", "msecs", "relativeCreated", "thread", "threadName",
        "processName", "process", "taskName", "message",
    }
)


class JSONFormatter(logging.Formatter):
    """Structured formatter: standard fields plus anything passed via ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra = {k: v for k, v in record.__dict__.items() if k not in _STANDARD_ATTRS}
        if extra:
            log_entry["extra"] = extra

        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """[TIMESTAMP] LEVEL LOGGER:FUNCTION:LINE - MESSAGE"""

    def format(self, record: logging.LogRecord) -> str:
        formatted = (
            f"[{datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S')}] "
            f"{record.levelname:8} {record.name}:{record.funcName}:{record.lineno} - "
            f"{record.getMessage()}"
        )
        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"
        return formatted


def setup_logging(level: Optional[str] = None, use_json: bool = False) -> None:
    """Configure the root logger with a single stdout handler. Safe to call more than once."""
    level_name = (level or "INFO").upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if use_json else ConsoleFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        if getattr(existing, "_school_attendance", False):
            root.removeHandler(existing)
    handler._school_attendance = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(level_name)

    # SQL echo stays off unless explicitly debugging
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if level_name == "DEBUG" else logging.WARNING
    )
