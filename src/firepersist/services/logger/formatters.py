from __future__ import annotations
import json
import logging
import traceback
from datetime import datetime, timezone

# Context fields injected by LogContext; records logged without a context
# still format cleanly.
CONTEXT_FIELDS = ("collection", "record_id", "operation")


class SafeFormatter(logging.Formatter):
    """Text formatter that tolerates records missing context fields."""

    def format(self, record: logging.LogRecord) -> str:
        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, "-")
        return super().format(record)


class ColorFormatter(SafeFormatter):
    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        color = self.COLORS.get(record.levelname)
        if not color:
            return text
        return f"{color}{text}{self.RESET}"


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for file sinks."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None and value != "-":
                entry[name] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["error_type"] = record.exc_info[0].__name__
            entry["error_message"] = str(record.exc_info[1])
            entry["stack_trace"] = traceback.format_exception(*record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)
