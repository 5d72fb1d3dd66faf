"""Production logging configuration for the accountability agent.

Sets up JSON file logging with rotation, colored console output,
and a separate pipeline log for the extraction-and-scheduling engine.
"""

import json
import logging
import os
import sys
import traceback
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

MAX_BYTES = 10 * 1024 * 1024  # 10MB
BACKUP_COUNT = 5

COLORS = {
    "DEBUG": "\033[36m",     # cyan
    "INFO": "\033[32m",      # green
    "WARNING": "\033[33m",   # yellow
    "ERROR": "\033[31m",     # red
    "CRITICAL": "\033[1;31m",  # bold red
}
RESET = "\033[0m"


class JsonFormatter(logging.Formatter):
    """One JSON object per line with structured fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception_type"] = record.exc_info[0].__name__
            entry["exception_message"] = str(record.exc_info[1])
            entry["traceback"] = traceback.format_exception(*record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Human-readable format with ANSI colors when stderr is a TTY."""

    def __init__(self):
        super().__init__()
        self._use_color = hasattr(sys.stderr, "isatty") and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = record.levelname.ljust(8)
        if self._use_color:
            color = COLORS.get(record.levelname, "")
            level = f"{color}{level}{RESET}"
        base = f"[{ts}] {level} {record.name} | {record.getMessage()}"
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + "".join(traceback.format_exception(*record.exc_info))
        return base


class _PipelineFilter(logging.Filter):
    """Only allow records from accountability.engine.* loggers."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.name.startswith("accountability.engine")


def _rotating(path: str, level: int, formatter: logging.Formatter) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT)
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(log_level: str = "INFO", log_dir: str = "logs") -> None:
    """Configure logging for the entire application.

    - Console handler on stderr (human-readable, colored)
    - app.log — all accountability + uvicorn logs (JSON, rotated)
    - error.log — ERROR+ only (JSON, rotated)
    - pipeline.log — accountability.engine.* only (JSON, rotated)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    os.makedirs(log_dir, exist_ok=True)
    json_fmt = JsonFormatter()

    root = logging.getLogger()
    root.setLevel(level)
    # Clear any existing handlers (e.g. from basicConfig)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    console.setFormatter(ConsoleFormatter())
    root.addHandler(console)

    root.addHandler(_rotating(os.path.join(log_dir, "app.log"), level, json_fmt))
    root.addHandler(_rotating(os.path.join(log_dir, "error.log"), logging.ERROR, json_fmt))

    pipeline_handler = _rotating(os.path.join(log_dir, "pipeline.log"), level, json_fmt)
    pipeline_handler.addFilter(_PipelineFilter())
    root.addHandler(pipeline_handler)

    # Route uvicorn and apscheduler through our handlers
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "apscheduler"):
        lib_logger = logging.getLogger(name)
        lib_logger.handlers.clear()
        lib_logger.propagate = True
