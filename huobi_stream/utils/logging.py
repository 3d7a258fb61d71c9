"""
Structured logging setup.
Supports both human-readable and JSON formats, plus the event log used for
connection lifecycle messages.
"""
import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from huobi_stream.config import Settings, settings as default_settings

# Caller-supplied destination for lifecycle messages
LogSink = Callable[[str], Any]


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for production logging.
    Outputs structured logs that can be parsed by log aggregators.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add extra fields
        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        return json.dumps(log_data)


class ColoredFormatter(logging.Formatter):
    """
    Colored formatter for development logging.
    Makes logs easier to read in terminal.
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def setup_logging(settings: Optional[Settings] = None) -> logging.Logger:
    """
    Configure logging for scripts embedding the client.
    Returns the root package logger.
    """
    settings = settings or default_settings
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    if settings.LOG_JSON or settings.is_production:
        formatter = JSONFormatter()
    else:
        formatter = ColoredFormatter(settings.LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.setLevel(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    # Reduce noise from third-party libraries
    logging.getLogger("websockets").setLevel(logging.WARNING)

    logger = logging.getLogger("huobi-stream")
    logger.setLevel(log_level)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a named logger."""
    return logging.getLogger(f"huobi-stream.{name}")


class EventLog:
    """
    Destination for connection lifecycle messages.

    Messages go to ``sink`` when the caller supplied one, otherwise to a
    package logger. ``verbose`` messages are dropped unless verbose mode is on.
    """

    def __init__(self, sink: Optional[LogSink] = None, verbose: bool = False, name: str = "events"):
        self.sink = sink
        self.verbose_enabled = verbose
        self._logger = get_logger(name)

    def _emit(self, level: int, message: str):
        if self.sink is not None:
            self.sink(message)
        else:
            self._logger.log(level, message)

    def info(self, message: str):
        self._emit(logging.INFO, message)

    def warning(self, message: str):
        self._emit(logging.WARNING, message)

    def error(self, message: str):
        self._emit(logging.ERROR, message)

    def verbose(self, message: str):
        if self.verbose_enabled:
            self._emit(logging.INFO, message)
