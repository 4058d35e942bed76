"""Logging setup for the MultiStream backend.

Console output uses the plain text format by default; JSON lines can be
enabled for log shippers. An optional rotating file always gets JSON.
"""

import json
import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler

from multistream.config import StreamManagerConfig

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# LogRecord attributes that are not user supplied extras
_RESERVED_ATTRS = frozenset(
    [
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
    ]
)


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging.

    Formats log records as JSON with timestamp, level, logger, message and
    any extra fields passed through ``extra=``.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(config: StreamManagerConfig) -> logging.Logger:
    """Configure the root logger from the service configuration.

    Safe to call more than once; handlers installed by an earlier call are
    replaced, handlers installed by anyone else are left alone.

    Args:
        config: Stream manager configuration

    Returns:
        The configured root logger
    """
    config.validate_logging()
    level = getattr(logging, config.log_level.upper())

    root = logging.getLogger()
    root.setLevel(level)
    for handler in [h for h in root.handlers if getattr(h, "_multistream", False)]:
        root.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    if config.log_format == "json":
        console_handler.setFormatter(JsonFormatter())
    else:
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    console_handler._multistream = True
    root.addHandler(console_handler)

    if config.log_file:
        try:
            log_dir = os.path.dirname(config.log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                config.log_file,
                maxBytes=config.log_file_max_bytes,
                backupCount=config.log_file_backup_count,
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(JsonFormatter())
            file_handler._multistream = True
            root.addHandler(file_handler)
        except OSError as e:
            root.warning(f"Could not create log file: {e}. Logging to console only.")

    return root
