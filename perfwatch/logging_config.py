"""
Logging Configuration for perfwatch

Provides structured JSON logging or human-readable text logging.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, Optional, TextIO

ROOT_LOGGER = "perfwatch"


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Structured fields passed as extra={"context": {...}}
        context = getattr(record, "context", None)
        if isinstance(context, dict):
            log_data["context"] = context

        return json.dumps(log_data, default=str)


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO",
    format: Literal["json", "text"] = "json",
    log_file: Optional[Path] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configure logging for perfwatch.

    Args:
        level: Logging level
        format: Log format (json or text)
        log_file: Optional log file path
        stream: Console stream (stdout by default)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level))

    logger.handlers.clear()

    text_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    def _formatter() -> logging.Formatter:
        if format == "json":
            return JSONFormatter()
        return logging.Formatter(text_format)

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(getattr(logging, level))
    console_handler.setFormatter(_formatter())
    logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, level))
        file_handler.setFormatter(_formatter())
        logger.addHandler(file_handler)

    return logger
