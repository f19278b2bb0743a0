"""
extman Logging Configuration

Provides centralized logging configuration with structured logging support.
"""

import logging
import logging.config
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from .config import LoggingConfig


class StructuredFormatter(logging.Formatter):
    """Custom formatter that adds structured data to log records."""

    def format(self, record: logging.LogRecord) -> str:
        if hasattr(record, "structured_data"):
            # handlers share the record, so annotate a copy
            record = logging.makeLogRecord(record.__dict__)
            record.msg = f"{record.msg} | Data: {record.structured_data}"
        return super().format(record)


def setup_logging(
    config: Optional[LoggingConfig] = None, log_level: Optional[str] = None
) -> None:
    """
    Configure console logging, plus a rotating log file when
    config.file_path is set.

    Args:
        config: Logging section of the extman configuration
        log_level: Logging level overriding the configured one (--log-level)
    """
    config = config or LoggingConfig()
    level = (log_level or config.level).upper()

    log_file = Path(config.file_path).expanduser() if config.file_path else None
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    logging_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {
                "()": StructuredFormatter,
                "format": "%(levelname)s %(name)s: %(message)s",
            },
            "file": {
                "()": StructuredFormatter,
                "format": "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "console",
                "stream": sys.stderr,
            }
        },
        "loggers": {
            "extman": {"level": level, "handlers": ["console"], "propagate": False},
            "aiohttp": {
                "level": "WARNING",
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {"level": "WARNING", "handlers": ["console"]},
    }

    if log_file:
        logging_config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": level,
            "formatter": "file",
            "filename": str(log_file),
            "maxBytes": config.max_file_size,
            "backupCount": config.backup_count,
            "encoding": "utf-8",
        }
        logging_config["loggers"]["extman"]["handlers"].append("file")
        logging_config["root"]["handlers"].append("file")

    logging.config.dictConfig(logging_config)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def log_structured(
    logger: logging.Logger, level: int, message: str, **structured_data: Any
) -> None:
    """
    Log a message with structured data.

    Args:
        logger: Logger instance
        level: Logging level
        message: Log message
        **structured_data: Additional structured data to include
    """
    if not logger.isEnabledFor(level):
        return
    record = logger.makeRecord(logger.name, level, "", 0, message, (), None)
    record.structured_data = structured_data
    logger.handle(record)
