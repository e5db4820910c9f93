"""Structured logging for repocache.

Provides:
- Console logging (coloured in development, JSON in production)
- Rotating file logging (optional)
- Cache operation events (hit, miss, set, clear) with timings
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import structlog


class LogConfig:
    """Logging configuration from environment variables."""

    # Environment: development, staging, production
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Log level: DEBUG, INFO, WARNING, ERROR
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Log format: json or text
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "json" if ENVIRONMENT == "production" else "text")

    # File logging
    LOG_TO_FILE: bool = os.getenv("LOG_TO_FILE", "false").lower() == "true"
    LOG_DIR: Path = Path(os.getenv("LOG_DIR", "logs"))
    LOG_FILE_MAX_BYTES: int = int(os.getenv("LOG_FILE_MAX_BYTES", 10 * 1024 * 1024))  # 10MB
    LOG_FILE_BACKUP_COUNT: int = int(os.getenv("LOG_FILE_BACKUP_COUNT", 5))


def setup_file_logging() -> Optional[logging.Handler]:
    """Set up file-based logging with rotation."""
    if not LogConfig.LOG_TO_FILE:
        return None

    LogConfig.LOG_DIR.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        LogConfig.LOG_DIR / "repocache.log",
        maxBytes=LogConfig.LOG_FILE_MAX_BYTES,
        backupCount=LogConfig.LOG_FILE_BACKUP_COUNT,
    )
    handler.setFormatter(logging.Formatter('%(message)s'))
    handler.setLevel(getattr(logging, LogConfig.LOG_LEVEL))

    return handler


def add_environment_context(logger, method_name, event_dict):
    """Add environment info to log events."""
    event_dict["env"] = LogConfig.ENVIRONMENT
    return event_dict


def configure_logging(level: Optional[str] = None):
    """Configure structlog and the standard library root logger.

    Args:
        level: Log level override (defaults to LOG_LEVEL)
    """
    log_level = getattr(logging, (level or LogConfig.LOG_LEVEL).upper())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    file_handler = setup_file_logging()
    if file_handler:
        root_logger.addHandler(file_handler)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        add_environment_context,
    ]

    if LogConfig.LOG_FORMAT == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logger = structlog.get_logger(__name__)
    logger.info(
        "logging_configured",
        environment=LogConfig.ENVIRONMENT,
        log_level=logging.getLevelName(log_level),
        log_format=LogConfig.LOG_FORMAT,
        file_logging=LogConfig.LOG_TO_FILE,
    )


# Get module logger
logger = structlog.get_logger(__name__)


def log_cache_operation(
    operation: str,  # "hit", "miss", "set", "clear"
    key_prefix: str,
    duration_ms: float,
    hit_rate: Optional[float] = None,
):
    """Log cache operation.

    Args:
        operation: Type of cache operation
        key_prefix: Cache key prefix
        duration_ms: Operation duration
        hit_rate: Current cache hit rate
    """
    logger.debug(
        "cache_operation",
        operation=operation,
        key_prefix=key_prefix,
        duration_ms=duration_ms,
        hit_rate=hit_rate,
    )
