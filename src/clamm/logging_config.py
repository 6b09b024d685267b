"""
Structured JSON logging for the accounting engine.

Engine modules log through children of the "clamm" logger and put the
structured payload in `extra`, always with an `event` field
(clamm.swap, clamm.operation_failed, ...). setup_logging attaches JSON
handlers to that parent logger, so one call covers every pool.
"""

from __future__ import annotations

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from pythonjsonlogger.json import JsonFormatter

if TYPE_CHECKING:
    from .config import EngineConfig

ENGINE_LOGGER = "clamm"
LOG_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"


class EngineJsonFormatter(JsonFormatter):
    """Stamps each record with UTC time, lowercase level, environment and origin."""

    def __init__(self, environment: str = "development"):
        super().__init__(fmt=LOG_FORMAT)
        self.environment = environment

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = (
                datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z")
            )
        if not log_record.get("level"):
            log_record["level"] = record.levelname.lower()
        log_record["environment"] = self.environment
        log_record["origin"] = f"{record.module}.{record.funcName}:{record.lineno}"


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    environment: str = "development",
    stream: Any = None,
    enable_console: bool = True,
    max_bytes: int = 50 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Attach JSON handlers to the engine logger, replacing any from a previous call.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Rotating JSON log file; no file handler when None
        environment: Value of the `environment` field on every record
        stream: Console stream, stdout by default
        enable_console: Whether to log to the console
        max_bytes: Log file size before rotation
        backup_count: Rotated files kept

    Returns:
        The "clamm" logger
    """
    logger = logging.getLogger(ENGINE_LOGGER)
    logger.setLevel(getattr(logging, level.upper()))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = EngineJsonFormatter(environment=environment)

    if enable_console:
        console_handler = logging.StreamHandler(stream or sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                filename=log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
        except OSError as e:
            logger.warning(
                "Could not open log file %s: %s",
                log_file,
                e,
                extra={"event": "logging.file_handler_failed"},
            )
        else:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


def setup_engine_logging(config: EngineConfig, force: bool = False) -> logging.Logger:
    """
    Configure the engine logger from an EngineConfig.

    Leaves an already configured logger alone unless `force` is set, so it
    can run for every pool built from config.
    """
    logger = logging.getLogger(ENGINE_LOGGER)
    if logger.handlers and not force:
        return logger
    return setup_logging(
        level=config.log_level,
        log_file=config.log_file,
        environment=config.environment,
    )
