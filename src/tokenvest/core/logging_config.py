"""
Structured JSON logging for the vesting vault.

Every record is a JSON object carrying the vault's ``event`` name (for
example ``vault.claim``), the structured ``extra`` fields passed at the call
site, plus environment, service and source location. Records go to stderr
and/or a size-rotated file.

Usage:
    from tokenvest.core.logging_config import setup_logging

    setup_logging(log_file="logs/vault.json", level="INFO")
    logging.getLogger("tokenvest.core.vault").info(
        "Tokens claimed", extra={"event": "vault.claim", "amount": 550}
    )
"""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

ROOT_LOGGER = "tokenvest"
DEFAULT_FORMAT = "%(timestamp)s %(level)s %(name)s %(event)s %(message)s"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Vault log formatter: event name, environment, service and call site."""

    def __init__(
        self,
        fmt: str = DEFAULT_FORMAT,
        timestamp: bool = True,
        environment: Optional[str] = None,
        service_name: str = ROOT_LOGGER,
    ):
        super().__init__(fmt=fmt)
        self.timestamp = timestamp
        self.environment = environment or "production"
        self.service_name = service_name

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if self.timestamp and not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = log_record.get("level") or record.levelname.lower()
        # records without an explicit event are tagged by their module logger
        log_record["event"] = log_record.get("event") or record.name

        log_record.update(
            environment=self.environment,
            service=self.service_name,
            source={
                "module": record.module,
                "function": record.funcName,
                "line": record.lineno,
            },
        )


def _attach(logger: logging.Logger, handler: logging.Handler, level: int, formatter: logging.Formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def setup_logging(
    name: str = ROOT_LOGGER,
    log_file: Optional[str] = None,
    level: str = "INFO",
    environment: str = "production",
    enable_console: bool = True,
    enable_file: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 7,
) -> logging.Logger:
    """
    Configure the package logger (or any named logger) for JSON output.

    Calling it again replaces the handlers it installed before. When neither
    console nor file output is enabled a NullHandler is installed so records
    are dropped quietly instead of reaching Python's last-resort handler.

    Args:
        name: Logger to configure; child module loggers propagate into it
        log_file: JSON log file path, used when ``enable_file`` is true
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        environment: Value of the ``environment`` field
        enable_console: Log to stderr
        enable_file: Log to ``log_file`` with size-based rotation
        max_bytes: Rotation threshold in bytes
        backup_count: Rotated files kept

    Returns:
        The configured logger
    """
    numeric_level = getattr(logging, level.upper())
    logger = logging.getLogger(name)
    logger.setLevel(numeric_level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = CustomJsonFormatter(
        environment=environment,
        service_name=name.split(".")[0],
    )

    if enable_console:
        _attach(logger, logging.StreamHandler(sys.stderr), numeric_level, formatter)

    if enable_file and log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            rotating = logging.handlers.RotatingFileHandler(
                filename=log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
        except OSError as e:
            logger.warning("Could not create file handler for %s: %s", log_file, e)
        else:
            _attach(logger, rotating, numeric_level, formatter)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


def setup_logging_from_config(
    logging_config: Any,
    environment: str = "production",
    level: Optional[str] = None,
    enable_console: Optional[bool] = None,
) -> logging.Logger:
    """
    Configure the package logger from a ``LoggingConfig`` section.

    ``level`` and ``enable_console`` override the section when given, e.g.
    for a command line ``--verbose`` flag.
    """
    if enable_console is None:
        enable_console = logging_config.enable_console_logging
    return setup_logging(
        name=ROOT_LOGGER,
        log_file=logging_config.log_file,
        level=level or logging_config.level,
        environment=environment,
        enable_console=enable_console,
        enable_file=logging_config.enable_file_logging,
        max_bytes=logging_config.max_log_size,
        backup_count=logging_config.log_retention,
    )
