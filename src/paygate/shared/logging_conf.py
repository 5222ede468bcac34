"""
Logging Configuration - Logging Setup and Payment Event Records

This module provides centralized logging configuration for the entire
application, plus the helper used to emit structured payment lifecycle
events (address generated, webhook received, payment confirmed, ...).

Files that USE this module:
- paygate.app (setup_logging function for logging initialization)
- paygate.adapters.gateways.* (log_payment_event)
- paygate.application.orchestrator (log_payment_event)

Files that this module USES:
- None (pure configuration module)
"""
import logging
import os
import sys
from pathlib import Path
from typing import Any, Optional, Union
from logging.handlers import RotatingFileHandler

_event_log = logging.getLogger("paygate.events")


def setup_logging(
    level=logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    log_dir: Optional[Union[str, Path]] = None,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    log_to_stdout: Optional[bool] = None,
) -> None:
    """
    Configure application-wide logging settings.

    Sets up structured logging with consistent formatting. Can output to stdout,
    file, or both. Supports log rotation for file logging.

    Args:
        level: Logging level (int or level name, default: logging.INFO)
        log_file: Optional path to log file (enables file logging)
        log_dir: Optional directory for log files (file is named paygate.log)
        max_bytes: Maximum size per log file before rotation (default: 10MB)
        backup_count: Number of backup log files to keep (default: 5)
        log_to_stdout: Also log to stdout (default: PAYGATE_LOG_STDOUT env var, true)
    """
    log_format = "%(asctime)s %(levelname)s %(name)s :: %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    handlers = []

    # Under systemd/supervisor stdout is usually captured already
    if log_to_stdout is None:
        log_to_stdout = os.environ.get("PAYGATE_LOG_STDOUT", "true").lower() == "true"

    if log_to_stdout:
        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setFormatter(logging.Formatter(log_format, date_format))
        handlers.append(stdout_handler)

    log_file_path = None
    if log_file or log_dir:
        if log_dir:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            log_file_path = log_dir / "paygate.log"
        else:
            log_file_path = Path(log_file)
            log_file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(log_format, date_format))
        handlers.append(file_handler)

    if not handlers:
        handlers = [logging.StreamHandler(sys.stdout)]

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=date_format,
        handlers=handlers,
        force=True,
    )

    logger = logging.getLogger(__name__)
    if log_file_path is not None:
        logger.info("Logging configured: file=%s, level=%s", log_file_path, level)
    else:
        logger.info("Logging configured: stdout, level=%s", level)


def format_event_context(context: dict[str, Any]) -> str:
    """
    Render event context as sorted key=value pairs.

    None values are dropped so optional fields do not clutter the record.
    """
    return " ".join(
        f"{key}={context[key]}" for key in sorted(context) if context[key] is not None
    )


def log_payment_event(event: str, level: int = logging.INFO, **context: Any) -> None:
    """
    Emit a payment lifecycle event on the 'paygate.events' logger.

    Args:
        event: Event name, e.g. 'bitcoin_payment_confirmed'
        level: Logging level for the record
        **context: Identifiers for the event (order id, provider reference, ...).
                   Never pass credentials or tokens here.
    """
    _event_log.log(level, "payment_event=%s %s", event, format_event_context(context))
