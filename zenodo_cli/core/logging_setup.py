"""Logging configuration for zenodo-cli.

Log output goes to stderr so that it never mixes with command output on
stdout.  An optional rotating log file and a JSON formatter are available
for scripted use.

The CLI calls ``configure_logging`` once at startup.
"""

import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Set on every handler installed by configure_logging
HANDLER_MARKER = "_zenodo_cli_handler"


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON-formatted log string
        """
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

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data)


@contextmanager
def log_performance(operation: str, logger: Optional[logging.Logger] = None):
    """Context manager for logging operation duration at DEBUG level.

    Args:
        operation: Name of the operation
        logger: Logger to use (default: root logger)

    Example:
        with log_performance("records search"):
            result = await api.search_records(query)
    """
    if logger is None:
        logger = logging.getLogger()

    start_time = time.monotonic()
    success = False
    try:
        yield
        success = True
    finally:
        duration_ms = (time.monotonic() - start_time) * 1000
        logger.debug(
            "%s completed in %.2fms (success=%s)",
            operation,
            duration_ms,
            success,
            extra={
                "extra_fields": {
                    "operation": operation,
                    "duration_ms": round(duration_ms, 2),
                    "success": success,
                }
            },
        )


def configure_logging(
    level: int = logging.WARNING,
    log_file: Optional[Path] = None,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    use_json: bool = False,
    console_output: bool = True,
) -> None:
    """Configure root logging handlers with optional JSON formatting.

    Parameters
    ----------
    level: int
        Logging level (e.g. ``logging.WARNING`` or ``logging.DEBUG``).
    log_file: Path, optional
        If provided, logs are also written to this file with rotation.  The
        directory is created if it does not exist.
    max_bytes: int
        Maximum size of each log file before rotation.
    backup_count: int
        Number of rotated log files to keep.
    use_json: bool
        If True, use JSON structured logging format.
    console_output: bool
        If True, log to stderr.
    """
    # Prevent duplicate handlers if configure_logging is called multiple times
    root = logging.getLogger()
    installed = [h for h in root.handlers if getattr(h, HANDLER_MARKER, False)]
    if installed:
        root.setLevel(level)
        for handler in installed:
            handler.setLevel(level)
        return

    root.setLevel(level)

    if use_json:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    if console_output:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        setattr(console_handler, HANDLER_MARKER, True)
        root.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        setattr(file_handler, HANDLER_MARKER, True)
        root.addHandler(file_handler)

    # httpx logs every request at INFO; keep it quiet unless debugging
    if level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
