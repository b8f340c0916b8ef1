"""
Centralized logging configuration for MagnetCurator.

One JSON object per line goes to rotating files under LOG_DIR:
app.log (INFO and up), error.log (ERROR and up) and, when the level is
DEBUG, debug.log. LOG_TO_CONSOLE=true mirrors errors to stderr in a
readable format.

Callers attach context through ``extra={"extra_fields": {...}}`` so that
session ids, engine ids and batch indexes end up as top-level JSON keys.
"""

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5

# Chatty third-party loggers; every fetch and AI call would land in app.log
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "google_genai", "urllib3")

_configured = False


class JsonFormatter(logging.Formatter):
    """Render a log record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_data: dict[str, Any] = {
            "timestamp": created.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
            "thread": record.threadName,
        }

        extra_fields = getattr(record, "extra_fields", None)
        if extra_fields:
            log_data.update(extra_fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def _rotating_handler(path: Path, level: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(JsonFormatter())
    return handler


def setup_logging(
    level: str | None = None,
    log_dir: str | Path | None = None,
    console: bool | None = None,
) -> None:
    """
    Configure the root logger once per process.

    Arguments override LOG_LEVEL, LOG_DIR and LOG_TO_CONSOLE. Later calls are
    ignored, so entry points that want their own level must call this before
    the first ``get_logger``.
    """
    global _configured
    if _configured:
        return

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    directory = Path(log_dir or os.getenv("LOG_DIR", "logs"))
    if console is None:
        console = os.getenv("LOG_TO_CONSOLE", "false").lower() == "true"

    directory.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))
    root_logger.handlers.clear()

    root_logger.addHandler(_rotating_handler(directory / "app.log", logging.INFO))
    root_logger.addHandler(_rotating_handler(directory / "error.log", logging.ERROR))
    if level_name == "DEBUG":
        root_logger.addHandler(_rotating_handler(directory / "debug.log", logging.DEBUG))

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.ERROR)
        console_handler.setFormatter(
            logging.Formatter(
                fmt="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
    logging.getLogger(__name__).info(
        "Logging system initialized",
        extra={
            "extra_fields": {
                "log_level": level_name,
                "log_dir": str(directory),
                "console_logging": console,
            }
        },
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger, configuring logging from the environment on first use.

    Example:
        >>> from utils.logger import get_logger
        >>> logger = get_logger(__name__)
        >>> logger.info("Search started", extra={"extra_fields": {"session_id": "abc"}})
    """
    setup_logging()
    return logging.getLogger(name)
