"""Logging configuration.

Production emits one JSON object per line using Cloud Logging field names;
development gets colored text on stderr. Both are loguru sinks.
"""

import json
import logging
import sys
import traceback
from typing import Any

from loguru import logger

_SEVERITY = {
    "TRACE": "DEBUG",
    "SUCCESS": "INFO",
}

_HTTP_LOGGERS = ("httpx", "httpcore")

_DEV_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def _exception_fields(exception: Any) -> dict[str, Any]:
    exc_type, exc_value, exc_tb = exception
    return {
        "type": exc_type.__name__ if exc_type else None,
        "value": str(exc_value) if exc_value else None,
        "traceback": (
            "".join(traceback.format_exception(exc_type, exc_value, exc_tb))
            if exc_tb
            else None
        ),
    }


def _serialize(record: dict[str, Any]) -> str:
    """Render a loguru record as a Cloud Logging JSON line.

    Values bound with ``logger.bind`` (rundownId, change type, ...) become
    top-level fields. Keys starting with an underscore stay private.
    """
    level = record["level"].name
    entry: dict[str, Any] = {
        "severity": _SEVERITY.get(level, level),
        "message": record["message"],
        "time": record["time"].isoformat(),
        "logger": record["name"],
    }
    entry.update(
        (key, value)
        for key, value in record["extra"].items()
        if not key.startswith("_")
    )
    if record["exception"] is not None:
        entry["exception"] = _exception_fields(record["exception"])
    return json.dumps(entry, default=str)


def _json_sink(message: Any) -> None:
    print(_serialize(message.record), file=sys.stdout, flush=True)


class _HttpLogHandler(logging.Handler):
    """Forwards httpx/httpcore records to loguru, tagged with their logger."""

    def emit(self, record: logging.LogRecord) -> None:
        level: str | int
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        logger.bind(library=record.name).opt(exception=record.exc_info).log(
            level, record.getMessage()
        )


def configure_logging(*, is_production: bool, log_level: str = "INFO") -> None:
    """Install the gateway's loguru sinks, replacing any existing ones.

    Args:
        is_production: JSON lines on stdout if True, colored text on stderr
            otherwise.
        log_level: Minimum level name, e.g. "DEBUG" or "WARNING".
    """
    logger.remove()

    if is_production:
        logger.add(_json_sink, level=log_level, backtrace=False, diagnose=False)
    else:
        logger.add(sys.stderr, level=log_level, format=_DEV_FORMAT, colorize=True)

    # httpx reports every request at INFO
    http_level = logging.DEBUG if log_level.upper() == "DEBUG" else logging.WARNING
    for name in _HTTP_LOGGERS:
        http_logger = logging.getLogger(name)
        http_logger.handlers = [_HttpLogHandler()]
        http_logger.setLevel(http_level)
        http_logger.propagate = False
