"""
Logging setup for DataSync.

Console output goes through rich. Records logged through a `SyncLogger`
carry the source system and entity type of their run, and record
failures add the error code and source id. The json format writes those
fields as top-level keys; the plain formats append them as a tag.
"""

from __future__ import annotations

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, MutableMapping

from rich.console import Console
from rich.logging import RichHandler

from datasync.config import LoggingConfig
from datasync.exceptions import DataSyncError

# Log output shares stderr with the progress panel, stdout stays for results
console = Console(stderr=True)

# Package logger
logger = logging.getLogger("datasync")

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Context keys never overwrite the base fields of a JSON line
RESERVED_KEYS = frozenset({"timestamp", "level", "message", "logger", "exception"})


def setup_logging(config: LoggingConfig | None = None, level: str | None = None) -> None:
    """
    Configure the package logger from the logging section of the settings.

    Args:
        config: Logging settings (defaults apply when omitted)
        level: Overrides config.level, e.g. DEBUG for --verbose
    """
    config = config or LoggingConfig()
    log_level = getattr(logging, (level or config.level).upper(), logging.INFO)

    logger.handlers.clear()
    logger.setLevel(log_level)

    handler = _console_handler(config.format)
    handler.setLevel(log_level)
    logger.addHandler(handler)

    if config.file:
        config.file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            config.file,
            maxBytes=config.max_file_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
        )
        file_handler.setLevel(log_level)
        if config.format == "json":
            file_handler.setFormatter(JsonFormatter())
        else:
            file_handler.setFormatter(ContextFormatter(FILE_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(file_handler)


def _console_handler(format_style: str) -> logging.Handler:
    if format_style == "rich":
        handler: logging.Handler = RichHandler(
            console=console,
            rich_tracebacks=True,
            show_time=True,
            show_path=False,
            markup=False,
        )
        handler.setFormatter(ContextFormatter("%(message)s"))
        return handler

    handler = logging.StreamHandler(sys.stderr)
    if format_style == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(ContextFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def error_context(exc: BaseException) -> dict[str, Any]:
    """Structured fields describing an exception."""
    if not isinstance(exc, DataSyncError):
        return {"code": type(exc).__name__}

    details = exc.log_details()
    details.pop("message")
    extra = details.pop("context")
    if extra:
        details["details"] = extra
    return {k: v for k, v in details.items() if v is not None}


def describe_context(context: Any) -> str:
    """Short tag for a record's context, e.g. ``legacy/order #12 validation_failed``."""
    if not isinstance(context, dict):
        return ""

    parts = []
    scope = "/".join(str(context[k]) for k in ("source_system", "entity_type") if context.get(k))
    if scope:
        parts.append(scope)
    if context.get("source_id") is not None:
        parts.append(f"#{context['source_id']}")
    if context.get("code"):
        parts.append(str(context["code"]))
    return " ".join(parts)


class ContextFormatter(logging.Formatter):
    """Plain-text formatter appending the sync context in brackets."""

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        tag = describe_context(getattr(record, "context", None))
        return f"{text} [{tag}]" if tag else text


class JsonFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        context = getattr(record, "context", None)
        if isinstance(context, dict):
            for key, value in context.items():
                if key not in RESERVED_KEYS:
                    log_data[key] = value

        return json.dumps(log_data, default=str)


class SyncLogger(logging.LoggerAdapter):
    """
    Logger bound to one sync run.

    Example:
        log = SyncLogger(get_logger(__name__), "legacy", "order")
        log.info("Starting sync")
        log.failure("Failed to import order #12", exc, source_id=12)
    """

    def __init__(self, base: logging.Logger, source_system: str, entity_type: str) -> None:
        super().__init__(base, {"source_system": source_system, "entity_type": entity_type})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        context = dict(self.extra or {})
        context.update(kwargs.pop("context", None) or {})
        kwargs["extra"] = {**(kwargs.get("extra") or {}), "context": context}
        return msg, kwargs

    def failure(self, message: str, exc: BaseException, source_id: int | None = None) -> None:
        """Log an error together with the exception's structured details."""
        context = error_context(exc)
        if source_id is not None:
            context["source_id"] = source_id
        self.error(message, context=context)


def get_logger(name: str = "datasync") -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
