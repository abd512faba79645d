"""
Structured Logging Configuration Module

JSON log lines for ledger and identity events. Records emitted while an API
request is being served carry that request's correlation ID.
"""

from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional
import json
import logging


TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Set by the API middleware for the duration of one request
correlation_id: ContextVar[Optional[str]] = ContextVar("paywire_correlation_id", default=None)

_STRUCTURED_FIELDS = ("user_id", "action", "resource", "extra")


class JSONFormatter(logging.Formatter):
    """One JSON object per record; empty fields are left out"""

    def format(self, record):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, 'correlation_id', None) or correlation_id.get(),
        }
        for name in _STRUCTURED_FIELDS:
            entry[name] = getattr(record, name, None)
        entry = {k: v for k, v in entry.items() if v is not None}

        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "paywire",
                  log_format: str = "json", log_file: Optional[str] = None) -> logging.Logger:
    """
    Attach a single handler to the paywire logger tree.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Root of the tree; paywire.ledger etc. inherit from it
        log_format: "json", or "text" for plain console lines
        log_file: Append to this file instead of stderr

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)

    # Calling twice must not duplicate output
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False

    return logger


def get_logger(name: str = "paywire") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[int] = None, action: Optional[str] = None,
               resource: Optional[str] = None, extra: Optional[dict] = None,
               exc_info=None):
    """
    Emit a record carrying the structured fields understood by JSONFormatter.

    Args:
        logger: Logger to emit on
        level: Level name (info, warning, error, ...)
        message: Human-readable message
        user_id: Account the event concerns
        action: Operation name, e.g. "create_transfer"
        resource: Affected entity, e.g. "transfer:12"
        extra: Any further key/value context
        exc_info: An exception instance or a sys.exc_info() tuple
    """
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    if isinstance(exc_info, BaseException):
        exc_info = (type(exc_info), exc_info, exc_info.__traceback__)

    record = logger.makeRecord(logger.name, levelno, __name__, 0, message, (), exc_info)
    if user_id is not None:
        record.user_id = user_id
    if action:
        record.action = action
    if resource:
        record.resource = resource
    if extra:
        record.extra = extra

    logger.handle(record)
