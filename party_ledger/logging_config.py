"""
Logging setup.

Every log line is one JSON object. Request-scoped fields (user,
party, request id) are held in a context variable and added to
each line; anything passed in ``extra={...}`` is added too.
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone

ROOT_LOGGER = "party_ledger"

_context: ContextVar[dict] = ContextVar("party_ledger_log_context", default={})

# Attributes every LogRecord has; everything else came in through ``extra``
_RECORD_FIELDS = set(vars(logging.makeLogRecord({}))) | {"message", "taskName"}


class LogContext:
    """Fields added to every log line written inside ``bind``."""

    @staticmethod
    def get_all() -> dict:
        return dict(_context.get())

    @staticmethod
    @contextmanager
    def bind(**fields):
        values = {key: value for key, value in fields.items() if value is not None}
        token = _context.set({**_context.get(), **values})
        try:
            yield
        finally:
            _context.reset(token)


class StructuredFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(LogContext.get_all())

        for key, value in vars(record).items():
            if key not in _RECORD_FIELDS and key not in payload:
                payload[key] = value

        if record.exc_info:
            payload["exc_type"] = record.exc_info[0].__name__
            payload["traceback"] = self.formatException(record.exc_info)

        # Decimals, dates and ids are written as strings
        return json.dumps(payload, default=str)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def configure_logging(level: int | str = logging.INFO, stream=None) -> None:
    """
    Send the party_ledger loggers to ``stream`` (stderr by default).

    Calling it again only changes the level.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.propagate = False

    if any(isinstance(h.formatter, StructuredFormatter) for h in logger.handlers):
        return

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(StructuredFormatter())
    logger.addHandler(handler)


def reset_logging() -> None:
    """Undo configure_logging. Used by tests."""
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        if isinstance(handler.formatter, StructuredFormatter):
            logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
