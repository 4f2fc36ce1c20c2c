"""Structured JSON logging for the service.

Every line is one JSON object. Request context (route, method, status,
timing) and audit context (principal, action, resource) ride on
``extra=`` and are copied onto the object when the record carries them.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Iterable, Optional, Union

from bulkverify.config import LOG_FILE, LOG_LEVEL

REQUEST_FIELDS = ("request_id", "route", "method", "status", "duration_ms")
AUDIT_FIELDS = ("type", "principal", "action", "resource", "details")

# Third-party loggers that log every provider round-trip at INFO
QUIET_LOGGERS = ("httpx", "httpcore")


class JsonFormatter(logging.Formatter):
    """Render a record and its known extras as a single JSON line."""

    def __init__(self, fields: Iterable[str] = REQUEST_FIELDS + AUDIT_FIELDS):
        super().__init__()
        self.fields = tuple(fields)

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update(
            {name: getattr(record, name) for name in self.fields if hasattr(record, name)}
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _resolve_level(level: Union[int, str, None]) -> int:
    if isinstance(level, int):
        return level
    if level is None:
        level = LOG_LEVEL
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(
    level: Union[int, str, None] = None,
    log_file: Optional[str] = None,
    stream: Optional[IO[str]] = None,
) -> None:
    """Route the root logger through JSON handlers.

    Args:
        level: Level name or number. Defaults to BULKVERIFY_LOG_LEVEL.
        log_file: Extra file sink. Defaults to BULKVERIFY_LOG_FILE, if set.
        stream: Console stream, stdout unless given.
    """
    if log_file is None:
        log_file = LOG_FILE

    handlers: list[logging.Handler] = [logging.StreamHandler(stream or sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))

    formatter = JsonFormatter()
    for handler in handlers:
        handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = handlers
    root.setLevel(_resolve_level(level))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
