"""Structured logging configuration.

Emits one JSON object per record on stdout and carries a request id through a
context variable. The FastAPI app calls `configure_logging()` at startup and a
middleware binds the id of each incoming request with `request_context()`.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

_STANDARD_FIELDS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        data: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        rid = request_id_var.get()
        if rid:
            data["request_id"] = rid
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key in _STANDARD_FIELDS or key.startswith("_"):
                continue
            data[key] = value
        return json.dumps(data, ensure_ascii=False, default=str)


def configure_logging(level: int = logging.INFO, force: bool = False) -> None:
    root = logging.getLogger()
    if force:
        for handler in list(root.handlers):
            root.removeHandler(handler)
    elif any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        root.setLevel(level)
        for handler in root.handlers:
            handler.setLevel(level)
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.setLevel(level)
    root.addHandler(handler)


def new_request_id() -> str:
    return uuid.uuid4().hex


@contextmanager
def request_context(rid: str | None) -> Iterator[str]:
    """Bind ``rid`` (or a fresh id) for the duration of the block."""
    bound = rid or new_request_id()
    token = request_id_var.set(bound)
    try:
        yield bound
    finally:
        request_id_var.reset(token)


__all__ = [
    "JsonFormatter",
    "configure_logging",
    "new_request_id",
    "request_context",
    "request_id_var",
]
