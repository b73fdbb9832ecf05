from __future__ import annotations

import contextvars
import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator

from poemsong.config import settings

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")
route_var: contextvars.ContextVar[str] = contextvars.ContextVar("route", default="-")
method_var: contextvars.ContextVar[str] = contextvars.ContextVar("method", default="-")
composition_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("composition_id", default="-")

_RECORD_ATTRIBUTES = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
    }
)
_CONTEXT_FIELDS = ("request_id", "method", "route", "composition_id")


class RequestContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        if not hasattr(record, "route"):
            record.route = route_var.get()
        if not hasattr(record, "method"):
            record.method = method_var.get()
        if not hasattr(record, "composition_id"):
            record.composition_id = composition_id_var.get()
        if not hasattr(record, "event"):
            record.event = record.msg if isinstance(record.msg, str) else "log"
        if not hasattr(record, "status_code"):
            record.status_code = None
        return True


class StructuredFormatter(logging.Formatter):
    def __init__(self, json_output: bool) -> None:
        super().__init__()
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "event": getattr(record, "event", "log"),
        }
        for field in _CONTEXT_FIELDS:
            payload[field] = getattr(record, field, "-")
        status_code = getattr(record, "status_code", None)
        if status_code is not None:
            payload["status_code"] = status_code
        message = record.getMessage()
        if message and message != payload["event"]:
            payload["message"] = message

        skipped = _RECORD_ATTRIBUTES | set(_CONTEXT_FIELDS) | {"event", "status_code"}
        for key, value in record.__dict__.items():
            if key.startswith("_") or key in skipped:
                continue
            payload[key] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        if self.json_output:
            return json.dumps(payload, default=str, ensure_ascii=False)

        ordered = [
            f"timestamp={payload.pop('timestamp')}",
            f"level={payload.pop('level')}",
            f"event={payload.pop('event')}",
        ]
        ordered.extend(f"{field}={payload.pop(field)}" for field in _CONTEXT_FIELDS)
        if "status_code" in payload:
            ordered.append(f"status_code={payload.pop('status_code')}")
        ordered.extend(f"{k}={v}" for k, v in payload.items())
        return " ".join(ordered)


def configure_logging(level: str | None = None, log_format: str | None = None) -> None:
    root = logging.getLogger()
    if getattr(root, "_poemsong_logging_configured", False):
        return

    resolved_level = (level or settings.log_level).upper()
    json_output = (log_format or settings.log_format).lower() == "json"

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter(json_output=json_output))
    context_filter = RequestContextFilter()
    handler.addFilter(context_filter)

    root.handlers.clear()
    root.addHandler(handler)
    root.addFilter(context_filter)
    root.setLevel(resolved_level)
    root._poemsong_logging_configured = True  # type: ignore[attr-defined]


def set_request_context(*, request_id: str, route: str, method: str) -> None:
    request_id_var.set(request_id)
    route_var.set(route)
    method_var.set(method)


def clear_request_context() -> None:
    request_id_var.set("-")
    route_var.set("-")
    method_var.set("-")


def current_request_id() -> str:
    return request_id_var.get()


def new_request_id() -> str:
    return str(uuid.uuid4())


@contextmanager
def composition_context(composition_id: str) -> Iterator[None]:
    """Tag every log record emitted inside the block with ``composition_id``."""
    token = composition_id_var.set(composition_id)
    try:
        yield
    finally:
        composition_id_var.reset(token)


def log_event(logger: logging.Logger, event: str, level: int = logging.INFO, **fields: Any) -> None:
    logger.log(level, event, extra={"event": event, **fields})


def request_elapsed_ms(start_time: float) -> int:
    return int((time.perf_counter() - start_time) * 1000)
