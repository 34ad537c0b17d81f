"""JSON logs for push services.

Every record carries the trigger's trace id plus the user and retry intent
being worked on, so one dispatch or retry run can be followed across the
dispatcher, scheduler and transport lines it produces.
"""

import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

from pythonjsonlogger.json import JsonFormatter

from promopush.common.config import settings


trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
user_id_ctx: ContextVar[str] = ContextVar("user_id", default="")
retry_id_ctx: ContextVar[str] = ContextVar("retry_id", default="")

_FIELDS = {"user_id": user_id_ctx, "retry_id": retry_id_ctx}


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = settings.service_name
        record.trace_id = trace_id_ctx.get()
        record.user_id = user_id_ctx.get()
        record.retry_id = retry_id_ctx.get()
        return True


@contextmanager
def log_context(**fields: str) -> Iterator[None]:
    """Tag log lines inside the block with `user_id` and/or `retry_id`.

    Tasks started inside the block (the per-device sends of a fan-out) inherit
    the values; they are restored on exit.
    """

    tokens = [(_FIELDS[name], _FIELDS[name].set(value or "")) for name, value in fields.items()]
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def configure_logging(level: str | None = None) -> None:
    """Send JSON lines to stdout; replaces any handlers already installed."""

    handler = logging.StreamHandler(sys.stdout)
    context_filter = ContextFilter()
    handler.addFilter(context_filter)
    handler.setFormatter(
        JsonFormatter("%(asctime)s %(levelname)s %(service_name)s %(trace_id)s %(user_id)s %(retry_id)s %(message)s")
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level or settings.log_level)
    root.addFilter(context_filter)


logger = logging.getLogger("promopush")
