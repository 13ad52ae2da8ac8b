"""Trace ID propagation across consumed messages and log lines."""

import uuid
from collections.abc import Mapping
from contextvars import ContextVar
from typing import Any

import structlog

TRACE_HEADER = "x-trace-id"

_trace_id: ContextVar[str] = ContextVar("trace_id", default="")


def generate_trace_id() -> str:
    return uuid.uuid4().hex[:16]


def get_trace_id() -> str:
    """Current trace ID, or an empty string outside a trace."""
    return _trace_id.get()


def set_trace_id(trace_id: str) -> None:
    _trace_id.set(trace_id)
    structlog.contextvars.bind_contextvars(trace_id=trace_id)


def clear_trace_id() -> None:
    _trace_id.set("")
    structlog.contextvars.unbind_contextvars("trace_id")


def trace_id_from_headers(headers: Mapping[str, Any] | None, fallback: str | None = None) -> str:
    """Reuse an upstream trace ID from message headers when present."""
    value = (headers or {}).get(TRACE_HEADER)
    if isinstance(value, bytes):
        value = value.decode(errors="ignore")
    return str(value or fallback or generate_trace_id())


class TraceContext:
    """Binds a trace ID for the duration of a block, restoring the outer one after."""

    def __init__(self, trace_id: str | None = None):
        self._trace_id = trace_id or generate_trace_id()
        self._previous_id = ""

    def __enter__(self) -> str:
        self._previous_id = get_trace_id()
        set_trace_id(self._trace_id)
        return self._trace_id

    def __exit__(self, *args: Any) -> None:
        if self._previous_id:
            set_trace_id(self._previous_id)
        else:
            clear_trace_id()
