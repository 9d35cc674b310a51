"""Trace context carried through index operations for log correlation."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from uuid import uuid4


trace_context: ContextVar[dict | None] = ContextVar("trace_context", default=None)


def generate_trace_id() -> str:
    return uuid4().hex


def generate_span_id() -> str:
    return uuid4().hex[:16]


def get_trace_context() -> dict:
    """Return the current context, creating fresh trace/span ids on first use."""
    ctx = trace_context.get()
    if ctx is None or not ctx.get("trace_id"):
        ctx = {"trace_id": generate_trace_id(), "span_id": generate_span_id()}
        trace_context.set(ctx)
    return ctx


def update_span_id(span_id: str) -> None:
    """Point log records at a new span while keeping the trace id and extras."""
    trace_context.set({**get_trace_context(), "span_id": span_id})


@contextmanager
def index_context(index_name: str) -> Iterator[dict]:
    """Tag every log record emitted inside the block with ``index_name``."""
    ctx = get_trace_context()
    token = trace_context.set({**ctx, "index": index_name})
    try:
        yield trace_context.get() or {}
    finally:
        trace_context.reset(token)
