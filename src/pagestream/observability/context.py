"""Context propagation for log correlation across crawl tasks."""

from __future__ import annotations

from contextvars import ContextVar
from uuid import uuid4

# Each asyncio task gets its own copy, so workers can tag their own logs
crawl_context: ContextVar[dict | None] = ContextVar("crawl_context", default=None)


def generate_trace_id() -> str:
    """Generate a 32-char hex trace ID."""
    return uuid4().hex


def generate_span_id() -> str:
    """Generate a 16-char hex span ID."""
    return uuid4().hex[:16]


def get_crawl_context() -> dict:
    """Get the current context, creating trace and span IDs on first use."""
    ctx = crawl_context.get()
    if ctx is None or not ctx.get("trace_id"):
        ctx = {**(ctx or {}), "trace_id": generate_trace_id(), "span_id": generate_span_id()}
        crawl_context.set(ctx)
    return ctx


def set_crawl_context(**fields: object) -> None:
    """Merge ``fields`` (crawl_id, worker_id, ...) into the current context."""
    ctx = get_crawl_context()
    crawl_context.set({**ctx, **fields})


def update_span_id(span_id: str) -> None:
    """Update span_id while preserving everything else."""
    ctx = crawl_context.get() or {}
    crawl_context.set({**ctx, "span_id": span_id})

