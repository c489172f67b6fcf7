"""Logging, metrics and tracing for crawl runs."""

from pagestream.observability.context import get_crawl_context, set_crawl_context
from pagestream.observability.logging import JsonFormatter, configure_log_exporter, configure_logging
from pagestream.observability.metrics import (
    FETCH_FAILURES,
    FETCH_LATENCY,
    FETCHES_IN_FLIGHT,
    LINKS_ENQUEUED,
    PAGES_EMITTED,
    SESSION_RECONNECTS,
    configure_metrics_exporter,
    get_metrics,
    track_latency,
)
from pagestream.observability.tracing import configure_trace_exporter, create_span, get_tracer, init_tracing


__all__ = [
    "FETCHES_IN_FLIGHT",
    "FETCH_FAILURES",
    "FETCH_LATENCY",
    "LINKS_ENQUEUED",
    "PAGES_EMITTED",
    "SESSION_RECONNECTS",
    "JsonFormatter",
    "configure_log_exporter",
    "configure_logging",
    "configure_metrics_exporter",
    "configure_trace_exporter",
    "create_span",
    "get_crawl_context",
    "get_metrics",
    "get_tracer",
    "init_tracing",
    "set_crawl_context",
    "track_latency",
]
