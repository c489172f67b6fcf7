"""Prometheus crawl metrics with optional OTLP export."""

from __future__ import annotations

from contextlib import contextmanager
import time
from typing import TYPE_CHECKING, Any

from opentelemetry import metrics as otel_metrics
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
    OTLPMetricExporter as GrpcOTLPMetricExporter,
)
from opentelemetry.exporter.otlp.proto.http.metric_exporter import (
    OTLPMetricExporter as HttpOTLPMetricExporter,
)
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import Counter, Gauge, Histogram, generate_latest

from pagestream.crawl_config import ObservabilityCollectorConfig


if TYPE_CHECKING:
    from collections.abc import Generator


_meter_holder: dict[str, Any] = {"meter": None, "provider": None}


def init_metrics(
    service_name: str = "pagestream",
    resource_attributes: dict[str, str] | None = None,
    metric_readers: list[PeriodicExportingMetricReader] | None = None,
) -> MeterProvider:
    """Initialize OpenTelemetry metrics."""
    provider = _meter_holder.get("provider")
    if isinstance(provider, MeterProvider):
        return provider

    attributes = {"service.name": service_name}
    if resource_attributes:
        attributes.update(resource_attributes)
    provider = MeterProvider(resource=Resource.create(attributes), metric_readers=metric_readers or [])
    otel_metrics.set_meter_provider(provider)
    _meter_holder["provider"] = provider
    _meter_holder["meter"] = otel_metrics.get_meter(__name__)
    return provider


def configure_metrics_exporter(config: ObservabilityCollectorConfig | None) -> None:
    """Export crawl metrics over OTLP; must run before the first metric is recorded."""
    if not config or not config.enabled:
        return
    if isinstance(_meter_holder.get("provider"), MeterProvider):
        return

    endpoint = config.collector_endpoint
    if config.otlp_protocol == "http" and endpoint.endswith("/v1/traces"):
        endpoint = endpoint.removesuffix("/v1/traces") + "/v1/metrics"

    if config.otlp_protocol == "grpc":
        exporter = GrpcOTLPMetricExporter(
            endpoint=endpoint,
            headers=config.headers,
            timeout=config.timeout_seconds,
            insecure=config.grpc_insecure,
        )
    else:
        exporter = HttpOTLPMetricExporter(
            endpoint=endpoint,
            headers=config.headers,
            timeout=config.timeout_seconds,
        )

    init_metrics(
        resource_attributes=dict(config.resource_attributes),
        metric_readers=[PeriodicExportingMetricReader(exporter)],
    )


def _get_meter():
    meter = _meter_holder.get("meter")
    if meter is None:
        init_metrics()
        meter = _meter_holder.get("meter")
    return meter


class _BoundMetric:
    def __init__(self, wrapper: MetricBridge, labels: dict[str, str]) -> None:
        self._wrapper = wrapper
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._wrapper.inc(self._labels, amount)

    def dec(self, amount: float = 1.0) -> None:
        self._wrapper.inc(self._labels, -amount)

    def observe(self, value: float) -> None:
        self._wrapper.observe(self._labels, value)


class MetricBridge:
    """Bridge Prometheus metrics to OTel instruments."""

    def __init__(
        self,
        prom_metric: Counter | Histogram | Gauge,
        *,
        otel_name: str,
        otel_description: str,
        otel_kind: str,
    ) -> None:
        self._prom_metric = prom_metric
        self._otel_name = otel_name
        self._otel_description = otel_description
        self._otel_kind = otel_kind
        self._otel_instrument = None

    def labels(self, **labels: str) -> _BoundMetric:
        return _BoundMetric(self, labels)

    def _ensure_otel_instrument(self):
        if self._otel_instrument is not None:
            return self._otel_instrument
        meter = _get_meter()
        if self._otel_kind == "counter":
            self._otel_instrument = meter.create_counter(self._otel_name, description=self._otel_description)
        elif self._otel_kind == "histogram":
            self._otel_instrument = meter.create_histogram(self._otel_name, description=self._otel_description)
        elif self._otel_kind == "gauge":
            self._otel_instrument = meter.create_up_down_counter(self._otel_name, description=self._otel_description)
        else:
            raise ValueError(f"Unknown metric kind: {self._otel_kind}")
        return self._otel_instrument

    def _prom(self, labels: dict[str, str]):
        return self._prom_metric.labels(**labels) if labels else self._prom_metric

    def inc(self, labels: dict[str, str], amount: float) -> None:
        if amount >= 0:
            self._prom(labels).inc(amount)
        else:
            self._prom(labels).dec(-amount)
        self._ensure_otel_instrument().add(amount, labels)

    def observe(self, labels: dict[str, str], value: float) -> None:
        self._prom(labels).observe(value)
        self._ensure_otel_instrument().record(value, labels)


_PAGES_EMITTED_PROM = Counter(
    "crawl_pages_emitted_total",
    "Page records delivered to the output stream",
)

_FETCH_FAILURES_PROM = Counter(
    "crawl_fetch_failures_total",
    "URLs abandoned by the fetch pipeline",
    ["reason"],
)

_SESSION_RECONNECTS_PROM = Counter(
    "crawl_session_reconnects_total",
    "Rendering sessions replaced after session loss",
)

_LINKS_ENQUEUED_PROM = Counter(
    "crawl_links_enqueued_total",
    "Discovered links admitted to the frontier",
)

_FETCHES_IN_FLIGHT_PROM = Gauge(
    "crawl_fetches_in_flight",
    "Fetches currently holding a throttle permit",
)

_FETCH_LATENCY_PROM = Histogram(
    "crawl_fetch_latency_seconds",
    "Time from permit acquisition to extracted page",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 45.0),
)

PAGES_EMITTED = MetricBridge(
    _PAGES_EMITTED_PROM,
    otel_name="crawl_pages_emitted_total",
    otel_description="Page records delivered to the output stream",
    otel_kind="counter",
)

FETCH_FAILURES = MetricBridge(
    _FETCH_FAILURES_PROM,
    otel_name="crawl_fetch_failures_total",
    otel_description="URLs abandoned by the fetch pipeline",
    otel_kind="counter",
)

SESSION_RECONNECTS = MetricBridge(
    _SESSION_RECONNECTS_PROM,
    otel_name="crawl_session_reconnects_total",
    otel_description="Rendering sessions replaced after session loss",
    otel_kind="counter",
)

LINKS_ENQUEUED = MetricBridge(
    _LINKS_ENQUEUED_PROM,
    otel_name="crawl_links_enqueued_total",
    otel_description="Discovered links admitted to the frontier",
    otel_kind="counter",
)

FETCHES_IN_FLIGHT = MetricBridge(
    _FETCHES_IN_FLIGHT_PROM,
    otel_name="crawl_fetches_in_flight",
    otel_description="Fetches currently holding a throttle permit",
    otel_kind="gauge",
)

FETCH_LATENCY = MetricBridge(
    _FETCH_LATENCY_PROM,
    otel_name="crawl_fetch_latency_seconds",
    otel_description="Time from permit acquisition to extracted page",
    otel_kind="histogram",
)


@contextmanager
def track_latency(histogram: MetricBridge, **labels: str) -> Generator[None, None, None]:
    """Context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()
