"""Structured JSON logging with crawl and worker correlation."""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import sys
from typing import Any

from opentelemetry._logs import set_logger_provider
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter as GrpcOTLPLogExporter
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter as HttpOTLPLogExporter
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource
import orjson

from pagestream.crawl_config import ObservabilityCollectorConfig
from pagestream.observability.context import get_crawl_context


# Anything on a record beyond these arrived through ``extra=``
_RECORD_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}
_SECRET_FIELDS = frozenset({"password", "token", "api_key", "secret", "authorization"})
_MAX_MESSAGE_CHARS = 2000
_MAX_FIELD_CHARS = 500
_TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_QUIET_LOGGERS = ("asyncio", "httpx", "httpcore", "playwright")

_export_state: dict[str, Any] = {"provider": None, "handler": None}


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


class JsonFormatter(logging.Formatter):
    """One JSON object per record, tagged with the crawl and worker that logged it.

    ``crawl_id``, ``worker_id`` and the trace ids come from the task-local
    crawl context, so records from concurrent workers keep their own tags.
    Fields passed through ``extra=`` are copied with secrets masked.
    """

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_crawl_context()
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "component": record.name.rpartition(".")[2],
            "message": _clip(record.getMessage(), _MAX_MESSAGE_CHARS),
            "trace_id": ctx.get("trace_id", ""),
            "span_id": ctx.get("span_id", ""),
        }
        entry.update({key: ctx[key] for key in ("crawl_id", "worker_id") if ctx.get(key) is not None})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        for key, value in vars(record).items():
            if key not in _RECORD_ATTRS and not key.startswith("_"):
                entry[key] = self._mask(key, value)

        return orjson.dumps(entry, default=self._json_default).decode()

    @staticmethod
    def _mask(key: str, value: Any) -> Any:
        if key.lower() in _SECRET_FIELDS:
            return "[REDACTED]"
        if isinstance(value, str):
            return _clip(value, _MAX_FIELD_CHARS)
        return value

    @staticmethod
    def _json_default(value: Any) -> Any:
        if isinstance(value, (set, frozenset)):
            return sorted(value, key=lambda item: (type(item).__name__, item))
        if isinstance(value, (bytes, bytearray)):
            return value.decode("utf-8", errors="replace")
        return str(value)


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    *,
    logger_levels: dict[str, str] | None = None,
    trace_categories: list[str] | None = None,
    trace_level: str = "debug",
) -> None:
    """Send all logging to stderr; stdout carries ``--jsonl`` page records.

    Loggers named in ``trace_categories`` drop to ``trace_level``.
    ``logger_levels`` is applied last and wins over both.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(_TEXT_FORMAT))
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(_level(level, logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    for name in trace_categories or []:
        logging.getLogger(name).setLevel(_level(trace_level, logging.DEBUG))
    for name, name_level in (logger_levels or {}).items():
        logging.getLogger(name).setLevel(_level(name_level, logging.INFO))


def _level(name: str, default: int) -> int:
    return logging.getLevelNamesMapping().get(name.upper(), default)


def configure_log_exporter(config: ObservabilityCollectorConfig | None) -> None:
    """Forward root logger records to the OTLP collector.

    Only the first enabled call attaches a handler.
    """
    if not config or not config.enabled or _export_state["handler"] is not None:
        return

    provider = LoggerProvider(resource=Resource.create({"service.name": "pagestream", **config.resource_attributes}))
    provider.add_log_record_processor(BatchLogRecordProcessor(_build_log_exporter(config)))
    set_logger_provider(provider)

    handler = LoggingHandler(level=logging.INFO, logger_provider=provider)
    logging.getLogger().addHandler(handler)
    _export_state.update(provider=provider, handler=handler)


def _logs_endpoint(config: ObservabilityCollectorConfig) -> str:
    # HTTP collectors take logs on /v1/logs beside /v1/traces
    if config.otlp_protocol == "http" and config.collector_endpoint.endswith("/v1/traces"):
        return config.collector_endpoint.removesuffix("/v1/traces") + "/v1/logs"
    return config.collector_endpoint


def _build_log_exporter(config: ObservabilityCollectorConfig) -> GrpcOTLPLogExporter | HttpOTLPLogExporter:
    endpoint = _logs_endpoint(config)
    if config.otlp_protocol == "grpc":
        return GrpcOTLPLogExporter(
            endpoint=endpoint,
            headers=config.headers,
            timeout=config.timeout_seconds,
            insecure=config.grpc_insecure,
        )
    return HttpOTLPLogExporter(endpoint=endpoint, headers=config.headers, timeout=config.timeout_seconds)
