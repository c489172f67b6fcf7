"""Crawl configuration documents using Pydantic.

A crawl is described by a ``WebCrawlerConfig``. The same schema, tagged with
``"type": "web"`` and optionally carrying logging and observability blocks, is
what ``CrawlerConfigFile`` loads from JSON.

Configuration validates at startup (fail fast): any problem surfaces as a
``ConfigurationError`` before a single worker is spawned.
"""

import json
import os
from pathlib import Path
from typing import Annotated, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from pagestream.config import DEFAULT_RENDER_ENDPOINT, FALLBACK_RENDER_ENDPOINTS
from pagestream.errors import ConfigurationError


RENDER_ENDPOINT_ENV = "RENDER_ENDPOINT_URL"

_LOG_LEVELS = {"debug", "info", "warning", "error", "critical"}


class CrawlTuningConfig(BaseModel):
    """Timing and capacity knobs of the crawl engine.

    The dequeue timeout curve only has to keep its shape: worker 0 waits
    longest, later workers wait less, every wait is bounded.
    """

    model_config = ConfigDict(extra="forbid")

    fetch_timeout_seconds: Annotated[
        float,
        Field(gt=0, description="Deadline for navigate + read + extract of one URL"),
    ] = 45.0

    first_page_grace_seconds: Annotated[
        float,
        Field(gt=0, description="Watchdog delay before a crawl with no first page (or no links) is shut down"),
    ] = 5.0

    dequeue_base_timeout: Annotated[
        float,
        Field(gt=0, description="Frontier wait allowed to worker 0"),
    ] = 5.0

    dequeue_timeout_step: Annotated[
        float,
        Field(ge=0, description="Amount the frontier wait shrinks per worker index"),
    ] = 1.0

    dequeue_min_timeout: Annotated[
        float,
        Field(gt=0, description="Floor of the per-worker frontier wait"),
    ] = 1.0

    frontier_capacity: Annotated[
        int,
        Field(ge=1, description="Maximum pending URLs before enqueuers block"),
    ] = 10_000

    output_capacity: Annotated[
        int,
        Field(ge=1, description="Maximum undelivered page records before workers block"),
    ] = 10_000

    def dequeue_timeout_for(self, worker_id: int) -> float:
        """Frontier wait for ``worker_id``; shrinks with the index down to the floor."""
        timeout = self.dequeue_base_timeout - worker_id * self.dequeue_timeout_step
        return max(self.dequeue_min_timeout, min(self.dequeue_base_timeout, timeout))


class WebCrawlerConfig(BaseModel):
    """Everything one crawl run needs."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    start_url: Annotated[str, Field(min_length=1, description="URL to start crawling from")]

    max_concurrency: Annotated[
        int,
        Field(ge=1, description="Maximum number of fetches in flight at once"),
    ] = 5

    worker_count: Annotated[
        int | None,
        Field(ge=1, description="Number of workers (defaults to max_concurrency)"),
    ] = None

    allow_external: Annotated[
        bool,
        Field(description="Whether to follow links to other hosts"),
    ] = False

    required_path_prefix: Annotated[
        str | None,
        Field(description="Path prefix override; restricted crawls default to the start URL path"),
    ] = None

    include_patterns: Annotated[
        list[str],
        Field(description="Regex patterns of which at least one must match"),
    ] = Field(default_factory=list)

    exclude_patterns: Annotated[
        list[str],
        Field(description="Regex patterns that reject a URL; take precedence over includes"),
    ] = Field(default_factory=list)

    render_endpoint: Annotated[
        str,
        Field(
            validation_alias=AliasChoices("render_endpoint", "webdriver_url"),
            description="Primary remote rendering endpoint",
        ),
    ] = DEFAULT_RENDER_ENDPOINT

    fallback_endpoints: Annotated[
        list[str],
        Field(description="Endpoints tried in order when the primary refuses a connection"),
    ] = Field(default_factory=lambda: list(FALLBACK_RENDER_ENDPOINTS))

    transport: Annotated[
        Literal["cdp", "http"],
        Field(description="Session transport: remote browser over CDP, or headless HTTP fetch"),
    ] = "cdp"

    idle_timeout_secs: Annotated[
        float | None,
        Field(gt=0, description="Stop the crawl if no page is emitted for this long"),
    ] = None

    total_timeout_secs: Annotated[
        float | None,
        Field(gt=0, description="Hard cap on crawl wall-clock time"),
    ] = None

    tuning: CrawlTuningConfig = Field(default_factory=CrawlTuningConfig)

    @field_validator("include_patterns", "exclude_patterns")
    @classmethod
    def _strip_empty_patterns(cls, value: list[str]) -> list[str]:
        return [pattern for pattern in value if pattern]

    @property
    def resolved_worker_count(self) -> int:
        return self.worker_count or self.max_concurrency

    def with_environment_overrides(self) -> "WebCrawlerConfig":
        """Return a copy whose render endpoint honors ``RENDER_ENDPOINT_URL``."""
        override = os.environ.get(RENDER_ENDPOINT_ENV, "").strip()
        if not override:
            return self
        return self.model_copy(update={"render_endpoint": override})


class LogProfileConfig(BaseModel):
    """Logging setup applied by the CLI before a crawl starts."""

    model_config = ConfigDict(extra="forbid")

    level: Annotated[
        str,
        Field(
            pattern=r"^(debug|info|warning|error|critical)$",
            description="Root log level",
        ),
    ] = "info"

    json_output: Annotated[
        bool,
        Field(description="Emit structured JSON logs"),
    ] = False

    trace_categories: Annotated[
        list[str],
        Field(
            description="Logger names to set at trace_level for deep debugging",
            examples=[["pagestream.crawler", "pagestream.scope"]],
        ),
    ] = Field(default_factory=list)

    trace_level: Annotated[
        str,
        Field(
            pattern=r"^(debug|info|warning|error|critical)$",
            description="Level applied to trace_categories loggers",
        ),
    ] = "debug"

    logger_levels: Annotated[
        dict[str, str],
        Field(
            description="Per-logger level overrides (logger name -> level)",
            examples=[{"pagestream.parsers": "warning"}],
        ),
    ] = Field(default_factory=dict)

    @field_validator("logger_levels")
    @classmethod
    def validate_logger_levels(cls, value: dict[str, str]) -> dict[str, str]:
        """Validate that all logger_levels values use supported log levels."""
        invalid = {name: level for name, level in value.items() if level not in _LOG_LEVELS}
        if invalid:
            details = ", ".join(f"{name}={level}" for name, level in invalid.items())
            raise ValueError(
                f"Invalid log level(s) in logger_levels; allowed levels are {sorted(_LOG_LEVELS)}; got: {details}"
            )
        return value


class ObservabilityCollectorConfig(BaseModel):
    """Configuration for OTLP export of traces, metrics and logs."""

    model_config = ConfigDict(extra="forbid")

    enabled: Annotated[
        bool,
        Field(description="Enable OTLP export to an external collector"),
    ] = False

    otlp_protocol: Annotated[
        Literal["http", "grpc"],
        Field(description="OTLP transport protocol"),
    ] = "grpc"

    collector_endpoint: Annotated[
        str,
        Field(
            description="OTLP collector endpoint (HTTP uses /v1/traces)",
            examples=["http://localhost:4317", "http://localhost:4318/v1/traces"],
        ),
    ] = "http://localhost:4317"

    headers: Annotated[
        dict[str, str],
        Field(description="Optional headers to include with OTLP requests"),
    ] = Field(default_factory=dict)

    timeout_seconds: Annotated[
        int,
        Field(ge=1, le=60, description="OTLP exporter timeout in seconds"),
    ] = 10

    grpc_insecure: Annotated[
        bool,
        Field(description="Allow insecure gRPC (plaintext) connections"),
    ] = True

    resource_attributes: Annotated[
        dict[str, str],
        Field(description="Additional OpenTelemetry resource attributes"),
    ] = Field(default_factory=dict)


class CrawlerConfigFile(WebCrawlerConfig):
    """Schema of a crawler JSON config file.

    Example:
        {
            "type": "web",
            "start_url": "https://docs.example.com/guide/",
            "max_concurrency": 4,
            "exclude_patterns": ["/_sources/"],
            "logging": {"level": "debug"}
        }
    """

    type: Annotated[
        Literal["web", "Web"],
        Field(description="Crawler type; only web crawls are supported"),
    ] = "web"

    logging: LogProfileConfig = Field(default_factory=LogProfileConfig)
    observability: ObservabilityCollectorConfig = Field(default_factory=ObservabilityCollectorConfig)

    def to_crawler_config(self) -> WebCrawlerConfig:
        data = self.model_dump(exclude={"type", "logging", "observability"})
        return WebCrawlerConfig.model_validate(data)

    @classmethod
    def from_json_str(cls, text: str) -> "CrawlerConfigFile":
        """Parse and validate a JSON config document.

        Raises:
            ConfigurationError: If the document is not valid JSON or fails validation
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Config is not valid JSON: {exc}") from exc
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(f"Crawler configuration is invalid: {exc}") from exc

    @classmethod
    def from_json_file(cls, path: Path) -> "CrawlerConfigFile":
        """Load configuration from a JSON file.

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid
        """
        if not path.exists():
            raise ConfigurationError(f"Crawler config not found: {path}")
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"Cannot read crawler config {path}: {exc}") from exc
        return cls.from_json_str(text)
