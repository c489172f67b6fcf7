"""Environment configuration for pagestream using Pydantic Settings."""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_RENDER_ENDPOINT = "http://localhost:9222"

# Tried in order when the primary endpoint refuses a connection
FALLBACK_RENDER_ENDPOINTS: tuple[str, ...] = (
    "http://127.0.0.1:9222",  # Chrome remote debugging, IP instead of localhost
    "http://localhost:9229",  # Chrome launched with an alternate debug port
    "ws://localhost:3000",  # browserless default
)


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    Values here are defaults for a crawl; a JSON config file or explicit
    builder calls override them.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",  # Ignore extra env vars not defined in model
    )

    # Remote rendering
    render_endpoint_url: str = Field(
        default=DEFAULT_RENDER_ENDPOINT,
        description="Endpoint of the remote rendering service (Chrome DevTools Protocol)",
    )
    render_transport: Literal["cdp", "http"] = Field(
        default="cdp", description="Session transport: 'cdp' renders in a remote browser, 'http' fetches headlessly"
    )
    render_fallback_endpoints: str = Field(
        default="",
        description="Comma-separated fallback endpoints (defaults to the built-in list when empty)",
    )

    # Crawl bounds
    max_concurrency: int = Field(default=4, ge=1, description="Maximum concurrent fetches")
    idle_timeout_secs: int = Field(default=300, ge=1, description="Stop if no page is emitted for this long")
    total_timeout_secs: int = Field(default=1200, ge=1, description="Hard cap on crawl wall-clock time")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=False, description="Emit structured JSON logs")

    def get_fallback_endpoints(self) -> list[str]:
        """Get the fallback endpoint list (comma-separated override or built-in)."""
        if not self.render_fallback_endpoints:
            return list(FALLBACK_RENDER_ENDPOINTS)
        return [url.strip() for url in self.render_fallback_endpoints.split(",") if url.strip()]
