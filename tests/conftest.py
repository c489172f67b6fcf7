"""Shared test fixtures and configuration."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import pytest

from pagestream.crawl_config import CrawlTuningConfig, WebCrawlerConfig
from pagestream.errors import ConnectError, SessionLostError, TransportError


# Environment the settings layer would otherwise pick up from the host
TEST_ENV_CLEARED = (
    "RENDER_ENDPOINT_URL",
    "RENDER_TRANSPORT",
    "RENDER_FALLBACK_ENDPOINTS",
    "MAX_CONCURRENCY",
    "IDLE_TIMEOUT_SECS",
    "TOTAL_TIMEOUT_SECS",
    "LOG_LEVEL",
    "LOG_JSON",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep host environment variables out of configuration under test."""
    for key in TEST_ENV_CLEARED:
        monkeypatch.delenv(key, raising=False)


@dataclass
class FakeSite:
    """In-memory website served through fake rendering sessions."""

    pages: dict[str, str] = field(default_factory=dict)
    delay: float = 0.0
    lost_urls: set[str] = field(default_factory=set)
    failing_urls: set[str] = field(default_factory=set)
    hanging_urls: set[str] = field(default_factory=set)
    refused_endpoints: set[str] = field(default_factory=set)
    connects: list[str] = field(default_factory=list)
    navigations: list[str] = field(default_factory=list)
    closed_sessions: list[FakeSession] = field(default_factory=list)
    active: int = 0
    max_active: int = 0

    def add_page(self, url: str, body: str = "", links: tuple[str, ...] = (), title: str | None = None) -> None:
        anchors = "".join(f'<a href="{link}">{link}</a>' for link in links)
        head = f"<title>{title}</title>" if title else ""
        self.pages[url] = f"<html><head>{head}</head><body><p>{body}</p>{anchors}</body></html>"


class FakeSession:
    def __init__(self, site: FakeSite, endpoint: str):
        self.site = site
        self.endpoint = endpoint
        self.current: str | None = None
        self.close_calls = 0

    async def navigate(self, url: str) -> None:
        site = self.site
        site.navigations.append(url)
        site.active += 1
        site.max_active = max(site.max_active, site.active)
        try:
            if site.delay:
                await asyncio.sleep(site.delay)
            if url in site.hanging_urls:
                await asyncio.sleep(3600)
            if url in site.lost_urls:
                raise SessionLostError("Unable to find session with ID", url=url)
            if url in site.failing_urls or url not in site.pages:
                raise TransportError(f"navigation to {url} failed", url=url)
        finally:
            site.active -= 1
        self.current = url

    async def read_source(self) -> str:
        if self.current is None:
            raise TransportError("no page loaded")
        return self.site.pages[self.current]

    async def close(self) -> None:
        self.close_calls += 1
        self.site.closed_sessions.append(self)


class FakeSessionFactory:
    def __init__(self, site: FakeSite):
        self.site = site

    async def connect(self, endpoint: str) -> FakeSession:
        if endpoint in self.site.refused_endpoints:
            raise ConnectError(f"connection refused: {endpoint}", endpoint=endpoint)
        self.site.connects.append(endpoint)
        return FakeSession(self.site, endpoint)


@pytest.fixture
def site() -> FakeSite:
    return FakeSite()


@pytest.fixture
def session_factory(site) -> FakeSessionFactory:
    return FakeSessionFactory(site)


@pytest.fixture
def fast_tuning() -> CrawlTuningConfig:
    """Timings short enough that a whole crawl finishes in well under a second."""
    return CrawlTuningConfig(
        fetch_timeout_seconds=2.0,
        first_page_grace_seconds=0.3,
        dequeue_base_timeout=0.3,
        dequeue_timeout_step=0.05,
        dequeue_min_timeout=0.1,
    )


@pytest.fixture
def make_config(fast_tuning):
    def _make(start_url: str = "https://docs.example.com/guide/", **overrides) -> WebCrawlerConfig:
        overrides.setdefault("render_endpoint", "http://render.test:9222")
        overrides.setdefault("fallback_endpoints", [])
        overrides.setdefault("tuning", fast_tuning)
        return WebCrawlerConfig(start_url=start_url, **overrides)

    return _make
