"""Builder API for running a crawl and consuming its pages.

Example:
    pages = Pages("https://docs.example.com/guide/").with_max_concurrency(4).with_idle_timeout(60)
    async with await pages.generate() as generator:
        async for page in generator:
            print(page.url, len(page.content))
        print(generator.summary())
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from pathlib import Path
import time
from typing import TYPE_CHECKING

from pagestream.crawl_config import CrawlerConfigFile, WebCrawlerConfig
from pagestream.crawler.coordinator import CrawlCoordinator
from pagestream.errors import ConfigurationError
from pagestream.models import CrawlSummary, PageRecord


if TYPE_CHECKING:
    from pagestream.crawler.session import SessionFactory


logger = logging.getLogger(__name__)


class PageGenerator:
    """Async iterator over the pages of a running crawl.

    Enforces the caller-side bounds: the idle timeout stops the crawl when no
    record arrives for that long, and the total timeout stops it once the
    wall-clock limit is reached. Either way the records already produced are
    still drained before iteration ends.
    """

    def __init__(
        self,
        coordinator: CrawlCoordinator,
        *,
        idle_timeout: float | None = None,
        total_timeout: float | None = None,
    ):
        self.coordinator = coordinator
        self.idle_timeout = idle_timeout
        self.total_timeout = total_timeout
        self.pages = 0
        self._started = time.monotonic()
        self._finished_at: float | None = None
        self._idle_expired = False
        self._total_timer: asyncio.Task | None = None
        if total_timeout is not None:
            self._total_timer = asyncio.create_task(self._expire_after(total_timeout), name="crawl-total-timeout")

    async def _expire_after(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
        logger.warning(f"Total timeout of {seconds:.0f}s reached, stopping crawl")
        self.coordinator.request_stop("total_timeout")

    def request_stop(self, reason: str = "requested") -> None:
        self.coordinator.request_stop(reason)

    def __aiter__(self) -> PageGenerator:
        return self

    async def __anext__(self) -> PageRecord:
        stream = self.coordinator.output
        try:
            if self.idle_timeout is None or self._idle_expired:
                record = await stream.__anext__()
            else:
                try:
                    record = await asyncio.wait_for(stream.__anext__(), timeout=self.idle_timeout)
                except asyncio.TimeoutError:
                    logger.warning(f"No page received for {self.idle_timeout:.0f}s, stopping crawl")
                    self._idle_expired = True
                    self.coordinator.request_stop("idle_timeout")
                    record = await stream.__anext__()
        except StopAsyncIteration:
            self._finish()
            raise
        self.pages += 1
        return record

    def _finish(self) -> None:
        if self._finished_at is None:
            self._finished_at = time.monotonic()
        if self._total_timer is not None:
            self._total_timer.cancel()

    def summary(self) -> CrawlSummary:
        end = self._finished_at if self._finished_at is not None else time.monotonic()
        return CrawlSummary(
            pages=self.pages,
            elapsed_seconds=end - self._started,
            stop_reason=self.coordinator.state.stop_reason,
        )

    async def aclose(self) -> None:
        """Stop the crawl early and release every worker."""
        self._finish()
        if self._total_timer is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._total_timer
        await self.coordinator.aclose()

    async def __aenter__(self) -> PageGenerator:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


class Pages:
    """Fluent builder for a web crawl.

    Settings applied with ``with_*`` calls override whatever a config
    document supplied, regardless of call order.
    """

    def __init__(self, uri: str):
        self.uri = uri
        self._config: WebCrawlerConfig | None = None
        self._overrides: dict[str, float | int] = {}
        self._session_factory: SessionFactory | None = None

    def with_config(self, config: WebCrawlerConfig) -> Pages:
        if isinstance(config, CrawlerConfigFile):
            config = config.to_crawler_config()
        self._config = config
        return self

    def with_config_file(self, path: str | Path) -> Pages:
        """Load a JSON config file.

        Raises:
            ConfigurationError: If the file is missing or invalid
        """
        return self.with_config(CrawlerConfigFile.from_json_file(Path(path)))

    def with_config_str(self, text: str) -> Pages:
        return self.with_config(CrawlerConfigFile.from_json_str(text))

    def with_max_concurrency(self, value: int) -> Pages:
        self._overrides["max_concurrency"] = value
        return self

    def with_idle_timeout(self, seconds: float) -> Pages:
        self._overrides["idle_timeout_secs"] = seconds
        return self

    def with_total_timeout(self, seconds: float) -> Pages:
        self._overrides["total_timeout_secs"] = seconds
        return self

    def with_session_factory(self, factory: SessionFactory) -> Pages:
        self._session_factory = factory
        return self

    def build_config(self) -> WebCrawlerConfig:
        """Resolve the effective crawler configuration.

        Raises:
            ConfigurationError: If the merged configuration is invalid
        """
        data = self._config.model_dump() if self._config is not None else {"start_url": self.uri}
        data.update(self._overrides)
        try:
            config = WebCrawlerConfig.model_validate(data)
        except ValueError as exc:
            raise ConfigurationError(f"Crawler configuration is invalid: {exc}") from exc
        return config.with_environment_overrides()

    async def generate(self) -> PageGenerator:
        """Start the crawl and return an iterator over its pages.

        Raises:
            ConfigurationError: If the configuration or scope is invalid
        """
        config = self.build_config()
        coordinator = CrawlCoordinator(config, session_factory=self._session_factory)
        await coordinator.start()
        return PageGenerator(
            coordinator,
            idle_timeout=config.idle_timeout_secs,
            total_timeout=config.total_timeout_secs,
        )


async def start_web_crawler(start_url: str, max_concurrency: int = 5) -> PageGenerator:
    """Crawl ``start_url`` with default scope rules."""
    return await Pages(start_url).with_max_concurrency(max_concurrency).generate()
