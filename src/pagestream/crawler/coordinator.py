"""Crawl coordinator: seeds the frontier, runs the worker pool, closes the output.

There is no central "done" signal. Each worker leaves when its own dequeue
times out, and the per-worker timeouts shrink with the worker index so the
pool drains one worker at a time. A watchdog covers the degenerate cases the
timeouts handle slowly: a seed that never loads, and a seed with no links.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING
from uuid import uuid4

from opentelemetry.trace import SpanKind

from pagestream.crawl_config import WebCrawlerConfig
from pagestream.crawler.frontier import Frontier, VisitedSet
from pagestream.crawler.pipeline import FetchPipeline
from pagestream.crawler.session import SessionManager, create_session_factory
from pagestream.crawler.state import CrawlState
from pagestream.crawler.stream import PageStream
from pagestream.crawler.worker import Worker
from pagestream.observability.context import set_crawl_context
from pagestream.observability.tracing import create_span
from pagestream.scope import build_url_filter


if TYPE_CHECKING:
    from pagestream.crawler.session import SessionFactory
    from pagestream.parsers import Extractor
    from pagestream.scope import ScopeFilter


logger = logging.getLogger(__name__)


class CrawlCoordinator:
    """Owns every shared structure of one crawl run.

    Example:
        coordinator = CrawlCoordinator(WebCrawlerConfig(start_url="https://docs.example.com/"))
        stream = await coordinator.start()
        async for page in stream:
            ...
    """

    def __init__(
        self,
        config: WebCrawlerConfig,
        *,
        session_factory: SessionFactory | None = None,
        url_filter: ScopeFilter | None = None,
        extractor: Extractor | None = None,
    ):
        self.config = config
        # Scope errors surface here, before anything is spawned
        self.url_filter = url_filter or build_url_filter(config)
        self.crawl_id = uuid4().hex[:12]

        tuning = config.tuning
        self.state = CrawlState()
        self.frontier = Frontier(VisitedSet(), capacity=tuning.frontier_capacity)
        self.output = PageStream(capacity=tuning.output_capacity)
        self.throttle = asyncio.Semaphore(config.max_concurrency)
        self.sessions = SessionManager(
            session_factory or create_session_factory(config.transport),
            config.render_endpoint,
            config.fallback_endpoints,
        )
        pipeline_kwargs = {"extractor": extractor} if extractor is not None else {}
        self.pipeline = FetchPipeline(
            frontier=self.frontier,
            sessions=self.sessions,
            url_filter=self.url_filter,
            output=self.output,
            throttle=self.throttle,
            state=self.state,
            tuning=tuning,
            **pipeline_kwargs,
        )
        self.completions: asyncio.Queue[int] = asyncio.Queue()
        self.workers: list[Worker] = []
        self._tasks: list[asyncio.Task] = []
        self._supervisor: asyncio.Task | None = None
        self._watchdog: asyncio.Task | None = None

    @property
    def start_url(self) -> str:
        return self.url_filter.normalize_url(self.config.start_url)

    async def start(self) -> PageStream:
        """Seed the frontier, spawn the workers, and return the output stream."""
        if self._supervisor is not None:
            raise RuntimeError("Crawl already started")

        set_crawl_context(crawl_id=self.crawl_id)
        # The seed is always crawled, even when it falls outside its own scope
        await self.frontier.enqueue(self.start_url)

        worker_count = self.config.resolved_worker_count
        logger.info(
            f"Starting crawl {self.crawl_id} at {self.start_url} with {worker_count} workers "
            f"(max {self.config.max_concurrency} concurrent fetches)"
        )
        for worker_id in range(worker_count):
            worker = Worker(
                worker_id,
                frontier=self.frontier,
                pipeline=self.pipeline,
                sessions=self.sessions,
                completions=self.completions,
                dequeue_timeout=self.config.tuning.dequeue_timeout_for(worker_id),
            )
            self.workers.append(worker)
            self._tasks.append(asyncio.create_task(worker.run(), name=f"crawl-worker-{worker_id}"))

        self._watchdog = asyncio.create_task(self._watch_first_page(), name="crawl-watchdog")
        self._supervisor = asyncio.create_task(self._await_workers(), name="crawl-supervisor")
        return self.output

    async def _watch_first_page(self) -> None:
        tuning = self.config.tuning
        await asyncio.sleep(tuning.first_page_grace_seconds)
        if not self.state.first_page.is_set() and not self.state.idle:
            # Seed is still loading; give it the rest of its fetch deadline
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self.state.first_page.wait(), timeout=tuning.fetch_timeout_seconds)

        if not self.state.first_page.is_set():
            logger.info("No page processed within the grace period, shutting down")
            self.request_stop("first_page_timeout")
        elif self.state.first_page_links == 0 and self.frontier.empty() and self.state.idle:
            logger.info("No links found, closing result stream early")
            self.request_stop("no_links")

    async def _await_workers(self) -> None:
        worker_count = len(self._tasks)
        with create_span(
            "crawl.run",
            kind=SpanKind.INTERNAL,
            attributes={"crawl.id": self.crawl_id, "crawl.start_url": self.start_url, "crawl.workers": worker_count},
        ):
            completed = 0
            while completed < worker_count:
                worker_id = await self.completions.get()
                completed += 1
                logger.debug(f"Worker {worker_id} completed. {completed} of {worker_count} workers done.")

        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for task, result in zip(self._tasks, results):
            if isinstance(result, BaseException):
                logger.error(f"Worker task {task.get_name()} failed: {result!r}")
        if self._watchdog is not None and not self._watchdog.done():
            self._watchdog.cancel()
        logger.info(
            f"All {worker_count} workers have completed in {self.state.elapsed_seconds:.2f}s: {self.state.pages_emitted} pages, "
            f"{self.state.fetch_failures} failures, {self.state.reconnects} reconnects"
        )
        self.output.close()

    def request_stop(self, reason: str) -> None:
        """Ask every worker to finish after its current URL."""
        if self.state.stop_reason is None:
            self.state.stop_reason = reason
            logger.info(f"Stopping crawl {self.crawl_id}: {reason}")
        self.frontier.stop()

    async def wait_closed(self) -> None:
        """Wait until every worker has ended and the output stream is closed."""
        if self._supervisor is not None:
            await self._supervisor

    async def aclose(self) -> None:
        """Stop the crawl and abandon any records not yet consumed."""
        if not self.output.closed:
            self.request_stop("consumer_closed")
            self.output.abandon()
        await self.wait_closed()
