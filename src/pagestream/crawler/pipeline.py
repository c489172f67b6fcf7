"""Per-URL fetch sequence: throttle, session, navigate, extract, emit, enqueue."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING
from urllib.parse import urljoin

from pagestream.crawl_config import CrawlTuningConfig
from pagestream.errors import SessionLostError, TransportError
from pagestream.models import PageRecord
from pagestream.observability.metrics import (
    FETCH_FAILURES,
    FETCH_LATENCY,
    FETCHES_IN_FLIGHT,
    LINKS_ENQUEUED,
    PAGES_EMITTED,
    SESSION_RECONNECTS,
    track_latency,
)
from pagestream.observability.tracing import create_span
from pagestream.parsers import CRAWL_TEXT_OPTIONS, ContentKind, Extractor, ParseResult, parse
from pagestream.parsers.text import TextParserOptions


if TYPE_CHECKING:
    from collections.abc import Callable

    from pagestream.crawler.frontier import Frontier
    from pagestream.crawler.session import RenderSession, SessionManager
    from pagestream.crawler.state import CrawlState
    from pagestream.crawler.stream import PageStream
    from pagestream.scope import ScopeFilter


logger = logging.getLogger(__name__)


@dataclass
class SessionSlot:
    """The session a worker currently owns, if any."""

    worker_id: int
    session: RenderSession | None = None


class FetchPipeline:
    """Runs the fetch sequence for one URL on behalf of a worker.

    Navigation, source read and extraction share a single deadline. The
    throttle permit is held only for that part; emitting the record and
    enqueueing its links happen after the permit is returned, so a slow
    consumer never starves other fetches of permits.
    """

    def __init__(
        self,
        *,
        frontier: Frontier,
        sessions: SessionManager,
        url_filter: ScopeFilter,
        output: PageStream,
        throttle: asyncio.Semaphore,
        state: CrawlState,
        tuning: CrawlTuningConfig | None = None,
        extractor: Extractor = parse,
        text_options: TextParserOptions = CRAWL_TEXT_OPTIONS,
    ):
        self.frontier = frontier
        self.sessions = sessions
        self.url_filter = url_filter
        self.output = output
        self.throttle = throttle
        self.state = state
        self.tuning = tuning or CrawlTuningConfig()
        self.extractor = extractor
        self.text_options = text_options

    async def process(
        self,
        url: str,
        slot: SessionSlot,
        on_fetched: Callable[[], None] | None = None,
    ) -> bool:
        """Fetch ``url`` and hand its record to the output stream.

        ``on_fetched`` is called once the fetch succeeded and the throttle
        permit is back, right before the record is emitted.

        Returns:
            True when a record was emitted, False when the URL was abandoned

        Raises:
            EmissionError: If the output stream no longer accepts records
        """
        self.state.in_flight += 1
        try:
            with create_span("crawl.fetch", attributes={"url": url, "worker_id": slot.worker_id}):
                result = await self.fetch(url, slot)
                if result is None:
                    return False
                if on_fetched is not None:
                    on_fetched()
                await self.deliver(url, result)
                return True
        finally:
            self.state.in_flight -= 1

    async def fetch(self, url: str, slot: SessionSlot) -> ParseResult | None:
        """Steps up to extraction, bounded by the fetch deadline."""
        try:
            return await asyncio.wait_for(self._fetch(url, slot), timeout=self.tuning.fetch_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                f"Worker {slot.worker_id} timed out after {self.tuning.fetch_timeout_seconds:.0f}s fetching {url}"
            )
            self._record_failure("timeout")
            return None

    async def deliver(self, url: str, result: ParseResult) -> int:
        """Emit the record for ``url`` and queue its in-scope links."""
        record = PageRecord(url=url, title=result.title, content=result.content, links=tuple(result.links))
        await self.output.send(record)
        PAGES_EMITTED.labels().inc()
        self.state.pages_emitted += 1

        enqueued = await self.enqueue_links(url, result.links)
        if self.state.complete_page(enqueued):
            logger.debug(f"First page processed: {url} ({enqueued} links queued)")
        return enqueued

    async def _fetch(self, url: str, slot: SessionSlot) -> ParseResult | None:
        async with self.throttle:
            FETCHES_IN_FLIGHT.labels().inc()
            try:
                with track_latency(FETCH_LATENCY):
                    source = await self._load_source(url, slot)
                    if source is None:
                        return None
                    kind = ContentKind.from_url(url)
                    result = self.extractor(source, kind, self.text_options)
                if not kind.should_extract_links:
                    result.links = []
                return result
            finally:
                FETCHES_IN_FLIGHT.labels().dec()

    async def _load_source(self, url: str, slot: SessionSlot) -> str | None:
        slot.session = await self.sessions.ensure_connected(slot.session)
        if slot.session is None:
            logger.error(f"Worker {slot.worker_id} has no session, skipping {url}")
            self._record_failure("no_session")
            return None

        try:
            return await self._navigate_and_read(slot.session, url)
        except SessionLostError as exc:
            logger.warning(f"Worker {slot.worker_id} lost its session on {url}: {exc}")
        except TransportError as exc:
            logger.warning(f"Worker {slot.worker_id} failed to fetch {url}: {exc}")
            self._record_failure("transport")
            return None

        SESSION_RECONNECTS.labels().inc()
        self.state.reconnects += 1
        lost, slot.session = slot.session, None
        slot.session = await self.sessions.reconnect(lost)
        if slot.session is None:
            logger.error(f"Worker {slot.worker_id} could not reconnect, abandoning {url}")
            self._record_failure("reconnect_failed")
            return None

        try:
            return await self._navigate_and_read(slot.session, url)
        except TransportError as exc:
            logger.error(f"Worker {slot.worker_id} failed {url} after reconnecting: {exc}")
            self._record_failure("session_lost")
            return None

    async def _navigate_and_read(self, session: RenderSession, url: str) -> str:
        await session.navigate(url)
        return await session.read_source()

    async def enqueue_links(self, page_url: str, links: list[str]) -> int:
        """Resolve, filter and queue links discovered on ``page_url``."""
        queued = 0
        for link in links:
            try:
                resolved = urljoin(page_url, link)
                in_scope = self.url_filter.should_crawl(resolved)
            except ValueError:
                logger.debug(f"Skipping malformed link on {page_url}: {link!r}")
                continue
            if not in_scope:
                logger.debug(f"Skipping filtered URL: {resolved}")
                continue
            normalized = self.url_filter.normalize_url(resolved)
            if await self.frontier.enqueue(normalized):
                queued += 1
                logger.debug(f"Queued: {normalized}")

        if queued:
            LINKS_ENQUEUED.labels().inc(queued)
            logger.info(f"Queued {queued} new links from {page_url}")
        return queued

    def _record_failure(self, reason: str) -> None:
        self.state.fetch_failures += 1
        FETCH_FAILURES.labels(reason=reason).inc()
