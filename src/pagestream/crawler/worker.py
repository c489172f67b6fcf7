"""Worker loop: dequeue, fetch, enqueue, until the frontier runs dry."""

from __future__ import annotations

import asyncio
from enum import Enum
import logging
from typing import TYPE_CHECKING

from pagestream.crawler.pipeline import SessionSlot
from pagestream.errors import EmissionError
from pagestream.observability.context import set_crawl_context


if TYPE_CHECKING:
    from pagestream.crawler.frontier import Frontier
    from pagestream.crawler.pipeline import FetchPipeline
    from pagestream.crawler.session import SessionManager


logger = logging.getLogger(__name__)


class WorkerState(str, Enum):
    IDLE = "idle"
    DEQUEUING = "dequeuing"
    FETCHING = "fetching"
    ENQUEUEING = "enqueueing"
    TERMINATING = "terminating"


class Worker:
    """One member of the crawl pool.

    A worker owns its rendering session for its whole life and reports to the
    coordinator exactly once when it ends, whatever the reason.
    """

    def __init__(
        self,
        worker_id: int,
        *,
        frontier: Frontier,
        pipeline: FetchPipeline,
        sessions: SessionManager,
        completions: asyncio.Queue[int],
        dequeue_timeout: float,
    ):
        self.worker_id = worker_id
        self.frontier = frontier
        self.pipeline = pipeline
        self.sessions = sessions
        self.completions = completions
        self.dequeue_timeout = dequeue_timeout
        self.slot = SessionSlot(worker_id)
        self.state = WorkerState.IDLE
        self.processed = 0

    async def run(self) -> None:
        set_crawl_context(worker_id=self.worker_id)
        logger.debug(f"Worker {self.worker_id} started (dequeue timeout {self.dequeue_timeout:.1f}s)")
        try:
            await self._loop()
        except EmissionError as exc:
            logger.error(f"Worker {self.worker_id} cannot emit records, stopping: {exc}")
        finally:
            self.state = WorkerState.TERMINATING
            await self.sessions.close(self.slot.session)
            self.slot.session = None
            self.completions.put_nowait(self.worker_id)
            logger.debug(f"Worker {self.worker_id} finished after {self.processed} pages")

    async def _loop(self) -> None:
        while True:
            self.state = WorkerState.DEQUEUING
            url = await self.frontier.dequeue(self.dequeue_timeout)
            if url is None:
                if not self.frontier.stopped:
                    logger.info(f"Worker {self.worker_id} found no work for {self.dequeue_timeout:.1f}s, exiting")
                return

            if not await self.frontier.visited.begin_fetch(url):
                logger.debug(f"Worker {self.worker_id} skipping already fetched {url}")
                self.state = WorkerState.IDLE
                continue

            self.state = WorkerState.FETCHING
            logger.debug(f"Worker {self.worker_id} processing {url}")
            if await self.pipeline.process(url, self.slot, on_fetched=self._enter_enqueueing):
                self.processed += 1
            self.state = WorkerState.IDLE

    def _enter_enqueueing(self) -> None:
        self.state = WorkerState.ENQUEUEING
