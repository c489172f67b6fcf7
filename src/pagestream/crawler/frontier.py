"""Shared frontier of pending URLs, gated by the visited set."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
import contextlib
import logging
from typing import Any, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class VisitedSet:
    """Normalized URLs already claimed by some worker.

    ``claim`` is the enqueue gate: the first caller for a URL wins and every
    later caller is told the URL is taken. ``begin_fetch`` is the dequeue-side
    check; a URL is fetched at most once even if it reached the queue twice.
    Neither set is ever pruned during a crawl.
    """

    def __init__(self) -> None:
        self._claimed: set[str] = set()
        self._fetched: set[str] = set()
        self._lock = asyncio.Lock()

    async def claim(self, url: str) -> bool:
        async with self._lock:
            if url in self._claimed:
                return False
            self._claimed.add(url)
            return True

    async def begin_fetch(self, url: str) -> bool:
        async with self._lock:
            if url in self._fetched:
                return False
            self._fetched.add(url)
            self._claimed.add(url)
            return True

    def __contains__(self, url: object) -> bool:
        return url in self._claimed

    def __len__(self) -> int:
        return len(self._claimed)

    @property
    def fetched_count(self) -> int:
        return len(self._fetched)


class Frontier:
    """Bounded FIFO of URLs waiting to be fetched.

    Enqueuers block while the queue is full; URLs are dropped only once the
    frontier is stopped. Dequeuers take turns through a receiver lock, and each
    one gives up after its own timeout, time spent waiting for the lock
    included.
    """

    def __init__(self, visited: VisitedSet | None = None, capacity: int = 10_000):
        self.visited = visited or VisitedSet()
        self.capacity = capacity
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=capacity)
        self._receiver_lock = asyncio.Lock()
        self._stopped = asyncio.Event()

    async def enqueue(self, url: str) -> bool:
        """Queue ``url`` unless it was claimed before or the frontier stopped.

        Waits for room while the queue is full; a stop request ends the wait
        and the URL is dropped.

        Returns:
            True when the URL was queued, False otherwise
        """
        if self._stopped.is_set():
            logger.debug(f"Frontier stopped, dropping {url}")
            return False
        if not await self.visited.claim(url):
            return False
        try:
            self._queue.put_nowait(url)
            return True
        except asyncio.QueueFull:
            pass

        put_task = await self._until_stopped(self._queue.put(url))
        if put_task.done() and not put_task.cancelled():
            return True
        logger.debug(f"Frontier stopped while full, dropping {url}")
        return False

    async def dequeue(self, timeout: float) -> str | None:
        """Wait up to ``timeout`` seconds for the next URL.

        The wait for the receiver lock counts against ``timeout``. Returns
        None when nothing arrived in time or the frontier was stopped.
        """
        if self._stopped.is_set():
            return None

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        try:
            async with asyncio.timeout_at(deadline):
                await self._receiver_lock.acquire()
        except TimeoutError:
            return None

        try:
            if self._stopped.is_set():
                return None
            if not self._queue.empty():
                return self._queue.get_nowait()

            get_task = await self._until_stopped(self._queue.get(), max(0.0, deadline - loop.time()))
            # A URL that arrived together with a stop is still handed out
            if get_task.done() and not get_task.cancelled():
                return get_task.result()
            return None
        finally:
            self._receiver_lock.release()

    async def _until_stopped(self, operation: Coroutine[Any, Any, T], timeout: float | None = None) -> asyncio.Task[T]:
        """Run ``operation`` until it finishes, the frontier stops, or ``timeout`` passes.

        Returns the operation's task; it is cancelled if it did not finish.
        """
        op_task = asyncio.ensure_future(operation)
        stop_task = asyncio.ensure_future(self._stopped.wait())
        try:
            await asyncio.wait({op_task, stop_task}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (op_task, stop_task):
                if not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task
        return op_task

    def stop(self) -> None:
        """Wake every waiting dequeuer and refuse further work."""
        if not self._stopped.is_set():
            logger.info(f"Frontier stopped with {self._queue.qsize()} URLs pending")
        self._stopped.set()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def empty(self) -> bool:
        return self._queue.empty()

    def qsize(self) -> int:
        return self._queue.qsize()
