"""Bounded output stream of page records."""

from __future__ import annotations

import asyncio
import logging

from pagestream.errors import EmissionError
from pagestream.models import PageRecord


logger = logging.getLogger(__name__)

_CLOSED = object()


class PageStream:
    """Async iterator of ``PageRecord`` fed by the workers.

    Senders block while the buffer is full. The stream is closed exactly once,
    by the coordinator after every worker has finished; iteration ends once
    the buffered records are drained. A consumer that stops early calls
    ``abandon``, after which every send raises ``EmissionError``.
    """

    def __init__(self, capacity: int = 10_000):
        self.capacity = capacity
        self._queue: asyncio.Queue[PageRecord | object] = asyncio.Queue(maxsize=capacity)
        self._closed = False
        self._abandoned = False
        self._finished = False
        self._close_task: asyncio.Future | None = None
        self.sent = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def abandoned(self) -> bool:
        return self._abandoned

    async def send(self, record: PageRecord) -> None:
        """Hand ``record`` to the consumer, waiting for room if needed.

        Raises:
            EmissionError: If the stream was closed or abandoned
        """
        if self._closed or self._abandoned:
            raise EmissionError(f"Output stream is no longer accepting records ({record.url})")
        await self._queue.put(record)
        if self._abandoned:
            raise EmissionError(f"Output stream was abandoned while sending {record.url}")
        self.sent += 1

    def close(self) -> bool:
        """Mark the end of the stream. Returns False if it was already closed."""
        if self._closed:
            logger.warning("Output stream already closed")
            return False
        self._closed = True
        if self._abandoned:
            return True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # Consumer will see the sentinel once it drains the buffer
            self._close_task = asyncio.ensure_future(self._queue.put(_CLOSED))
        return True

    def abandon(self) -> None:
        """Stop consuming; pending and future sends fail."""
        if self._abandoned:
            return
        self._abandoned = True
        self._finished = True
        # Unblock senders waiting for room
        while not self._queue.empty():
            self._queue.get_nowait()
        logger.debug("Output stream abandoned by consumer")

    def __aiter__(self) -> PageStream:
        return self

    async def __anext__(self) -> PageRecord:
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._finished = True
            raise StopAsyncIteration
        return item  # type: ignore[return-value]
