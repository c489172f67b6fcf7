"""Mutable state of one crawl run, owned by its coordinator."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import time


@dataclass
class CrawlState:
    """Counters and flags shared by the workers of a single crawl.

    Only touched from the event loop thread, so plain integers suffice.
    """

    first_page: asyncio.Event = field(default_factory=asyncio.Event)
    first_page_links: int | None = None
    in_flight: int = 0
    pages_emitted: int = 0
    links_enqueued: int = 0
    fetch_failures: int = 0
    reconnects: int = 0
    stop_reason: str | None = None
    started_at: float = field(default_factory=time.monotonic)

    def complete_page(self, enqueued: int) -> bool:
        """Record a page whose links were processed; True for the first one."""
        self.links_enqueued += enqueued
        if self.first_page.is_set():
            return False
        self.first_page_links = enqueued
        self.first_page.set()
        return True

    @property
    def idle(self) -> bool:
        return self.in_flight == 0

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.started_at
