"""The concurrent crawl engine."""

from pagestream.crawler.coordinator import CrawlCoordinator
from pagestream.crawler.frontier import Frontier, VisitedSet
from pagestream.crawler.pipeline import FetchPipeline, SessionSlot
from pagestream.crawler.session import (
    HttpxSessionFactory,
    PlaywrightSessionFactory,
    RenderSession,
    SessionFactory,
    SessionManager,
    is_session_lost,
)
from pagestream.crawler.state import CrawlState
from pagestream.crawler.stream import PageStream
from pagestream.crawler.worker import Worker, WorkerState


__all__ = [
    "CrawlCoordinator",
    "CrawlState",
    "FetchPipeline",
    "Frontier",
    "HttpxSessionFactory",
    "PageStream",
    "PlaywrightSessionFactory",
    "RenderSession",
    "SessionFactory",
    "SessionManager",
    "SessionSlot",
    "VisitedSet",
    "Worker",
    "WorkerState",
    "is_session_lost",
]
