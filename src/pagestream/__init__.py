"""pagestream: a concurrent web crawler that streams extracted pages."""

from pagestream.crawl_config import CrawlerConfigFile, CrawlTuningConfig, WebCrawlerConfig
from pagestream.crawler import CrawlCoordinator, PageStream
from pagestream.errors import ConfigurationError, CrawlError, EmissionError, SessionLostError, TransportError
from pagestream.models import CrawlSummary, PageRecord
from pagestream.pages import PageGenerator, Pages, start_web_crawler
from pagestream.scope import ScopeFilterConfig, UrlFilter, build_url_filter


__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "CrawlCoordinator",
    "CrawlError",
    "CrawlSummary",
    "CrawlTuningConfig",
    "CrawlerConfigFile",
    "EmissionError",
    "PageGenerator",
    "PageRecord",
    "PageStream",
    "Pages",
    "ScopeFilterConfig",
    "SessionLostError",
    "TransportError",
    "UrlFilter",
    "WebCrawlerConfig",
    "build_url_filter",
    "start_web_crawler",
]
