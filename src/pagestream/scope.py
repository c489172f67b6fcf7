"""URL scope rules: which discovered URLs are eligible to crawl.

A ``UrlFilter`` is compiled once before the crawl starts and then shared
read-only by every worker.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Protocol
from urllib.parse import urldefrag, urlparse

from pydantic import BaseModel, ConfigDict, Field

from pagestream.errors import ConfigurationError
from pagestream.parsers import should_extract_links


if TYPE_CHECKING:
    from pagestream.crawl_config import WebCrawlerConfig


logger = logging.getLogger(__name__)

# Static assets are never worth a rendering session
DEFAULT_ASSET_EXCLUDE = r"\.(jpg|jpeg|png|gif|css|js|ico|woff|woff2|ttf|eot|svg|pdf)$"

_CRAWLABLE_SCHEMES = ("http", "https")


class ScopeFilterConfig(BaseModel):
    """Immutable scope ruleset compiled by ``UrlFilter``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    allow_external: bool = Field(default=False, description="Allow crawling hosts other than the required domain")
    required_domain: str | None = Field(default=None, description="Exact host every crawled URL must have")
    required_path_prefix: str | None = Field(default=None, description="Raw prefix every crawled path must start with")
    include_patterns: tuple[str, ...] = Field(default=(), description="Regexes of which at least one must match")
    exclude_patterns: tuple[str, ...] = Field(default=(), description="Regexes that reject a URL outright")


class ScopeFilter(Protocol):
    """What the crawl engine needs from a scope filter."""

    def should_crawl(self, url: str) -> bool: ...

    def normalize_url(self, url: str) -> str: ...


def _compile(patterns: tuple[str, ...], kind: str) -> tuple[re.Pattern[str], ...]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as exc:
            raise ConfigurationError(f"Invalid {kind} pattern {pattern!r}: {exc}") from exc
    return tuple(compiled)


class UrlFilter:
    """Decides whether a URL is inside the crawl scope.

    Rules, in order:
    1. Only http(s) URLs are crawlable
    2. Domain scope (exact host match, no subdomains)
    3. Path prefix (raw string prefix, not segment aware)
    4. Exclude patterns reject regardless of includes
    5. If include patterns exist, at least one must match
    """

    def __init__(self, config: ScopeFilterConfig | None = None):
        self.config = config or ScopeFilterConfig()
        self._include = _compile(self.config.include_patterns, "include")
        self._exclude = _compile(self.config.exclude_patterns, "exclude")

    def should_crawl(self, url: str) -> bool:
        parsed = urlparse(url)
        if parsed.scheme not in _CRAWLABLE_SCHEMES:
            return False
        if not self._is_in_domain_scope(parsed.hostname):
            return False
        if not self._is_in_path_scope(parsed.path):
            return False

        if any(regex.search(url) for regex in self._exclude):
            return False
        if self._include and not any(regex.search(url) for regex in self._include):
            return False
        return True

    def should_parse_links(self, url: str) -> bool:
        return should_extract_links(url)

    def normalize_url(self, url: str) -> str:
        """Strip the fragment; everything else is kept verbatim."""
        return urldefrag(url).url

    def _is_in_domain_scope(self, host: str | None) -> bool:
        required = self.config.required_domain
        if required is None:
            return self.config.allow_external
        if not host:
            return False
        return host == required.lower()

    def _is_in_path_scope(self, path: str) -> bool:
        prefix = self.config.required_path_prefix
        if prefix is None:
            return True
        return path.startswith(prefix)


def build_url_filter(config: WebCrawlerConfig) -> UrlFilter:
    """Derive the crawl scope from the seed URL and crawler configuration.

    Restricted crawls stay on the seed's host and under the seed's path unless
    an explicit path prefix is configured.

    Raises:
        ConfigurationError: If the seed URL is not an absolute http(s) URL or
            a pattern fails to compile.
    """
    parsed = urlparse(config.start_url)
    if parsed.scheme not in _CRAWLABLE_SCHEMES or not parsed.hostname:
        raise ConfigurationError(f"Invalid start URL: {config.start_url!r}")

    required_domain = None
    required_path_prefix = config.required_path_prefix
    if not config.allow_external:
        required_domain = parsed.hostname
        if required_path_prefix is None:
            required_path_prefix = parsed.path or "/"

    scope = ScopeFilterConfig(
        allow_external=config.allow_external,
        required_domain=required_domain,
        required_path_prefix=required_path_prefix,
        include_patterns=tuple(config.include_patterns),
        exclude_patterns=(DEFAULT_ASSET_EXCLUDE, *config.exclude_patterns),
    )
    url_filter = UrlFilter(scope)
    logger.info(
        f"Scope: domain={scope.required_domain or '*'} path_prefix={scope.required_path_prefix or '*'} "
        f"include={len(scope.include_patterns)} exclude={len(scope.exclude_patterns)}"
    )
    return url_filter
