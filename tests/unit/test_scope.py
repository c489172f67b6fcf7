"""Unit tests for URL scope rules."""

import logging

import pytest

from pagestream.crawl_config import WebCrawlerConfig
from pagestream.errors import ConfigurationError
from pagestream.scope import DEFAULT_ASSET_EXCLUDE, ScopeFilterConfig, UrlFilter, build_url_filter


def make_filter(**kwargs) -> UrlFilter:
    return UrlFilter(ScopeFilterConfig(**kwargs))


class TestShouldCrawl:
    def test_rejects_non_http_schemes(self):
        url_filter = make_filter(allow_external=True)

        assert not url_filter.should_crawl("mailto:someone@example.com")
        assert not url_filter.should_crawl("javascript:void(0)")
        assert not url_filter.should_crawl("ftp://example.com/file")
        assert url_filter.should_crawl("https://anything.example.org/")

    def test_required_domain_is_exact_match(self):
        url_filter = make_filter(required_domain="example.com")

        assert url_filter.should_crawl("https://example.com/page")
        assert url_filter.should_crawl("https://EXAMPLE.com/page")
        assert not url_filter.should_crawl("https://docs.example.com/page")
        assert not url_filter.should_crawl("https://other.org/page")

    def test_restricted_scope_without_domain_rejects_everything(self):
        url_filter = make_filter(allow_external=False)

        assert not url_filter.should_crawl("https://example.com/")

    def test_path_prefix_is_raw_string_prefix(self):
        url_filter = make_filter(required_domain="example.com", required_path_prefix="/docs")

        assert url_filter.should_crawl("https://example.com/docs/intro")
        # Not segment aware
        assert url_filter.should_crawl("https://example.com/docsets/")
        assert not url_filter.should_crawl("https://example.com/blog/")

    def test_exclude_takes_precedence_over_include(self):
        url_filter = make_filter(
            allow_external=True,
            include_patterns=(r"/docs/.*\.html$",),
            exclude_patterns=(r"/docs/draft/",),
        )

        assert url_filter.should_crawl("https://example.com/docs/a.html")
        assert not url_filter.should_crawl("https://example.com/docs/draft/b.html")
        assert not url_filter.should_crawl("https://example.com/blog/c.html")

    def test_no_include_patterns_accepts_all(self):
        url_filter = make_filter(allow_external=True, exclude_patterns=(r"\.zip$",))

        assert url_filter.should_crawl("https://example.com/whatever")
        assert not url_filter.should_crawl("https://example.com/archive.zip")

    def test_invalid_pattern_raises_configuration_error(self):
        with pytest.raises(ConfigurationError, match="exclude"):
            make_filter(exclude_patterns=("([unclosed",))


class TestNormalizeUrl:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://example.com/page#section", "https://example.com/page"),
            ("https://example.com/page?q=1#frag", "https://example.com/page?q=1"),
            ("https://example.com/page", "https://example.com/page"),
            ("https://example.com/Path/", "https://example.com/Path/"),
        ],
    )
    def test_strips_fragment_only(self, url, expected):
        assert UrlFilter().normalize_url(url) == expected

    def test_is_idempotent(self):
        url_filter = UrlFilter()
        once = url_filter.normalize_url("https://example.com/a#b")

        assert url_filter.normalize_url(once) == once


class TestShouldParseLinks:
    def test_only_html_yields_links(self):
        url_filter = UrlFilter()

        assert url_filter.should_parse_links("https://example.com/guide/")
        assert not url_filter.should_parse_links("https://example.com/notes.txt")
        assert not url_filter.should_parse_links("https://example.com/_sources/index.rst")


class TestBuildUrlFilter:
    def test_restricted_scope_derives_domain_and_path_from_seed(self):
        url_filter = build_url_filter(WebCrawlerConfig(start_url="https://docs.example.com/guide/"))

        assert url_filter.config.required_domain == "docs.example.com"
        assert url_filter.config.required_path_prefix == "/guide/"
        assert url_filter.should_crawl("https://docs.example.com/guide/install")
        assert not url_filter.should_crawl("https://docs.example.com/blog/")
        assert not url_filter.should_crawl("https://example.com/guide/install")

    def test_seed_without_path_scopes_to_root(self):
        url_filter = build_url_filter(WebCrawlerConfig(start_url="https://example.com"))

        assert url_filter.config.required_path_prefix == "/"
        assert url_filter.should_crawl("https://example.com/anything")

    def test_explicit_path_prefix_wins(self):
        config = WebCrawlerConfig(start_url="https://example.com/guide/start", required_path_prefix="/")
        url_filter = build_url_filter(config)

        assert url_filter.should_crawl("https://example.com/api/")

    def test_allow_external_drops_domain_scope(self):
        url_filter = build_url_filter(WebCrawlerConfig(start_url="https://example.com/", allow_external=True))

        assert url_filter.config.required_domain is None
        assert url_filter.should_crawl("https://elsewhere.org/page")

    def test_static_assets_are_excluded_by_default(self):
        url_filter = build_url_filter(
            WebCrawlerConfig(start_url="https://example.com/", exclude_patterns=["/private/"])
        )

        assert url_filter.config.exclude_patterns[0] == DEFAULT_ASSET_EXCLUDE
        assert not url_filter.should_crawl("https://example.com/logo.png")
        assert not url_filter.should_crawl("https://example.com/app.js")
        assert not url_filter.should_crawl("https://example.com/private/x")
        assert url_filter.should_crawl("https://example.com/page.html")

    def test_resolved_scope_is_logged(self, caplog):
        with caplog.at_level(logging.INFO, logger="pagestream.scope"):
            build_url_filter(WebCrawlerConfig(start_url="https://docs.example.com/guide/", include_patterns=["/api/"]))

        assert "Scope: domain=docs.example.com path_prefix=/guide/ include=1 exclude=1" in caplog.messages

    @pytest.mark.parametrize("start_url", ["not a url", "ftp://example.com/", "/relative/path"])
    def test_invalid_seed_raises(self, start_url):
        with pytest.raises(ConfigurationError, match="Invalid start URL"):
            build_url_filter(WebCrawlerConfig(start_url=start_url))
