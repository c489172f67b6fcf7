"""Tests for environment settings and crawl configuration documents."""

import json

from pydantic import ValidationError
import pytest

from pagestream.config import FALLBACK_RENDER_ENDPOINTS, Settings
from pagestream.crawl_config import (
    CrawlerConfigFile,
    CrawlTuningConfig,
    LogProfileConfig,
    WebCrawlerConfig,
)
from pagestream.errors import ConfigurationError


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.render_endpoint_url == "http://localhost:9222"
        assert settings.render_transport == "cdp"
        assert settings.max_concurrency == 4
        assert settings.idle_timeout_secs == 300
        assert settings.total_timeout_secs == 1200

    def test_environment_values(self, monkeypatch):
        monkeypatch.setenv("RENDER_ENDPOINT_URL", "http://chrome:9222")
        monkeypatch.setenv("MAX_CONCURRENCY", "8")
        monkeypatch.setenv("RENDER_TRANSPORT", "http")

        settings = Settings(_env_file=None)

        assert settings.render_endpoint_url == "http://chrome:9222"
        assert settings.max_concurrency == 8
        assert settings.render_transport == "http"

    def test_invalid_concurrency_rejected(self, monkeypatch):
        monkeypatch.setenv("MAX_CONCURRENCY", "0")

        with pytest.raises(ValidationError):
            Settings(_env_file=None)

    def test_fallback_endpoints(self, monkeypatch):
        assert Settings(_env_file=None).get_fallback_endpoints() == list(FALLBACK_RENDER_ENDPOINTS)

        monkeypatch.setenv("RENDER_FALLBACK_ENDPOINTS", "http://a:1, ,http://b:2")
        assert Settings(_env_file=None).get_fallback_endpoints() == ["http://a:1", "http://b:2"]


class TestCrawlTuningConfig:
    def test_dequeue_timeout_shrinks_with_worker_index(self):
        tuning = CrawlTuningConfig()

        timeouts = [tuning.dequeue_timeout_for(i) for i in range(8)]

        assert timeouts[0] == 5.0
        assert timeouts == sorted(timeouts, reverse=True)
        assert min(timeouts) == tuning.dequeue_min_timeout

    def test_floor_never_exceeds_base(self):
        tuning = CrawlTuningConfig(dequeue_base_timeout=0.5, dequeue_min_timeout=2.0)

        assert tuning.dequeue_timeout_for(0) == 2.0

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            CrawlTuningConfig(fetch_timeout=1)


class TestWebCrawlerConfig:
    def test_worker_count_defaults_to_max_concurrency(self):
        config = WebCrawlerConfig(start_url="https://example.com/", max_concurrency=3)

        assert config.resolved_worker_count == 3
        assert config.model_copy(update={"worker_count": 6}).resolved_worker_count == 6

    def test_webdriver_url_alias(self):
        config = WebCrawlerConfig.model_validate({"start_url": "https://example.com/", "webdriver_url": "http://x:4444"})

        assert config.render_endpoint == "http://x:4444"

    def test_empty_patterns_dropped(self):
        config = WebCrawlerConfig(start_url="https://example.com/", include_patterns=["", "/docs/"])

        assert config.include_patterns == ["/docs/"]

    def test_zero_concurrency_rejected(self):
        with pytest.raises(ValidationError):
            WebCrawlerConfig(start_url="https://example.com/", max_concurrency=0)

    def test_environment_override_ignores_blank(self, monkeypatch):
        config = WebCrawlerConfig(start_url="https://example.com/", render_endpoint="http://a:1")
        monkeypatch.setenv("RENDER_ENDPOINT_URL", "  ")

        assert config.with_environment_overrides() is config


class TestCrawlerConfigFile:
    def test_parses_full_document(self):
        document = {
            "type": "web",
            "start_url": "https://docs.example.com/guide/",
            "max_concurrency": 2,
            "logging": {"level": "warning", "logger_levels": {"pagestream.scope": "debug"}},
            "observability": {"enabled": False},
            "tuning": {"fetch_timeout_seconds": 10},
        }

        config_file = CrawlerConfigFile.from_json_str(json.dumps(document))
        config = config_file.to_crawler_config()

        assert config_file.logging.level == "warning"
        assert config.max_concurrency == 2
        assert config.tuning.fetch_timeout_seconds == 10
        assert type(config) is WebCrawlerConfig

    def test_unsupported_type(self):
        with pytest.raises(ConfigurationError, match="invalid"):
            CrawlerConfigFile.from_json_str('{"type": "git", "start_url": "https://example.com/"}')

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError):
            CrawlerConfigFile.from_json_str('{"start_url": "https://example.com/", "depth": 3}')

    def test_directory_path_is_unreadable(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Cannot read"):
            CrawlerConfigFile.from_json_file(tmp_path)


class TestLogProfileConfig:
    def test_invalid_logger_level(self):
        with pytest.raises(ValidationError, match="Invalid log level"):
            LogProfileConfig(logger_levels={"pagestream": "verbose"})

    def test_invalid_root_level(self):
        with pytest.raises(ValidationError):
            LogProfileConfig(level="loud")
