"""Command-line entry point: crawl a site and stream its pages."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
import logging
from pathlib import Path
import sys

from pagestream.config import Settings
from pagestream.crawl_config import CrawlerConfigFile, WebCrawlerConfig
from pagestream.errors import ConfigurationError
from pagestream.models import PageRecord
from pagestream.observability.logging import configure_log_exporter, configure_logging
from pagestream.observability.metrics import configure_metrics_exporter, get_metrics
from pagestream.observability.tracing import configure_trace_exporter
from pagestream.pages import Pages
from pagestream.runtime.signals import install_shutdown_signals, remove_shutdown_signals
from pagestream.utils import sanitize_filename


logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 2


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pagestream",
        description="Crawl a website through a remote browser and stream extracted pages",
    )
    parser.add_argument("uri", help="URL to start crawling from")
    parser.add_argument(
        "--type",
        dest="uri_type",
        type=str.lower,
        choices=["web"],
        default="web",
        help="Kind of URI to crawl (only web is supported)",
    )
    parser.add_argument(
        "-c",
        "--concurrency",
        type=int,
        help="Maximum concurrent fetches (default: 4)",
    )
    parser.add_argument(
        "--idle-timeout",
        type=int,
        help="Stop when no page arrives for this many seconds (default: 300)",
    )
    parser.add_argument(
        "--total-timeout",
        type=int,
        help="Stop after this many seconds in total (default: 1200)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="JSON crawler config file",
    )
    parser.add_argument(
        "--transport",
        choices=["cdp", "http"],
        help="Fetch through a remote browser (cdp) or plain HTTP (http)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Root log level (default: info)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=None,
        help="Emit structured JSON logs on stderr",
    )
    parser.add_argument(
        "--jsonl",
        action="store_true",
        help="Write each page as a JSON line on stdout",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        help="Also write each page's text to a file in this directory",
    )
    parser.add_argument(
        "--metrics-file",
        type=Path,
        help="Write crawl metrics in Prometheus text format to this file when the crawl ends",
    )
    return parser


def _validate_args(args: argparse.Namespace) -> None:
    if args.concurrency is not None and args.concurrency < 1:
        raise ConfigurationError("--concurrency must be >= 1")
    if args.idle_timeout is not None and args.idle_timeout < 1:
        raise ConfigurationError("--idle-timeout must be >= 1 second")
    if args.total_timeout is not None and args.total_timeout < 1:
        raise ConfigurationError("--total-timeout must be >= 1 second")


def _configure_observability(args: argparse.Namespace, settings: Settings, config_file: CrawlerConfigFile | None) -> None:
    profile = config_file.logging if config_file else None
    level = args.log_level or (profile.level if profile else settings.log_level)
    json_output = args.json_logs if args.json_logs is not None else (profile.json_output if profile else settings.log_json)
    configure_logging(
        level=level,
        json_output=json_output,
        logger_levels=profile.logger_levels if profile else None,
        trace_categories=profile.trace_categories if profile else None,
        trace_level=profile.trace_level if profile else "debug",
    )
    if config_file:
        configure_trace_exporter(config_file.observability)
        configure_metrics_exporter(config_file.observability)
        configure_log_exporter(config_file.observability)


def build_pages(args: argparse.Namespace, settings: Settings, config_file: CrawlerConfigFile | None) -> Pages:
    """Translate CLI arguments into a ``Pages`` builder.

    Without a config file, environment settings supply the defaults; explicit
    flags always win.
    """
    pages = Pages(args.uri)
    if config_file:
        data = config_file.to_crawler_config().model_dump()
        data["start_url"] = args.uri
        if args.transport:
            data["transport"] = args.transport
        if data["idle_timeout_secs"] is None:
            data["idle_timeout_secs"] = settings.idle_timeout_secs
        if data["total_timeout_secs"] is None:
            data["total_timeout_secs"] = settings.total_timeout_secs
        pages.with_config(WebCrawlerConfig.model_validate(data))
    else:
        pages.with_config(
            WebCrawlerConfig(
                start_url=args.uri,
                render_endpoint=settings.render_endpoint_url,
                fallback_endpoints=settings.get_fallback_endpoints(),
                transport=args.transport or settings.render_transport,
            )
        )
        pages.with_max_concurrency(settings.max_concurrency)
        pages.with_idle_timeout(settings.idle_timeout_secs)
        pages.with_total_timeout(settings.total_timeout_secs)

    if args.concurrency is not None:
        pages.with_max_concurrency(args.concurrency)
    if args.idle_timeout is not None:
        pages.with_idle_timeout(args.idle_timeout)
    if args.total_timeout is not None:
        pages.with_total_timeout(args.total_timeout)
    return pages


def _write_page(page: PageRecord, count: int, args: argparse.Namespace) -> None:
    if args.jsonl:
        sys.stdout.write(page.model_dump_json() + "\n")
        sys.stdout.flush()
    else:
        logger.info(f"Processed page {count}: {page.url}")
    logger.debug(f"Page has {len(page.links)} links")

    if args.output_dir:
        target = args.output_dir / f"{sanitize_filename(page.url)}.txt"
        target.write_text(page.content, encoding="utf-8")


async def run(args: argparse.Namespace, pages: Pages) -> int:
    generator = await pages.generate()
    install_shutdown_signals(generator.request_stop)
    try:
        count = 0
        async with generator:
            async for page in generator:
                count += 1
                _write_page(page, count, args)
            summary = generator.summary()
    finally:
        remove_shutdown_signals()

    logger.info(f"Crawling complete - processed {summary.pages} pages in {summary.elapsed_seconds:.2f} seconds")
    if summary.stop_reason:
        logger.info(f"Crawl stopped early: {summary.stop_reason}")
    if args.metrics_file:
        args.metrics_file.write_bytes(get_metrics())
        logger.info(f"Wrote crawl metrics to {args.metrics_file}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_argument_parser()
    args = parser.parse_args(argv)
    config_file = None
    try:
        settings = Settings()
        _validate_args(args)
        if args.config:
            config_file = CrawlerConfigFile.from_json_file(args.config)
        _configure_observability(args, settings, config_file)
        pages = build_pages(args, settings, config_file)
        pages.build_config()
    except (ConfigurationError, ValueError) as exc:
        if not logging.getLogger().handlers:
            logging.basicConfig(level=logging.INFO, format="%(message)s")
        logger.error(f"Invalid configuration: {exc}")
        return EXIT_CONFIG_ERROR

    logger.info(f"Starting crawler for URI: {args.uri}")
    print(
        "Note: web crawling requires a browser exposing the Chrome DevTools Protocol "
        "(e.g. chrome --remote-debugging-port=9222).",
        file=sys.stderr,
    )
    print(
        f"Set RENDER_ENDPOINT_URL to change the endpoint (currently {settings.render_endpoint_url})",
        file=sys.stderr,
    )

    if args.output_dir:
        args.output_dir.mkdir(parents=True, exist_ok=True)

    try:
        return asyncio.run(run(args, pages))
    except ConfigurationError as exc:
        logger.error(f"Failed to start crawler: {exc}")
        return EXIT_CONFIG_ERROR


if __name__ == "__main__":
    sys.exit(main())
