"""Content classification and extraction.

``ContentKind.from_url`` decides how a fetched resource is treated, and
``parse`` dispatches to the HTML or plain-text extractor for that kind. Only
HTML yields outbound links.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Protocol

from pagestream.parsers import html, text
from pagestream.parsers.text import CRAWL_TEXT_OPTIONS, TextParserOptions


logger = logging.getLogger(__name__)

_TEXT_SUFFIXES = (".txt", ".yaml", ".yml")
_OTHER_SUFFIXES = (".jpg", ".jpeg", ".png", ".gif", ".css", ".js")

PDF_PLACEHOLDER = "PDF parsing not implemented yet"


class ContentKind(str, Enum):
    """How a fetched resource is extracted."""

    HTML = "html"
    TEXT = "text"
    PDF = "pdf"
    OTHER = "other"

    @classmethod
    def from_url(cls, url: str) -> ContentKind:
        """Classify a URL by its suffix and path.

        Plain-text and data files are fetched but never scanned for links.
        """
        if url.endswith(_TEXT_SUFFIXES):
            kind = cls.TEXT
        elif url.endswith(".pdf"):
            kind = cls.PDF
        elif "/_sources/" in url:
            kind = cls.TEXT
        elif url.endswith(_OTHER_SUFFIXES):
            kind = cls.OTHER
        else:
            kind = cls.HTML
        logger.debug(f"Classifying as {kind.name}: {url}")
        return kind

    @property
    def should_extract_links(self) -> bool:
        return self is ContentKind.HTML


def should_extract_links(url: str) -> bool:
    """Return True when a resource at ``url`` should be scanned for links."""
    return ContentKind.from_url(url).should_extract_links


@dataclass
class ParseResult:
    """Extracted text plus any outbound links."""

    content: str
    links: list[str] = field(default_factory=list)
    title: str | None = None

    @classmethod
    def content_only(cls, content: str) -> ParseResult:
        return cls(content=content)


class Extractor(Protocol):
    """Boundary used by the fetch pipeline to turn page source into a result."""

    def __call__(self, content: str, kind: ContentKind, options: TextParserOptions) -> ParseResult: ...


def parse(content: str, kind: ContentKind, options: TextParserOptions | None = None) -> ParseResult:
    """Extract ``content`` according to its ``kind``."""
    options = options or TextParserOptions()

    if kind is ContentKind.HTML:
        body, links, title = html.parse(content)
        return ParseResult(content=body, links=links, title=title)
    if kind is ContentKind.PDF:
        return ParseResult.content_only(PDF_PLACEHOLDER)
    # TEXT and OTHER are both read as plain text
    return ParseResult.content_only(text.parse(html.unwrap_plain_text(content), options))


def parse_from_url(content: str, url: str, options: TextParserOptions | None = None) -> ParseResult:
    return parse(content, ContentKind.from_url(url), options)


__all__ = [
    "CRAWL_TEXT_OPTIONS",
    "PDF_PLACEHOLDER",
    "ContentKind",
    "Extractor",
    "ParseResult",
    "TextParserOptions",
    "parse",
    "parse_from_url",
    "should_extract_links",
]
