"""HTML extraction with BeautifulSoup."""

from __future__ import annotations

import logging

from bs4 import BeautifulSoup


logger = logging.getLogger(__name__)

# Elements whose text never reaches the reader
_INVISIBLE_TAGS = ("script", "style", "noscript", "template")


def _soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def extract_text(soup: BeautifulSoup) -> str:
    """Return the body text with all whitespace collapsed to single spaces."""
    for tag in soup.find_all(_INVISIBLE_TAGS):
        tag.decompose()
    root = soup.body or soup
    return " ".join(root.get_text(" ").split())


def extract_links(soup: BeautifulSoup) -> list[str]:
    """Return raw ``href`` values of every anchor, in document order."""
    links: list[str] = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"]
        # BeautifulSoup can return a list for multi-valued attributes
        if isinstance(href, list):
            href = href[0] if href else ""
        if isinstance(href, str) and href:
            links.append(href)
    return links


def extract_title(soup: BeautifulSoup) -> str | None:
    if soup.title is None or soup.title.string is None:
        return None
    title = " ".join(soup.title.string.split())
    return title or None


def parse(html: str) -> tuple[str, list[str], str | None]:
    """Parse an HTML document into ``(text, links, title)``."""
    soup = _soup(html)
    links = extract_links(soup)
    title = extract_title(soup)
    text = extract_text(soup)

    logger.debug(f"HTML parser found {len(links)} links")
    if links:
        logger.debug(f"First few links: {links[:5]}")
    return text, links, title


def parse_text_only(html: str) -> str:
    return extract_text(_soup(html))


def parse_links_only(html: str) -> list[str]:
    return extract_links(_soup(html))


def unwrap_plain_text(source: str) -> str:
    """Recover the raw body of a text file a browser rendered as HTML.

    Browsers wrap plain-text responses in ``<pre>``; the markup is dropped so
    the text parser sees the file as served. Sources that are not wrapped are
    returned untouched.
    """
    stripped = source.lstrip()
    if not stripped.startswith("<") or "<pre" not in stripped[:4096].lower():
        return source
    pre = _soup(source).find("pre")
    if pre is None:
        return source
    return pre.get_text()
