"""Plain-text extraction.

Text is split into paragraphs at blank lines, each line is trimmed, and the
paragraphs are re-joined according to ``TextParserOptions``. Plain text never
yields links, even when the body contains URLs.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TextParserOptions:
    """Options controlling how text structure survives extraction."""

    preserve_paragraphs: bool = False  # blank line between paragraphs
    preserve_line_breaks: bool = False  # keep single newlines inside a paragraph
    normalize_whitespace: bool = True  # collapse runs of spaces and tabs
    detect_urls: bool = True  # keep URL-like tokens intact (never split)


# Options used by the fetch pipeline for every page it extracts.
CRAWL_TEXT_OPTIONS = TextParserOptions(
    preserve_paragraphs=True,
    preserve_line_breaks=False,
    normalize_whitespace=True,
    detect_urls=True,
)


def parse(text: str, options: TextParserOptions | None = None) -> str:
    """Extract normalized text content from ``text``."""
    options = options or TextParserOptions()
    if not text.strip():
        return ""

    paragraphs = split_into_paragraphs(text)
    processed = [process_paragraph(paragraph, options) for paragraph in paragraphs]
    return join_paragraphs(processed, options)


def split_into_paragraphs(text: str) -> list[list[str]]:
    """Group trimmed, non-empty lines into paragraphs separated by blank lines."""
    paragraphs: list[list[str]] = []
    current: list[str] = []

    for line in text.splitlines():
        trimmed = line.strip()
        if not trimmed:
            if current:
                paragraphs.append(current)
                current = []
            continue
        current.append(trimmed)

    if current:
        paragraphs.append(current)
    return paragraphs


def process_paragraph(paragraph: list[str], options: TextParserOptions) -> str:
    if not paragraph:
        return ""
    separator = "\n" if options.preserve_line_breaks else " "
    return separator.join(paragraph)


def join_paragraphs(paragraphs: list[str], options: TextParserOptions) -> str:
    if not paragraphs:
        return ""
    separator = "\n\n" if options.preserve_paragraphs else " "
    return normalize_whitespace(separator.join(paragraphs), options)


def normalize_whitespace(text: str, options: TextParserOptions) -> str:
    """Collapse whitespace while keeping the structure the options ask for."""
    if not options.normalize_whitespace:
        return text

    if not options.preserve_paragraphs and not options.preserve_line_breaks:
        return normalize_segment(text)

    if options.preserve_paragraphs and not options.preserve_line_breaks:
        return "\n\n".join(normalize_segment(paragraph) for paragraph in text.split("\n\n"))

    # Line breaks preserved: normalize inside each line, keep blank lines as-is
    return "\n".join(line if not line.strip() else normalize_segment(line) for line in text.split("\n"))


def normalize_segment(segment: str) -> str:
    return " ".join(segment.split())
