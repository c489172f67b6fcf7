"""Small helpers shared by the transports and the CLI."""

from __future__ import annotations

import re


_UNSAFE_FILENAME_CHARS = re.compile(r"[/:?&=#%]")
MAX_FILENAME_LENGTH = 100


def calculate_timeout(base_ms: int, url_length: int) -> float:
    """Navigation timeout in seconds, grown by 100 ms per 20 characters of URL."""
    additional_ms = (url_length // 20) * 100
    return (base_ms + additional_ms) / 1000


def sanitize_filename(url: str) -> str:
    """Turn a URL into a filesystem-safe name of at most 100 characters."""
    name = url.replace("http://", "").replace("https://", "")
    name = _UNSAFE_FILENAME_CHARS.sub("_", name)
    return name[:MAX_FILENAME_LENGTH]
