"""Exception hierarchy for the crawl engine.

Only ``ConfigurationError`` escapes to callers of the engine. Transport
failures are absorbed per URL, and ``EmissionError`` ends the worker that hit
it.
"""

from __future__ import annotations


class CrawlError(Exception):
    """Base class for crawler errors."""


class ConfigurationError(CrawlError, ValueError):
    """Invalid seed URL, scope pattern, or configuration document."""


class TransportError(CrawlError):
    """A navigation, source read, or connect call failed."""

    def __init__(self, message: str, *, url: str | None = None):
        super().__init__(message)
        self.url = url


class SessionLostError(TransportError):
    """The remote rendering session is gone and must be replaced."""


class ConnectError(TransportError):
    """Could not open a session against an endpoint."""

    def __init__(self, message: str, *, endpoint: str):
        super().__init__(message)
        self.endpoint = endpoint


class EmissionError(CrawlError):
    """The output stream can no longer accept page records."""
