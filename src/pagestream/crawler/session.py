"""Remote rendering sessions and their lifecycle.

A session is one connection to a rendering service, owned by exactly one
worker. ``SessionManager`` connects lazily, walks a fixed list of fallback
endpoints when the primary refuses, and replaces a session wholesale after it
is lost.

Two transports are provided:
- ``PlaywrightSessionFactory`` drives a remote Chromium over the DevTools
  protocol (``connect_over_cdp``), so pages are rendered by a real browser.
- ``HttpxSessionFactory`` fetches pages directly over HTTP without rendering.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from pagestream.errors import ConnectError, SessionLostError, TransportError
from pagestream.utils import calculate_timeout


if TYPE_CHECKING:
    from collections.abc import Iterable

    from playwright.async_api import Browser, Page, Playwright


logger = logging.getLogger(__name__)

# Error text that means the remote end discarded the session
SESSION_LOST_MARKERS = (
    "target page, context or browser has been closed",
    "browser has been closed",
    "connection closed",
    "unable to find session",
    "invalid session id",
    "client has been closed",
)

DEFAULT_NAVIGATION_BASE_MS = 30_000
CDP_CONNECT_TIMEOUT_MS = 10_000


def is_session_lost(error: BaseException | str) -> bool:
    """Return True when ``error`` says the session itself is gone."""
    message = str(error).lower()
    return any(marker in message for marker in SESSION_LOST_MARKERS)


def _transport_error(exc: Exception, url: str | None) -> TransportError:
    if is_session_lost(exc):
        return SessionLostError(str(exc), url=url)
    return TransportError(str(exc), url=url)


class RenderSession(Protocol):
    """One exclusive connection to a rendering service."""

    endpoint: str

    async def navigate(self, url: str) -> None: ...

    async def read_source(self) -> str: ...

    async def close(self) -> None: ...


class SessionFactory(Protocol):
    """Opens sessions against an endpoint; raises ``ConnectError`` on refusal."""

    async def connect(self, endpoint: str) -> RenderSession: ...


class PlaywrightSession:
    """A single page in a remote Chromium reached over CDP."""

    def __init__(
        self,
        endpoint: str,
        playwright: Playwright,
        browser: Browser,
        page: Page,
        navigation_base_ms: int = DEFAULT_NAVIGATION_BASE_MS,
    ):
        self.endpoint = endpoint
        self._playwright = playwright
        self._browser = browser
        self._page = page
        self._navigation_base_ms = navigation_base_ms

    async def navigate(self, url: str) -> None:
        timeout_ms = calculate_timeout(self._navigation_base_ms, len(url)) * 1000
        try:
            await self._page.goto(url, wait_until="load", timeout=timeout_ms)
        except PlaywrightError as exc:
            raise _transport_error(exc, url) from exc

    async def read_source(self) -> str:
        try:
            return await self._page.content()
        except PlaywrightError as exc:
            raise _transport_error(exc, self._page.url) from exc

    async def close(self) -> None:
        try:
            await self._page.close()
            await self._browser.close()
        finally:
            await self._playwright.stop()


class PlaywrightSessionFactory:
    """Connects to a remote browser exposing the Chrome DevTools Protocol."""

    def __init__(self, navigation_base_ms: int = DEFAULT_NAVIGATION_BASE_MS):
        self.navigation_base_ms = navigation_base_ms

    async def connect(self, endpoint: str) -> PlaywrightSession:
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.connect_over_cdp(endpoint, timeout=CDP_CONNECT_TIMEOUT_MS)
            context = browser.contexts[0] if browser.contexts else await browser.new_context()
            page = await context.new_page()
        except PlaywrightError as exc:
            await playwright.stop()
            raise ConnectError(f"CDP connection to {endpoint} failed: {exc}", endpoint=endpoint) from exc
        return PlaywrightSession(endpoint, playwright, browser, page, self.navigation_base_ms)


class HttpxSession:
    """Headless session: the page source is the raw HTTP response body."""

    def __init__(self, endpoint: str, client: httpx.AsyncClient):
        self.endpoint = endpoint
        self._client = client
        self._source: str | None = None
        self._url: str | None = None

    async def navigate(self, url: str) -> None:
        self._source = None
        self._url = url
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TransportError(f"HTTP {exc.response.status_code} for {url}", url=url) from exc
        except (httpx.HTTPError, RuntimeError) as exc:
            raise _transport_error(exc, url) from exc
        self._source = response.text

    async def read_source(self) -> str:
        if self._source is None:
            raise TransportError("No page loaded", url=self._url)
        return self._source

    async def close(self) -> None:
        await self._client.aclose()


class HttpxSessionFactory:
    """Opens ``httpx`` clients; the endpoint only labels the session."""

    def __init__(self, timeout: float = 30.0, user_agent: str | None = None):
        self.timeout = timeout
        self.user_agent = user_agent or "pagestream/0.1 (+https://pypi.org/project/pagestream/)"

    async def connect(self, endpoint: str) -> HttpxSession:
        client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            headers={
                "User-Agent": self.user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,text/plain;q=0.8,*/*;q=0.5",
            },
            follow_redirects=True,
        )
        return HttpxSession(endpoint, client)


def create_session_factory(transport: str) -> SessionFactory:
    if transport == "http":
        return HttpxSessionFactory()
    return PlaywrightSessionFactory()


class SessionManager:
    """Connect, reconnect and close sessions for the workers of one crawl.

    Sessions are never shared; the manager only knows how to make and discard
    them. Every method logs failures and returns None instead of raising, so a
    worker can skip the current URL and keep going.
    """

    def __init__(
        self,
        factory: SessionFactory,
        endpoint: str,
        fallback_endpoints: Iterable[str] = (),
    ):
        self.factory = factory
        self.endpoint = endpoint
        self.fallback_endpoints = tuple(url for url in fallback_endpoints if url != endpoint)
        self.reconnects = 0

    @property
    def candidate_endpoints(self) -> tuple[str, ...]:
        return (self.endpoint, *self.fallback_endpoints)

    async def ensure_connected(self, existing: RenderSession | None) -> RenderSession | None:
        """Return ``existing`` or open a fresh session."""
        if existing is not None:
            return existing
        return await self.connect()

    async def connect(self) -> RenderSession | None:
        """Try the primary endpoint, then each fallback in order."""
        for endpoint in self.candidate_endpoints:
            try:
                session = await self.factory.connect(endpoint)
            except ConnectError as exc:
                logger.warning(f"Failed to connect to {endpoint}: {exc}")
                continue
            if endpoint != self.endpoint:
                logger.info(f"Connected to fallback endpoint {endpoint}")
            else:
                logger.debug(f"Connected to {endpoint}")
            return session

        logger.error(f"Failed to connect to any rendering endpoint (tried {len(self.candidate_endpoints)})")
        return None

    async def reconnect(self, session: RenderSession | None) -> RenderSession | None:
        """Discard a lost session and connect again."""
        self.reconnects += 1
        if session is not None:
            await self.close(session)
        logger.info("Reconnecting rendering session")
        return await self.connect()

    async def close(self, session: RenderSession | None) -> None:
        if session is None:
            return
        try:
            await session.close()
        except Exception as exc:
            logger.warning(f"Error closing session for {session.endpoint}: {exc}")
