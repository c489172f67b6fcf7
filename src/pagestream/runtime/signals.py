"""Signal handling for a cooperative crawl shutdown."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
import signal


logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_shutdown_signals(on_shutdown: Callable[[str], None]) -> asyncio.Event:
    """Route SIGINT/SIGTERM into ``on_shutdown`` on the running loop.

    The first signal calls ``on_shutdown`` with the signal name; repeated
    signals are ignored. Returns an event set once shutdown was requested.
    Must be called from a coroutine running on the main thread's loop.
    """
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _trigger(sig: signal.Signals) -> None:
        if shutdown_event.is_set():
            return
        logger.info(f"Received {sig.name}, stopping crawl after in-flight pages")
        shutdown_event.set()
        on_shutdown(sig.name)

    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.add_signal_handler(sig, _trigger, sig)
        except NotImplementedError:  # pragma: no cover - Windows event loops
            signal.signal(sig, lambda signum, frame, sig=sig: loop.call_soon_threadsafe(_trigger, sig))
        except (RuntimeError, ValueError):  # pragma: no cover - not on the main thread
            logger.debug(f"Signal {sig.name} is not supported in this context")

    return shutdown_event


def remove_shutdown_signals() -> None:
    """Restore default handling of the shutdown signals."""
    loop = asyncio.get_running_loop()
    for sig in SHUTDOWN_SIGNALS:
        try:
            loop.remove_signal_handler(sig)
        except NotImplementedError:  # pragma: no cover - Windows event loops
            signal.signal(sig, signal.SIG_DFL)
