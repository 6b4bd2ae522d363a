"""Utilities to execute coroutines on the main asyncio loop from sync contexts.

Flask views run in WSGI worker threads; everything touching the database
pool or the change feed must run on the loop that owns them.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Awaitable, Optional, Tuple, TypeVar


_loop: Optional[asyncio.AbstractEventLoop] = None
T = TypeVar("T")


def set_main_loop(loop: Optional[asyncio.AbstractEventLoop]) -> None:
    global _loop
    _loop = loop


def get_main_loop() -> asyncio.AbstractEventLoop:
    if _loop is None:
        raise RuntimeError("Asyncio loop is not initialized")
    return _loop


def run_coroutine_sync(coro: Awaitable[T], timeout: Optional[float] = None) -> T:
    future = asyncio.run_coroutine_threadsafe(coro, get_main_loop())
    return future.result(timeout)


def start_background_loop() -> Tuple[asyncio.AbstractEventLoop, threading.Thread]:
    """Run a fresh event loop in a daemon thread and register it as the main loop.

    Used by the standalone Flask runner and the test-suite, where Flask owns
    the main thread.
    """
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, name="inphrone-loop", daemon=True)
    thread.start()
    set_main_loop(loop)
    return loop, thread


def stop_background_loop(loop: asyncio.AbstractEventLoop, thread: threading.Thread) -> None:
    loop.call_soon_threadsafe(loop.stop)
    thread.join(timeout=5)
    loop.close()
    if _loop is loop:
        set_main_loop(None)
