"""
Async utilities for running coroutines from sync (Flask) code.

The database pools, the session store and the maintenance scheduler all
live on one event loop. BackgroundLoop owns that loop on a daemon thread;
request handlers submit coroutines to it and block on the result.

Usage:
    from core.async_utils import BackgroundLoop

    loop = BackgroundLoop(name="garage-loop")
    loop.start()
    rows = loop.run(adapter.query("SELECT 1"), timeout=30)
    loop.stop()
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Coroutine, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackgroundLoop:
    """An asyncio event loop running forever on a daemon thread."""

    def __init__(self, name: str = "background-loop"):
        self.name = name
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "BackgroundLoop":
        if self.is_running:
            return self
        self.loop = asyncio.new_event_loop()
        self._ready.clear()
        self._thread = threading.Thread(target=self._run_forever, name=self.name, daemon=True)
        self._thread.start()
        self._ready.wait()
        logger.debug(f"{self.name} started")
        return self

    def _run_forever(self):
        asyncio.set_event_loop(self.loop)
        self.loop.call_soon(self._ready.set)
        try:
            self.loop.run_forever()
        finally:
            self.loop.close()

    def run(self, coro: Coroutine[Any, Any, T], timeout: Optional[float] = None) -> T:
        """
        Run a coroutine on the background loop and wait for its result.

        Exceptions raised by the coroutine propagate to the caller.

        Raises:
            RuntimeError: The loop is not running
            concurrent.futures.TimeoutError: No result within timeout
        """
        if not self.is_running:
            coro.close()
            raise RuntimeError(f"{self.name} is not running")
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise

    def stop(self, timeout: float = 5.0):
        if not self.is_running:
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout)
        self._thread = None
        logger.debug(f"{self.name} stopped")
