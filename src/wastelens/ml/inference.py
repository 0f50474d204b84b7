"""Request admission for blocking classification calls.

Architecture:
    FastAPI (async) -> asyncio.Semaphore(N) -> ThreadPoolExecutor(N) -> ClassificationService (lock) -> ONNX

Requests beyond the semaphore limit wait up to ``queue_timeout`` seconds and
then fail with TimeoutError, which the API reports as 503.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

    from wastelens.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InferencePool:
    """Bounds in-flight classification requests and runs them off the event loop."""

    def __init__(self, settings: Settings) -> None:
        self._timeout = settings.queue_timeout
        self._semaphore = asyncio.Semaphore(settings.max_concurrent)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent,
            thread_name_prefix="wastelens-inference",
        )
        self._active_count = 0
        self._queue_depth = 0
        self._counter_lock = threading.Lock()

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Run a blocking function in the thread pool once a slot is free.

        Raises:
            TimeoutError: If no slot frees up within the queue timeout.
        """
        with self._counter_lock:
            self._queue_depth += 1
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self._timeout)
        except TimeoutError:
            logger.warning("Inference queue full, gave up after %.1fs", self._timeout)
            raise
        finally:
            with self._counter_lock:
                self._queue_depth -= 1

        with self._counter_lock:
            self._active_count += 1
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, func, *args)
        finally:
            self._semaphore.release()
            with self._counter_lock:
                self._active_count -= 1

    @property
    def active_count(self) -> int:
        """Number of requests currently being classified."""
        with self._counter_lock:
            return self._active_count

    @property
    def queue_depth(self) -> int:
        """Number of requests waiting for a slot."""
        with self._counter_lock:
            return self._queue_depth

    def shutdown(self) -> None:
        """Wait for running requests and stop the thread pool."""
        self._executor.shutdown(wait=True)
