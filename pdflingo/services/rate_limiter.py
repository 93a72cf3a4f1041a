# pdflingo/services/rate_limiter.py
"""
Request throttle for the translation service.

Bounds the number of in-flight calls with a counting semaphore and keeps a
minimum interval between the start of any two calls, whichever thread makes
them.
"""

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENT = 5
DEFAULT_MIN_INTERVAL = 0.1  # seconds between two calls


class RequestThrottle:
    """
    Concurrency limit plus call pacing.

    Usage:
        throttle = RequestThrottle(max_concurrent=5, min_interval=0.1)
        with throttle:
            translator.translate(...)
    """

    def __init__(
        self,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
        if min_interval < 0:
            raise ValueError(f"min_interval must be >= 0, got {min_interval}")
        self.max_concurrent = max_concurrent
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._semaphore = threading.BoundedSemaphore(max_concurrent)
        # Held while waiting out the interval so calls are spaced one by one
        self._pace_lock = threading.Lock()
        self._last_call: float | None = None

    def acquire(self) -> None:
        """Block until a slot is free and the pacing interval has elapsed."""
        self._semaphore.acquire()
        try:
            with self._pace_lock:
                now = self._clock()
                if self._last_call is not None:
                    wait = self._last_call + self.min_interval - now
                    if wait > 0:
                        logger.debug("Throttle: waiting %.3fs", wait)
                        self._sleep(wait)
                        now = self._clock()
                self._last_call = now
        except BaseException:
            self._semaphore.release()
            raise

    def release(self) -> None:
        self._semaphore.release()

    def __enter__(self) -> "RequestThrottle":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
