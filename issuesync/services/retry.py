"""Exponential backoff for remote calls"""

import logging
import random
import threading
import time
from typing import Callable, Optional, TypeVar

from issuesync.exceptions import RetryExhaustedError, SyncCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")

# notify(error, wait_ms) is called before every wait
RetryNotify = Callable[[BaseException, int], None]


class ResilientInvoker:
    """Retries a callable with exponential backoff until a time budget runs out.

    The budget is wall-clock time since the first attempt, not a number of
    attempts. Waits happen on `cancel_event`, so setting the event interrupts a
    pending retry and the call raises SyncCancelled.
    """

    def __init__(
        self,
        max_elapsed: float,
        *,
        initial_interval: float = 0.5,
        multiplier: float = 1.5,
        max_interval: float = 60.0,
        randomization: float = 0.5,
        notify: Optional[RetryNotify] = None,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_elapsed = max_elapsed
        self.initial_interval = initial_interval
        self.multiplier = multiplier
        self.max_interval = max_interval
        self.randomization = randomization
        self.notify = notify
        self.cancel_event = cancel_event or threading.Event()
        self.clock = clock

    def _next_delay(self, interval: float) -> float:
        if not self.randomization:
            return interval
        delta = self.randomization * interval
        return random.uniform(interval - delta, interval + delta)

    def invoke(self, fn: Callable[[], T]) -> T:
        """Run `fn`, retrying on any exception"""
        start = self.clock()
        interval = self.initial_interval
        while True:
            if self.cancel_event.is_set():
                raise SyncCancelled("cancelled before request")
            try:
                return fn()
            except SyncCancelled:
                raise
            except Exception as e:
                delay = self._next_delay(interval)
                elapsed = self.clock() - start
                if elapsed + delay > self.max_elapsed:
                    raise RetryExhaustedError(e, elapsed) from e

                if self.notify is not None:
                    self.notify(e, int(round(delay * 1000)))
                if self.cancel_event.wait(delay):
                    raise SyncCancelled("cancelled while waiting to retry") from e
                interval = min(interval * self.multiplier, self.max_interval)


def log_retry(service: str) -> RetryNotify:
    """Retry observer that logs each retry of a request to `service`"""

    def _notify(error: BaseException, wait_ms: int):
        logger.error(f"unable to complete {service} request; retrying in {wait_ms}ms: {error}")

    return _notify
