"""
Bounded polling for resources that become ready asynchronously.

Cloud resources take a while to settle after they are requested: a snapshot
sits in "pending" and a freshly registered image is not listed right away.
PollWaiter repeats a fetch until it produces a value or the deadline elapses.
"""

import threading
import time
from typing import Callable, Optional, TypeVar

import structlog

from .errors import Cancelled, DeadlineExceeded

log = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_DEADLINE_SECONDS = 20 * 60
DEFAULT_INTERVAL_SECONDS = 10.0


class PollWaiter:
    """
    Call ``fetch`` until it returns something other than None.

    Usage:
        waiter = PollWaiter(deadline=1200, interval=10)
        state = waiter.wait_until(lambda: client.ready_or_none(), "snapshot snap-1")

    ``fetch`` folds the readiness check into its return value: None means
    "not ready yet". The waiter never asks why.
    """

    def __init__(
        self,
        deadline: float = DEFAULT_DEADLINE_SECONDS,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], bool]] = None,
    ):
        if deadline <= 0:
            raise ValueError("deadline must be positive")
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.deadline = deadline
        self.interval = interval
        self.cancel_event = cancel_event or threading.Event()
        self._clock = clock
        # Returns True when the wait was cut short by cancellation.
        self._sleep = sleep or self.cancel_event.wait

    def wait_until(self, fetch: Callable[[], Optional[T]], description: str = "resource") -> T:
        """Return the first non-None value produced by ``fetch``.

        Raises:
            DeadlineExceeded: no value before the deadline elapsed
            Cancelled: the cancel event was set
        """
        started = self._clock()
        attempts = 0

        while True:
            if self.cancel_event.is_set():
                raise Cancelled(f"Stopped waiting for {description}: cancelled")

            value = fetch()
            attempts += 1
            if value is not None:
                log.debug("poll.ready", resource=description, attempts=attempts)
                return value

            elapsed = self._clock() - started
            if elapsed >= self.deadline:
                raise DeadlineExceeded(
                    f"{description} not ready after {elapsed:.0f}s ({attempts} attempts)"
                )

            log.info(
                "poll.not_ready",
                resource=description,
                attempt=attempts,
                retry_in=self.interval,
            )
            if self._sleep(self.interval):
                raise Cancelled(f"Stopped waiting for {description}: cancelled")
