import time
from threading import Lock
from typing import Callable, TypeVar

T = TypeVar("T")

SleepFn = Callable[[float], None]
ClockFn = Callable[[], float]


class RequestSpacingLimiter:
    """
    Serializes outbound calls and keeps a minimum gap between the start of
    consecutive calls. One instance is shared by every call of one invocation.
    """

    def __init__(
        self,
        *,
        min_interval_seconds: float,
        clock: ClockFn = time.monotonic,
        sleep: SleepFn = time.sleep,
    ):
        self.min_interval_seconds = max(float(min_interval_seconds), 0.0)
        self._clock = clock
        self._sleep = sleep
        self._last_started: float | None = None
        self._lock = Lock()

    def schedule(self, fn: Callable[[], T]) -> T:
        with self._lock:
            self._wait_for_slot()
            self._last_started = self._clock()
            return fn()

    def _wait_for_slot(self) -> None:
        if self._last_started is None or self.min_interval_seconds <= 0:
            return
        elapsed = self._clock() - self._last_started
        remaining = self.min_interval_seconds - elapsed
        if remaining > 0:
            self._sleep(remaining)
