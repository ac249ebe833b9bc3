import logging
import time
from typing import Callable, TypeVar

from tenacity import RetryCallState, RetryError, Retrying, retry_if_exception_type, stop_after_attempt

from app.core.config import settings
from app.core.observability import log_event
from app.core.rate_limit import RequestSpacingLimiter, SleepFn

T = TypeVar("T")

logger = logging.getLogger("autotag.tagging")


class RateLimitedError(Exception):
    """Raised by a transport when the remote API answers HTTP 429."""

    def __init__(self, message: str = "Rate limited", *, retry_after_seconds: float | None = None):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class MaxRetriesExceededError(Exception):
    def __init__(self, attempts: int):
        super().__init__(f"Max retries reached after {attempts} attempts")
        self.attempts = attempts


class RateLimitedRetryClient:
    """
    Runs remote calls one at a time through a spacing limiter and retries
    rate-limited calls with exponential backoff.

    The wait before a retry is the server's retry hint when it sent one,
    otherwise the backoff delay, which doubles after every rate-limited
    attempt. Any other exception propagates untouched.
    """

    def __init__(
        self,
        *,
        limiter: RequestSpacingLimiter,
        max_attempts: int = 5,
        initial_delay_seconds: float = 1.0,
        sleep: SleepFn = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.limiter = limiter
        self.max_attempts = max_attempts
        self.initial_delay_seconds = initial_delay_seconds
        self._sleep = sleep

    def _wait_seconds(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        hint = getattr(exc, "retry_after_seconds", None)
        if hint and hint > 0:
            return float(hint)
        return self.initial_delay_seconds * (2 ** (retry_state.attempt_number - 1))

    def call(self, fn: Callable[[], T], *, operation: str = "remote_call") -> T:
        def _log_retry(retry_state: RetryCallState) -> None:
            log_event(
                logger,
                "shopify.rate_limited",
                level=logging.WARNING,
                operation=operation,
                attempt=retry_state.attempt_number,
                wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._wait_seconds,
            retry=retry_if_exception_type(RateLimitedError),
            sleep=self._sleep,
            before_sleep=_log_retry,
        )
        try:
            return retrying(self.limiter.schedule, fn)
        except RetryError as exc:
            raise MaxRetriesExceededError(self.max_attempts) from exc.last_attempt.exception()


def build_retry_client(*, sleep: SleepFn = time.sleep) -> RateLimitedRetryClient:
    limiter = RequestSpacingLimiter(
        min_interval_seconds=settings.tagging_min_request_interval_ms / 1000,
        sleep=sleep,
    )
    return RateLimitedRetryClient(
        limiter=limiter,
        max_attempts=settings.tagging_max_attempts,
        initial_delay_seconds=settings.tagging_default_retry_ms / 1000,
        sleep=sleep,
    )
