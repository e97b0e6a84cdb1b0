# app/services/throttle.py
"""
Send pacing and per-recipient retry.

Both take injectable clock/sleep callables so batch timing can be
exercised without real waits.
"""
import logging
import time
from typing import Any, Callable, Optional, Tuple, Type

from app.core.config import EMAIL_DELAY_MS, MAX_RETRIES, RETRY_DELAY_MS

log = logging.getLogger("bulkmail.campaigns.throttle")


class SendThrottle:
    """
    Enforces a minimum spacing between consecutive sends.

    The first call to ``wait()`` never blocks; later calls block until
    ``interval_seconds`` have elapsed since the previous send.
    """

    def __init__(
        self,
        interval_seconds: float = EMAIL_DELAY_MS / 1000.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = time.sleep
    ):
        self.interval = max(0.0, interval_seconds)
        self._clock = clock
        self._sleep = sleep
        self._last_send: Optional[float] = None

    def wait(self) -> float:
        """Block until the next send is allowed. Returns seconds slept."""
        if self._last_send is None or self.interval == 0:
            self._last_send = self._clock()
            return 0.0

        elapsed = self._clock() - self._last_send
        delay = self.interval - elapsed
        if delay > 0:
            log.debug(f"⏳ Throttling next send by {delay:.2f}s")
            self._sleep(delay)
        else:
            delay = 0.0
        self._last_send = self._clock()
        return delay

    def reset(self):
        self._last_send = None


class RetryExhausted(Exception):
    """Raised by RetryPolicy.run when every attempt failed"""

    def __init__(self, last_error: BaseException, attempts: int):
        super().__init__(str(last_error))
        self.last_error = last_error
        self.attempts = attempts


class RetryPolicy:
    """Bounded retry with a fixed backoff between attempts"""

    def __init__(
        self,
        max_attempts: int = MAX_RETRIES,
        backoff_seconds: float = RETRY_DELAY_MS / 1000.0,
        sleep: Callable[[float], Any] = time.sleep
    ):
        self.max_attempts = max(1, max_attempts)
        self.backoff_seconds = max(0.0, backoff_seconds)
        self._sleep = sleep

    def run(
        self,
        operation: Callable[[], Any],
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        label: str = ""
    ) -> Tuple[Any, int]:
        """
        Call ``operation`` until it succeeds or attempts run out.

        Returns:
            (result, attempts used)

        Raises:
            RetryExhausted: carrying the last error observed
        """
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return operation(), attempt
            except retry_on as e:
                last_error = e
                log.warning(f"⚠️ Attempt {attempt}/{self.max_attempts} failed{' for ' + label if label else ''}: {e}")
                if attempt < self.max_attempts and self.backoff_seconds:
                    self._sleep(self.backoff_seconds)

        raise RetryExhausted(last_error, self.max_attempts)
