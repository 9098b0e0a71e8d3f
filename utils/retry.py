import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from core.errors import DeliveryError


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry around one async operation.

    `retries` is the number of extra attempts after the first one; the pause
    before retry n is delay * backoff ** (n - 1), capped at max_delay.
    Only DeliveryError is retried.
    """

    retries: int = 3
    delay: float = 2.0
    backoff: float = 1.0
    max_delay: float = 900.0

    @property
    def max_attempts(self) -> int:
        return max(0, self.retries) + 1

    def delay_before(self, retry_number: int) -> float:
        raw = self.delay * (self.backoff ** max(0, retry_number - 1))
        return max(0.0, min(self.max_delay, raw))

    async def run(
        self,
        operation: Callable[[], Awaitable[object]],
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        label: str = "operation",
    ) -> int:
        """Returns the 1-based attempt that succeeded; re-raises the last DeliveryError."""
        last_error: DeliveryError | None = None
        for attempt in range(1, self.max_attempts + 1):
            if attempt > 1:
                await sleep(self.delay_before(attempt - 1))
            try:
                await operation()
                if attempt > 1:
                    logging.info("%s succeeded after retry attempt=%d", label, attempt)
                return attempt
            except DeliveryError as exc:
                last_error = exc
                logging.warning("%s failed attempt=%d/%d: %s", label, attempt, self.max_attempts, exc)
        assert last_error is not None
        last_error.attempts = self.max_attempts
        raise last_error
