"""Bounded retry with exponential backoff around remote calls.

Retry is layered around individual remote operations and knows nothing
about merging. The default policy makes a single attempt; configure
``sync_retries`` to allow more.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from peaklog.errors import RemoteError

logger = logging.getLogger(__name__)

R = TypeVar("R")


@dataclass
class RetryPolicy:
    """How often and how patiently to repeat a failed remote call.

    Only :class:`RemoteError` with ``retryable`` set is retried; anything
    else propagates on the first failure.
    """

    max_attempts: int = 1
    base_delay: float = 0.5  # seconds
    max_delay: float = 8.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        """Backoff before attempt ``attempt + 1`` (attempts count from 1)."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    def call(self, fn: Callable[..., R], *args, description: str = "remote call") -> R:
        attempt = 1
        while True:
            try:
                return fn(*args)
            except RemoteError as e:
                if not e.retryable or attempt >= self.max_attempts:
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    f"{description} failed ({e}); retry {attempt}/{self.max_attempts - 1} "
                    f"in {delay:.1f}s"
                )
                self.sleep(delay)
                attempt += 1


NO_RETRY = RetryPolicy()
