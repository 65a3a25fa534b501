# ============================================================================
# Gemini Link v0.1.0
# Exponential Backoff - Caller-Side Retry Policy
# ============================================================================
#
# Purpose: Delay schedule for callers that choose to retry a TransportError
#          or restart a stream after it ended.
#
# The signing, HTTP and streaming layers never retry on their own.
#
# ============================================================================

import math
import random
from typing import Callable, Optional


class ExponentialBackoff:
    """
    Exponential backoff calculator with bounded jitter.

    delay(n) = min(base * multiplier ** n, max_delay) * (1 + jitter * U[0, 1))
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        multiplier: float = 2.0,
        max_delay: float = 30.0,
        jitter: float = 0.25,
        rand: Optional[Callable[[], float]] = None,
    ):
        if base_delay < 0 or max_delay < 0:
            raise ValueError("Backoff delays must be non-negative")
        if multiplier < 1:
            raise ValueError("Backoff multiplier must be at least 1")

        self.base_delay = base_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.jitter = jitter
        self._rand = rand or random.random
        self._attempt = 0

    @property
    def attempts(self) -> int:
        return self._attempt

    def get_delay(self) -> float:
        """Return the next delay in seconds and advance the attempt counter."""
        delay = self.max_delay
        if self.base_delay < self.max_delay:
            # Exponent stops growing where the delay reaches max_delay
            growth = self.multiplier ** min(self._attempt, self._cap_exponent())
            delay = min(self.base_delay * growth, self.max_delay)

        if self.jitter > 0:
            delay += delay * self.jitter * self._rand()

        self._attempt += 1
        return delay

    def _cap_exponent(self) -> int:
        if self.multiplier == 1 or self.base_delay == 0:
            return 0
        span = math.log(self.max_delay) - math.log(self.base_delay)
        return int(math.ceil(span / math.log(self.multiplier)))

    def reset(self) -> None:
        """Reset attempt counter after a successful request or connection."""
        self._attempt = 0
