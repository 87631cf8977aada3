"""Pacing for outbound requests.

A :class:`RateLimiter` enforces a minimum interval between consecutive
calls. The pipeline keeps one for page fetches and one for LLM calls.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Blocks until ``min_interval`` seconds have passed since the last call.

    The first call returns immediately. ``clock`` and ``sleep`` are injectable
    so tests can run without real delays.
    """

    def __init__(
        self,
        min_interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if min_interval < 0:
            raise ValueError(f"min_interval must be >= 0, got {min_interval}")
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None

    def wait(self) -> float:
        """Sleep as needed and return the number of seconds waited."""
        waited = 0.0
        now = self._clock()
        if self._last is not None:
            remaining = self.min_interval - (now - self._last)
            if remaining > 0:
                logger.debug("Rate limiting: waiting %.2fs", remaining)
                self._sleep(remaining)
                waited = remaining
                now = self._clock()
        self._last = now
        return waited

    def reset(self) -> None:
        """Forget the last call so the next ``wait`` returns immediately."""
        self._last = None
