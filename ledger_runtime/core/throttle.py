"""
Request throttle shared by every call against one rate-limit budget.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

from .recovery.errors import InvalidConfigurationError

logger = logging.getLogger(__name__)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class Throttle:
    """
    Spaces successive calls at least `min_delay_ms` apart.

    Waiters queue on an asyncio.Lock, which wakes them in arrival order
    (FIFO). The lock is held from computing the delay until the actual
    release time is recorded, so a late wake-up pushes every later caller
    back and a caller cancelled mid-sleep leaves no reservation behind.
    Bound to one event loop; not safe to share across threads.
    """

    def __init__(
        self,
        min_delay_ms: float = 100,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        if min_delay_ms < 0:
            raise InvalidConfigurationError(
                f"Throttle delay must be non-negative, got {min_delay_ms}",
                setting="min_delay_ms",
            )
        self.min_delay_ms = min_delay_ms
        self._clock = clock or _monotonic_ms
        self._sleep = sleep or asyncio.sleep
        self._lock = asyncio.Lock()
        self._last_request_time: Optional[float] = None

    @property
    def last_request_time(self) -> Optional[float]:
        """Release time (ms) of the most recent call."""
        return self._last_request_time

    def _remaining_ms(self) -> float:
        if self._last_request_time is None:
            return 0
        return self._last_request_time + self.min_delay_ms - self._clock()

    async def wait(self) -> None:
        async with self._lock:
            delay_ms = self._remaining_ms()
            if delay_ms > 0:
                logger.debug(f"[throttle] Delaying request by {delay_ms:.1f}ms")
            # Loop covers a sleep that returns marginally early
            while delay_ms > 0:
                await self._sleep(delay_ms / 1000)
                delay_ms = self._remaining_ms()
            self._last_request_time = self._clock()

    def reset(self) -> None:
        """Forget the last call so the next `wait()` returns immediately."""
        self._last_request_time = None
