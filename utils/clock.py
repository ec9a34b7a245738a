"""Clock abstraction used by the polling scheduler.

The scheduler never touches ``time`` or ``asyncio.sleep`` directly so tests
can drive elapsed time deterministically.
"""

import asyncio
import time
from typing import Optional, Protocol

from utils.cancellation import CancellationToken


class Clock(Protocol):
    """Source of monotonic time and of cancellable sleeps."""

    def now(self) -> float:
        ...

    def wall_time(self) -> float:
        ...

    async def sleep(self, seconds: float, token: Optional[CancellationToken] = None) -> None:
        ...


class SystemClock:
    """Clock backed by the event loop and the system time."""

    def now(self) -> float:
        return time.monotonic()

    def wall_time(self) -> float:
        return time.time()

    async def sleep(self, seconds: float, token: Optional[CancellationToken] = None) -> None:
        """Sleep for ``seconds``, waking early if ``token`` is cancelled."""
        if token is None:
            await asyncio.sleep(seconds)
            return
        if token.cancelled:
            return
        try:
            await asyncio.wait_for(token.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass
