"""Cooperative cancellation token passed through the submit/poll call chain."""

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class CancellationToken:
    """Flag checked at every suspension point of a generation job.

    Cancelling only stops the client from waiting; it never claims that the
    remote provider stopped computing.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> bool:
        """Request cancellation.

        Returns:
            bool: False if the token was already cancelled
        """
        if self._cancelled:
            return False
        self._cancelled = True
        if self._event is not None:
            self._event.set()
        logger.info(f"Cancellation requested for {self.name or 'job'}")
        return True

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()
