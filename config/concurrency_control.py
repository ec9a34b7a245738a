# -*- coding: utf-8 -*-
"""
Single-flight control for generate actions

One logical slot (the main input surface, a gallery item, ...) may have at
most one generation in flight. A second generate action on a busy slot is
rejected immediately rather than queued behind the first one.
"""

import logging
from typing import Dict, Optional

from config.error_policies import DuplicateSubmissionError

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_SLOT = "main"


class SlotGuard:
    """
    Tracks which logical slots currently own an in-flight generation.

    All calls happen on the event loop between suspension points, so plain
    dictionary updates are enough.
    """

    def __init__(self):
        self._owners: Dict[str, str] = {}

    def acquire(self, slot: str, owner: str) -> None:
        """
        Claim a slot for a request.

        Args:
            slot (str): Logical slot name
            owner (str): Request id claiming the slot

        Raises:
            DuplicateSubmissionError: If the slot is already held
        """
        holder = self._owners.get(slot)
        if holder is not None:
            logger.warning(f"Rejected generate for busy slot '{slot}' (held by {holder}, requested by {owner})")
            raise DuplicateSubmissionError(slot)

        self._owners[slot] = owner
        logger.info(f"Slot '{slot}' acquired by {owner}")

    def release(self, slot: str, owner: str) -> bool:
        """
        Release a slot if it is still held by the given owner.

        Returns:
            bool: True if the slot was released
        """
        if self._owners.get(slot) != owner:
            return False

        del self._owners[slot]
        logger.info(f"Slot '{slot}' released by {owner}")
        return True

    def holder(self, slot: str) -> Optional[str]:
        return self._owners.get(slot)

    def is_busy(self, slot: str) -> bool:
        return slot in self._owners

    def get_status(self) -> dict:
        """
        Get the current status of all held slots.

        Returns:
            dict: Slot status information
        """
        return {
            "busy_slots": sorted(self._owners),
            "owners": dict(self._owners),
        }
