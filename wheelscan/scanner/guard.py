"""In-process guard against duplicate scans for the same owner.

Entries expire after a TTL so a crashed run cannot block an owner forever.
Each acquire hands out a token; only the holder of the current token can
release the marker, so a run that was taken over cannot clear its
successor's marker.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable

from wheelscan.core.logging import get_logger


logger = get_logger("scanner.guard")


class ScanGuard:
    """Per-owner in-progress markers with expiry."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._running: dict[str, tuple[float, str]] = {}

    def acquire(self, owner_id: str) -> str | None:
        """
        Mark a scan for ``owner_id`` as running.

        Returns:
            A release token, or None if an unexpired marker already exists
        """
        now = self._clock()
        marker = self._running.get(owner_id)
        if marker is not None:
            started = marker[0]
            if now - started < self.ttl_seconds:
                return None
            logger.warning(f"Scan guard for {owner_id} expired after {now - started:.0f}s, taking over")
        token = uuid.uuid4().hex
        self._running[owner_id] = (now, token)
        return token

    def release(self, owner_id: str, token: str) -> bool:
        """Remove the marker if ``token`` still owns it."""
        marker = self._running.get(owner_id)
        if marker is None or marker[1] != token:
            if marker is not None:
                logger.warning(f"Scan guard for {owner_id} was taken over, leaving the new marker")
            return False
        del self._running[owner_id]
        return True

    def is_running(self, owner_id: str) -> bool:
        marker = self._running.get(owner_id)
        return marker is not None and self._clock() - marker[0] < self.ttl_seconds
