"""
Staff directory cache - cache-aside with TTL.

The chat booking flow lists professionals on every "book" request. Instead of
hitting the store each time, StaffCache keeps the last loaded directory and
refreshes it when older than its TTL. A cache instance is created by the
application and passed to the conversation handler; there is no module-level
cache state.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable

from database.models import StaffMember

logger = logging.getLogger(__name__)

StaffLoader = Callable[[], Awaitable[list[StaffMember]]]


class StaffCache:
    """
    Cache-aside holder for the bookable staff list of one center.

    Example:
        >>> cache = StaffCache(loader=lambda: directory.list_bookable_staff("LosAndes"), ttl_seconds=600)
        >>> staff = await cache.get_or_refresh()
    """

    def __init__(
        self,
        loader: StaffLoader,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: list[StaffMember] | None = None
        self._loaded_at: float = 0.0
        self._lock = asyncio.Lock()

    async def get_or_refresh(self, ttl_seconds: float | None = None) -> list[StaffMember]:
        """
        Return cached staff, reloading when the entry is older than the TTL.

        On loader failure the stale list is returned (empty if never loaded).
        """
        ttl = self._ttl_seconds if ttl_seconds is None else ttl_seconds

        async with self._lock:
            now = self._clock()
            if self._data is not None and (now - self._loaded_at) < ttl:
                return self._data

            logger.info("Refreshing staff cache")
            try:
                self._data = await self._loader()
                self._loaded_at = now
                logger.info(f"Staff cache loaded: {len(self._data)} professionals")
            except Exception as e:
                logger.error(f"Error refreshing staff cache: {e}", exc_info=True)
                return self._data or []

            return self._data

    async def find(self, staff_id: str) -> StaffMember | None:
        for member in await self.get_or_refresh():
            if member.id == staff_id:
                return member
        return None

    def clear(self) -> None:
        """Drop cached data so the next read hits the store."""
        self._data = None
        self._loaded_at = 0.0
        logger.info("Staff cache cleared")
