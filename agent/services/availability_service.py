"""
Availability service - live slot availability for the chat booking flow.

Always queries the store; the conversation never replays a cached slot list
(after a SLOT_TAKEN conflict the caller must see fresh availability).
"""

import logging
from datetime import datetime, timedelta
from typing import Callable
from zoneinfo import ZoneInfo

from database.models import Slot
from database.slot_store import SlotStore

logger = logging.getLogger(__name__)


class AvailabilityService:
    """Open-slot queries for one center."""

    def __init__(
        self,
        store: SlotStore,
        timezone: str = "America/Santiago",
        max_rows: int = 10,
        now: Callable[[], datetime] | None = None,
    ):
        self._store = store
        self._tz = ZoneInfo(timezone)
        self._max_rows = max_rows
        self._now = now or (lambda: datetime.now(self._tz))

    def today(self) -> str:
        return self._now().date().isoformat()

    def upcoming_dates(self, days_ahead: int) -> list[str]:
        """ISO dates from today (inclusive) for days_ahead days."""
        start = self._now().date()
        return [(start + timedelta(days=offset)).isoformat() for offset in range(days_ahead)]

    async def list_open_slots(self, center_id: str, professional_id: str, day: str) -> list[Slot]:
        """
        Return bookable slots for a professional on a day.

        Excludes closed and booked slots and, for today, slots whose start
        time has already passed. Capped to max_rows (WhatsApp list limit).
        """
        slots = await self._store.list_day(center_id, professional_id, day)
        open_slots = [s for s in slots if s.is_open]

        if day == self.today():
            current_hhmm = self._now().strftime("%H:%M")
            open_slots = [s for s in open_slots if s.time > current_hhmm]

        logger.debug(
            f"Open slots | professional={professional_id} | date={day} | "
            f"count={len(open_slots)}",
            extra={"center_id": center_id, "professional_id": professional_id},
        )
        return open_slots[: self._max_rows]
