"""
Unit tests for availability_service.py - live open-slot queries.

Tests coverage:
- Closed and booked slots are excluded
- Past slots of the current day are excluded
- Results are capped to the list row limit
- upcoming_dates() starts today
"""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from agent.services.availability_service import AvailabilityService
from agent.scheduling.slot_grid import generate_day_slots
from database.models import AgendaConfig, SlotStatus
from database.slot_store import InMemorySlotStore

FIXED_NOW = datetime(2026, 3, 2, 7, 30, tzinfo=ZoneInfo("America/Santiago"))


@pytest.fixture
def day_slots(monday, agenda_config):
    return generate_day_slots(monday, "dr1", "LosAndes", agenda_config)


class TestListOpenSlots:
    @pytest.mark.asyncio
    async def test_closed_and_booked_slots_are_excluded(self, day_slots, monday):
        day_slots[0] = day_slots[0].model_copy(update={"active": False})
        day_slots[1] = day_slots[1].model_copy(update={"status": SlotStatus.BOOKED})
        service = AvailabilityService(InMemorySlotStore(day_slots), now=lambda: FIXED_NOW)

        slots = await service.list_open_slots("LosAndes", "dr1", monday.isoformat())

        assert [s.time for s in slots] == ["08:40"]

    @pytest.mark.asyncio
    async def test_past_slots_of_today_are_excluded(self, day_slots, monday):
        now = FIXED_NOW.replace(hour=8, minute=20)
        service = AvailabilityService(InMemorySlotStore(day_slots), now=lambda: now)

        slots = await service.list_open_slots("LosAndes", "dr1", monday.isoformat())

        assert [s.time for s in slots] == ["08:40"]

    @pytest.mark.asyncio
    async def test_future_days_are_not_time_filtered(self, monday, agenda_config):
        tuesday = monday + timedelta(days=1)
        store = InMemorySlotStore(generate_day_slots(tuesday, "dr1", "LosAndes", agenda_config))
        late = FIXED_NOW.replace(hour=23, minute=0)
        service = AvailabilityService(store, now=lambda: late)

        slots = await service.list_open_slots("LosAndes", "dr1", tuesday.isoformat())

        assert len(slots) == 3

    @pytest.mark.asyncio
    async def test_result_is_capped(self, monday):
        config = AgendaConfig(slot_duration=15, start_time="08:00", end_time="12:00")
        store = InMemorySlotStore(generate_day_slots(monday, "dr1", "LosAndes", config))
        service = AvailabilityService(store, max_rows=10, now=lambda: FIXED_NOW)

        slots = await service.list_open_slots("LosAndes", "dr1", monday.isoformat())

        assert len(slots) == 10
        assert slots[0].time == "08:00"


class TestUpcomingDates:
    def test_starts_today(self, availability):
        dates = availability.upcoming_dates(3)

        assert dates == ["2026-03-02", "2026-03-03", "2026-03-04"]
