"""
Unit tests for bulk_availability.py - grid generation across a date range.

Tests coverage:
- Weekend filter (a 7-day week without weekends yields 5 days)
- Including Saturday and/or Sunday
- Existing slots for the professional are skipped by (date, time)
- Invalid ranges are rejected
"""

from datetime import date

import pytest

from agent.scheduling.bulk_availability import (
    InvalidDateRangeError,
    generate_bulk_availability,
    is_day_included,
)
from agent.scheduling.slot_grid import generate_day_slots
from database.models import SlotStatus

MONDAY = date(2026, 3, 2)
SUNDAY = date(2026, 3, 8)


def generate(config, existing=None, **flags):
    return generate_bulk_availability(
        center_id="LosAndes",
        professional_id="dr1",
        date_from=MONDAY,
        date_to=SUNDAY,
        config=config,
        include_saturday=flags.get("include_saturday", False),
        include_sunday=flags.get("include_sunday", False),
        existing_slots=existing or [],
    )


class TestWeekdayFilter:
    def test_week_without_weekend_has_five_days(self, agenda_config):
        slots = generate(agenda_config)

        days = {s.date for s in slots}
        assert len(days) == 5
        assert "2026-03-07" not in days
        assert "2026-03-08" not in days
        assert len(slots) == 5 * 3

    def test_include_saturday_only(self, agenda_config):
        days = {s.date for s in generate(agenda_config, include_saturday=True)}

        assert "2026-03-07" in days
        assert "2026-03-08" not in days
        assert len(days) == 6

    def test_include_both_weekend_days(self, agenda_config):
        days = {s.date for s in generate(agenda_config, include_saturday=True, include_sunday=True)}

        assert len(days) == 7

    def test_is_day_included(self):
        assert is_day_included(MONDAY, False, False)
        assert not is_day_included(date(2026, 3, 7), False, True)
        assert is_day_included(SUNDAY, False, True)


class TestExistingSlots:
    def test_existing_slots_are_skipped(self, agenda_config):
        existing = generate_day_slots(MONDAY, "dr1", "LosAndes", agenda_config)[:2]

        slots = generate(agenda_config, existing=existing)

        monday = [s.time for s in slots if s.date == MONDAY.isoformat()]
        assert monday == ["08:40"]
        assert len(slots) == 5 * 3 - 2

    def test_booked_and_closed_slots_are_also_skipped(self, agenda_config):
        existing = [
            s.model_copy(update={"status": SlotStatus.BOOKED})
            for s in generate_day_slots(MONDAY, "dr1", "LosAndes", agenda_config)[:1]
        ] + [
            s.model_copy(update={"active": False})
            for s in generate_day_slots(MONDAY, "dr1", "LosAndes", agenda_config)[1:2]
        ]

        slots = generate(agenda_config, existing=existing)

        assert [s.time for s in slots if s.date == MONDAY.isoformat()] == ["08:40"]

    def test_other_professionals_slots_do_not_block(self, agenda_config):
        existing = generate_day_slots(MONDAY, "dr2", "LosAndes", agenda_config)

        assert len(generate(agenda_config, existing=existing)) == 5 * 3


class TestDateRange:
    def test_from_after_to_is_rejected(self, agenda_config):
        with pytest.raises(InvalidDateRangeError):
            generate_bulk_availability(
                center_id="LosAndes",
                professional_id="dr1",
                date_from=SUNDAY,
                date_to=MONDAY,
                config=agenda_config,
                include_saturday=False,
                include_sunday=False,
                existing_slots=[],
            )

    def test_single_day_range(self, agenda_config):
        slots = generate_bulk_availability(
            center_id="LosAndes",
            professional_id="dr1",
            date_from=MONDAY,
            date_to=MONDAY,
            config=agenda_config,
            include_saturday=False,
            include_sunday=False,
            existing_slots=[],
        )

        assert [s.time for s in slots] == ["08:00", "08:20", "08:40"]
