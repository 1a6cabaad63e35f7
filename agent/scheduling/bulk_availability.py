"""
Bulk availability generation over a date range.

For every included day in [date_from, date_to] the professional's grid is
generated and every time that already has a slot document (open, closed or
booked) is skipped, so bulk generation never duplicates or overwrites.
"""

import logging
from datetime import date

from agent.scheduling.slot_grid import generate_day_slots
from database.models import AgendaConfig, Slot
from database.slot_store import iter_days

logger = logging.getLogger(__name__)

SATURDAY = 5
SUNDAY = 6


class InvalidDateRangeError(ValueError):
    """date_from is after date_to."""


def is_day_included(day: date, include_saturday: bool, include_sunday: bool) -> bool:
    weekday = day.weekday()
    if weekday == SATURDAY:
        return include_saturday
    if weekday == SUNDAY:
        return include_sunday
    return True


def generate_bulk_availability(
    center_id: str,
    professional_id: str,
    date_from: date,
    date_to: date,
    config: AgendaConfig,
    include_saturday: bool,
    include_sunday: bool,
    existing_slots: list[Slot],
) -> list[Slot]:
    """
    Generate the new slots for a date range.

    Args:
        center_id: Center owning the agenda
        professional_id: Professional whose agenda is generated
        date_from: First day (inclusive)
        date_to: Last day (inclusive)
        config: Grid configuration
        include_saturday: Generate on Saturdays
        include_sunday: Generate on Sundays
        existing_slots: Slots already stored for the professional in the range

    Returns:
        New slots only, in chronological order

    Raises:
        InvalidDateRangeError: date_from > date_to
    """
    if date_from > date_to:
        raise InvalidDateRangeError(
            f"date_from ({date_from.isoformat()}) is after date_to ({date_to.isoformat()})"
        )

    taken = {
        (s.date, s.time)
        for s in existing_slots
        if s.professional_id == professional_id
    }

    new_slots: list[Slot] = []
    included_days = 0
    for day in iter_days(date_from, date_to):
        if not is_day_included(day, include_saturday, include_sunday):
            continue
        included_days += 1
        new_slots.extend(
            slot
            for slot in generate_day_slots(day, professional_id, center_id, config)
            if (slot.date, slot.time) not in taken
        )

    logger.info(
        f"Bulk availability | professional={professional_id} | "
        f"range={date_from.isoformat()}..{date_to.isoformat()} | days={included_days} | "
        f"new_slots={len(new_slots)}",
        extra={"center_id": center_id, "professional_id": professional_id},
    )
    return new_slots


def count_grid_slots(
    center_id: str,
    professional_id: str,
    date_from: date,
    date_to: date,
    config: AgendaConfig,
    include_saturday: bool,
    include_sunday: bool,
) -> int:
    """Number of grid times on the included days of [date_from, date_to]."""
    return sum(
        len(generate_day_slots(day, professional_id, center_id, config))
        for day in iter_days(date_from, date_to)
        if is_day_included(day, include_saturday, include_sunday)
    )
