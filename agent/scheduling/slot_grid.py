"""
Slot grid generation.

A professional's day is split into fixed-length slots from the configured
start time up to (but excluding) the end time. Every slot gets a
deterministic id so regenerating the same day always addresses the same
documents.
"""

from datetime import date, datetime, time, timedelta

from database.models import AgendaConfig, Slot, SlotStatus, parse_hhmm

# Fixed calendar day used for pure time-of-day arithmetic
REFERENCE_DATE = date(2000, 1, 1)


def generate_slot_id(center_id: str, professional_id: str, day: str, slot_time: str) -> str:
    """
    Build the deterministic slot id.

    Example:
        >>> generate_slot_id("LosAndes", "dr1", "2026-03-02", "08:20")
        'slot_LosAndes_dr1_2026-03-02_0820'
    """
    return f"slot_{center_id}_{professional_id}_{day}_{slot_time.replace(':', '')}"


def generate_slot_times(config: AgendaConfig) -> list[str]:
    """
    Return the HH:MM labels of a day's grid in chronological order.

    A slot is emitted only while its start is strictly before end_time, so a
    duration that does not divide the window never overflows it.
    """
    start = datetime.combine(REFERENCE_DATE, time(*parse_hhmm(config.start_time)))
    end = datetime.combine(REFERENCE_DATE, time(*parse_hhmm(config.end_time)))
    step = timedelta(minutes=config.slot_duration)

    times: list[str] = []
    cursor = start
    while cursor < end:
        times.append(cursor.strftime("%H:%M"))
        cursor += step
    return times


def generate_day_slots(
    day: date,
    professional_id: str,
    center_id: str,
    config: AgendaConfig,
) -> list[Slot]:
    """
    Generate the available slots of one professional for one day.

    Pure function: no store access, safe to call repeatedly.
    """
    day_str = day.isoformat()
    return [
        Slot(
            id=generate_slot_id(center_id, professional_id, day_str, slot_time),
            center_id=center_id,
            professional_id=professional_id,
            date=day_str,
            time=slot_time,
            status=SlotStatus.AVAILABLE,
        )
        for slot_time in generate_slot_times(config)
    ]
