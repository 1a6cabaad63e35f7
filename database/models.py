"""
Document models for the scheduling store.

Slots, agenda configuration and staff documents are pydantic models that
serialize to JSON documents in Redis:
- Slot: one bookable time unit (an appointment in "available" or "booked" state)
- AgendaConfig: per-professional grid configuration
- StaffMember: a professional offered in the booking flow
- PatientIdentity: identity fields written when a slot is booked
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ALLOWED_SLOT_DURATIONS = (15, 20, 25, 30, 45, 60)

DEFAULT_START_TIME = "08:00"
DEFAULT_END_TIME = "21:00"
DEFAULT_SLOT_DURATION = 20


def parse_hhmm(value: str) -> tuple[int, int]:
    """Parse an "HH:MM" 24h string into (hours, minutes)."""
    try:
        hours_str, minutes_str = value.split(":")
        hours, minutes = int(hours_str), int(minutes_str)
    except (AttributeError, ValueError) as e:
        raise ValueError(f"Invalid HH:MM time: {value!r}") from e
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid HH:MM time: {value!r}")
    return hours, minutes


class SlotStatus(str, Enum):
    """Booking status of a slot."""

    AVAILABLE = "available"
    BOOKED = "booked"


class AgendaConfig(BaseModel):
    """Slot grid configuration for one professional."""

    slot_duration: int = Field(default=DEFAULT_SLOT_DURATION)
    start_time: str = Field(default=DEFAULT_START_TIME)
    end_time: str = Field(default=DEFAULT_END_TIME)

    @field_validator("slot_duration")
    @classmethod
    def validate_slot_duration(cls, v: int) -> int:
        if v not in ALLOWED_SLOT_DURATIONS:
            raise ValueError(
                f"slot_duration must be one of {ALLOWED_SLOT_DURATIONS}, got {v}"
            )
        return v

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_hhmm(cls, v: str) -> str:
        hours, minutes = parse_hhmm(v)
        return f"{hours:02d}:{minutes:02d}"

    @model_validator(mode="after")
    def validate_range(self) -> "AgendaConfig":
        if parse_hhmm(self.start_time) >= parse_hhmm(self.end_time):
            raise ValueError(
                f"start_time ({self.start_time}) must be before end_time ({self.end_time})"
            )
        return self


class PatientIdentity(BaseModel):
    """Identity fields collected for a booking."""

    name: str
    rut: str
    phone: str


class Slot(BaseModel):
    """
    A bookable time slot.

    The id is derived from (center_id, professional_id, date, time) so that
    regenerating the same slot always addresses the same document.
    Closing a slot sets active=False; slots are never hard-deleted.
    """

    model_config = ConfigDict(use_enum_values=False)

    id: str
    center_id: str
    professional_id: str
    date: str  # ISO YYYY-MM-DD
    time: str  # HH:MM, 24h
    status: SlotStatus = SlotStatus.AVAILABLE
    active: bool = True
    generated: bool = True  # False for one-off slots created by hand

    patient_name: str = ""
    patient_rut: str = ""
    patient_phone: str = ""
    booked_via: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    booked_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    delete_reason: Optional[str] = None

    @property
    def is_open(self) -> bool:
        """Active and not booked."""
        return self.active and self.status == SlotStatus.AVAILABLE

    @property
    def is_booked(self) -> bool:
        return self.status == SlotStatus.BOOKED


class StaffMember(BaseModel):
    """Professional document from the center's staff directory."""

    id: str
    full_name: str
    specialty: Optional[str] = None
    active: bool = True
    visible_in_booking: bool = True
    agenda_config: Optional[AgendaConfig] = None
