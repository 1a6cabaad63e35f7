"""Request models for the staff agenda endpoints."""

from datetime import date

from pydantic import BaseModel, Field, field_validator

from database.models import AgendaConfig, parse_hhmm


class BulkGenerateRequest(BaseModel):
    date_from: date
    date_to: date
    config: AgendaConfig = Field(default_factory=AgendaConfig)
    include_saturday: bool = False
    include_sunday: bool = False


class CommitChangesRequest(BaseModel):
    """Staged edits for one professional's day."""

    open_times: list[str] = []
    close_slot_ids: list[str] = []

    @field_validator("open_times")
    @classmethod
    def normalize_times(cls, v: list[str]) -> list[str]:
        normalized = []
        for value in v:
            hours, minutes = parse_hhmm(value)
            normalized.append(f"{hours:02d}:{minutes:02d}")
        return normalized


class BookSlotRequest(BaseModel):
    patient_name: str
    patient_rut: str
    patient_phone: str
    booked_via: str = "web"


class CancelSlotRequest(BaseModel):
    notify_patient: bool = True
