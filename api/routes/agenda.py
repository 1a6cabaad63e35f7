"""
Staff agenda endpoints.

Bulk generation, day sync, staged change commits, and direct booking and
cancellation of slots from the web agenda.
"""

import logging
from datetime import date
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status

from agent.scheduling.bulk_availability import InvalidDateRangeError
from agent.scheduling.pending_edits import BookedSlotToggleError
from agent.services.agenda_service import AgendaService
from agent.transactions.booking_transaction import BookingErrorCode, BookingTransaction
from agent.validators.identity_validators import (
    validate_patient_name,
    validate_phone,
    validate_rut,
)
from api.dependencies import (
    get_agenda_service,
    get_booking_transaction,
    get_slot_store,
    get_whatsapp_client,
)
from api.models.agenda import (
    BookSlotRequest,
    BulkGenerateRequest,
    CancelSlotRequest,
    CommitChangesRequest,
)
from database.models import AgendaConfig, PatientIdentity, Slot
from database.slot_store import SlotStore
from shared.whatsapp_client import WhatsAppClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agenda")

BOOKING_ERROR_STATUS: dict[BookingErrorCode, int] = {
    BookingErrorCode.SLOT_TAKEN: status.HTTP_409_CONFLICT,
    BookingErrorCode.SLOT_CLOSED: status.HTTP_409_CONFLICT,
    BookingErrorCode.SLOT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    BookingErrorCode.TECHNICAL_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@router.get("/{center_id}/professionals/{professional_id}/days/{day}/slots")
async def list_day_slots(
    center_id: str,
    professional_id: str,
    day: date,
    store: Annotated[SlotStore, Depends(get_slot_store)],
) -> dict[str, Any]:
    slots = await store.list_day(center_id, professional_id, day.isoformat())
    return {"slots": [slot.model_dump(mode="json") for slot in slots]}


@router.post("/{center_id}/professionals/{professional_id}/bulk")
async def bulk_generate(
    center_id: str,
    professional_id: str,
    request: BulkGenerateRequest,
    agenda: Annotated[AgendaService, Depends(get_agenda_service)],
) -> dict[str, Any]:
    """
    Open slots for a professional across a date range.

    Raises:
        HTTPException 400: date_from is after date_to
    """
    try:
        result = await agenda.bulk_generate(
            center_id=center_id,
            professional_id=professional_id,
            date_from=request.date_from,
            date_to=request.date_to,
            config=request.config,
            include_saturday=request.include_saturday,
            include_sunday=request.include_sunday,
        )
    except InvalidDateRangeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "created": result.created,
        "skipped_existing": result.skipped_existing,
        "failed": result.failed,
    }


@router.post("/{center_id}/professionals/{professional_id}/days/{day}/sync")
async def sync_day(
    center_id: str,
    professional_id: str,
    day: date,
    config: AgendaConfig,
    agenda: Annotated[AgendaService, Depends(get_agenda_service)],
) -> dict[str, Any]:
    report = await agenda.sync_day(center_id, professional_id, day, config)
    return {
        "upserted": report.upserted,
        "deactivated": report.deactivated,
        "failed": report.failed,
        "batches": report.batches,
    }


@router.post("/{center_id}/professionals/{professional_id}/days/{day}/changes")
async def commit_changes(
    center_id: str,
    professional_id: str,
    day: date,
    request: CommitChangesRequest,
    agenda: Annotated[AgendaService, Depends(get_agenda_service)],
) -> dict[str, Any]:
    """
    Raises:
        HTTPException 409: a booked slot was asked to be opened or closed
    """
    try:
        summary = await agenda.commit_changes(
            center_id,
            professional_id,
            day,
            open_times=request.open_times,
            close_slot_ids=request.close_slot_ids,
        )
    except BookedSlotToggleError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {"opened": summary.opened, "closed": summary.closed, "failed": summary.failed}


@router.post("/slots/{slot_id}/book")
async def book_slot(
    slot_id: str,
    request: BookSlotRequest,
    booking: Annotated[BookingTransaction, Depends(get_booking_transaction)],
) -> dict[str, Any]:
    """
    Book an existing slot for a patient.

    Raises:
        HTTPException 400: invalid patient data
        HTTPException 409: slot already booked or closed
        HTTPException 404: slot does not exist
        HTTPException 503: storage failure
    """
    name = validate_patient_name(request.patient_name)
    rut = validate_rut(request.patient_rut)
    phone = validate_phone(request.patient_phone)
    errors = [r.error_code for r in (name, rut, phone) if not r.valid]
    if errors:
        raise HTTPException(status_code=400, detail={"error": "Validation error", "codes": errors})

    patient = PatientIdentity(name=name.value, rut=rut.value, phone=phone.value)
    result = await booking.book(slot_id, patient, booked_via=request.booked_via)

    if not result.success:
        raise HTTPException(
            status_code=BOOKING_ERROR_STATUS[result.error_code],
            detail={"error": result.error_code.value},
        )
    return {"success": True, "slot": result.slot.model_dump(mode="json")}


@router.post("/slots/{slot_id}/cancel")
async def cancel_slot(
    slot_id: str,
    request: CancelSlotRequest,
    booking: Annotated[BookingTransaction, Depends(get_booking_transaction)],
    whatsapp: Annotated[WhatsAppClient, Depends(get_whatsapp_client)],
) -> dict[str, Any]:
    """Release a booking. Cancelling a slot that is not booked is a no-op."""

    async def _notify(slot: Slot) -> None:
        await whatsapp.send_text(
            slot.patient_phone.lstrip("+"),
            f"Estimado/a {slot.patient_name}, su cita del {slot.date} a las {slot.time} "
            "ha sido cancelada. Para reagendar, escríbanos por este medio.",
        )

    result = await booking.cancel(slot_id, notify_patient=_notify if request.notify_patient else None)
    return {"cancelled": result.cancelled}
