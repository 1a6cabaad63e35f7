"""
Booking Transaction Handler - conflict-safe slot reservation.

BookingTransaction.book() is the single entry point for reserving a slot,
used by both the chat flow and the staff agenda API. It runs one atomic
read-check-write on the slot document (SlotStore.transact):

1. Read the slot by its deterministic id
2. If it is already booked, abort without writing -> SLOT_TAKEN
3. If staff closed it (active=False), abort without writing -> SLOT_CLOSED
4. Otherwise write status=booked plus the patient identity, keeping the
   original created_at (or creating the document if it did not exist)

Two concurrent bookings of the same slot can never both succeed: the store
transaction guarantees the loser re-reads the booked document.

Audit logging happens AFTER the write, fire-and-forget; audit failures never
undo a booking.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Awaitable, Callable

from agent.services.audit_service import AuditService
from database.models import PatientIdentity, Slot, SlotStatus
from database.slot_store import SlotStore

logger = logging.getLogger(__name__)

PatientNotifier = Callable[[Slot], Awaitable[None]]


class BookingErrorCode(str, Enum):
    SLOT_TAKEN = "SLOT_TAKEN"
    SLOT_CLOSED = "SLOT_CLOSED"
    SLOT_NOT_FOUND = "SLOT_NOT_FOUND"
    TECHNICAL_ERROR = "TECHNICAL_ERROR"


class SlotTakenError(Exception):
    """Raised inside the store transaction to abort a booking of a booked slot."""

    def __init__(self, slot_id: str):
        super().__init__(f"Slot {slot_id} is already booked")
        self.slot_id = slot_id


class SlotClosedError(Exception):
    """Raised inside the store transaction to abort a booking of a closed slot."""


class SlotNotFoundError(Exception):
    """Raised inside the store transaction when there is no document and no template."""


class _NothingToCancel(Exception):
    pass


@dataclass
class BookingResult:
    """
    Result of a booking attempt.

    Attributes:
        success: True if the slot is now booked for the patient
        error_code: SLOT_TAKEN, SLOT_CLOSED, SLOT_NOT_FOUND or TECHNICAL_ERROR
            on failure
        slot: The stored slot on success
    """

    success: bool
    error_code: BookingErrorCode | None = None
    slot: Slot | None = None


@dataclass
class CancellationResult:
    """cancelled is False when the slot was not booked (idempotent no-op)."""

    cancelled: bool
    slot: Slot | None = None


class BookingTransaction:
    """
    Atomic booking and cancellation of slots.

    Example:
        >>> tx = BookingTransaction(store, audit)
        >>> result = await tx.book(slot_id, PatientIdentity(name="Ana", rut="12.345.678-5", phone="+56912345678"))
        >>> result.success
        True
    """

    def __init__(self, store: SlotStore, audit: AuditService | None = None):
        self._store = store
        self._audit = audit

    async def book(
        self,
        slot_id: str,
        patient: PatientIdentity,
        slot_template: Slot | None = None,
        booked_via: str = "web",
    ) -> BookingResult:
        """
        Reserve a slot for a patient with compare-and-set semantics.

        Args:
            slot_id: Deterministic slot id
            patient: Identity written into the slot
            slot_template: Descriptor used to create the document when the
                slot was never persisted (create + book in one step)
            booked_via: Channel tag stored on the slot ("web", "whatsapp")

        Returns:
            BookingResult; never raises
        """
        trace_id = f"{slot_id}_{patient.rut}"
        logger.info(f"[{trace_id}] Starting booking transaction", extra={"slot_id": slot_id})

        def _reserve(current: Slot | None) -> Slot:
            if current is not None and current.is_booked:
                raise SlotTakenError(slot_id)
            if current is not None and not current.active:
                raise SlotClosedError(slot_id)

            base = current or slot_template
            if base is None:
                raise SlotNotFoundError(slot_id)

            return base.model_copy(
                update={
                    "id": slot_id,
                    "status": SlotStatus.BOOKED,
                    "active": True,
                    "patient_name": patient.name,
                    "patient_rut": patient.rut,
                    "patient_phone": patient.phone,
                    "booked_via": booked_via,
                    "booked_at": datetime.now(UTC),
                }
            )

        try:
            booked = await self._store.transact(slot_id, _reserve)
        except SlotTakenError:
            logger.warning(f"[{trace_id}] Slot already booked", extra={"slot_id": slot_id})
            return BookingResult(success=False, error_code=BookingErrorCode.SLOT_TAKEN)
        except SlotClosedError:
            logger.warning(f"[{trace_id}] Slot is closed", extra={"slot_id": slot_id})
            return BookingResult(success=False, error_code=BookingErrorCode.SLOT_CLOSED)
        except SlotNotFoundError:
            logger.warning(f"[{trace_id}] Slot does not exist", extra={"slot_id": slot_id})
            return BookingResult(success=False, error_code=BookingErrorCode.SLOT_NOT_FOUND)
        except Exception as e:
            logger.error(
                f"[{trace_id}] Unexpected error in booking transaction: {e}",
                extra={"slot_id": slot_id},
                exc_info=True,
            )
            return BookingResult(success=False, error_code=BookingErrorCode.TECHNICAL_ERROR)

        logger.info(f"[{trace_id}] Slot booked", extra={"slot_id": slot_id})

        if self._audit is not None:
            await self._audit.log_activity(
                action="BOOK_APPOINTMENT",
                entity_type="appointment",
                entity_id=slot_id,
                details={
                    "professional_id": booked.professional_id,
                    "date": booked.date,
                    "time": booked.time,
                    "patient_rut": booked.patient_rut,
                    "booked_via": booked_via,
                },
            )

        return BookingResult(success=True, slot=booked)

    async def cancel(
        self,
        slot_id: str,
        notify_patient: PatientNotifier | None = None,
    ) -> CancellationResult:
        """
        Release a booking, returning the slot to available.

        Cancelling a slot that is not booked (or does not exist) is a no-op.
        Store errors propagate to the caller.

        Args:
            slot_id: Deterministic slot id
            notify_patient: Optional coroutine called with the booked slot
                (before release) after the write; failures are logged only
        """
        released: dict[str, Slot] = {}

        def _release(current: Slot | None) -> Slot:
            if current is None or not current.is_booked:
                raise _NothingToCancel()
            released["previous"] = current
            return current.model_copy(
                update={
                    "status": SlotStatus.AVAILABLE,
                    "patient_name": "",
                    "patient_rut": "",
                    "patient_phone": "",
                    "booked_via": None,
                    "booked_at": None,
                }
            )

        try:
            slot = await self._store.transact(slot_id, _release)
        except _NothingToCancel:
            logger.info(f"Cancel on non-booked slot {slot_id} ignored", extra={"slot_id": slot_id})
            return CancellationResult(cancelled=False)

        previous = released["previous"]
        logger.info(f"Booking cancelled for slot {slot_id}", extra={"slot_id": slot_id})

        if self._audit is not None:
            await self._audit.log_activity(
                action="CANCEL_APPOINTMENT",
                entity_type="appointment",
                entity_id=slot_id,
                details={
                    "professional_id": previous.professional_id,
                    "date": previous.date,
                    "time": previous.time,
                    "patient_rut": previous.patient_rut,
                },
            )

        if notify_patient is not None and previous.patient_phone:
            try:
                await notify_patient(previous)
            except Exception as e:
                logger.warning(
                    f"Failed to notify patient about cancellation of {slot_id}: {e}",
                    extra={"slot_id": slot_id},
                )

        return CancellationResult(cancelled=True, slot=slot)

