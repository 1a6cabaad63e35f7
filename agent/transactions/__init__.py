"""
Atomic transaction handlers.

Transaction handlers encapsulate read-check-write operations that must be
atomic against the slot store:
- BookingTransaction.book: reserve a slot (aborts with SLOT_TAKEN if booked)
- BookingTransaction.cancel: release a booking (idempotent)
"""

from agent.transactions.booking_transaction import (
    BookingErrorCode,
    BookingResult,
    BookingTransaction,
    CancellationResult,
    SlotTakenError,
)

__all__ = [
    "BookingErrorCode",
    "BookingResult",
    "BookingTransaction",
    "CancellationResult",
    "SlotTakenError",
]
