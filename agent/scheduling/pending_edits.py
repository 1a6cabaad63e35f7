"""
Staged open/close edits for one professional's day.

Staff toggle slots on the agenda grid; nothing is written until commit().
The store holds two disjoint sets scoped to a (professional_id, date) pair:
- adds: HH:MM times with no open slot yet (to be opened)
- deletes: ids of open, unbooked slots (to be closed)

Selecting a different professional or date drops every staged edit.
"""

import logging
from dataclasses import dataclass, field

from agent.scheduling.reconciliation import SyncPlan, apply_sync_plan
from agent.scheduling.slot_grid import generate_slot_id
from database.models import Slot, SlotStatus
from database.slot_store import SlotStore

logger = logging.getLogger(__name__)

MANUAL_CLOSE_REASON = "Cierre manual de bloque"


class BookedSlotToggleError(ValueError):
    """A booked slot cannot be opened/closed; it must be cancelled first."""


@dataclass
class CommitSummary:
    opened: int = 0
    closed: int = 0
    failed: list[str] = field(default_factory=list)


class PendingEditStore:
    """
    Staging area for agenda edits.

    Example:
        >>> edits = PendingEditStore(center_id="LosAndes")
        >>> edits.select("dr1", "2026-03-02")
        >>> edits.toggle("09:00", existing_slot=None)
        >>> edits.has_pending_changes()
        True
    """

    def __init__(self, center_id: str):
        self.center_id = center_id
        self._scope: tuple[str, str] | None = None
        self._adds: set[str] = set()
        self._deletes: set[str] = set()

    @property
    def scope(self) -> tuple[str, str] | None:
        return self._scope

    @property
    def adds(self) -> frozenset[str]:
        return frozenset(self._adds)

    @property
    def deletes(self) -> frozenset[str]:
        return frozenset(self._deletes)

    def select(self, professional_id: str, day: str) -> None:
        """Scope the store to a professional and day, resetting on change."""
        new_scope = (professional_id, day)
        if new_scope != self._scope:
            if self.has_pending_changes():
                logger.info(
                    f"Discarding {len(self._adds)} staged opens and {len(self._deletes)} "
                    f"staged closes on context switch {self._scope} -> {new_scope}"
                )
            self.reset()
            self._scope = new_scope

    def toggle(self, slot_time: str, existing_slot: Slot | None) -> None:
        """
        Stage (or unstage) opening/closing the slot at slot_time.

        Args:
            slot_time: HH:MM of the grid cell
            existing_slot: Persisted slot for that cell, if any

        Raises:
            BookedSlotToggleError: existing_slot is booked
            RuntimeError: no professional/date selected
        """
        if self._scope is None:
            raise RuntimeError("Select a professional and date before staging edits")

        if existing_slot is not None and existing_slot.is_booked:
            raise BookedSlotToggleError(
                f"Slot {existing_slot.id} is booked; cancel the appointment instead"
            )

        if existing_slot is not None and existing_slot.active:
            self._toggle_member(self._deletes, existing_slot.id)
        else:
            # Missing or closed slot: (re)open it
            self._toggle_member(self._adds, slot_time)

    @staticmethod
    def _toggle_member(staged: set[str], value: str) -> None:
        if value in staged:
            staged.discard(value)
        else:
            staged.add(value)

    def has_pending_changes(self) -> bool:
        return bool(self._adds) or bool(self._deletes)

    def reset(self) -> None:
        self._adds.clear()
        self._deletes.clear()

    def to_sync_plan(self) -> SyncPlan:
        """Translate staged edits into upserts (opens) and deactivations (closes)."""
        if self._scope is None:
            return SyncPlan()

        professional_id, day = self._scope
        upserts = [
            Slot(
                id=generate_slot_id(self.center_id, professional_id, day, slot_time),
                center_id=self.center_id,
                professional_id=professional_id,
                date=day,
                time=slot_time,
                status=SlotStatus.AVAILABLE,
                active=True,
            )
            for slot_time in sorted(self._adds)
        ]
        return SyncPlan(upserts=upserts, deactivations=sorted(self._deletes))

    async def commit(self, store: SlotStore, batch_size: int = 500) -> CommitSummary:
        """
        Apply staged edits, best effort per item.

        Applied edits are removed from the staging sets; failed ones stay
        staged so they can be retried.
        """
        plan = self.to_sync_plan()
        if plan.is_empty:
            return CommitSummary()

        report = await apply_sync_plan(store, plan, batch_size=batch_size, reason=MANUAL_CLOSE_REASON)

        opened_times = {s.time for s in plan.upserts if s.id in set(report.upserted)}
        self._adds -= opened_times
        self._deletes -= set(report.deactivated)

        summary = CommitSummary(
            opened=len(report.upserted),
            closed=len(report.deactivated),
            failed=list(report.failed),
        )
        logger.info(
            f"Committed staged edits | scope={self._scope} | opened={summary.opened} "
            f"| closed={summary.closed} | failed={len(summary.failed)}"
        )
        return summary
