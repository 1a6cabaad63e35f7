"""
Delta sync between persisted slots and a desired target set.

reconcile() is pure: it compares the current documents with the target
documents and returns the smallest set of writes that turns one into the
other. apply_sync_plan() executes a plan against the store in batches,
attempting each item independently.

Minimality rules:
- a target slot is written only if it is new or one of the compared fields
  differs from the current document (field-level comparison, so timestamps
  and other metadata never trigger a write)
- a current generated slot missing from the target is deactivated only if it
  is still active, so running reconcile again over unchanged input yields an
  empty plan
"""

import logging
from dataclasses import dataclass, field

from database.models import Slot
from database.slot_store import SlotStore

logger = logging.getLogger(__name__)

# Fields whose difference makes an upsert necessary
COMPARED_FIELDS = ("status", "active", "time", "patient_rut")

DEFAULT_DEACTIVATION_REASON = "Sincronización de bloques (cierre masivo)"


class BookingConflictError(Exception):
    """Raised inside a store transaction when an upsert would overwrite a booking."""


@dataclass
class SyncPlan:
    """Writes needed to move the current slot set to the target set."""

    upserts: list[Slot] = field(default_factory=list)
    deactivations: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.upserts and not self.deactivations

    @property
    def operation_count(self) -> int:
        return len(self.upserts) + len(self.deactivations)


@dataclass
class SyncReport:
    """Outcome of applying a SyncPlan; failures do not stop sibling items."""

    upserted: list[str] = field(default_factory=list)
    deactivated: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    batches: int = 0

    @property
    def success(self) -> bool:
        return not self.failed


def _overwrites_booking(current: Slot | None, target: Slot) -> bool:
    if current is None or not current.is_booked:
        return False
    return not (target.is_booked and target.patient_rut == current.patient_rut)


def needs_update(current: Slot | None, target: Slot) -> bool:
    """True if the target differs from the current document on a compared field."""
    if current is None:
        return True
    return any(getattr(current, name) != getattr(target, name) for name in COMPARED_FIELDS)


def reconcile(
    current: list[Slot],
    target: list[Slot],
    preserve_booked: bool = False,
) -> SyncPlan:
    """
    Compute the minimal write set turning current into target.

    Args:
        current: Persisted slots
        target: Desired slots
        preserve_booked: When True, booked slots absent from the target are
            left alone instead of deactivated. Default False deactivates them
            like any other slot.

    Returns:
        SyncPlan with upserts (target slots to write) and deactivations (ids)

    Example:
        >>> plan = reconcile(current=slots, target=slots)
        >>> plan.is_empty
        True
    """
    current_by_id = {slot.id: slot for slot in current}

    upserts = [t for t in target if needs_update(current_by_id.get(t.id), t)]

    target_ids = {t.id for t in target}
    deactivations = [
        c.id
        for c in current
        if c.generated
        and c.id not in target_ids
        and c.active is not False
        and not (preserve_booked and c.is_booked)
    ]

    return SyncPlan(upserts=upserts, deactivations=deactivations)


def _chunks(items: list, size: int):
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _guarded_upsert(target: Slot):
    def _mutate(current: Slot | None) -> Slot:
        if _overwrites_booking(current, target):
            raise BookingConflictError(target.id)
        return target

    return _mutate


async def apply_sync_plan(
    store: SlotStore,
    plan: SyncPlan,
    batch_size: int = 500,
    reason: str = DEFAULT_DEACTIVATION_REASON,
) -> SyncReport:
    """
    Write a SyncPlan to the store.

    Operations are grouped in batches of batch_size; inside a batch every
    item is attempted on its own and failures are logged and collected
    instead of aborting the rest. Already-applied items are not rolled back.

    Upserts run as store transactions against the live document: a slot
    booked after the plan was computed is left untouched and reported as
    failed.
    """
    report = SyncReport()
    operations: list[tuple[str, Slot | str]] = [("upsert", s) for s in plan.upserts]
    operations += [("deactivate", slot_id) for slot_id in plan.deactivations]

    for batch in _chunks(operations, batch_size):
        report.batches += 1
        for kind, item in batch:
            slot_id = item.id if isinstance(item, Slot) else item
            try:
                if kind == "upsert":
                    await store.transact(slot_id, _guarded_upsert(item))
                    report.upserted.append(slot_id)
                else:
                    if await store.deactivate(slot_id, reason) is None:
                        report.failed.append(slot_id)
                        continue
                    report.deactivated.append(slot_id)
            except BookingConflictError:
                logger.warning(
                    f"Sync upsert skipped for {slot_id}: slot was booked after the plan was computed",
                    extra={"slot_id": slot_id},
                )
                report.failed.append(slot_id)
            except Exception as e:
                logger.error(
                    f"Sync {kind} failed for {slot_id}: {e}",
                    extra={"slot_id": slot_id},
                    exc_info=True,
                )
                report.failed.append(slot_id)

    logger.info(
        f"[Delta Sync] applied upserts={len(report.upserted)} "
        f"deactivations={len(report.deactivated)} failed={len(report.failed)} "
        f"batches={report.batches}"
    )
    return report
