"""
Agenda Service - staff-side availability operations.

Operations:
- bulk_generate: open slots for a professional across a date range
- sync_day: regenerate one day from the agenda config and delta-sync it
- commit_changes: apply a batch of staged open/close edits for one day

Each completed operation is recorded in the audit log.
"""

import logging
from dataclasses import dataclass, field
from datetime import date

from agent.scheduling.bulk_availability import count_grid_slots, generate_bulk_availability
from agent.scheduling.pending_edits import CommitSummary, PendingEditStore
from agent.scheduling.reconciliation import SyncPlan, SyncReport, apply_sync_plan, reconcile
from agent.scheduling.slot_grid import generate_day_slots
from agent.services.audit_service import AuditService
from database.models import AgendaConfig, Slot
from database.slot_store import SlotStore

logger = logging.getLogger(__name__)


@dataclass
class BulkGenerationResult:
    created: int = 0
    skipped_existing: int = 0
    failed: list[str] = field(default_factory=list)


class AgendaService:
    def __init__(self, store: SlotStore, audit: AuditService | None = None, batch_size: int = 500):
        self._store = store
        self._audit = audit
        self._batch_size = batch_size

    async def bulk_generate(
        self,
        center_id: str,
        professional_id: str,
        date_from: date,
        date_to: date,
        config: AgendaConfig,
        include_saturday: bool = False,
        include_sunday: bool = False,
    ) -> BulkGenerationResult:
        """
        Create every missing slot in [date_from, date_to].

        Existing slots (open, closed or booked) are never touched.

        Raises:
            InvalidDateRangeError: date_from > date_to
        """
        existing = await self._store.list_range(center_id, professional_id, date_from, date_to)
        new_slots = generate_bulk_availability(
            center_id=center_id,
            professional_id=professional_id,
            date_from=date_from,
            date_to=date_to,
            config=config,
            include_saturday=include_saturday,
            include_sunday=include_sunday,
            existing_slots=existing,
        )

        report = await apply_sync_plan(self._store, SyncPlan(upserts=new_slots), batch_size=self._batch_size)
        grid_size = count_grid_slots(
            center_id, professional_id, date_from, date_to, config, include_saturday, include_sunday
        )
        result = BulkGenerationResult(
            created=len(report.upserted),
            skipped_existing=grid_size - len(new_slots),
            failed=report.failed,
        )

        if self._audit is not None:
            await self._audit.log_activity(
                action="BULK_GENERATE_SLOTS",
                entity_type="agenda",
                entity_id=professional_id,
                details={
                    "center_id": center_id,
                    "date_from": date_from.isoformat(),
                    "date_to": date_to.isoformat(),
                    "include_saturday": include_saturday,
                    "include_sunday": include_sunday,
                    "created": result.created,
                    "failed": len(result.failed),
                },
            )
        return result

    async def sync_day(
        self,
        center_id: str,
        professional_id: str,
        day: date,
        config: AgendaConfig,
    ) -> SyncReport:
        """
        Make one day match the grid defined by config.

        Booked slots are kept as they are: they are never overwritten by the
        regenerated grid nor deactivated when the grid no longer contains them.
        """
        day_str = day.isoformat()
        current = await self._store.list_day(center_id, professional_id, day_str)
        booked = {slot.id: slot for slot in current if slot.is_booked}

        target: list[Slot] = [
            booked.get(slot.id, slot)
            for slot in generate_day_slots(day, professional_id, center_id, config)
        ]

        plan = reconcile(current, target, preserve_booked=True)
        report = await apply_sync_plan(self._store, plan, batch_size=self._batch_size)

        if self._audit is not None:
            await self._audit.log_activity(
                action="SYNC_SLOTS",
                entity_type="agenda",
                entity_id=professional_id,
                details={
                    "center_id": center_id,
                    "date": day_str,
                    "upserted": len(report.upserted),
                    "deactivated": len(report.deactivated),
                    "failed": len(report.failed),
                },
            )
        return report

    async def commit_changes(
        self,
        center_id: str,
        professional_id: str,
        day: date,
        open_times: list[str],
        close_slot_ids: list[str],
    ) -> CommitSummary:
        """
        Open and close slots of one day in a single commit.

        Opening an already open time and closing an unknown or already closed
        slot are ignored.

        Raises:
            BookedSlotToggleError: a slot to open or close is booked
        """
        day_str = day.isoformat()
        current = await self._store.list_day(center_id, professional_id, day_str)
        by_time = {slot.time: slot for slot in current}
        by_id = {slot.id: slot for slot in current}

        edits = PendingEditStore(center_id)
        edits.select(professional_id, day_str)

        for slot_time in dict.fromkeys(open_times):
            existing = by_time.get(slot_time)
            if existing is not None and existing.is_open:
                continue
            edits.toggle(slot_time, existing)

        for slot_id in dict.fromkeys(close_slot_ids):
            existing = by_id.get(slot_id)
            if existing is None:
                logger.warning(f"Close requested for unknown slot {slot_id}", extra={"slot_id": slot_id})
                continue
            if not existing.active and not existing.is_booked:
                continue
            edits.toggle(existing.time, existing)

        summary = await edits.commit(self._store, batch_size=self._batch_size)

        if self._audit is not None:
            await self._audit.log_activity(
                action="COMMIT_PENDING_EDITS",
                entity_type="agenda",
                entity_id=professional_id,
                details={
                    "center_id": center_id,
                    "date": day_str,
                    "opened": summary.opened,
                    "closed": summary.closed,
                    "failed": len(summary.failed),
                },
            )
        return summary
