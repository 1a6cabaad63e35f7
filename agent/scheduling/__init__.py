"""
Slot scheduling core.

Public exports:
    - generate_slot_id / generate_day_slots: deterministic slot grid
    - PendingEditStore: staged open/close edits for one professional's day
    - reconcile / apply_sync_plan: delta sync between current and target slots
    - generate_bulk_availability: grid generation across a date range
"""

from agent.scheduling.bulk_availability import InvalidDateRangeError, generate_bulk_availability
from agent.scheduling.pending_edits import BookedSlotToggleError, CommitSummary, PendingEditStore
from agent.scheduling.reconciliation import SyncPlan, SyncReport, apply_sync_plan, reconcile
from agent.scheduling.slot_grid import generate_day_slots, generate_slot_id, generate_slot_times

__all__ = [
    "BookedSlotToggleError",
    "CommitSummary",
    "InvalidDateRangeError",
    "PendingEditStore",
    "SyncPlan",
    "SyncReport",
    "apply_sync_plan",
    "generate_bulk_availability",
    "generate_day_slots",
    "generate_slot_id",
    "generate_slot_times",
    "reconcile",
]
