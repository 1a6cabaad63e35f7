"""
Unit tests for pending_edits.py - staged open/close edits.

Tests coverage:
- toggle() stages opens for missing/closed slots and closes for open slots
- Toggling twice returns the store to its prior state
- Booked slots cannot be toggled
- Changing professional or date resets staged edits
- commit() writes opens/closes and keeps failed edits staged
"""

from unittest.mock import AsyncMock

import pytest

from agent.scheduling.pending_edits import BookedSlotToggleError, PendingEditStore
from agent.scheduling.slot_grid import generate_slot_id
from database.models import Slot, SlotStatus
from database.slot_store import InMemorySlotStore

DAY = "2026-03-02"


def make_slot(time: str, **overrides) -> Slot:
    data = {
        "id": generate_slot_id("LosAndes", "dr1", DAY, time),
        "center_id": "LosAndes",
        "professional_id": "dr1",
        "date": DAY,
        "time": time,
    }
    data.update(overrides)
    return Slot(**data)


@pytest.fixture
def edits() -> PendingEditStore:
    store = PendingEditStore(center_id="LosAndes")
    store.select("dr1", DAY)
    return store


class TestToggle:
    def test_missing_slot_is_staged_as_open(self, edits):
        edits.toggle("08:00", existing_slot=None)

        assert edits.adds == {"08:00"}
        assert edits.deletes == frozenset()

    def test_open_slot_is_staged_as_close(self, edits):
        slot = make_slot("08:20")
        edits.toggle("08:20", existing_slot=slot)

        assert edits.deletes == {slot.id}
        assert edits.adds == frozenset()

    def test_closed_slot_is_staged_as_reopen(self, edits):
        edits.toggle("08:40", existing_slot=make_slot("08:40", active=False))

        assert edits.adds == {"08:40"}

    @pytest.mark.parametrize("existing", [None, make_slot("08:20")])
    def test_toggle_twice_is_a_no_op(self, edits, existing):
        edits.toggle("08:00", existing_slot=None)
        before = (edits.adds, edits.deletes)

        edits.toggle("08:20", existing_slot=existing)
        edits.toggle("08:20", existing_slot=existing)

        assert (edits.adds, edits.deletes) == before

    def test_booked_slot_cannot_be_toggled(self, edits):
        booked = make_slot("08:00", status=SlotStatus.BOOKED, patient_rut="12.345.678-5")

        with pytest.raises(BookedSlotToggleError):
            edits.toggle("08:00", existing_slot=booked)
        assert not edits.has_pending_changes()

    def test_toggle_without_scope_raises(self):
        with pytest.raises(RuntimeError):
            PendingEditStore(center_id="LosAndes").toggle("08:00", existing_slot=None)


class TestScope:
    def test_changing_date_resets_edits(self, edits):
        edits.toggle("08:00", existing_slot=None)

        edits.select("dr1", "2026-03-03")

        assert not edits.has_pending_changes()
        assert edits.scope == ("dr1", "2026-03-03")

    def test_changing_professional_resets_edits(self, edits):
        edits.toggle("08:00", existing_slot=None)

        edits.select("dr2", DAY)

        assert not edits.has_pending_changes()

    def test_reselecting_same_scope_keeps_edits(self, edits):
        edits.toggle("08:00", existing_slot=None)

        edits.select("dr1", DAY)

        assert edits.adds == {"08:00"}


class TestCommit:
    @pytest.mark.asyncio
    async def test_commit_opens_and_closes(self, edits):
        open_slot = make_slot("08:20")
        store = InMemorySlotStore([open_slot])
        edits.toggle("08:00", existing_slot=None)
        edits.toggle("08:20", existing_slot=open_slot)

        summary = await edits.commit(store)

        assert summary.opened == 1
        assert summary.closed == 1
        assert summary.failed == []
        assert not edits.has_pending_changes()

        opened = await store.get(generate_slot_id("LosAndes", "dr1", DAY, "08:00"))
        assert opened.is_open
        closed = await store.get(open_slot.id)
        assert closed.active is False

    @pytest.mark.asyncio
    async def test_failed_edits_stay_staged(self, edits):
        store = InMemorySlotStore()
        store.transact = AsyncMock(side_effect=ConnectionError("store unavailable"))
        edits.toggle("08:00", existing_slot=None)

        summary = await edits.commit(store)

        assert summary.opened == 0
        assert summary.failed == [generate_slot_id("LosAndes", "dr1", DAY, "08:00")]
        assert edits.adds == {"08:00"}

    @pytest.mark.asyncio
    async def test_commit_without_changes_is_empty(self, edits):
        summary = await edits.commit(InMemorySlotStore())

        assert (summary.opened, summary.closed, summary.failed) == (0, 0, [])
