"""
Slot document store.

The scheduling core needs four things from storage:
- get a slot document by its deterministic id
- set (upsert) a slot document
- query the slots of one professional for one day or a date range
- run an atomic read-check-write against a single slot document

RedisSlotStore implements the atomic step with WATCH/MULTI/EXEC (optimistic
concurrency): if another client writes the watched key between our read and
our EXEC, Redis discards the transaction with WatchError and we re-read.
InMemorySlotStore serializes transactions with an asyncio.Lock and is used
by tests and local runs.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, timedelta
from typing import Callable

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from database.models import Slot

logger = logging.getLogger(__name__)

MAX_TRANSACTION_RETRIES = 5

SlotMutation = Callable[[Slot | None], Slot]


class SlotStoreError(Exception):
    """Backing store failure (connection, serialization, retries exhausted)."""


def slot_key(slot_id: str) -> str:
    return f"slot:{slot_id}"


def day_index_key(center_id: str, professional_id: str, day: str) -> str:
    return f"slots:{center_id}:{professional_id}:{day}"


def iter_days(date_from: date, date_to: date):
    """Yield each calendar day in [date_from, date_to]."""
    current = date_from
    while current <= date_to:
        yield current
        current += timedelta(days=1)


def _stamp(slot: Slot, previous: Slot | None) -> Slot:
    """Set updated_at and keep (or initialize) created_at."""
    now = datetime.now(UTC)
    created_at = slot.created_at or (previous.created_at if previous else None) or now
    return slot.model_copy(update={"created_at": created_at, "updated_at": now})


def _sort_key(slot: Slot) -> tuple[str, str]:
    return (slot.date, slot.time)


class SlotStore(ABC):
    """Interface of the slot document store."""

    @abstractmethod
    async def get(self, slot_id: str) -> Slot | None:
        """Return the slot document or None if it does not exist."""

    @abstractmethod
    async def put(self, slot: Slot) -> Slot:
        """Create or overwrite a slot document. Returns the stored document."""

    @abstractmethod
    async def list_day(self, center_id: str, professional_id: str, day: str) -> list[Slot]:
        """Return all slots (open, closed and booked) of a professional on a day, by time."""

    @abstractmethod
    async def transact(self, slot_id: str, mutate: SlotMutation) -> Slot:
        """
        Atomically read a slot, compute its new state and write it.

        mutate receives the current document (or None) and returns the new one.
        Any exception raised by mutate aborts the transaction without writing
        and propagates to the caller.
        """

    async def list_range(
        self,
        center_id: str,
        professional_id: str,
        date_from: date,
        date_to: date,
    ) -> list[Slot]:
        """Return the slots of a professional for every day in [date_from, date_to]."""
        slots: list[Slot] = []
        for day in iter_days(date_from, date_to):
            slots.extend(await self.list_day(center_id, professional_id, day.isoformat()))
        return slots

    async def deactivate(self, slot_id: str, reason: str) -> Slot | None:
        """
        Soft-delete a slot (active=False). Returns None if the slot does not exist.

        An already inactive slot is returned unchanged.
        """
        def _close(current: Slot | None) -> Slot:
            if current is None:
                raise LookupError(slot_id)
            if not current.active:
                return current
            return current.model_copy(
                update={
                    "active": False,
                    "deleted_at": datetime.now(UTC),
                    "delete_reason": reason,
                }
            )

        try:
            return await self.transact(slot_id, _close)
        except LookupError:
            logger.warning(f"Cannot deactivate missing slot {slot_id}", extra={"slot_id": slot_id})
            return None


class InMemorySlotStore(SlotStore):
    """Dict-backed store; transactions are serialized by a single lock."""

    def __init__(self, slots: list[Slot] | None = None):
        self._docs: dict[str, Slot] = {}
        self._lock = asyncio.Lock()
        for slot in slots or []:
            self._docs[slot.id] = slot

    async def get(self, slot_id: str) -> Slot | None:
        return self._docs.get(slot_id)

    async def put(self, slot: Slot) -> Slot:
        async with self._lock:
            stored = _stamp(slot, self._docs.get(slot.id))
            self._docs[slot.id] = stored
            return stored

    async def list_day(self, center_id: str, professional_id: str, day: str) -> list[Slot]:
        slots = [
            s for s in self._docs.values()
            if s.center_id == center_id and s.professional_id == professional_id and s.date == day
        ]
        return sorted(slots, key=_sort_key)

    async def transact(self, slot_id: str, mutate: SlotMutation) -> Slot:
        async with self._lock:
            current = self._docs.get(slot_id)
            # Yield between read and write so concurrent callers interleave
            await asyncio.sleep(0)
            updated = mutate(current)
            stored = _stamp(updated, current)
            self._docs[slot_id] = stored
            return stored


class RedisSlotStore(SlotStore):
    """
    Redis-backed slot store.

    Documents are JSON strings at slot:{id}; each (center, professional, day)
    has a set of slot ids used for day queries.
    """

    def __init__(self, client: "redis.Redis[str]"):
        self._client = client

    async def get(self, slot_id: str) -> Slot | None:
        try:
            raw = await self._client.get(slot_key(slot_id))
        except RedisError as e:
            raise SlotStoreError(f"Failed to read slot {slot_id}: {e}") from e
        return Slot.model_validate_json(raw) if raw else None

    async def put(self, slot: Slot) -> Slot:
        previous = await self.get(slot.id)
        stored = _stamp(slot, previous)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.set(slot_key(stored.id), stored.model_dump_json())
                pipe.sadd(day_index_key(stored.center_id, stored.professional_id, stored.date), stored.id)
                await pipe.execute()
        except RedisError as e:
            raise SlotStoreError(f"Failed to write slot {slot.id}: {e}") from e
        return stored

    async def list_day(self, center_id: str, professional_id: str, day: str) -> list[Slot]:
        try:
            slot_ids = await self._client.smembers(day_index_key(center_id, professional_id, day))
            if not slot_ids:
                return []
            raws = await self._client.mget([slot_key(sid) for sid in slot_ids])
        except RedisError as e:
            raise SlotStoreError(
                f"Failed to list slots for {professional_id} on {day}: {e}"
            ) from e
        slots = [Slot.model_validate_json(raw) for raw in raws if raw]
        return sorted(slots, key=_sort_key)

    async def transact(self, slot_id: str, mutate: SlotMutation) -> Slot:
        key = slot_key(slot_id)

        for attempt in range(1, MAX_TRANSACTION_RETRIES + 1):
            try:
                async with self._client.pipeline(transaction=True) as pipe:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    current = Slot.model_validate_json(raw) if raw else None

                    # mutate may raise to abort; the pipeline context resets the WATCH
                    updated = _stamp(mutate(current), current)

                    pipe.multi()
                    pipe.set(key, updated.model_dump_json())
                    pipe.sadd(
                        day_index_key(updated.center_id, updated.professional_id, updated.date),
                        updated.id,
                    )
                    await pipe.execute()
                    return updated

            except WatchError:
                logger.info(
                    f"Concurrent write on {slot_id}, retrying transaction (attempt {attempt})",
                    extra={"slot_id": slot_id},
                )
                continue
            except RedisError as e:
                raise SlotStoreError(f"Transaction on slot {slot_id} failed: {e}") from e

        raise SlotStoreError(
            f"Transaction on slot {slot_id} gave up after {MAX_TRANSACTION_RETRIES} conflicting writes"
        )
