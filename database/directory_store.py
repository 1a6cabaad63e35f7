"""
Staff directory queries.

Staff documents are stored as JSON in the hash center:{center_id}:staff
(field = staff id). Only active professionals flagged visible_in_booking are
offered to patients.
"""

import logging

import redis.asyncio as redis
from pydantic import ValidationError

from database.models import StaffMember

logger = logging.getLogger(__name__)


def staff_hash_key(center_id: str) -> str:
    return f"center:{center_id}:staff"


class StaffDirectoryStore:
    """Read/write access to a center's staff documents."""

    def __init__(self, client: "redis.Redis[str]"):
        self._client = client

    async def list_bookable_staff(self, center_id: str) -> list[StaffMember]:
        """
        Return active, booking-visible staff of a center ordered by name.

        Malformed documents are skipped with a warning.
        """
        raw_docs = await self._client.hgetall(staff_hash_key(center_id))

        staff: list[StaffMember] = []
        for staff_id, raw in raw_docs.items():
            try:
                member = StaffMember.model_validate_json(raw)
            except ValidationError as e:
                logger.warning(
                    f"Skipping malformed staff document {staff_id}: {e}",
                    extra={"center_id": center_id},
                )
                continue
            if member.active and member.visible_in_booking:
                staff.append(member)

        return sorted(staff, key=lambda m: m.full_name.lower())

    async def save_staff(self, center_id: str, member: StaffMember) -> None:
        await self._client.hset(staff_hash_key(center_id), member.id, member.model_dump_json())
