"""
Escalation Service - queues callers for a human operator.

When a caller asks for a person (menu button or classified intent) the
conversation moves to HANDOFF and an entry is pushed to the
handoff_queue_stream Redis stream, where the front desk picks it up.
"""

import logging
from datetime import UTC, datetime

import redis.asyncio as redis

from shared.redis_client import HANDOFF_STREAM, add_to_stream

logger = logging.getLogger(__name__)

# Human-readable reason descriptions
REASON_DESCRIPTIONS: dict[str, str] = {
    "menu": "Paciente eligió 'Hablar con persona' en el menú",
    "intent": "Paciente pidió hablar con una persona o parece frustrado",
}


class EscalationService:
    def __init__(self, client: "redis.Redis[str]", center_id: str):
        self._client = client
        self._center_id = center_id

    async def notify_handoff(self, phone: str, contact_name: str, reason: str) -> str:
        """
        Queue a caller for human attention.

        Returns:
            Stream entry id

        Raises:
            redis.RedisError: if the queue write fails
        """
        entry_id = await add_to_stream(
            self._client,
            HANDOFF_STREAM,
            {
                "center_id": self._center_id,
                "phone": phone,
                "contact_name": contact_name,
                "reason": reason,
                "description": REASON_DESCRIPTIONS.get(reason, reason),
                "requested_at": datetime.now(UTC).isoformat(),
            },
        )
        logger.info(
            f"Handoff queued | reason={reason} | entry_id={entry_id}",
            extra={"caller_phone": phone, "center_id": self._center_id},
        )
        return entry_id
