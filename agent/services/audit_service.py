"""
Audit service - append-only activity log.

Every booking, cancellation and bulk agenda change is recorded on the
audit_log_stream Redis stream. Audit writes are a side-effect sink: a failure
is logged and swallowed so it never rolls back the operation being audited.
"""

import logging
from datetime import UTC, datetime
from typing import Any

import redis.asyncio as redis

from shared.redis_client import AUDIT_STREAM, add_to_stream

logger = logging.getLogger(__name__)


class AuditService:
    """Writes activity entries to the audit stream."""

    def __init__(self, client: "redis.Redis[str]", actor: str = "system"):
        self._client = client
        self._actor = actor

    async def log_activity(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        details: dict[str, Any] | None = None,
    ) -> bool:
        """
        Append an audit entry.

        Returns:
            True if the entry was written, False if the write failed
        """
        entry = {
            "action": action,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "actor": self._actor,
            "details": details or {},
            "timestamp": datetime.now(UTC).isoformat(),
        }
        try:
            await add_to_stream(self._client, AUDIT_STREAM, entry)
            logger.debug(f"Audit entry written | action={action} | entity_id={entity_id}")
            return True
        except Exception as e:
            logger.error(
                f"Failed to write audit entry | action={action} | entity_id={entity_id} | error={e}",
                exc_info=True,
            )
            return False
