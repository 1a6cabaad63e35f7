"""
Redis client singleton for document storage and the audit stream.

This module provides a singleton Redis client configured for production reliability
with connection pooling, retry logic, and health checks.

Redis Key Patterns:
    - Slot documents: slot:{slot_id} (JSON string)
    - Slot day index: slots:{center_id}:{professional_id}:{date} (set of slot ids)
    - Conversations: conversation:{phone} (JSON string, TTL = idle timeout)
    - Staff directory: center:{center_id}:staff (hash staff_id -> JSON)
    - Audit log: audit_log_stream (stream)
    - Human handoff queue: handoff_queue_stream (stream)
"""

import json
import logging
from functools import lru_cache
from typing import Any

import redis.asyncio as redis
from redis import ConnectionError as RedisConnectionError

from shared.config import get_settings

AUDIT_STREAM = "audit_log_stream"
HANDOFF_STREAM = "handoff_queue_stream"
STREAM_MAX_LEN = 10000  # Approximate trim to keep stream bounded

logger = logging.getLogger(__name__)


@lru_cache
def get_redis_client() -> "redis.Redis[str]":
    """
    Get cached Redis client instance with production-ready configuration.

    This function creates a singleton Redis client with:
    - Connection pooling (max 20 connections)
    - Automatic retry on timeout for transient failures
    - Health check pings every 30 seconds

    Returns:
        Redis async client configured with connection pool and retry logic
    """
    settings = get_settings()

    try:
        client = redis.from_url(
            settings.REDIS_URL,
            max_connections=20,
            decode_responses=True,
            retry_on_timeout=True,
            health_check_interval=30,
        )

        logger.info(
            f"Redis client initialized: {settings.REDIS_URL} "
            f"(max_connections=20, retry_on_timeout=True, health_check_interval=30s)"
        )
        return client

    except RedisConnectionError as e:
        logger.error(f"Redis connection failed: {e}", exc_info=True)
        raise

    except Exception as e:
        logger.error(f"Unexpected error creating Redis client: {e}", exc_info=True)
        raise


async def close_redis_client() -> None:
    """
    Close Redis connection gracefully.

    Note:
        Should be called during application shutdown.
    """
    try:
        client = get_redis_client()
        await client.close()
        logger.info("Redis client closed")
    except Exception as e:
        logger.warning(f"Error closing Redis client: {e}")


async def add_to_stream(
    client: "redis.Redis[str]",
    stream: str,
    message: dict[str, Any],
    max_len: int = STREAM_MAX_LEN,
) -> str:
    """
    Add a message to a Redis Stream with automatic trimming.

    Args:
        client: Redis client
        stream: Name of the Redis Stream
        message: Message dict to add (will be JSON-serialized)
        max_len: Maximum stream length (approximate trimming for performance)

    Returns:
        Stream message ID (e.g., "1234567890123-0")
    """
    json_message = json.dumps(message, ensure_ascii=False, default=str)

    message_id = await client.xadd(
        stream,
        {"data": json_message},
        maxlen=max_len,
        approximate=True,
    )

    logger.debug(
        f"Message added to stream '{stream}': id={message_id}, "
        f"data={json_message[:100]}..."
    )
    return message_id
