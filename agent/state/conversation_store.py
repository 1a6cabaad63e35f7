"""
Conversation persistence - one stored step per caller phone.

Idle is never stored: saving Idle deletes the key, and a missing key loads
as Idle. Redis keys carry a TTL equal to the idle timeout, so a caller who
abandons a flow mid-way starts over after CONVERSATION_IDLE_TIMEOUT_SECONDS.
"""

import json
import logging
from abc import ABC, abstractmethod

import redis.asyncio as redis

from agent.fsm.models import ConversationStep, Idle, step_from_dict, step_to_dict

logger = logging.getLogger(__name__)

CONVERSATION_KEY_PREFIX = "conversation:"


def conversation_key(phone: str) -> str:
    return f"{CONVERSATION_KEY_PREFIX}{phone}"


class ConversationStore(ABC):
    """Load/save the current conversation step for a caller."""

    @abstractmethod
    async def load(self, phone: str) -> ConversationStep:
        ...

    @abstractmethod
    async def save(self, phone: str, step: ConversationStep) -> None:
        ...

    @abstractmethod
    async def clear(self, phone: str) -> None:
        ...


class RedisConversationStore(ConversationStore):
    def __init__(self, client: "redis.Redis[str]", ttl_seconds: int):
        self._client = client
        self._ttl_seconds = ttl_seconds

    async def load(self, phone: str) -> ConversationStep:
        raw = await self._client.get(conversation_key(phone))
        if raw is None:
            return Idle()

        try:
            return step_from_dict(json.loads(raw))
        except (ValueError, TypeError, KeyError) as e:
            # Unreadable document (e.g. written by an older schema); start over
            logger.warning(
                f"Discarding unreadable conversation state: {e}",
                extra={"caller_phone": phone},
            )
            await self.clear(phone)
            return Idle()

    async def save(self, phone: str, step: ConversationStep) -> None:
        if isinstance(step, Idle):
            await self.clear(phone)
            return

        await self._client.set(
            conversation_key(phone),
            json.dumps(step_to_dict(step), ensure_ascii=False),
            ex=self._ttl_seconds,
        )
        logger.debug(f"Conversation saved | state={step.state.value}", extra={"caller_phone": phone})

    async def clear(self, phone: str) -> None:
        await self._client.delete(conversation_key(phone))
        logger.debug("Conversation cleared", extra={"caller_phone": phone})


class InMemoryConversationStore(ConversationStore):
    """Process-local store for tests and single-instance development."""

    def __init__(self):
        self.steps: dict[str, ConversationStep] = {}

    async def load(self, phone: str) -> ConversationStep:
        return self.steps.get(phone, Idle())

    async def save(self, phone: str, step: ConversationStep) -> None:
        if isinstance(step, Idle):
            self.steps.pop(phone, None)
        else:
            self.steps[phone] = step

    async def clear(self, phone: str) -> None:
        self.steps.pop(phone, None)
