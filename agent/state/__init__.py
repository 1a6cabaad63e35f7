"""Per-caller conversation state persistence."""

from agent.state.conversation_store import (
    ConversationStore,
    InMemoryConversationStore,
    RedisConversationStore,
)

__all__ = ["ConversationStore", "InMemoryConversationStore", "RedisConversationStore"]
