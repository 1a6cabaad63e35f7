"""
FSM module for the WhatsApp booking conversation.

The FSM decides transitions and returns effects; it never performs I/O other
than reading availability and booking through injected collaborators.

Public exports:
    - ConversationFSM: Transition controller
    - ConversationState: Enum of conversation states
    - ConversationStep: Union of per-state step dataclasses
    - InboundMessage / MessageKind: Normalized inbound message
    - Intent / IntentType: Free-text classification output
    - IntentClassifier / LLMIntentClassifier: Pluggable classifier
    - TransitionResult: Next step plus effects
"""

from agent.fsm.conversation_fsm import ConversationFSM
from agent.fsm.intent_classifier import IntentClassifier, LLMIntentClassifier
from agent.fsm.models import (
    ChoosingDate,
    ChoosingDoctor,
    ChoosingSlot,
    CollectingName,
    CollectingPhone,
    CollectingRut,
    Confirming,
    ConversationState,
    ConversationStep,
    Handoff,
    Idle,
    InboundMessage,
    Intent,
    IntentType,
    MessageKind,
    TransitionResult,
    step_from_dict,
    step_to_dict,
)

__all__ = [
    "ChoosingDate",
    "ChoosingDoctor",
    "ChoosingSlot",
    "CollectingName",
    "CollectingPhone",
    "CollectingRut",
    "Confirming",
    "ConversationFSM",
    "ConversationState",
    "ConversationStep",
    "Handoff",
    "Idle",
    "InboundMessage",
    "Intent",
    "IntentClassifier",
    "IntentType",
    "LLMIntentClassifier",
    "MessageKind",
    "TransitionResult",
    "step_from_dict",
    "step_to_dict",
]
