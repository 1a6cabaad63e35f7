"""
FSM data models for the chat booking conversation.

This module defines the core data structures used by ConversationFSM:
- ConversationState: Enum of conversation states
- One frozen dataclass per state carrying only the fields that state needs
  (e.g. ChoosingSlot has no patient data). ConversationStep is their union.
- InboundMessage: a normalized incoming WhatsApp message
- IntentType / Intent: free-text intent classification output (IDLE only)
- TransitionResult: next step plus the effects to execute
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, ClassVar, Union

from agent.fsm.effects import Effect


class ConversationState(str, Enum):
    """States of the chat booking conversation."""

    IDLE = "IDLE"  # No active conversation
    CHOOSING_DOCTOR = "CHOOSING_DOCTOR"
    CHOOSING_DATE = "CHOOSING_DATE"
    CHOOSING_SLOT = "CHOOSING_SLOT"
    COLLECTING_NAME = "COLLECTING_NAME"
    COLLECTING_RUT = "COLLECTING_RUT"
    COLLECTING_PHONE = "COLLECTING_PHONE"
    CONFIRMING = "CONFIRMING"
    HANDOFF = "HANDOFF"  # Waiting for a human; sink until explicit reset


@dataclass(frozen=True)
class Idle:
    state: ClassVar[ConversationState] = ConversationState.IDLE


@dataclass(frozen=True)
class ChoosingDoctor:
    center_id: str
    state: ClassVar[ConversationState] = ConversationState.CHOOSING_DOCTOR


@dataclass(frozen=True)
class ChoosingDate:
    center_id: str
    staff_id: str
    staff_name: str
    state: ClassVar[ConversationState] = ConversationState.CHOOSING_DATE


@dataclass(frozen=True)
class ChoosingSlot:
    center_id: str
    staff_id: str
    staff_name: str
    date: str
    state: ClassVar[ConversationState] = ConversationState.CHOOSING_SLOT


@dataclass(frozen=True)
class CollectingName:
    center_id: str
    staff_id: str
    staff_name: str
    date: str
    slot_id: str
    slot_time: str
    state: ClassVar[ConversationState] = ConversationState.COLLECTING_NAME


@dataclass(frozen=True)
class CollectingRut:
    center_id: str
    staff_id: str
    staff_name: str
    date: str
    slot_id: str
    slot_time: str
    patient_name: str
    state: ClassVar[ConversationState] = ConversationState.COLLECTING_RUT


@dataclass(frozen=True)
class CollectingPhone:
    center_id: str
    staff_id: str
    staff_name: str
    date: str
    slot_id: str
    slot_time: str
    patient_name: str
    patient_rut: str
    state: ClassVar[ConversationState] = ConversationState.COLLECTING_PHONE


@dataclass(frozen=True)
class Confirming:
    center_id: str
    staff_id: str
    staff_name: str
    date: str
    slot_id: str
    slot_time: str
    patient_name: str
    patient_rut: str
    patient_phone: str
    state: ClassVar[ConversationState] = ConversationState.CONFIRMING


@dataclass(frozen=True)
class Handoff:
    state: ClassVar[ConversationState] = ConversationState.HANDOFF


ConversationStep = Union[
    Idle,
    ChoosingDoctor,
    ChoosingDate,
    ChoosingSlot,
    CollectingName,
    CollectingRut,
    CollectingPhone,
    Confirming,
    Handoff,
]

STEP_TYPES: dict[ConversationState, type] = {
    cls.state: cls
    for cls in (
        Idle,
        ChoosingDoctor,
        ChoosingDate,
        ChoosingSlot,
        CollectingName,
        CollectingRut,
        CollectingPhone,
        Confirming,
        Handoff,
    )
}


def step_to_dict(step: ConversationStep) -> dict[str, Any]:
    """Serialize a step for persistence; the state value is the tag."""
    return {"state": step.state.value, **asdict(step)}


def step_from_dict(data: dict[str, Any]) -> ConversationStep:
    """
    Deserialize a persisted step.

    Raises:
        ValueError: unknown state tag
        TypeError: fields do not match the state's dataclass
    """
    payload = dict(data)
    state = ConversationState(payload.pop("state"))
    return STEP_TYPES[state](**payload)


class MessageKind(str, Enum):
    TEXT = "text"
    INTERACTIVE = "interactive"


@dataclass
class InboundMessage:
    """
    Incoming message from a caller.

    Attributes:
        phone: Caller WhatsApp id (conversation key)
        kind: Plain text or interactive reply (button/list selection)
        text: Message body for text messages
        reply_id: Selected button/list row id for interactive messages
        reply_title: Selected button/list row title
        contact_name: WhatsApp profile name, if provided
    """

    phone: str
    kind: MessageKind = MessageKind.TEXT
    text: str = ""
    reply_id: str | None = None
    reply_title: str | None = None
    contact_name: str | None = None

    @property
    def normalized_text(self) -> str:
        return " ".join(self.text.lower().split())


class IntentType(str, Enum):
    """Free-text intents recognized at IDLE."""

    BOOKING = "BOOKING"
    GENERAL = "GENERAL"
    HANDOFF = "HANDOFF"


@dataclass
class Intent:
    """
    Classifier output.

    Attributes:
        type: Categorical intent
        say: Suggested reply (used for GENERAL)
    """

    type: IntentType
    say: str = ""


@dataclass
class TransitionResult:
    """
    Result of handling one inbound message.

    Attributes:
        step: Next conversation step; Idle means the session is cleared
        effects: Outbound side effects to execute (fire-and-forget)
    """

    step: ConversationStep
    effects: list[Effect] = field(default_factory=list)

    @property
    def clears_session(self) -> bool:
        return isinstance(self.step, Idle)
