"""
Effects - outbound side effects produced by ConversationFSM.

The FSM never talks to WhatsApp, the handoff queue or the audit log itself.
Each transition returns a list of effects that the conversation service
executes after persisting the new state, in order and fire-and-forget.

Usage:
    effects = [
        SendText(to="56987654321", body="Ingrese su RUT:"),
        SendButtons(
            to="56987654321",
            body="¿Confirma?",
            buttons=[ReplyButton("confirm_yes", "✅ Confirmar Cita")],
        ),
    ]
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class EffectType(str, Enum):
    """Types of effects the FSM can request."""

    SEND_TEXT = "send_text"
    SEND_BUTTONS = "send_buttons"
    SEND_LIST = "send_list"
    NOTIFY_HANDOFF = "notify_handoff"
    LOG_ACTIVITY = "log_activity"


@dataclass
class ReplyButton:
    id: str
    title: str


@dataclass
class ListRow:
    id: str
    title: str
    description: Optional[str] = None


@dataclass
class ListSection:
    title: str
    rows: list[ListRow] = field(default_factory=list)


@dataclass
class SendText:
    to: str
    body: str
    effect_type: EffectType = field(default=EffectType.SEND_TEXT, init=False)


@dataclass
class SendButtons:
    to: str
    body: str
    buttons: list[ReplyButton]
    effect_type: EffectType = field(default=EffectType.SEND_BUTTONS, init=False)

    def __post_init__(self):
        # WhatsApp reply-button messages accept 1 to 3 buttons
        if not 1 <= len(self.buttons) <= 3:
            raise ValueError(f"SendButtons requires 1-3 buttons, got {len(self.buttons)}")


@dataclass
class SendList:
    to: str
    title: str
    body: str
    button_label: str
    sections: list[ListSection]
    effect_type: EffectType = field(default=EffectType.SEND_LIST, init=False)

    @property
    def row_ids(self) -> list[str]:
        return [row.id for section in self.sections for row in section.rows]


@dataclass
class NotifyHandoff:
    """Queue the caller for a human operator."""

    phone: str
    contact_name: str
    reason: str
    effect_type: EffectType = field(default=EffectType.NOTIFY_HANDOFF, init=False)


@dataclass
class LogActivity:
    action: str
    entity_type: str
    entity_id: str
    details: dict[str, Any] = field(default_factory=dict)
    effect_type: EffectType = field(default=EffectType.LOG_ACTIVITY, init=False)


Effect = Union[SendText, SendButtons, SendList, NotifyHandoff, LogActivity]


def effect_to_dict(effect: Effect) -> dict[str, Any]:
    """Serialize an effect for logging/debugging."""
    data = asdict(effect)
    data["effect_type"] = effect.effect_type.value
    return data
