"""Pydantic models for WhatsApp Cloud API webhook payloads."""

from pydantic import BaseModel, ConfigDict, Field

from agent.fsm.models import InboundMessage, MessageKind


class WhatsAppText(BaseModel):
    model_config = ConfigDict(extra="allow")

    body: str = ""


class WhatsAppReply(BaseModel):
    """Selected button or list row."""
    model_config = ConfigDict(extra="allow")

    id: str
    title: str | None = None


class WhatsAppInteractive(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str  # "button_reply" | "list_reply"
    button_reply: WhatsAppReply | None = None
    list_reply: WhatsAppReply | None = None

    @property
    def reply(self) -> WhatsAppReply | None:
        return self.button_reply or self.list_reply


class WhatsAppMessage(BaseModel):
    """Single inbound message within a webhook change."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str | None = None
    from_: str = Field(alias="from")  # sender wa_id
    type: str  # "text", "interactive", "image", ...
    text: WhatsAppText | None = None
    interactive: WhatsAppInteractive | None = None


class WhatsAppProfile(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str | None = None


class WhatsAppContact(BaseModel):
    model_config = ConfigDict(extra="allow")

    wa_id: str | None = None
    profile: WhatsAppProfile | None = None


class WhatsAppValue(BaseModel):
    model_config = ConfigDict(extra="allow")

    messaging_product: str | None = None
    contacts: list[WhatsAppContact] = []
    messages: list[WhatsAppMessage] = []


class WhatsAppChange(BaseModel):
    model_config = ConfigDict(extra="allow")

    field: str | None = None
    value: WhatsAppValue


class WhatsAppEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    changes: list[WhatsAppChange] = []


class WhatsAppWebhookPayload(BaseModel):
    """
    WhatsApp Cloud API webhook payload.

    Format: {
        "object": "whatsapp_business_account",
        "entry": [{"changes": [{"value": {"contacts": [...], "messages": [...]}}]}]
    }

    Status callbacks (delivered/read) carry no "messages".
    """
    model_config = ConfigDict(extra="allow")

    object: str | None = None
    entry: list[WhatsAppEntry] = []

    def first_value(self) -> WhatsAppValue | None:
        if not self.entry or not self.entry[0].changes:
            return None
        return self.entry[0].changes[0].value

    def to_inbound_message(self) -> InboundMessage | None:
        """
        Extract the first processable message.

        Returns:
            InboundMessage for text and interactive replies, None for status
            callbacks and unsupported message types (image, audio, ...)
        """
        value = self.first_value()
        if value is None or not value.messages:
            return None

        message = value.messages[0]
        contact_name = None
        if value.contacts and value.contacts[0].profile:
            contact_name = value.contacts[0].profile.name

        if message.type == "text" and message.text is not None:
            return InboundMessage(
                phone=message.from_,
                kind=MessageKind.TEXT,
                text=message.text.body,
                contact_name=contact_name,
            )

        if message.type == "interactive" and message.interactive is not None:
            reply = message.interactive.reply
            if reply is None:
                return None
            return InboundMessage(
                phone=message.from_,
                kind=MessageKind.INTERACTIVE,
                reply_id=reply.id,
                reply_title=reply.title,
                contact_name=contact_name,
            )

        return None

