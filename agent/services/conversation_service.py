"""
Conversation Service - drives ConversationFSM for inbound WhatsApp messages.

For each inbound message:
1. Acquire the caller's lock (messages from one caller are processed in order)
2. Load the stored step (Idle when none)
3. Run the FSM transition
4. Persist the next step (Idle deletes the stored conversation)
5. Schedule the returned effects as a background task

Effects are fire-and-forget: a failed send is logged and never changes the
conversation state.
"""

import asyncio
import logging
from collections import defaultdict

from agent.fsm.conversation_fsm import ConversationFSM
from agent.fsm.effects import (
    Effect,
    LogActivity,
    NotifyHandoff,
    SendButtons,
    SendList,
    SendText,
    effect_to_dict,
)
from agent.fsm.models import Idle, InboundMessage, TransitionResult
from agent.services.audit_service import AuditService
from agent.services.escalation_service import EscalationService
from agent.state.conversation_store import ConversationStore
from shared.whatsapp_client import WhatsAppClient

logger = logging.getLogger(__name__)

TECHNICAL_ERROR_REPLY = (
    "Lo sentimos, tuvimos un problema técnico. Por favor, escríbanos nuevamente en unos minutos."
)


class ConversationService:
    """
    Per-caller serialized driver around ConversationFSM.

    Example:
        >>> service = ConversationService(fsm, store, whatsapp, audit, escalation)
        >>> await service.handle_message(InboundMessage(phone="56987654321", text="Hola"))
    """

    def __init__(
        self,
        fsm: ConversationFSM,
        store: ConversationStore,
        messenger: WhatsAppClient,
        audit: AuditService | None = None,
        escalation: EscalationService | None = None,
    ):
        self._fsm = fsm
        self._store = store
        self._messenger = messenger
        self._audit = audit
        self._escalation = escalation
        self.locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._tasks: set[asyncio.Task] = set()

    async def handle_message(self, message: InboundMessage) -> TransitionResult:
        """
        Process one inbound message for its caller.

        Technical failures inside the transition (store unreachable, etc.)
        clear the conversation and answer with a generic apology.
        """
        async with self.locks[message.phone]:
            try:
                step = await self._store.load(message.phone)
                result = await self._fsm.handle(step, message)
                await self._store.save(message.phone, result.step)
            except Exception as e:
                logger.error(
                    f"Error processing message: {e}",
                    extra={"caller_phone": message.phone},
                    exc_info=True,
                )
                result = TransitionResult(
                    step=Idle(),
                    effects=[SendText(to=message.phone, body=TECHNICAL_ERROR_REPLY)],
                )
                await self._safe_clear(message.phone)

        self.dispatch(result.effects)
        return result

    def dispatch(self, effects: list[Effect]) -> asyncio.Task | None:
        """Run effects in order in a background task; returns the task."""
        if not effects:
            return None

        task = asyncio.create_task(self._run_effects(effects))
        # Keep a reference until done so the task is not garbage-collected
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for all scheduled effects (tests and graceful shutdown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run_effects(self, effects: list[Effect]) -> None:
        for effect in effects:
            try:
                await self._execute(effect)
            except Exception as e:
                logger.error(
                    f"Effect failed | effect={effect_to_dict(effect)} | error={e}",
                    exc_info=True,
                )

    async def _execute(self, effect: Effect) -> None:
        if isinstance(effect, SendText):
            await self._messenger.send_text(effect.to, effect.body)
        elif isinstance(effect, SendButtons):
            await self._messenger.send_buttons(effect.to, effect.body, effect.buttons)
        elif isinstance(effect, SendList):
            await self._messenger.send_list(
                effect.to, effect.title, effect.body, effect.button_label, effect.sections
            )
        elif isinstance(effect, NotifyHandoff):
            if self._escalation is None:
                logger.warning("No escalation service configured; handoff not queued")
                return
            await self._escalation.notify_handoff(effect.phone, effect.contact_name, effect.reason)
        elif isinstance(effect, LogActivity):
            if self._audit is not None:
                await self._audit.log_activity(
                    effect.action, effect.entity_type, effect.entity_id, effect.details
                )
        else:
            raise ValueError(f"Unknown effect: {effect!r}")

    async def _safe_clear(self, phone: str) -> None:
        try:
            await self._store.clear(phone)
        except Exception as e:
            logger.error(f"Could not clear conversation: {e}", extra={"caller_phone": phone})
