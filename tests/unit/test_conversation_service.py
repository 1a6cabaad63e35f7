"""
Unit tests for conversation_service.py - per-caller FSM driver.

Tests coverage:
- Steps are loaded/saved through the conversation store
- Effects are executed after the transition, in order
- Messages of one caller are processed one at a time, in arrival order
- A failing effect is logged and does not affect state or later effects
- A technical failure clears the conversation and sends an apology
- NotifyHandoff / LogActivity are routed to escalation and audit
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from agent.fsm.effects import LogActivity, NotifyHandoff, SendText
from agent.fsm.models import (
    ChoosingDoctor,
    Handoff,
    Idle,
    InboundMessage,
    TransitionResult,
)
from agent.services.conversation_service import TECHNICAL_ERROR_REPLY, ConversationService
from agent.state.conversation_store import InMemoryConversationStore

PHONE = "56987654321"


@pytest.fixture
def messenger():
    mock = MagicMock()
    mock.send_text = AsyncMock(return_value=True)
    mock.send_buttons = AsyncMock(return_value=True)
    mock.send_list = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def store():
    return InMemoryConversationStore()


def fsm_returning(*results: TransitionResult):
    fsm = MagicMock()
    fsm.handle = AsyncMock(side_effect=list(results))
    return fsm


class TestHandleMessage:
    @pytest.mark.asyncio
    async def test_step_is_persisted_and_effects_sent(self, store, messenger):
        fsm = fsm_returning(
            TransitionResult(
                step=ChoosingDoctor(center_id="LosAndes"),
                effects=[SendText(to=PHONE, body="uno"), SendText(to=PHONE, body="dos")],
            )
        )
        service = ConversationService(fsm, store, messenger)

        result = await service.handle_message(InboundMessage(phone=PHONE, text="Hola"))
        await service.drain()

        assert result.step == ChoosingDoctor(center_id="LosAndes")
        assert store.steps[PHONE] == ChoosingDoctor(center_id="LosAndes")
        fsm.handle.assert_awaited_once()
        assert isinstance(fsm.handle.await_args.args[0], Idle)
        bodies = [c.args[1] for c in messenger.send_text.await_args_list]
        assert bodies == ["uno", "dos"]

    @pytest.mark.asyncio
    async def test_idle_result_clears_stored_step(self, store, messenger):
        store.steps[PHONE] = ChoosingDoctor(center_id="LosAndes")
        service = ConversationService(fsm_returning(TransitionResult(step=Idle())), store, messenger)

        await service.handle_message(InboundMessage(phone=PHONE, text="cancelar"))

        assert PHONE not in store.steps

    @pytest.mark.asyncio
    async def test_stored_step_is_passed_to_fsm(self, store, messenger):
        store.steps[PHONE] = Handoff()
        fsm = fsm_returning(TransitionResult(step=Handoff()))
        service = ConversationService(fsm, store, messenger)

        await service.handle_message(InboundMessage(phone=PHONE, text="hola"))

        assert fsm.handle.await_args.args[0] == Handoff()

    @pytest.mark.asyncio
    async def test_effect_failure_is_isolated(self, store, messenger):
        messenger.send_text = AsyncMock(side_effect=[RuntimeError("Graph API down"), True])
        fsm = fsm_returning(
            TransitionResult(
                step=ChoosingDoctor(center_id="LosAndes"),
                effects=[SendText(to=PHONE, body="uno"), SendText(to=PHONE, body="dos")],
            )
        )
        service = ConversationService(fsm, store, messenger)

        await service.handle_message(InboundMessage(phone=PHONE, text="Hola"))
        await service.drain()

        assert messenger.send_text.await_count == 2
        assert store.steps[PHONE] == ChoosingDoctor(center_id="LosAndes")

    @pytest.mark.asyncio
    async def test_technical_failure_sends_apology_and_clears(self, store, messenger):
        store.steps[PHONE] = ChoosingDoctor(center_id="LosAndes")
        fsm = MagicMock()
        fsm.handle = AsyncMock(side_effect=ConnectionError("redis unreachable"))
        service = ConversationService(fsm, store, messenger)

        result = await service.handle_message(InboundMessage(phone=PHONE, text="Hola"))
        await service.drain()

        assert isinstance(result.step, Idle)
        assert PHONE not in store.steps
        messenger.send_text.assert_awaited_once_with(PHONE, TECHNICAL_ERROR_REPLY)

    @pytest.mark.asyncio
    async def test_handoff_and_audit_effects_are_routed(self, store, messenger):
        escalation = MagicMock()
        escalation.notify_handoff = AsyncMock(return_value="1-0")
        audit = MagicMock()
        audit.log_activity = AsyncMock(return_value=True)
        fsm = fsm_returning(
            TransitionResult(
                step=Handoff(),
                effects=[
                    NotifyHandoff(phone=PHONE, contact_name="Ana", reason="menu"),
                    LogActivity(
                        action="HANDOFF_REQUESTED",
                        entity_type="conversation",
                        entity_id=PHONE,
                        details={"reason": "menu"},
                    ),
                ],
            )
        )
        service = ConversationService(fsm, store, messenger, audit=audit, escalation=escalation)

        await service.handle_message(InboundMessage(phone=PHONE, text="persona"))
        await service.drain()

        escalation.notify_handoff.assert_awaited_once_with(PHONE, "Ana", "menu")
        audit.log_activity.assert_awaited_once_with(
            "HANDOFF_REQUESTED", "conversation", PHONE, {"reason": "menu"}
        )


class TestOrdering:
    @pytest.mark.asyncio
    async def test_same_caller_messages_are_serialized(self, store, messenger):
        seen: list[str] = []
        active = 0
        max_active = 0

        async def slow_handle(step, message):
            nonlocal active, max_active
            active += 1
            max_active = max(max_active, active)
            await asyncio.sleep(0.01)
            seen.append(message.text)
            active -= 1
            return TransitionResult(step=Handoff())

        fsm = MagicMock()
        fsm.handle = slow_handle
        service = ConversationService(fsm, store, messenger)

        await asyncio.gather(
            *(service.handle_message(InboundMessage(phone=PHONE, text=str(i))) for i in range(5))
        )

        assert max_active == 1
        assert seen == ["0", "1", "2", "3", "4"]

    @pytest.mark.asyncio
    async def test_different_callers_do_not_block_each_other(self, store, messenger):
        release = asyncio.Event()
        calls: list[str] = []

        async def handle(step, message):
            calls.append(message.phone)
            if message.phone == "1":
                await release.wait()
            return TransitionResult(step=Handoff())

        fsm = MagicMock()
        fsm.handle = handle
        service = ConversationService(fsm, store, messenger)

        blocked = asyncio.create_task(service.handle_message(InboundMessage(phone="1", text="a")))
        await asyncio.sleep(0)
        await service.handle_message(InboundMessage(phone="2", text="b"))

        assert calls == ["1", "2"]
        release.set()
        await blocked
