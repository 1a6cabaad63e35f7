"""Integration tests for the WhatsApp webhook and staff agenda endpoints."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from agent.scheduling.slot_grid import generate_slot_id
from agent.services.agenda_service import AgendaService
from agent.transactions.booking_transaction import BookingTransaction
from api.dependencies import (
    get_agenda_service,
    get_booking_transaction,
    get_conversation_service,
    get_slot_store,
    get_whatsapp_client,
)
from api.main import app
from database.models import Slot
from database.slot_store import InMemorySlotStore
from shared.config import get_settings

SLOT_ID = generate_slot_id("LosAndes", "dr1", "2026-03-02", "08:20")

PATIENT = {
    "patient_name": "Ana Pérez",
    "patient_rut": "12.345.678-5",
    "patient_phone": "+56 9 6123 4567",
}


def text_payload(body: str) -> dict:
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "WABA_ID",
                "changes": [
                    {
                        "field": "messages",
                        "value": {
                            "messaging_product": "whatsapp",
                            "contacts": [{"wa_id": "56961234567", "profile": {"name": "Ana"}}],
                            "messages": [
                                {"from": "56961234567", "id": "wamid.1", "type": "text", "text": {"body": body}}
                            ],
                        },
                    }
                ],
            }
        ],
    }


@pytest.fixture
def conversation_service():
    service = MagicMock()
    service.handle_message = AsyncMock()
    app.dependency_overrides[get_conversation_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


@pytest.fixture
def whatsapp():
    client = MagicMock()
    client.send_text = AsyncMock(return_value=True)
    return client


@pytest.fixture
def store(whatsapp):
    store = InMemorySlotStore(
        [Slot(id=SLOT_ID, center_id="LosAndes", professional_id="dr1", date="2026-03-02", time="08:20")]
    )

    app.dependency_overrides[get_slot_store] = lambda: store
    app.dependency_overrides[get_agenda_service] = lambda: AgendaService(store)
    app.dependency_overrides[get_booking_transaction] = lambda: BookingTransaction(store)
    app.dependency_overrides[get_whatsapp_client] = lambda: whatsapp
    yield store
    app.dependency_overrides.clear()


class TestWhatsAppVerification:
    """Meta webhook verification handshake."""

    def test_valid_token_echoes_challenge(self):
        token = get_settings().WHATSAPP_VERIFY_TOKEN

        response = TestClient(app).get(
            "/webhook/whatsapp",
            params={"hub.mode": "subscribe", "hub.verify_token": token, "hub.challenge": "1158201444"},
        )

        assert response.status_code == 200
        assert response.text == "1158201444"

    def test_wrong_token_returns_403(self):
        response = TestClient(app).get(
            "/webhook/whatsapp",
            params={"hub.mode": "subscribe", "hub.verify_token": "wrong", "hub.challenge": "1"},
        )

        assert response.status_code == 403

    def test_wrong_mode_returns_403(self):
        token = get_settings().WHATSAPP_VERIFY_TOKEN

        response = TestClient(app).get(
            "/webhook/whatsapp",
            params={"hub.mode": "unsubscribe", "hub.verify_token": token, "hub.challenge": "1"},
        )

        assert response.status_code == 403


class TestWhatsAppWebhook:
    """Inbound message events."""

    def test_text_message_is_handed_to_conversation(self, conversation_service):
        response = TestClient(app).post(
            "/webhook/whatsapp",
            content=json.dumps(text_payload("Hola")).encode(),
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.text == "EVENT_RECEIVED"
        conversation_service.handle_message.assert_awaited_once()
        message = conversation_service.handle_message.await_args.args[0]
        assert message.phone == "56961234567"
        assert message.text == "Hola"
        assert message.contact_name == "Ana"

    def test_status_callback_is_acknowledged(self, conversation_service):
        payload = {
            "object": "whatsapp_business_account",
            "entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.1", "status": "read"}]}}]}],
        }

        response = TestClient(app).post("/webhook/whatsapp", json=payload)

        assert response.status_code == 200
        assert response.text == "OK"
        conversation_service.handle_message.assert_not_awaited()

    def test_invalid_body_returns_400(self, conversation_service):
        response = TestClient(app).post(
            "/webhook/whatsapp",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        conversation_service.handle_message.assert_not_awaited()


class TestAgendaEndpoints:
    """Staff agenda operations against an in-memory store."""

    def test_bulk_generate(self, store):
        response = TestClient(app).post(
            "/agenda/LosAndes/professionals/dr1/bulk",
            json={
                "date_from": "2026-03-02",
                "date_to": "2026-03-08",
                "config": {"slot_duration": 20, "start_time": "08:00", "end_time": "09:00"},
            },
        )

        assert response.status_code == 200
        # 08:20 on Monday already existed
        assert response.json()["created"] == 14
        assert response.json()["skipped_existing"] == 1

    def test_bulk_generate_invalid_range(self, store):
        response = TestClient(app).post(
            "/agenda/LosAndes/professionals/dr1/bulk",
            json={"date_from": "2026-03-08", "date_to": "2026-03-02"},
        )

        assert response.status_code == 400

    def test_list_day_slots(self, store):
        response = TestClient(app).get("/agenda/LosAndes/professionals/dr1/days/2026-03-02/slots")

        assert response.status_code == 200
        assert [s["id"] for s in response.json()["slots"]] == [SLOT_ID]

    def test_commit_changes(self, store):
        response = TestClient(app).post(
            "/agenda/LosAndes/professionals/dr1/days/2026-03-02/changes",
            json={"open_times": ["9:00"], "close_slot_ids": [SLOT_ID]},
        )

        assert response.status_code == 200
        assert response.json() == {"opened": 1, "closed": 1, "failed": []}

    def test_commit_changes_on_booked_slot_returns_409(self, store):
        client = TestClient(app)
        client.post(f"/agenda/slots/{SLOT_ID}/book", json=PATIENT)

        response = client.post(
            "/agenda/LosAndes/professionals/dr1/days/2026-03-02/changes",
            json={"close_slot_ids": [SLOT_ID]},
        )

        assert response.status_code == 409

    def test_book_and_conflict(self, store):
        client = TestClient(app)

        first = client.post(f"/agenda/slots/{SLOT_ID}/book", json=PATIENT)
        second = client.post(f"/agenda/slots/{SLOT_ID}/book", json=PATIENT)

        assert first.status_code == 200
        assert first.json()["slot"]["patient_phone"] == "+56961234567"
        assert first.json()["slot"]["booked_via"] == "web"
        assert second.status_code == 409
        assert second.json()["detail"]["error"] == "SLOT_TAKEN"

    def test_book_closed_slot_returns_409(self, store):
        client = TestClient(app)
        client.post(
            "/agenda/LosAndes/professionals/dr1/days/2026-03-02/changes",
            json={"close_slot_ids": [SLOT_ID]},
        )

        response = client.post(f"/agenda/slots/{SLOT_ID}/book", json=PATIENT)

        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "SLOT_CLOSED"

    def test_book_invalid_patient_data(self, store):
        response = TestClient(app).post(
            f"/agenda/slots/{SLOT_ID}/book",
            json={**PATIENT, "patient_rut": "12.345.678-9"},
        )

        assert response.status_code == 400
        assert response.json()["detail"]["codes"] == ["INVALID_RUT"]

    def test_book_unknown_slot_returns_404(self, store):
        response = TestClient(app).post("/agenda/slots/slot_ghost/book", json=PATIENT)

        assert response.status_code == 404

    def test_cancel_notifies_patient(self, store, whatsapp):
        client = TestClient(app)
        client.post(f"/agenda/slots/{SLOT_ID}/book", json=PATIENT)

        response = client.post(f"/agenda/slots/{SLOT_ID}/cancel", json={})

        assert response.status_code == 200
        assert response.json() == {"cancelled": True}
        assert whatsapp.send_text.await_args.args[0] == "56961234567"

    def test_cancel_available_slot_is_no_op(self, store, whatsapp):
        response = TestClient(app).post(f"/agenda/slots/{SLOT_ID}/cancel", json={"notify_patient": False})

        assert response.json() == {"cancelled": False}
        whatsapp.send_text.assert_not_awaited()


class TestHealth:
    def test_healthy(self):
        redis_client = MagicMock()
        redis_client.ping = AsyncMock(return_value=True)

        with patch("api.main.get_redis_client", return_value=redis_client):
            response = TestClient(app).get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "redis": "connected"}

    def test_redis_down_is_degraded(self):
        redis_client = MagicMock()
        redis_client.ping = AsyncMock(side_effect=ConnectionError("refused"))

        with patch("api.main.get_redis_client", return_value=redis_client):
            response = TestClient(app).get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"
