"""
Service wiring for the API.

Every collaborator is built once per process (lru_cache) from settings and
the shared Redis client. Routes receive them through FastAPI Depends so tests
can swap them with app.dependency_overrides.
"""

import logging
from functools import lru_cache

from agent.fsm.conversation_fsm import ConversationFSM
from agent.fsm.intent_classifier import LLMIntentClassifier
from agent.services.agenda_service import AgendaService
from agent.services.audit_service import AuditService
from agent.services.availability_service import AvailabilityService
from agent.services.conversation_service import ConversationService
from agent.services.escalation_service import EscalationService
from agent.state.conversation_store import RedisConversationStore
from agent.transactions.booking_transaction import BookingTransaction
from database.directory_store import StaffDirectoryStore
from database.slot_store import RedisSlotStore, SlotStore
from shared.config import get_settings
from shared.redis_client import get_redis_client
from shared.staff_cache import StaffCache
from shared.whatsapp_client import WhatsAppClient

logger = logging.getLogger(__name__)


@lru_cache
def get_slot_store() -> SlotStore:
    return RedisSlotStore(get_redis_client())


@lru_cache
def get_audit_service() -> AuditService:
    return AuditService(get_redis_client())


@lru_cache
def get_whatsapp_client() -> WhatsAppClient:
    return WhatsAppClient()


@lru_cache
def get_booking_transaction() -> BookingTransaction:
    return BookingTransaction(get_slot_store(), get_audit_service())


@lru_cache
def get_agenda_service() -> AgendaService:
    settings = get_settings()
    return AgendaService(get_slot_store(), get_audit_service(), batch_size=settings.SYNC_BATCH_SIZE)


@lru_cache
def get_conversation_service() -> ConversationService:
    settings = get_settings()
    client = get_redis_client()
    center_id = settings.DEFAULT_CENTER_ID

    directory = StaffDirectoryStore(client)
    staff_cache = StaffCache(
        loader=lambda: directory.list_bookable_staff(center_id),
        ttl_seconds=settings.STAFF_CACHE_TTL_SECONDS,
    )
    availability = AvailabilityService(
        get_slot_store(),
        timezone=settings.TIMEZONE,
        max_rows=settings.MAX_LIST_ROWS,
    )
    fsm = ConversationFSM(
        staff_cache=staff_cache,
        availability=availability,
        booking=get_booking_transaction(),
        classifier=LLMIntentClassifier(center_name=settings.CENTER_NAME),
        center_id=center_id,
        center_name=settings.CENTER_NAME,
        center_info=settings.CENTER_INFO_TEXT,
        days_ahead=settings.BOOKING_DAYS_AHEAD,
    )

    logger.info(f"Conversation service initialized | center_id={center_id}")
    return ConversationService(
        fsm=fsm,
        store=RedisConversationStore(client, ttl_seconds=settings.CONVERSATION_IDLE_TIMEOUT_SECONDS),
        messenger=get_whatsapp_client(),
        audit=get_audit_service(),
        escalation=EscalationService(client, center_id),
    )
