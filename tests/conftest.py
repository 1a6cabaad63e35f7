"""
Test configuration and fixtures.

This module sets up test environment and provides shared fixtures for all tests.
"""

import os
from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

# Override REDIS_URL for tests to use localhost instead of Docker hostname
# Must be set BEFORE any imports of shared.config
os.environ["REDIS_URL"] = "redis://localhost:6379/0"
os.environ.setdefault("WHATSAPP_TOKEN", "")
os.environ.setdefault("WHATSAPP_PHONE_ID", "")

from agent.services.availability_service import AvailabilityService  # noqa: E402
from database.models import AgendaConfig, StaffMember  # noqa: E402
from database.slot_store import InMemorySlotStore  # noqa: E402
from shared.staff_cache import StaffCache  # noqa: E402

SANTIAGO_TZ = ZoneInfo("America/Santiago")

CENTER_ID = "LosAndes"

# Monday 2 March 2026, 07:30 local time (before the first slot of the day)
FIXED_NOW = datetime(2026, 3, 2, 7, 30, tzinfo=SANTIAGO_TZ)


@pytest.fixture
def center_id() -> str:
    return CENTER_ID


@pytest.fixture
def monday() -> date:
    return FIXED_NOW.date()


@pytest.fixture
def agenda_config() -> AgendaConfig:
    """08:00-09:00 in 20-minute slots: 08:00, 08:20, 08:40."""
    return AgendaConfig(slot_duration=20, start_time="08:00", end_time="09:00")


@pytest.fixture
def slot_store() -> InMemorySlotStore:
    return InMemorySlotStore()


@pytest.fixture
def sample_staff() -> list[StaffMember]:
    return [
        StaffMember(id="dr1", full_name="Dra. Ana Pérez", specialty="Medicina General"),
        StaffMember(id="dr2", full_name="Dr. Luis Soto", specialty=None),
    ]


@pytest.fixture
def staff_cache(sample_staff) -> StaffCache:
    async def loader():
        return sample_staff

    return StaffCache(loader=loader, ttl_seconds=600)


@pytest.fixture
def availability(slot_store) -> AvailabilityService:
    return AvailabilityService(slot_store, timezone="America/Santiago", max_rows=10, now=lambda: FIXED_NOW)
