"""
Unit tests for staff_cache.py - cache-aside staff directory.

Tests coverage:
- Cached list is served within the TTL
- Expired entries are reloaded
- Loader failures return the stale list (or empty)
- find() and clear()
"""

from unittest.mock import AsyncMock

import pytest

from database.models import StaffMember
from shared.staff_cache import StaffCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def loader(sample_staff):
    return AsyncMock(return_value=sample_staff)


class TestStaffCache:
    @pytest.mark.asyncio
    async def test_served_from_cache_within_ttl(self, loader, clock):
        cache = StaffCache(loader=loader, ttl_seconds=600, clock=clock)

        await cache.get_or_refresh()
        clock.now += 599
        staff = await cache.get_or_refresh()

        assert [m.id for m in staff] == ["dr1", "dr2"]
        assert loader.await_count == 1

    @pytest.mark.asyncio
    async def test_reloaded_after_ttl(self, loader, clock):
        cache = StaffCache(loader=loader, ttl_seconds=600, clock=clock)

        await cache.get_or_refresh()
        clock.now += 600
        await cache.get_or_refresh()

        assert loader.await_count == 2

    @pytest.mark.asyncio
    async def test_explicit_ttl_overrides_default(self, loader, clock):
        cache = StaffCache(loader=loader, ttl_seconds=600, clock=clock)

        await cache.get_or_refresh()
        clock.now += 10
        await cache.get_or_refresh(ttl_seconds=5)

        assert loader.await_count == 2

    @pytest.mark.asyncio
    async def test_loader_failure_returns_stale_list(self, sample_staff, clock):
        loader = AsyncMock(side_effect=[sample_staff, ConnectionError("redis down")])
        cache = StaffCache(loader=loader, ttl_seconds=600, clock=clock)

        await cache.get_or_refresh()
        clock.now += 601
        staff = await cache.get_or_refresh()

        assert staff == sample_staff

    @pytest.mark.asyncio
    async def test_loader_failure_without_data_returns_empty(self, clock):
        cache = StaffCache(loader=AsyncMock(side_effect=ConnectionError("redis down")), ttl_seconds=600, clock=clock)

        assert await cache.get_or_refresh() == []

    @pytest.mark.asyncio
    async def test_find(self, staff_cache):
        member = await staff_cache.find("dr2")

        assert isinstance(member, StaffMember)
        assert member.full_name == "Dr. Luis Soto"
        assert await staff_cache.find("ghost") is None

    @pytest.mark.asyncio
    async def test_clear_forces_reload(self, loader, clock):
        cache = StaffCache(loader=loader, ttl_seconds=600, clock=clock)

        await cache.get_or_refresh()
        cache.clear()
        await cache.get_or_refresh()

        assert loader.await_count == 2
