"""Tests for the tenant quota enforcer."""

import asyncio

import pytest

from whatsdesk.core.exceptions import PermissionDenied, ValidationError
from whatsdesk.models import UserRole
from whatsdesk.services.quota import QuotaEnforcer


@pytest.fixture
def quota(storage):
    return QuotaEnforcer(storage, default_limit=2)


@pytest.mark.asyncio
async def test_default_limit_without_record(quota):
    info = await quota.get_quota_info("new-tenant")

    assert info.limit == 2
    assert info.used == 0
    assert info.can_create_more is True
    assert info.remaining == 2


@pytest.mark.asyncio
async def test_get_quota_info_does_not_create_record(quota, storage):
    await quota.get_quota_info("new-tenant")
    assert await storage.get_quota("new-tenant") is None


@pytest.mark.asyncio
async def test_concurrent_reserve_at_limit_both_denied(quota):
    await quota.try_reserve("t1")
    await quota.try_reserve("t1")

    first, second = await asyncio.gather(quota.try_reserve("t1"), quota.try_reserve("t1"))

    assert first.allowed is False
    assert second.allowed is False
    assert first.used == 2
    assert first.limit == 2


@pytest.mark.asyncio
async def test_concurrent_reserve_one_slot_left(quota, storage):
    await quota.try_reserve("t1")

    results = await asyncio.gather(quota.try_reserve("t1"), quota.try_reserve("t1"))

    assert sum(r.allowed for r in results) == 1
    assert (await storage.get_quota("t1")).used == 2


@pytest.mark.asyncio
async def test_denial_is_logged_with_usage(quota):
    await quota.try_reserve("t1")
    await quota.try_reserve("t1")

    decision = await quota.try_reserve("t1", actor="maria@example.com")
    blocked = await quota.blocked_attempts("t1")

    assert decision.reason == "Connection limit reached (2/2). Upgrade required."
    assert len(blocked) == 1
    assert blocked[0].used == 2
    assert blocked[0].actor == "maria@example.com"


@pytest.mark.asyncio
async def test_release_frees_a_slot(quota):
    await quota.try_reserve("t1")
    await quota.try_reserve("t1")

    await quota.release("t1")

    assert (await quota.try_reserve("t1")).allowed is True


@pytest.mark.asyncio
async def test_set_tenant_limit_requires_elevated_role(quota):
    with pytest.raises(PermissionDenied):
        await quota.set_tenant_limit("t1", 5, actor_role=UserRole.MANAGER)

    updated = await quota.set_tenant_limit("t1", 5, actor_role=UserRole.SYSTEM_OWNER)
    assert updated.limit == 5

    with pytest.raises(ValidationError):
        await quota.set_tenant_limit("t1", -1, actor_role=UserRole.ADMIN)


@pytest.mark.asyncio
async def test_lowering_limit_keeps_existing_usage(quota):
    await quota.try_reserve("t1")
    await quota.try_reserve("t1")

    await quota.set_tenant_limit("t1", 1, actor_role=UserRole.ADMIN)
    info = await quota.get_quota_info("t1")

    assert info.used == 2
    assert info.can_create_more is False
    assert info.remaining == 0
