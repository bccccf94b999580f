"""Tests for the resource guardrail."""

import asyncio

import pytest

from whatsdesk.core.exceptions import PermissionDenied, ProtectionViolation, ValidationError
from whatsdesk.models import ProtectionLevel, UserRole
from whatsdesk.services.guardrail import FIXED_PROTECTED_RESOURCES, OperationKind, ResourceGuardrail
from whatsdesk.storage.memory import InMemoryStorage

FIXED_ID = "r9b63a61541c8a6"


class UnreachableStorage(InMemoryStorage):
    async def get_protection_entry(self, resource_id):
        raise ConnectionError("datastore unreachable")

    async def save_audit_event(self, event):
        raise ConnectionError("datastore unreachable")


class SlowStorage(InMemoryStorage):
    async def get_protection_entry(self, resource_id):
        await asyncio.sleep(5)
        return None


class HangingStorage(InMemoryStorage):
    async def get_protection_entry(self, resource_id):
        await asyncio.Event().wait()

    async def save_audit_event(self, event):
        await asyncio.Event().wait()


def test_fixed_list_contains_production_instance():
    entry = FIXED_PROTECTED_RESOURCES[FIXED_ID]

    assert entry.level == ProtectionLevel.CRITICAL
    assert entry.client_label == "WEBLOCACAO - MKL IT SOLUTIONS"


@pytest.mark.asyncio
@pytest.mark.parametrize("storage_cls", [InMemoryStorage, UnreachableStorage])
async def test_fixed_resource_delete_always_denied(storage_cls):
    guardrail = ResourceGuardrail(storage_cls())

    for _ in range(3):
        decision = await guardrail.check_before_operation(FIXED_ID, OperationKind.DELETE)
        assert decision.allowed is False
        assert decision.level == ProtectionLevel.CRITICAL


@pytest.mark.asyncio
async def test_reads_are_always_allowed(guardrail):
    decision = await guardrail.check_before_operation(FIXED_ID, OperationKind.READ)

    assert decision.allowed is True
    events = await guardrail.audit_trail(FIXED_ID)
    assert [e.event for e in events] == ["SAFE_READ"]


@pytest.mark.asyncio
async def test_unprotected_resource_allowed(guardrail):
    decision = await guardrail.check_before_operation("prov-free", OperationKind.DELETE)
    assert decision.allowed is True


@pytest.mark.asyncio
async def test_store_failure_denies():
    guardrail = ResourceGuardrail(UnreachableStorage())

    decision = await guardrail.check_before_operation("prov-any", OperationKind.MODIFY)

    assert decision.allowed is False


@pytest.mark.asyncio
async def test_store_timeout_denies():
    guardrail = ResourceGuardrail(SlowStorage(), lookup_timeout=0.05)

    decision = await guardrail.check_before_operation("prov-any", OperationKind.DELETE)

    assert decision.allowed is False


@pytest.mark.asyncio
@pytest.mark.parametrize("resource_id", [FIXED_ID, "prov-any"])
async def test_hanging_store_still_denies(resource_id):
    guardrail = ResourceGuardrail(HangingStorage(), lookup_timeout=0.05)

    decision = await asyncio.wait_for(
        guardrail.check_before_operation(resource_id, OperationKind.DELETE), timeout=2
    )

    assert decision.allowed is False


@pytest.mark.asyncio
async def test_hanging_audit_does_not_block_reads():
    guardrail = ResourceGuardrail(HangingStorage(), lookup_timeout=0.05)

    decision = await asyncio.wait_for(guardrail.check_before_operation(FIXED_ID, OperationKind.READ), timeout=2)

    assert decision.allowed is True


@pytest.mark.asyncio
async def test_blocked_attempt_is_audited(guardrail):
    await guardrail.check_before_operation(FIXED_ID, OperationKind.DELETE, actor="ops@example.com")

    events = [e.event for e in await guardrail.audit_trail(FIXED_ID)]
    assert "DELETE_ATTEMPT_BLOCKED" in events
    assert "PROTECTION_CHECK" in events


@pytest.mark.asyncio
async def test_safe_operation_skips_call_when_denied(guardrail):
    calls = []

    async def destroy():
        calls.append("destroyed")

    with pytest.raises(ProtectionViolation) as exc_info:
        await guardrail.safe_operation(FIXED_ID, OperationKind.DELETE, destroy)

    assert calls == []
    assert exc_info.value.status_code == 423
    assert exc_info.value.details["client_label"] == "WEBLOCACAO - MKL IT SOLUTIONS"


@pytest.mark.asyncio
async def test_safe_operation_audits_outcome(guardrail):
    async def ok():
        return "done"

    async def boom():
        raise RuntimeError("provider down")

    assert await guardrail.safe_operation("prov-1", OperationKind.MODIFY, ok) == "done"
    with pytest.raises(RuntimeError):
        await guardrail.safe_operation("prov-1", OperationKind.DELETE, boom)

    events = [e.event for e in await guardrail.audit_trail("prov-1")]
    assert "MODIFY_SUCCESS" in events
    assert "DELETE_FAILED" in events


@pytest.mark.asyncio
async def test_protect_requires_elevated_role(guardrail):
    with pytest.raises(PermissionDenied):
        await guardrail.protect(
            "prov-2", ProtectionLevel.HIGH, "VIP", "Cliente X", actor_role=UserRole.STAFF
        )

    await guardrail.protect("prov-2", ProtectionLevel.HIGH, "VIP", "Cliente X", actor_role=UserRole.ADMIN)

    decision = await guardrail.check_before_operation("prov-2", OperationKind.DELETE)
    assert decision.allowed is False
    assert decision.client_label == "Cliente X"


@pytest.mark.asyncio
async def test_unprotect(guardrail):
    await guardrail.protect("prov-3", ProtectionLevel.NORMAL, "test", "Cliente Y", actor_role=UserRole.DEVELOPER)

    assert await guardrail.unprotect("prov-3", actor_role=UserRole.DEVELOPER) is True
    assert (await guardrail.check_before_operation("prov-3", OperationKind.DELETE)).allowed is True

    with pytest.raises(ValidationError):
        await guardrail.unprotect(FIXED_ID, actor_role=UserRole.SYSTEM_OWNER)


@pytest.mark.asyncio
async def test_list_protected_orders_by_level(guardrail):
    await guardrail.protect("prov-n", ProtectionLevel.NORMAL, "n", "N", actor_role=UserRole.ADMIN)
    await guardrail.protect("prov-h", ProtectionLevel.HIGH, "h", "H", actor_role=UserRole.ADMIN)

    entries = await guardrail.list_protected()

    assert [e.resource_id for e in entries] == [FIXED_ID, "prov-h", "prov-n"]


@pytest.mark.asyncio
async def test_configured_ids_join_fixed_tier():
    guardrail = ResourceGuardrail(UnreachableStorage(), extra_protected_ids=["prov-cfg"])

    decision = await guardrail.check_before_operation("prov-cfg", OperationKind.DELETE)

    assert decision.allowed is False
    with pytest.raises(ValidationError):
        await guardrail.unprotect("prov-cfg", actor_role=UserRole.ADMIN)
