"""Resource guardrail: the yes/no gate for destructive channel operations.

Two tiers are consulted for ``modify`` and ``delete``:

1. A fixed, immutable table of known-protected provider IDs (no I/O).
2. The ``protected_instances`` store managed by administrators.

Any failure or timeout while reading the store counts as protected.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Iterable, Mapping, TypeVar
from uuid import uuid4

import structlog

from whatsdesk.core.config import settings
from whatsdesk.core.exceptions import PermissionDenied, ProtectionViolation, ValidationError
from whatsdesk.models import AuditEvent, ProtectionEntry, ProtectionLevel, is_elevated
from whatsdesk.models.protection import LEVEL_ORDER
from whatsdesk.storage.base import StorageBackend

logger = structlog.get_logger()

T = TypeVar("T")


class OperationKind(str, Enum):
    READ = "read"
    MODIFY = "modify"
    DELETE = "delete"


FIXED_PROTECTED_RESOURCES: Mapping[str, ProtectionEntry] = MappingProxyType({
    "r9b63a61541c8a6": ProtectionEntry(
        resource_id="r9b63a61541c8a6",
        level=ProtectionLevel.CRITICAL,
        reason="VIP client in production - high financial risk",
        client_label="WEBLOCACAO - MKL IT SOLUTIONS",
        instance_name="relatorio_diario",
        created_by="system",
    ),
})


@dataclass(frozen=True)
class GuardDecision:
    """Outcome of a guardrail check."""

    allowed: bool
    reason: str | None = None
    level: ProtectionLevel | None = None
    client_label: str | None = None

    @classmethod
    def allow(cls) -> "GuardDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str, entry: ProtectionEntry | None = None) -> "GuardDecision":
        if entry is None:
            return cls(allowed=False, reason=reason)
        return cls(allowed=False, reason=reason, level=entry.level, client_label=entry.client_label)


class ResourceGuardrail:
    """Authoritative check before any mutate/delete call on a channel resource."""

    def __init__(
        self,
        storage: StorageBackend,
        extra_protected_ids: Iterable[str] | None = None,
        lookup_timeout: float | None = None,
    ) -> None:
        self.storage = storage
        self.lookup_timeout = (
            lookup_timeout if lookup_timeout is not None else settings.guardrail_lookup_timeout_seconds
        )

        fixed = dict(FIXED_PROTECTED_RESOURCES)
        for resource_id in extra_protected_ids or ():
            fixed.setdefault(
                resource_id,
                ProtectionEntry(
                    resource_id=resource_id,
                    level=ProtectionLevel.CRITICAL,
                    reason="Protected by deployment configuration",
                    client_label="configured",
                    created_by="system",
                ),
            )
        self._fixed: Mapping[str, ProtectionEntry] = MappingProxyType(fixed)

    # ==================== Checks ====================

    async def check_before_operation(
        self,
        resource_id: str,
        kind: OperationKind,
        actor: str | None = None,
    ) -> GuardDecision:
        """Decide whether ``kind`` may run against ``resource_id``.

        Args:
            resource_id: Provider identifier of the channel resource
            kind: read, modify or delete
            actor: Who is asking, recorded in the audit trail

        Returns:
            GuardDecision; denials are terminal and must not be retried
        """
        kind = OperationKind(kind)

        if kind == OperationKind.READ:
            await self._audit(resource_id, "SAFE_READ", kind, actor=actor)
            return GuardDecision.allow()

        decision = await self._lookup(resource_id, kind, actor)

        await self._audit(
            resource_id,
            "PROTECTION_CHECK",
            kind,
            blocked=not decision.allowed,
            actor=actor,
            details={"reason": decision.reason, "level": decision.level},
        )

        if not decision.allowed:
            await self._audit(
                resource_id,
                f"{kind.value.upper()}_ATTEMPT_BLOCKED",
                kind,
                blocked=True,
                actor=actor,
                details={
                    "reason": decision.reason,
                    "level": decision.level,
                    "client_label": decision.client_label,
                },
            )
            logger.warning(
                "Blocked operation on protected resource",
                resource_id=resource_id,
                operation=kind.value,
                reason=decision.reason,
                level=decision.level,
                client_label=decision.client_label,
                actor=actor,
            )

        return decision

    async def _lookup(self, resource_id: str, kind: OperationKind, actor: str | None) -> GuardDecision:
        fixed = self._fixed.get(resource_id)
        if fixed is not None:
            return GuardDecision.deny(fixed.reason, fixed)

        try:
            entry = await asyncio.wait_for(
                self.storage.get_protection_entry(resource_id),
                timeout=self.lookup_timeout,
            )
        except Exception as e:
            logger.error(
                "Protection lookup failed, denying",
                resource_id=resource_id,
                operation=kind.value,
                error=repr(e),
            )
            await self._audit(
                resource_id,
                "PROTECTION_ERROR",
                kind,
                blocked=True,
                actor=actor,
                details={"error": repr(e)},
            )
            return GuardDecision.deny("Protection status could not be verified")

        if entry is not None:
            return GuardDecision.deny(entry.reason, entry)
        return GuardDecision.allow()

    async def safe_operation(
        self,
        resource_id: str,
        kind: OperationKind,
        fn: Callable[[], Awaitable[T]],
        actor: str | None = None,
    ) -> T:
        """Run ``fn`` only if the guardrail allows it.

        Raises:
            ProtectionViolation: If the check denies the operation
        """
        kind = OperationKind(kind)
        decision = await self.check_before_operation(resource_id, kind, actor=actor)
        if not decision.allowed:
            raise ProtectionViolation(
                resource_id=resource_id,
                operation=kind.value,
                reason=decision.reason or "protected",
                level=decision.level.value if decision.level else None,
                client_label=decision.client_label,
            )

        event = kind.value.upper()
        try:
            result = await fn()
        except Exception as e:
            await self._audit(
                resource_id, f"{event}_FAILED", kind, actor=actor, details={"error": str(e)}
            )
            raise

        await self._audit(resource_id, f"{event}_SUCCESS", kind, actor=actor)
        return result

    # ==================== Administration ====================

    async def protect(
        self,
        resource_id: str,
        level: ProtectionLevel,
        reason: str,
        client_label: str,
        actor_role: str | None,
        instance_name: str = "",
        actor: str | None = None,
    ) -> ProtectionEntry:
        """Add a resource to the protection store (elevated roles only)."""
        if not is_elevated(actor_role):
            raise PermissionDenied("protect", actor_role)
        if not resource_id.strip():
            raise ValidationError("resource_id is required")

        entry = ProtectionEntry(
            resource_id=resource_id,
            level=ProtectionLevel(level),
            reason=reason,
            client_label=client_label,
            instance_name=instance_name,
            created_by=actor,
        )
        await self.storage.save_protection_entry(entry)
        await self._audit(
            resource_id,
            "INSTANCE_PROTECTED",
            OperationKind.MODIFY,
            actor=actor,
            details={"level": entry.level, "reason": reason, "client_label": client_label},
        )

        logger.info("Resource protected", resource_id=resource_id, level=entry.level.value)
        return entry

    async def unprotect(
        self,
        resource_id: str,
        actor_role: str | None,
        actor: str | None = None,
    ) -> bool:
        """Remove a stored protection entry (elevated roles only).

        Fixed entries cannot be removed at runtime.
        """
        if not is_elevated(actor_role):
            raise PermissionDenied("unprotect", actor_role)
        if resource_id in self._fixed:
            raise ValidationError(
                "Resource is protected by the built-in list and cannot be unprotected",
                details={"resource_id": resource_id},
            )

        removed = await self.storage.delete_protection_entry(resource_id)
        if removed:
            await self._audit(resource_id, "INSTANCE_UNPROTECTED", OperationKind.MODIFY, actor=actor)
            logger.info("Resource unprotected", resource_id=resource_id)
        return removed

    async def list_protected(self) -> list[ProtectionEntry]:
        """Both tiers merged, most critical first."""
        entries = dict(self._fixed)
        for entry in await self.storage.list_protection_entries():
            entries.setdefault(entry.resource_id, entry)
        return sorted(entries.values(), key=lambda e: (LEVEL_ORDER[e.level], e.resource_id))

    async def audit_trail(self, resource_id: str | None = None, limit: int = 100) -> list[AuditEvent]:
        return await self.storage.list_audit_events(resource_id=resource_id, limit=limit)

    # ==================== Audit ====================

    async def _audit(
        self,
        resource_id: str,
        event: str,
        kind: OperationKind,
        blocked: bool = False,
        actor: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Persist an audit event; failures and timeouts are logged and swallowed.

        Bounded like the protection lookup, so a hanging store cannot hold
        back a decision.
        """
        record = AuditEvent(
            id=str(uuid4()),
            resource_id=resource_id,
            event=event,
            operation=kind.value,
            blocked=blocked,
            actor=actor,
            details={k: v for k, v in (details or {}).items() if v is not None},
        )
        try:
            await asyncio.wait_for(self.storage.save_audit_event(record), timeout=self.lookup_timeout)
        except Exception as e:
            logger.warning(
                "Failed to write audit event",
                resource_id=resource_id,
                audit_event=event,
                error=repr(e),
            )
