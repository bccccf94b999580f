"""Per-tenant channel quota enforcement."""

from dataclasses import dataclass
from uuid import uuid4

import structlog

from whatsdesk.core.config import settings
from whatsdesk.core.exceptions import PermissionDenied, ValidationError
from whatsdesk.models import QuotaBlockEvent, TenantQuota, is_elevated
from whatsdesk.storage.base import StorageBackend

logger = structlog.get_logger()


@dataclass(frozen=True)
class QuotaDecision:
    """Result of a reservation attempt."""

    allowed: bool
    used: int
    limit: int
    reason: str | None = None

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)


@dataclass(frozen=True)
class QuotaInfo:
    limit: int
    used: int
    can_create_more: bool
    remaining: int


class QuotaEnforcer:
    """Gates creation of new channel resources per tenant.

    The reservation itself is a single conditional increment in the
    storage backend, so concurrent callers at the boundary cannot both pass.
    """

    def __init__(self, storage: StorageBackend, default_limit: int | None = None) -> None:
        self.storage = storage
        self.default_limit = default_limit if default_limit is not None else settings.default_connection_limit

    async def try_reserve(self, tenant_id: str, actor: str | None = None) -> QuotaDecision:
        """Take one channel slot for ``tenant_id`` if any is left.

        Denials are persisted as blocked attempts.
        """
        reserved, quota = await self.storage.try_reserve_quota(tenant_id, self.default_limit)

        if reserved:
            logger.info(
                "Channel slot reserved",
                tenant_id=tenant_id,
                used=quota.used,
                limit=quota.limit,
            )
            return QuotaDecision(allowed=True, used=quota.used, limit=quota.limit)

        reason = f"Connection limit reached ({quota.used}/{quota.limit}). Upgrade required."
        await self._log_blocked(quota, reason, actor)
        return QuotaDecision(allowed=False, used=quota.used, limit=quota.limit, reason=reason)

    async def release(self, tenant_id: str) -> TenantQuota:
        """Give back one slot (channel deleted or creation rolled back)."""
        quota = await self.storage.release_quota(tenant_id, self.default_limit)
        logger.info("Channel slot released", tenant_id=tenant_id, used=quota.used, limit=quota.limit)
        return quota

    async def get_quota_info(self, tenant_id: str) -> QuotaInfo:
        """Pure read for display purposes."""
        quota = await self.storage.get_quota(tenant_id)
        limit = quota.limit if quota else self.default_limit
        used = quota.used if quota else 0
        return QuotaInfo(
            limit=limit,
            used=used,
            can_create_more=used < limit,
            remaining=max(0, limit - used),
        )

    async def set_tenant_limit(
        self,
        tenant_id: str,
        new_limit: int,
        actor_role: str | None,
    ) -> TenantQuota:
        """Change a tenant's limit (elevated roles only).

        Existing channels over the new limit are kept; only further
        creation is blocked.
        """
        if not is_elevated(actor_role):
            raise PermissionDenied("set_tenant_limit", actor_role)
        if new_limit < 0:
            raise ValidationError("Limit must not be negative", details={"limit": new_limit})

        quota = await self.storage.set_quota_limit(tenant_id, new_limit)
        logger.info("Tenant connection limit updated", tenant_id=tenant_id, limit=new_limit)
        return quota

    async def blocked_attempts(self, tenant_id: str, limit: int = 50) -> list[QuotaBlockEvent]:
        return await self.storage.list_quota_blocks(tenant_id, limit=limit)

    async def _log_blocked(self, quota: TenantQuota, reason: str, actor: str | None) -> None:
        logger.warning(
            "Channel creation blocked by quota",
            tenant_id=quota.tenant_id,
            used=quota.used,
            limit=quota.limit,
            actor=actor,
        )
        try:
            await self.storage.save_quota_block(
                QuotaBlockEvent(
                    id=str(uuid4()),
                    tenant_id=quota.tenant_id,
                    used=quota.used,
                    limit=quota.limit,
                    reason=reason,
                    actor=actor,
                )
            )
        except Exception as e:
            logger.warning("Failed to record blocked attempt", tenant_id=quota.tenant_id, error=str(e))
