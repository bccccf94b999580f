"""Admin endpoints for tenants, protected resources and quotas."""

from dataclasses import asdict
from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from whatsdesk.api.dependencies import ActorDep, ActorRoleDep, ServicesDep, StorageDep
from whatsdesk.core.exceptions import TenantNotFound
from whatsdesk.models import (
    AuditEvent,
    ProtectionEntry,
    ProtectionLevel,
    QuotaBlockEvent,
    Tenant,
    TenantProfile,
    TenantStatus,
)
from whatsdesk.services.guardrail import OperationKind

logger = structlog.get_logger()

router = APIRouter(prefix="/admin", tags=["Admin"])


# ==================== Pydantic Schemas ====================


class TenantCreate(BaseModel):
    """Schema for creating a tenant."""

    id: str = Field(..., min_length=1)
    name: str
    profile: TenantProfile


class TenantUpdate(BaseModel):
    """Schema for updating a tenant."""

    name: str | None = None
    status: TenantStatus | None = None
    profile: TenantProfile | None = None


class ProtectRequest(BaseModel):
    resource_id: str = Field(..., min_length=1)
    level: ProtectionLevel = ProtectionLevel.HIGH
    reason: str
    client_label: str
    instance_name: str = ""


class QuotaUpdate(BaseModel):
    limit: int


# ==================== Tenant Endpoints ====================


@router.post("/tenants", response_model=Tenant, status_code=status.HTTP_201_CREATED)
async def create_tenant(data: TenantCreate, storage: StorageDep) -> Tenant:
    """Create a new tenant."""
    if await storage.get_tenant(data.id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Tenant already exists: {data.id}",
        )

    tenant = Tenant(id=data.id, name=data.name, status=TenantStatus.TRIAL, profile=data.profile)
    await storage.save_tenant(tenant)

    logger.info("Created tenant", tenant_id=tenant.id)
    return tenant


@router.get("/tenants", response_model=list[Tenant])
async def list_tenants(storage: StorageDep, status_filter: TenantStatus | None = None) -> list[Tenant]:
    """List all tenants."""
    return await storage.list_tenants(status=status_filter.value if status_filter else None)


@router.get("/tenants/{tenant_id}", response_model=Tenant)
async def get_tenant(tenant_id: str, storage: StorageDep) -> Tenant:
    tenant = await storage.get_tenant(tenant_id)
    if not tenant:
        raise TenantNotFound(tenant_id)
    return tenant


@router.patch("/tenants/{tenant_id}", response_model=Tenant)
async def update_tenant(tenant_id: str, data: TenantUpdate, storage: StorageDep) -> Tenant:
    """Update a tenant's name, status or profile."""
    tenant = await storage.get_tenant(tenant_id)
    if not tenant:
        raise TenantNotFound(tenant_id)

    if data.name is not None:
        tenant.name = data.name
    if data.status is not None:
        tenant.status = data.status
    if data.profile is not None:
        tenant.profile = data.profile

    await storage.save_tenant(tenant)
    logger.info("Updated tenant", tenant_id=tenant_id)
    return tenant


# ==================== Protection Endpoints ====================


@router.get("/protected", response_model=list[ProtectionEntry])
async def list_protected(services: ServicesDep) -> list[ProtectionEntry]:
    """Protected resources, most critical first."""
    return await services.guardrail.list_protected()


@router.post("/protected", response_model=ProtectionEntry, status_code=status.HTTP_201_CREATED)
async def protect_resource(
    data: ProtectRequest,
    services: ServicesDep,
    role: ActorRoleDep,
    actor: ActorDep,
) -> ProtectionEntry:
    return await services.guardrail.protect(
        data.resource_id,
        level=data.level,
        reason=data.reason,
        client_label=data.client_label,
        actor_role=role,
        instance_name=data.instance_name,
        actor=actor,
    )


@router.delete("/protected/{resource_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unprotect_resource(
    resource_id: str,
    services: ServicesDep,
    role: ActorRoleDep,
    actor: ActorDep,
) -> None:
    if not await services.guardrail.unprotect(resource_id, actor_role=role, actor=actor):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Resource is not protected: {resource_id}",
        )


@router.get("/protected/{resource_id}/check")
async def check_resource(
    resource_id: str,
    services: ServicesDep,
    actor: ActorDep,
    operation: OperationKind = OperationKind.DELETE,
) -> dict[str, Any]:
    """Dry-run the guardrail for an operation on a resource."""
    decision = await services.guardrail.check_before_operation(resource_id, operation, actor=actor)
    return {
        "resource_id": resource_id,
        "operation": operation.value,
        "allowed": decision.allowed,
        "reason": decision.reason,
        "level": decision.level,
        "client_label": decision.client_label,
    }


@router.get("/audit", response_model=list[AuditEvent])
async def audit_trail(
    services: ServicesDep,
    resource_id: str | None = None,
    limit: int = 100,
) -> list[AuditEvent]:
    return await services.guardrail.audit_trail(resource_id=resource_id, limit=limit)


# ==================== Quota Endpoints ====================


@router.get("/tenants/{tenant_id}/quota")
async def get_quota(tenant_id: str, services: ServicesDep) -> dict[str, Any]:
    info = await services.quota.get_quota_info(tenant_id)
    return {"tenant_id": tenant_id, **asdict(info)}


@router.put("/tenants/{tenant_id}/quota")
async def set_quota(
    tenant_id: str,
    data: QuotaUpdate,
    services: ServicesDep,
    role: ActorRoleDep,
) -> dict[str, Any]:
    """Change the tenant's channel limit (elevated roles only)."""
    quota = await services.quota.set_tenant_limit(tenant_id, data.limit, actor_role=role)
    return {
        "tenant_id": tenant_id,
        "limit": quota.limit,
        "used": quota.used,
        "remaining": quota.remaining,
    }


@router.get("/tenants/{tenant_id}/quota/blocked", response_model=list[QuotaBlockEvent])
async def blocked_attempts(tenant_id: str, services: ServicesDep, limit: int = 50) -> list[QuotaBlockEvent]:
    return await services.quota.blocked_attempts(tenant_id, limit=limit)
