"""Guardrail and quota records."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ProtectionLevel(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    NORMAL = "NORMAL"


LEVEL_ORDER = {ProtectionLevel.CRITICAL: 0, ProtectionLevel.HIGH: 1, ProtectionLevel.NORMAL: 2}


class ProtectionEntry(BaseModel):
    """Marks a channel resource as untouchable by destructive operations."""

    resource_id: str = Field(..., description="Provider identifier of the channel resource")
    level: ProtectionLevel = ProtectionLevel.CRITICAL
    reason: str
    client_label: str
    instance_name: str = ""
    created_by: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)


class AuditEvent(BaseModel):
    """One guardrail decision or guarded operation outcome."""

    id: str
    resource_id: str
    event: str
    operation: str
    blocked: bool = False
    actor: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class TenantQuota(BaseModel):
    """Channel resource allowance for a tenant."""

    tenant_id: str
    limit: int = Field(..., ge=0)
    used: int = Field(default=0, ge=0)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)


class QuotaBlockEvent(BaseModel):
    """A channel creation attempt rejected for lack of quota."""

    id: str
    tenant_id: str
    used: int
    limit: int
    reason: str
    actor: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
