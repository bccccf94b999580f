"""Tenant models for multi-tenancy support."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class TenantStatus(str, Enum):
    """Tenant account status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    TRIAL = "trial"


class UserRole(str, Enum):
    """Roles a caller may act under."""

    SYSTEM_OWNER = "system_owner"
    DEVELOPER = "developer"
    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"


# Roles allowed to touch guardrail entries and tenant quotas
ELEVATED_ROLES = frozenset({UserRole.SYSTEM_OWNER, UserRole.DEVELOPER, UserRole.ADMIN})


def is_elevated(role: "UserRole | str | None") -> bool:
    """Check whether a role may run privileged operations."""
    if role is None:
        return False
    try:
        return UserRole(role) in ELEVATED_ROLES
    except ValueError:
        return False


class TenantProfile(BaseModel):
    """Company data used to fill prompt template variables."""

    company_name: str
    business_area: str = ""
    available_services: str = ""
    company_address: str = ""
    company_phone: str = ""
    business_hours: str = ""

    def prompt_variables(self) -> dict[str, str]:
        """Values for every variable a prompt template may declare."""
        return self.model_dump()


# Variables a prompt template can reference, one per TenantProfile field
TENANT_PROMPT_VARIABLES: tuple[str, ...] = tuple(TenantProfile.model_fields)


class Tenant(BaseModel):
    """Tenant (customer organization) model."""

    id: str = Field(..., description="Unique tenant identifier")
    name: str = Field(..., description="Tenant display name")
    status: TenantStatus = TenantStatus.TRIAL
    profile: TenantProfile

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
