"""Core module - configuration and utilities."""

from whatsdesk.core.config import settings
from whatsdesk.core.exceptions import (
    AppException,
    ConfigurationError,
    NotFoundError,
    PermissionDenied,
    ProtectionViolation,
    QuotaExceeded,
    TenantNotFound,
    UpstreamError,
    ValidationError,
)

__all__ = [
    "settings",
    "AppException",
    "ConfigurationError",
    "NotFoundError",
    "PermissionDenied",
    "ProtectionViolation",
    "QuotaExceeded",
    "TenantNotFound",
    "UpstreamError",
    "ValidationError",
]
