"""Tenant channel quota."""

from whatsdesk.services.quota.enforcer import QuotaDecision, QuotaEnforcer, QuotaInfo

__all__ = ["QuotaDecision", "QuotaEnforcer", "QuotaInfo"]
