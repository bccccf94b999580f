"""Resource guardrail for channel resources."""

from whatsdesk.services.guardrail.protection import (
    FIXED_PROTECTED_RESOURCES,
    GuardDecision,
    OperationKind,
    ResourceGuardrail,
)

__all__ = ["FIXED_PROTECTED_RESOURCES", "GuardDecision", "OperationKind", "ResourceGuardrail"]
