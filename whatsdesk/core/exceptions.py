"""Custom exceptions for the application."""

from typing import Any


class AppException(Exception):
    """Base exception for application errors."""

    status_code: int = 400

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(AppException):
    """Raised when there's a configuration problem."""

    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, code="CONFIGURATION_ERROR", details=details)


class ValidationError(AppException):
    """Raised when a request is rejected before any side effect."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class PermissionDenied(AppException):
    """Raised when the caller's role may not perform a privileged operation."""

    status_code = 403

    def __init__(self, operation: str, role: str | None) -> None:
        role = getattr(role, "value", role)
        super().__init__(
            f"Role '{role}' may not perform {operation}",
            code="PERMISSION_DENIED",
            details={"operation": operation, "role": role},
        )


# ==================== Not Found ====================


class NotFoundError(AppException):
    """Raised when a referenced entity does not exist."""

    status_code = 404

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(
            f"{kind.capitalize()} not found: {entity_id}",
            code=f"{kind.upper()}_NOT_FOUND",
            details={f"{kind}_id": entity_id},
        )


class TenantNotFound(NotFoundError):
    """Raised when a tenant is not found."""

    def __init__(self, tenant_id: str) -> None:
        super().__init__("tenant", tenant_id)


class ChannelNotFound(NotFoundError):
    def __init__(self, channel_id: str) -> None:
        super().__init__("channel", channel_id)


class ConversationNotFound(NotFoundError):
    def __init__(self, conversation_id: str) -> None:
        super().__init__("conversation", conversation_id)


class DocumentNotFound(NotFoundError):
    def __init__(self, document_id: str) -> None:
        super().__init__("document", document_id)


class AgentNotFound(NotFoundError):
    def __init__(self, agent_id: str) -> None:
        super().__init__("agent", agent_id)


class PromptTemplateNotFound(NotFoundError):
    def __init__(self, template_id: str) -> None:
        super().__init__("prompt_template", template_id)


# ==================== Upstream ====================


class UpstreamError(AppException):
    """Raised when an external provider call fails."""

    status_code = 502


class LLMError(UpstreamError):
    """Raised when the completion provider fails or answers with garbage."""

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(
            message,
            code="LLM_ERROR",
            details={"provider": provider} if provider else {},
        )


class ChannelError(UpstreamError):
    """Raised when channel provider operations fail."""

    def __init__(self, message: str, channel: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message,
            code="CHANNEL_ERROR",
            details={"channel": channel, **(details or {})},
        )


# ==================== Safety ====================


class ProtectionViolation(AppException):
    """Raised when a destructive operation targets a guarded resource.

    Never retryable: the guardrail decision is terminal.
    """

    status_code = 423

    def __init__(
        self,
        resource_id: str,
        operation: str,
        reason: str,
        level: str | None = None,
        client_label: str | None = None,
    ) -> None:
        super().__init__(
            f"Operation {operation} blocked on protected resource {resource_id}: {reason}",
            code="PROTECTION_VIOLATION",
            details={
                "resource_id": resource_id,
                "operation": operation,
                "reason": reason,
                "level": level,
                "client_label": client_label,
                "retryable": False,
            },
        )


class QuotaExceeded(AppException):
    """Raised when a tenant has no channel slots left."""

    status_code = 409

    def __init__(self, tenant_id: str, used: int, limit: int, reason: str) -> None:
        super().__init__(
            reason,
            code="QUOTA_EXCEEDED",
            details={"tenant_id": tenant_id, "used": used, "limit": limit},
        )


class InvalidTransition(AppException):
    """Raised on a conversation status change the state machine forbids."""

    status_code = 409

    def __init__(self, conversation_id: str, current: str, target: str) -> None:
        super().__init__(
            f"Cannot move conversation {conversation_id} from {current} to {target}",
            code="INVALID_TRANSITION",
            details={"conversation_id": conversation_id, "from": current, "to": target},
        )


class KnowledgeStoreError(AppException):
    """Raised when an upload fails after its raw file was written."""

    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, code="KNOWLEDGE_STORE_ERROR", details=details)
