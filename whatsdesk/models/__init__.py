"""Data models for the application."""

from whatsdesk.models.agent import AgentConfig, AgentProvider, AgentUsageLog, PromptTemplate
from whatsdesk.models.channel import ChannelResource, ChannelStatus
from whatsdesk.models.conversation import (
    OPEN_STATUSES,
    Conversation,
    ConversationStage,
    ConversationStatus,
    can_transition,
    conversation_key,
)
from whatsdesk.models.knowledge import DocumentCategory, DocumentStatus, KnowledgeDocument
from whatsdesk.models.message import InboundEvent, Message, MessageDirection, MessageType
from whatsdesk.models.protection import (
    AuditEvent,
    ProtectionEntry,
    ProtectionLevel,
    QuotaBlockEvent,
    TenantQuota,
)
from whatsdesk.models.tenant import (
    ELEVATED_ROLES,
    TENANT_PROMPT_VARIABLES,
    Tenant,
    TenantProfile,
    TenantStatus,
    UserRole,
    is_elevated,
)

__all__ = [
    # Tenant
    "Tenant",
    "TenantProfile",
    "TenantStatus",
    "UserRole",
    "ELEVATED_ROLES",
    "TENANT_PROMPT_VARIABLES",
    "is_elevated",
    # Channel
    "ChannelResource",
    "ChannelStatus",
    # Guardrail / quota
    "AuditEvent",
    "ProtectionEntry",
    "ProtectionLevel",
    "QuotaBlockEvent",
    "TenantQuota",
    # Conversation
    "Conversation",
    "ConversationStage",
    "ConversationStatus",
    "OPEN_STATUSES",
    "can_transition",
    "conversation_key",
    # Message
    "InboundEvent",
    "Message",
    "MessageDirection",
    "MessageType",
    # Knowledge
    "DocumentCategory",
    "DocumentStatus",
    "KnowledgeDocument",
    # Agent
    "AgentConfig",
    "AgentProvider",
    "AgentUsageLog",
    "PromptTemplate",
]
