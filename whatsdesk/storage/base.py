"""Abstract base class for storage backends."""

from abc import ABC, abstractmethod
from typing import Any

from whatsdesk.models import (
    AgentConfig,
    AgentUsageLog,
    AuditEvent,
    ChannelResource,
    Conversation,
    ConversationStatus,
    DocumentCategory,
    DocumentStatus,
    KnowledgeDocument,
    Message,
    PromptTemplate,
    ProtectionEntry,
    QuotaBlockEvent,
    Tenant,
    TenantQuota,
)


class StorageBackend(ABC):
    """Abstract storage backend interface.

    Operations documented as atomic must be implemented as a single
    conditional write (lock or transaction), never as a read in the caller
    followed by a separate write.
    """

    # ==================== Tenant Operations ====================

    @abstractmethod
    async def get_tenant(self, tenant_id: str) -> Tenant | None:
        """Get a tenant by ID."""
        ...

    @abstractmethod
    async def save_tenant(self, tenant: Tenant) -> Tenant:
        """Save or update a tenant."""
        ...

    @abstractmethod
    async def list_tenants(self, status: str | None = None) -> list[Tenant]:
        """List all tenants, optionally filtered by status."""
        ...

    # ==================== Channel Operations ====================

    @abstractmethod
    async def get_channel(self, channel_id: str) -> ChannelResource | None:
        """Get a channel resource by internal ID."""
        ...

    @abstractmethod
    async def get_channel_by_provider_id(self, provider_id: str) -> ChannelResource | None:
        """Get a channel resource by the provider's identifier."""
        ...

    @abstractmethod
    async def save_channel(self, channel: ChannelResource) -> ChannelResource:
        """Save or update a channel resource."""
        ...

    @abstractmethod
    async def list_channels(self, tenant_id: str) -> list[ChannelResource]:
        """List a tenant's channel resources, oldest first."""
        ...

    @abstractmethod
    async def delete_channel(self, channel_id: str) -> bool:
        """Delete a channel resource record."""
        ...

    # ==================== Protection Operations ====================

    @abstractmethod
    async def get_protection_entry(self, resource_id: str) -> ProtectionEntry | None:
        """Get the protection entry for a resource, if any."""
        ...

    @abstractmethod
    async def save_protection_entry(self, entry: ProtectionEntry) -> ProtectionEntry:
        """Create or replace a protection entry."""
        ...

    @abstractmethod
    async def delete_protection_entry(self, resource_id: str) -> bool:
        """Remove a protection entry."""
        ...

    @abstractmethod
    async def list_protection_entries(self) -> list[ProtectionEntry]:
        """List all stored protection entries."""
        ...

    @abstractmethod
    async def save_audit_event(self, event: AuditEvent) -> AuditEvent:
        """Append an audit event."""
        ...

    @abstractmethod
    async def list_audit_events(
        self,
        resource_id: str | None = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """List audit events, newest first."""
        ...

    # ==================== Quota Operations ====================

    @abstractmethod
    async def get_quota(self, tenant_id: str) -> TenantQuota | None:
        """Read the current quota record."""
        ...

    @abstractmethod
    async def try_reserve_quota(
        self,
        tenant_id: str,
        default_limit: int,
    ) -> tuple[bool, TenantQuota]:
        """Atomically increment ``used`` if it is below ``limit``.

        A missing record is created with ``default_limit``.

        Returns:
            Tuple of (reserved, quota after the attempt)
        """
        ...

    @abstractmethod
    async def release_quota(self, tenant_id: str, default_limit: int) -> TenantQuota:
        """Atomically decrement ``used``, never below zero."""
        ...

    @abstractmethod
    async def set_quota_limit(
        self,
        tenant_id: str,
        limit: int,
    ) -> TenantQuota:
        """Change the limit without touching ``used``."""
        ...

    @abstractmethod
    async def save_quota_block(self, event: QuotaBlockEvent) -> QuotaBlockEvent:
        """Record a blocked creation attempt."""
        ...

    @abstractmethod
    async def list_quota_blocks(self, tenant_id: str, limit: int = 50) -> list[QuotaBlockEvent]:
        """List blocked attempts for a tenant, newest first."""
        ...

    # ==================== Conversation Operations ====================

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        """Get a conversation by ID."""
        ...

    @abstractmethod
    async def get_open_conversation(
        self,
        channel_id: str,
        contact: str,
    ) -> Conversation | None:
        """Get the active or waiting_human conversation for a contact."""
        ...

    @abstractmethod
    async def save_conversation(self, conversation: Conversation) -> Conversation:
        """Save or update a conversation."""
        ...

    @abstractmethod
    async def merge_conversation_context(
        self,
        conversation_id: str,
        patch: dict[str, Any],
    ) -> Conversation | None:
        """Atomically merge ``patch`` into the stored context."""
        ...

    @abstractmethod
    async def list_conversations(
        self,
        tenant_id: str,
        statuses: list[ConversationStatus] | None = None,
        limit: int = 50,
    ) -> list[Conversation]:
        """List conversations for a tenant, most recent activity first."""
        ...

    # ==================== Message Operations ====================

    @abstractmethod
    async def get_message(self, message_id: str) -> Message | None:
        """Get a message by ID."""
        ...

    @abstractmethod
    async def save_message(self, message: Message) -> Message:
        """Append a message."""
        ...

    @abstractmethod
    async def mark_message_processed(self, message_id: str, reply: str) -> Message | None:
        """Flag an inbound message as answered with ``reply``."""
        ...

    @abstractmethod
    async def get_messages(
        self,
        conversation_key: str,
        limit: int = 50,
    ) -> list[Message]:
        """Get the first ``limit`` messages of a thread in chronological order."""
        ...

    @abstractmethod
    async def get_recent_messages(
        self,
        conversation_key: str,
        limit: int = 10,
    ) -> list[Message]:
        """Get the last ``limit`` messages of a thread, oldest first."""
        ...

    @abstractmethod
    async def list_tenant_messages(self, tenant_id: str) -> list[Message]:
        """All messages of a tenant (for statistics)."""
        ...

    # ==================== Knowledge Operations ====================

    @abstractmethod
    async def get_document(self, document_id: str) -> KnowledgeDocument | None:
        """Get a knowledge document by ID."""
        ...

    @abstractmethod
    async def save_document(self, document: KnowledgeDocument) -> KnowledgeDocument:
        """Save or update a knowledge document."""
        ...

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        """Delete a knowledge document record."""
        ...

    @abstractmethod
    async def list_documents(
        self,
        tenant_id: str,
        status: DocumentStatus | None = None,
        active: bool | None = None,
        category: DocumentCategory | None = None,
    ) -> list[KnowledgeDocument]:
        """List a tenant's documents in upload order."""
        ...

    # ==================== Agent Operations ====================

    @abstractmethod
    async def get_agent_config(self, agent_id: str) -> AgentConfig | None:
        """Get an agent configuration by ID."""
        ...

    @abstractmethod
    async def save_agent_config(self, agent: AgentConfig) -> AgentConfig:
        """Save or update an agent configuration."""
        ...

    @abstractmethod
    async def delete_agent_config(self, agent_id: str) -> bool:
        """Delete an agent configuration."""
        ...

    @abstractmethod
    async def list_agent_configs(self, tenant_id: str | None) -> list[AgentConfig]:
        """List agents in a scope (``None`` is the global scope)."""
        ...

    @abstractmethod
    async def get_active_agent_config(self, tenant_id: str | None) -> AgentConfig | None:
        """Get the active agent of a scope."""
        ...

    @abstractmethod
    async def activate_agent_config(self, agent_id: str) -> AgentConfig | None:
        """Atomically activate an agent and deactivate its scope siblings."""
        ...

    # ==================== Prompt Template Operations ====================

    @abstractmethod
    async def get_prompt_template(self, template_id: str) -> PromptTemplate | None:
        """Get a prompt template by ID."""
        ...

    @abstractmethod
    async def save_prompt_template(self, template: PromptTemplate) -> PromptTemplate:
        """Save or update a prompt template."""
        ...

    @abstractmethod
    async def list_prompt_templates(self) -> list[PromptTemplate]:
        """List prompt templates."""
        ...

    @abstractmethod
    async def get_active_prompt_template(self) -> PromptTemplate | None:
        """Get the active prompt template."""
        ...

    @abstractmethod
    async def activate_prompt_template(self, template_id: str) -> PromptTemplate | None:
        """Atomically activate a template and deactivate all others."""
        ...

    # ==================== Usage Operations ====================

    @abstractmethod
    async def save_usage_log(self, log: AgentUsageLog) -> AgentUsageLog:
        """Record completion usage."""
        ...

    @abstractmethod
    async def list_usage_logs(self, tenant_id: str, limit: int = 100) -> list[AgentUsageLog]:
        """List usage logs for a tenant, newest first."""
        ...

    # ==================== Health Check ====================

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if storage is healthy."""
        ...
