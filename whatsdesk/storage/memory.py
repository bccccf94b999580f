"""In-memory storage backend for development and testing."""

import asyncio
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel

from whatsdesk.models import (
    OPEN_STATUSES,
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
    TenantProfile,
    TenantQuota,
    TenantStatus,
)
from whatsdesk.storage.base import StorageBackend

M = TypeVar("M", bound=BaseModel)


def _copy(model: M | None) -> M | None:
    """Detach stored records from callers, like a real database would."""
    return model.model_copy(deep=True) if model is not None else None


class InMemoryStorage(StorageBackend):
    """In-memory storage implementation for development."""

    def __init__(self) -> None:
        self._tenants: dict[str, Tenant] = {}
        self._channels: dict[str, ChannelResource] = {}
        self._protection: dict[str, ProtectionEntry] = {}
        self._audit: list[AuditEvent] = []
        self._quotas: dict[str, TenantQuota] = {}
        self._quota_blocks: list[QuotaBlockEvent] = []
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, Message] = {}
        self._documents: dict[str, KnowledgeDocument] = {}
        self._agents: dict[str, AgentConfig] = {}
        self._prompts: dict[str, PromptTemplate] = {}
        self._usage: list[AgentUsageLog] = []
        self._lock = asyncio.Lock()

    # ==================== Tenant Operations ====================

    async def get_tenant(self, tenant_id: str) -> Tenant | None:
        return _copy(self._tenants.get(tenant_id))

    async def save_tenant(self, tenant: Tenant) -> Tenant:
        tenant.updated_at = datetime.utcnow()
        self._tenants[tenant.id] = _copy(tenant)
        return tenant

    async def list_tenants(self, status: str | None = None) -> list[Tenant]:
        tenants = [_copy(t) for t in self._tenants.values()]
        if status:
            tenants = [t for t in tenants if t.status == status]
        return tenants

    # ==================== Channel Operations ====================

    async def get_channel(self, channel_id: str) -> ChannelResource | None:
        return _copy(self._channels.get(channel_id))

    async def get_channel_by_provider_id(self, provider_id: str) -> ChannelResource | None:
        for channel in self._channels.values():
            if channel.provider_id == provider_id:
                return _copy(channel)
        return None

    async def save_channel(self, channel: ChannelResource) -> ChannelResource:
        channel.updated_at = datetime.utcnow()
        self._channels[channel.id] = _copy(channel)
        return channel

    async def list_channels(self, tenant_id: str) -> list[ChannelResource]:
        channels = [_copy(c) for c in self._channels.values() if c.tenant_id == tenant_id]
        channels.sort(key=lambda c: c.created_at)
        return channels

    async def delete_channel(self, channel_id: str) -> bool:
        return self._channels.pop(channel_id, None) is not None

    # ==================== Protection Operations ====================

    async def get_protection_entry(self, resource_id: str) -> ProtectionEntry | None:
        return _copy(self._protection.get(resource_id))

    async def save_protection_entry(self, entry: ProtectionEntry) -> ProtectionEntry:
        self._protection[entry.resource_id] = _copy(entry)
        return entry

    async def delete_protection_entry(self, resource_id: str) -> bool:
        return self._protection.pop(resource_id, None) is not None

    async def list_protection_entries(self) -> list[ProtectionEntry]:
        return [_copy(e) for e in self._protection.values()]

    async def save_audit_event(self, event: AuditEvent) -> AuditEvent:
        self._audit.append(_copy(event))
        return event

    async def list_audit_events(
        self,
        resource_id: str | None = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = [e for e in reversed(self._audit) if resource_id is None or e.resource_id == resource_id]
        return [_copy(e) for e in events[:limit]]

    # ==================== Quota Operations ====================

    async def get_quota(self, tenant_id: str) -> TenantQuota | None:
        return _copy(self._quotas.get(tenant_id))

    def _quota_record(self, tenant_id: str, default_limit: int) -> TenantQuota:
        quota = self._quotas.get(tenant_id)
        if quota is None:
            quota = TenantQuota(tenant_id=tenant_id, limit=default_limit)
            self._quotas[tenant_id] = quota
        return quota

    async def try_reserve_quota(
        self,
        tenant_id: str,
        default_limit: int,
    ) -> tuple[bool, TenantQuota]:
        async with self._lock:
            quota = self._quota_record(tenant_id, default_limit)
            if quota.used >= quota.limit:
                return False, _copy(quota)
            quota.used += 1
            quota.updated_at = datetime.utcnow()
            return True, _copy(quota)

    async def release_quota(self, tenant_id: str, default_limit: int) -> TenantQuota:
        async with self._lock:
            quota = self._quota_record(tenant_id, default_limit)
            quota.used = max(0, quota.used - 1)
            quota.updated_at = datetime.utcnow()
            return _copy(quota)

    async def set_quota_limit(self, tenant_id: str, limit: int) -> TenantQuota:
        async with self._lock:
            quota = self._quota_record(tenant_id, limit)
            quota.limit = limit
            quota.updated_at = datetime.utcnow()
            return _copy(quota)

    async def save_quota_block(self, event: QuotaBlockEvent) -> QuotaBlockEvent:
        self._quota_blocks.append(_copy(event))
        return event

    async def list_quota_blocks(self, tenant_id: str, limit: int = 50) -> list[QuotaBlockEvent]:
        blocks = [b for b in reversed(self._quota_blocks) if b.tenant_id == tenant_id]
        return [_copy(b) for b in blocks[:limit]]

    # ==================== Conversation Operations ====================

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        return _copy(self._conversations.get(conversation_id))

    async def get_open_conversation(
        self,
        channel_id: str,
        contact: str,
    ) -> Conversation | None:
        for conv in self._conversations.values():
            if (
                conv.channel_id == channel_id
                and conv.contact == contact
                and conv.status in OPEN_STATUSES
            ):
                return _copy(conv)
        return None

    async def save_conversation(self, conversation: Conversation) -> Conversation:
        conversation.updated_at = datetime.utcnow()
        self._conversations[conversation.id] = _copy(conversation)
        return conversation

    async def merge_conversation_context(
        self,
        conversation_id: str,
        patch: dict[str, Any],
    ) -> Conversation | None:
        async with self._lock:
            conversation = self._conversations.get(conversation_id)
            if conversation is None:
                return None
            conversation.merge_context(patch)
            conversation.updated_at = datetime.utcnow()
            return _copy(conversation)

    async def list_conversations(
        self,
        tenant_id: str,
        statuses: list[ConversationStatus] | None = None,
        limit: int = 50,
    ) -> list[Conversation]:
        convs = [c for c in self._conversations.values() if c.tenant_id == tenant_id]
        if statuses:
            convs = [c for c in convs if c.status in statuses]
        convs.sort(key=lambda x: x.last_activity_at, reverse=True)
        return [_copy(c) for c in convs[:limit]]

    # ==================== Message Operations ====================

    async def get_message(self, message_id: str) -> Message | None:
        return _copy(self._messages.get(message_id))

    async def save_message(self, message: Message) -> Message:
        self._messages[message.id] = _copy(message)
        return message

    async def mark_message_processed(self, message_id: str, reply: str) -> Message | None:
        message = self._messages.get(message_id)
        if message is None:
            return None
        message.processed = True
        message.reply = reply
        message.processed_at = datetime.utcnow()
        return _copy(message)

    def _thread(self, conversation_key: str) -> list[Message]:
        messages = [m for m in self._messages.values() if m.conversation_key == conversation_key]
        messages.sort(key=lambda x: x.created_at)
        return messages

    async def get_messages(
        self,
        conversation_key: str,
        limit: int = 50,
    ) -> list[Message]:
        return [_copy(m) for m in self._thread(conversation_key)[:limit]]

    async def get_recent_messages(
        self,
        conversation_key: str,
        limit: int = 10,
    ) -> list[Message]:
        if limit <= 0:
            return []
        return [_copy(m) for m in self._thread(conversation_key)[-limit:]]

    async def list_tenant_messages(self, tenant_id: str) -> list[Message]:
        return [_copy(m) for m in self._messages.values() if m.tenant_id == tenant_id]

    # ==================== Knowledge Operations ====================

    async def get_document(self, document_id: str) -> KnowledgeDocument | None:
        return _copy(self._documents.get(document_id))

    async def save_document(self, document: KnowledgeDocument) -> KnowledgeDocument:
        document.updated_at = datetime.utcnow()
        self._documents[document.id] = _copy(document)
        return document

    async def delete_document(self, document_id: str) -> bool:
        return self._documents.pop(document_id, None) is not None

    async def list_documents(
        self,
        tenant_id: str,
        status: DocumentStatus | None = None,
        active: bool | None = None,
        category: DocumentCategory | None = None,
    ) -> list[KnowledgeDocument]:
        docs = [d for d in self._documents.values() if d.tenant_id == tenant_id]
        if status is not None:
            docs = [d for d in docs if d.status == status]
        if active is not None:
            docs = [d for d in docs if d.active == active]
        if category is not None:
            docs = [d for d in docs if d.category == category]
        docs.sort(key=lambda d: d.created_at)
        return [_copy(d) for d in docs]

    # ==================== Agent Operations ====================

    async def get_agent_config(self, agent_id: str) -> AgentConfig | None:
        return _copy(self._agents.get(agent_id))

    async def save_agent_config(self, agent: AgentConfig) -> AgentConfig:
        agent.updated_at = datetime.utcnow()
        self._agents[agent.id] = _copy(agent)
        return agent

    async def delete_agent_config(self, agent_id: str) -> bool:
        return self._agents.pop(agent_id, None) is not None

    async def list_agent_configs(self, tenant_id: str | None) -> list[AgentConfig]:
        agents = [a for a in self._agents.values() if a.tenant_id == tenant_id]
        agents.sort(key=lambda a: a.created_at)
        return [_copy(a) for a in agents]

    async def get_active_agent_config(self, tenant_id: str | None) -> AgentConfig | None:
        for agent in self._agents.values():
            if agent.tenant_id == tenant_id and agent.active:
                return _copy(agent)
        return None

    async def activate_agent_config(self, agent_id: str) -> AgentConfig | None:
        async with self._lock:
            target = self._agents.get(agent_id)
            if target is None:
                return None
            now = datetime.utcnow()
            for agent in self._agents.values():
                if agent.tenant_id == target.tenant_id and agent.active and agent.id != agent_id:
                    agent.active = False
                    agent.updated_at = now
            target.active = True
            target.updated_at = now
            return _copy(target)

    # ==================== Prompt Template Operations ====================

    async def get_prompt_template(self, template_id: str) -> PromptTemplate | None:
        return _copy(self._prompts.get(template_id))

    async def save_prompt_template(self, template: PromptTemplate) -> PromptTemplate:
        template.updated_at = datetime.utcnow()
        self._prompts[template.id] = _copy(template)
        return template

    async def list_prompt_templates(self) -> list[PromptTemplate]:
        return [_copy(p) for p in self._prompts.values()]

    async def get_active_prompt_template(self) -> PromptTemplate | None:
        for template in self._prompts.values():
            if template.active:
                return _copy(template)
        return None

    async def activate_prompt_template(self, template_id: str) -> PromptTemplate | None:
        async with self._lock:
            target = self._prompts.get(template_id)
            if target is None:
                return None
            now = datetime.utcnow()
            for template in self._prompts.values():
                if template.active and template.id != template_id:
                    template.active = False
                    template.updated_at = now
            target.active = True
            target.updated_at = now
            return _copy(target)

    # ==================== Usage Operations ====================

    async def save_usage_log(self, log: AgentUsageLog) -> AgentUsageLog:
        self._usage.append(_copy(log))
        return log

    async def list_usage_logs(self, tenant_id: str, limit: int = 100) -> list[AgentUsageLog]:
        logs = [u for u in reversed(self._usage) if u.tenant_id == tenant_id]
        return [_copy(u) for u in logs[:limit]]

    # ==================== Health Check ====================

    async def health_check(self) -> bool:
        return True

    # ==================== Development Helpers ====================

    async def seed_demo_tenant(self) -> Tenant:
        """Create a demo tenant for local development."""
        demo_tenant = Tenant(
            id="demo",
            name="Clínica Demo",
            status=TenantStatus.ACTIVE,
            profile=TenantProfile(
                company_name="Clínica Demo",
                business_area="odontologia",
                available_services="limpeza, clareamento, ortodontia",
                company_address="Rua das Flores, 123",
                company_phone="+55 11 4000-0000",
                business_hours="seg a sex, 8h às 18h",
            ),
        )
        return await self.save_tenant(demo_tenant)
