"""Firestore storage backend for production."""

import os
from datetime import datetime
from typing import Any

import structlog
from google.cloud import firestore

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
    TenantQuota,
)
from whatsdesk.storage.base import StorageBackend

logger = structlog.get_logger()


class FirestoreStorage(StorageBackend):
    """Firestore storage implementation for production.

    Collection structure (flat, every record carries its tenant_id):
    - tenants/{tenant_id}
    - channels/{channel_id}
    - protected_instances/{resource_id}
    - protection_audit_log/{event_id}
    - tenant_quotas/{tenant_id}
    - quota_blocks/{event_id}
    - conversations/{conversation_id}
    - messages/{message_id}
    - knowledge_documents/{document_id}
    - agent_configs/{agent_id}
    - prompt_templates/{template_id}
    - agent_usage_logs/{log_id}

    Quota reservation, context merges and activation run inside
    Firestore transactions.
    """

    def __init__(self, project_id: str | None = None) -> None:
        self._project_id = project_id
        self._db: firestore.AsyncClient | None = None
        self._initialized = False

    async def _ensure_initialized(self) -> None:
        """Lazy initialization of Firestore client."""
        if self._initialized:
            return

        try:
            if os.environ.get("FIRESTORE_EMULATOR_HOST"):
                logger.info("Using Firestore emulator")

            self._db = firestore.AsyncClient(project=self._project_id)
            self._initialized = True
            logger.info("Firestore client initialized", project=self._project_id)
        except Exception as e:
            logger.error("Failed to initialize Firestore", error=str(e))
            raise

    def _col(self, name: str):
        return self._db.collection(name)

    async def _get(self, collection: str, doc_id: str, model: type) -> Any:
        await self._ensure_initialized()
        doc = await self._col(collection).document(doc_id).get()
        if not doc.exists:
            return None
        return model(**doc.to_dict())

    async def _set(self, collection: str, doc_id: str, record: Any) -> None:
        await self._ensure_initialized()
        await self._col(collection).document(doc_id).set(record.model_dump(mode="json"))

    async def _delete(self, collection: str, doc_id: str) -> bool:
        await self._ensure_initialized()
        ref = self._col(collection).document(doc_id)
        doc = await ref.get()
        if not doc.exists:
            return False
        await ref.delete()
        return True

    # ==================== Tenant Operations ====================

    async def get_tenant(self, tenant_id: str) -> Tenant | None:
        return await self._get("tenants", tenant_id, Tenant)

    async def save_tenant(self, tenant: Tenant) -> Tenant:
        tenant.updated_at = datetime.utcnow()
        await self._set("tenants", tenant.id, tenant)
        return tenant

    async def list_tenants(self, status: str | None = None) -> list[Tenant]:
        await self._ensure_initialized()
        query = self._col("tenants")
        if status:
            query = query.where("status", "==", status)

        docs = await query.get()
        return [Tenant(**doc.to_dict()) for doc in docs]

    # ==================== Channel Operations ====================

    async def get_channel(self, channel_id: str) -> ChannelResource | None:
        return await self._get("channels", channel_id, ChannelResource)

    async def get_channel_by_provider_id(self, provider_id: str) -> ChannelResource | None:
        await self._ensure_initialized()
        docs = await self._col("channels").where("provider_id", "==", provider_id).limit(1).get()
        for doc in docs:
            return ChannelResource(**doc.to_dict())
        return None

    async def save_channel(self, channel: ChannelResource) -> ChannelResource:
        channel.updated_at = datetime.utcnow()
        await self._set("channels", channel.id, channel)
        return channel

    async def list_channels(self, tenant_id: str) -> list[ChannelResource]:
        await self._ensure_initialized()
        query = self._col("channels").where("tenant_id", "==", tenant_id).order_by("created_at")
        docs = await query.get()
        return [ChannelResource(**doc.to_dict()) for doc in docs]

    async def delete_channel(self, channel_id: str) -> bool:
        return await self._delete("channels", channel_id)

    # ==================== Protection Operations ====================

    async def get_protection_entry(self, resource_id: str) -> ProtectionEntry | None:
        return await self._get("protected_instances", resource_id, ProtectionEntry)

    async def save_protection_entry(self, entry: ProtectionEntry) -> ProtectionEntry:
        await self._set("protected_instances", entry.resource_id, entry)
        return entry

    async def delete_protection_entry(self, resource_id: str) -> bool:
        return await self._delete("protected_instances", resource_id)

    async def list_protection_entries(self) -> list[ProtectionEntry]:
        await self._ensure_initialized()
        docs = await self._col("protected_instances").get()
        return [ProtectionEntry(**doc.to_dict()) for doc in docs]

    async def save_audit_event(self, event: AuditEvent) -> AuditEvent:
        await self._set("protection_audit_log", event.id, event)
        return event

    async def list_audit_events(
        self,
        resource_id: str | None = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        await self._ensure_initialized()
        query = self._col("protection_audit_log")
        if resource_id:
            query = query.where("resource_id", "==", resource_id)
        query = query.order_by("created_at", direction="DESCENDING").limit(limit)
        docs = await query.get()
        return [AuditEvent(**doc.to_dict()) for doc in docs]

    # ==================== Quota Operations ====================

    async def get_quota(self, tenant_id: str) -> TenantQuota | None:
        return await self._get("tenant_quotas", tenant_id, TenantQuota)

    async def _update_quota(self, tenant_id: str, default_limit: int, change) -> tuple[bool, TenantQuota]:
        """Run ``change(quota) -> bool`` on the quota record inside a transaction."""
        await self._ensure_initialized()
        ref = self._col("tenant_quotas").document(tenant_id)
        transaction = self._db.transaction()

        @firestore.async_transactional
        async def apply(transaction) -> tuple[bool, TenantQuota]:
            snapshot = await ref.get(transaction=transaction)
            if snapshot.exists:
                quota = TenantQuota(**snapshot.to_dict())
            else:
                quota = TenantQuota(tenant_id=tenant_id, limit=default_limit)
            changed = change(quota)
            if changed or not snapshot.exists:
                quota.updated_at = datetime.utcnow()
                transaction.set(ref, quota.model_dump(mode="json"))
            return changed, quota

        return await apply(transaction)

    async def try_reserve_quota(
        self,
        tenant_id: str,
        default_limit: int,
    ) -> tuple[bool, TenantQuota]:
        def reserve(quota: TenantQuota) -> bool:
            if quota.used >= quota.limit:
                return False
            quota.used += 1
            return True

        return await self._update_quota(tenant_id, default_limit, reserve)

    async def release_quota(self, tenant_id: str, default_limit: int) -> TenantQuota:
        def release(quota: TenantQuota) -> bool:
            quota.used = max(0, quota.used - 1)
            return True

        _, quota = await self._update_quota(tenant_id, default_limit, release)
        return quota

    async def set_quota_limit(self, tenant_id: str, limit: int) -> TenantQuota:
        def set_limit(quota: TenantQuota) -> bool:
            quota.limit = limit
            return True

        _, quota = await self._update_quota(tenant_id, limit, set_limit)
        return quota

    async def save_quota_block(self, event: QuotaBlockEvent) -> QuotaBlockEvent:
        await self._set("quota_blocks", event.id, event)
        return event

    async def list_quota_blocks(self, tenant_id: str, limit: int = 50) -> list[QuotaBlockEvent]:
        await self._ensure_initialized()
        query = (
            self._col("quota_blocks")
            .where("tenant_id", "==", tenant_id)
            .order_by("created_at", direction="DESCENDING")
            .limit(limit)
        )
        docs = await query.get()
        return [QuotaBlockEvent(**doc.to_dict()) for doc in docs]

    # ==================== Conversation Operations ====================

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        return await self._get("conversations", conversation_id, Conversation)

    async def get_open_conversation(
        self,
        channel_id: str,
        contact: str,
    ) -> Conversation | None:
        await self._ensure_initialized()

        query = (
            self._col("conversations")
            .where("channel_id", "==", channel_id)
            .where("contact", "==", contact)
            .where("status", "in", [s.value for s in OPEN_STATUSES])
            .limit(1)
        )

        docs = await query.get()
        for doc in docs:
            return Conversation(**doc.to_dict())
        return None

    async def save_conversation(self, conversation: Conversation) -> Conversation:
        conversation.updated_at = datetime.utcnow()
        await self._set("conversations", conversation.id, conversation)
        return conversation

    async def merge_conversation_context(
        self,
        conversation_id: str,
        patch: dict[str, Any],
    ) -> Conversation | None:
        await self._ensure_initialized()
        ref = self._col("conversations").document(conversation_id)
        transaction = self._db.transaction()

        @firestore.async_transactional
        async def merge(transaction) -> Conversation | None:
            snapshot = await ref.get(transaction=transaction)
            if not snapshot.exists:
                return None
            conversation = Conversation(**snapshot.to_dict())
            conversation.merge_context(patch)
            conversation.updated_at = datetime.utcnow()
            transaction.set(ref, conversation.model_dump(mode="json"))
            return conversation

        return await merge(transaction)

    async def list_conversations(
        self,
        tenant_id: str,
        statuses: list[ConversationStatus] | None = None,
        limit: int = 50,
    ) -> list[Conversation]:
        await self._ensure_initialized()

        query = self._col("conversations").where("tenant_id", "==", tenant_id)
        if statuses:
            query = query.where("status", "in", [s.value for s in statuses])

        query = query.order_by("last_activity_at", direction="DESCENDING").limit(limit)
        docs = await query.get()

        return [Conversation(**doc.to_dict()) for doc in docs]

    # ==================== Message Operations ====================

    async def get_message(self, message_id: str) -> Message | None:
        return await self._get("messages", message_id, Message)

    async def save_message(self, message: Message) -> Message:
        await self._set("messages", message.id, message)
        return message

    async def mark_message_processed(self, message_id: str, reply: str) -> Message | None:
        message = await self.get_message(message_id)
        if message is None:
            return None
        message.processed = True
        message.reply = reply
        message.processed_at = datetime.utcnow()
        await self._col("messages").document(message_id).update({
            "processed": True,
            "reply": reply,
            "processed_at": message.processed_at.isoformat(),
        })
        return message

    async def get_messages(
        self,
        conversation_key: str,
        limit: int = 50,
    ) -> list[Message]:
        await self._ensure_initialized()

        query = (
            self._col("messages")
            .where("conversation_key", "==", conversation_key)
            .order_by("created_at")
            .limit(limit)
        )

        docs = await query.get()
        return [Message(**doc.to_dict()) for doc in docs]

    async def get_recent_messages(
        self,
        conversation_key: str,
        limit: int = 10,
    ) -> list[Message]:
        if limit <= 0:
            return []
        await self._ensure_initialized()

        query = (
            self._col("messages")
            .where("conversation_key", "==", conversation_key)
            .order_by("created_at", direction="DESCENDING")
            .limit(limit)
        )

        docs = await query.get()
        messages = [Message(**doc.to_dict()) for doc in docs]
        # Reverse to get chronological order
        return list(reversed(messages))

    async def list_tenant_messages(self, tenant_id: str) -> list[Message]:
        await self._ensure_initialized()
        docs = await self._col("messages").where("tenant_id", "==", tenant_id).get()
        return [Message(**doc.to_dict()) for doc in docs]

    # ==================== Knowledge Operations ====================

    async def get_document(self, document_id: str) -> KnowledgeDocument | None:
        return await self._get("knowledge_documents", document_id, KnowledgeDocument)

    async def save_document(self, document: KnowledgeDocument) -> KnowledgeDocument:
        document.updated_at = datetime.utcnow()
        await self._set("knowledge_documents", document.id, document)
        return document

    async def delete_document(self, document_id: str) -> bool:
        return await self._delete("knowledge_documents", document_id)

    async def list_documents(
        self,
        tenant_id: str,
        status: DocumentStatus | None = None,
        active: bool | None = None,
        category: DocumentCategory | None = None,
    ) -> list[KnowledgeDocument]:
        await self._ensure_initialized()

        query = self._col("knowledge_documents").where("tenant_id", "==", tenant_id)
        if status is not None:
            query = query.where("status", "==", status.value)
        if active is not None:
            query = query.where("active", "==", active)
        if category is not None:
            query = query.where("category", "==", category.value)

        docs = await query.order_by("created_at").get()
        return [KnowledgeDocument(**doc.to_dict()) for doc in docs]

    # ==================== Agent Operations ====================

    async def get_agent_config(self, agent_id: str) -> AgentConfig | None:
        return await self._get("agent_configs", agent_id, AgentConfig)

    async def save_agent_config(self, agent: AgentConfig) -> AgentConfig:
        agent.updated_at = datetime.utcnow()
        await self._set("agent_configs", agent.id, agent)
        return agent

    async def delete_agent_config(self, agent_id: str) -> bool:
        return await self._delete("agent_configs", agent_id)

    async def list_agent_configs(self, tenant_id: str | None) -> list[AgentConfig]:
        await self._ensure_initialized()
        query = self._col("agent_configs").where("tenant_id", "==", tenant_id).order_by("created_at")
        docs = await query.get()
        return [AgentConfig(**doc.to_dict()) for doc in docs]

    async def get_active_agent_config(self, tenant_id: str | None) -> AgentConfig | None:
        await self._ensure_initialized()
        query = (
            self._col("agent_configs")
            .where("tenant_id", "==", tenant_id)
            .where("active", "==", True)
            .limit(1)
        )
        docs = await query.get()
        for doc in docs:
            return AgentConfig(**doc.to_dict())
        return None

    async def _activate_exclusive(self, collection: str, doc_id: str, model: type, scope_query=None):
        """Clear ``active`` on every sibling and set it on one record, in one commit."""
        await self._ensure_initialized()
        ref = self._col(collection).document(doc_id)
        transaction = self._db.transaction()

        @firestore.async_transactional
        async def activate(transaction):
            snapshot = await ref.get(transaction=transaction)
            if not snapshot.exists:
                return None
            record = model(**snapshot.to_dict())
            siblings = self._col(collection).where("active", "==", True)
            if scope_query is not None:
                siblings = scope_query(siblings, record)
            # Firestore transactions reject reads issued after a write
            stale = [s async for s in siblings.stream(transaction=transaction) if s.id != doc_id]
            now = datetime.utcnow().isoformat()
            for sibling in stale:
                transaction.update(sibling.reference, {"active": False, "updated_at": now})
            record.active = True
            record.updated_at = datetime.utcnow()
            transaction.set(ref, record.model_dump(mode="json"))
            return record

        return await activate(transaction)

    async def activate_agent_config(self, agent_id: str) -> AgentConfig | None:
        return await self._activate_exclusive(
            "agent_configs",
            agent_id,
            AgentConfig,
            scope_query=lambda query, agent: query.where("tenant_id", "==", agent.tenant_id),
        )

    # ==================== Prompt Template Operations ====================

    async def get_prompt_template(self, template_id: str) -> PromptTemplate | None:
        return await self._get("prompt_templates", template_id, PromptTemplate)

    async def save_prompt_template(self, template: PromptTemplate) -> PromptTemplate:
        template.updated_at = datetime.utcnow()
        await self._set("prompt_templates", template.id, template)
        return template

    async def list_prompt_templates(self) -> list[PromptTemplate]:
        await self._ensure_initialized()
        docs = await self._col("prompt_templates").order_by("created_at").get()
        return [PromptTemplate(**doc.to_dict()) for doc in docs]

    async def get_active_prompt_template(self) -> PromptTemplate | None:
        await self._ensure_initialized()
        docs = await self._col("prompt_templates").where("active", "==", True).limit(1).get()
        for doc in docs:
            return PromptTemplate(**doc.to_dict())
        return None

    async def activate_prompt_template(self, template_id: str) -> PromptTemplate | None:
        return await self._activate_exclusive("prompt_templates", template_id, PromptTemplate)

    # ==================== Usage Operations ====================

    async def save_usage_log(self, log: AgentUsageLog) -> AgentUsageLog:
        await self._set("agent_usage_logs", log.id, log)
        return log

    async def list_usage_logs(self, tenant_id: str, limit: int = 100) -> list[AgentUsageLog]:
        await self._ensure_initialized()
        query = (
            self._col("agent_usage_logs")
            .where("tenant_id", "==", tenant_id)
            .order_by("created_at", direction="DESCENDING")
            .limit(limit)
        )
        docs = await query.get()
        return [AgentUsageLog(**doc.to_dict()) for doc in docs]

    # ==================== Health Check ====================

    async def health_check(self) -> bool:
        try:
            await self._ensure_initialized()
            await self._col("_health").document("check").get()
            return True
        except Exception as e:
            logger.error("Firestore health check failed", error=str(e))
            return False
