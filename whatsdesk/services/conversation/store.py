"""Conversation store: per-(channel, contact) conversations and their status."""

from datetime import datetime, timedelta
from typing import Any, AsyncContextManager
from uuid import uuid4

import structlog

from whatsdesk.core.exceptions import ConversationNotFound, InvalidTransition
from whatsdesk.core.locks import KeyedLock
from whatsdesk.models import (
    ChannelResource,
    Conversation,
    ConversationStage,
    ConversationStatus,
    Message,
    MessageDirection,
    can_transition,
    conversation_key,
)
from whatsdesk.storage.base import StorageBackend

logger = structlog.get_logger()


class ConversationStore:
    """Durable conversation records with a merged context map.

    Mutations made on behalf of the ingestion pipeline run while the
    pipeline holds the conversation's lock. Operations triggered from
    outside the pipeline (``reactivate``, ``complete``) take the lock
    themselves.
    """

    def __init__(self, storage: StorageBackend) -> None:
        self.storage = storage
        self._locks = KeyedLock()

    def locked(self, channel_ref: str, contact: str) -> AsyncContextManager[None]:
        """Serialize work on one (channel, contact) pair.

        ``channel_ref`` is the channel's provider id.
        """
        return self._locks.hold(conversation_key(channel_ref, contact))

    async def get(self, conversation_id: str) -> Conversation:
        conversation = await self.storage.get_conversation(conversation_id)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        return conversation

    async def get_or_create(
        self,
        channel: ChannelResource,
        contact: str,
        contact_name: str | None = None,
    ) -> Conversation:
        """Get the open conversation for a contact or start a new one.

        Args:
            channel: Channel resource that received the message
            contact: Contact phone number
            contact_name: Display name, if the provider sent one

        Returns:
            Conversation with ``last_activity_at`` bumped
        """
        conversation = await self.storage.get_open_conversation(channel.id, contact)

        if conversation:
            logger.debug(
                "Found existing conversation",
                conversation_id=conversation.id,
                status=conversation.status,
            )
            conversation.last_activity_at = datetime.utcnow()
            return await self.storage.save_conversation(conversation)

        conversation = Conversation(
            id=str(uuid4()),
            tenant_id=channel.tenant_id,
            channel_id=channel.id,
            contact=contact,
            contact_name=contact_name,
            status=ConversationStatus.ACTIVE,
        )
        await self.storage.save_conversation(conversation)

        logger.info(
            "Created new conversation",
            conversation_id=conversation.id,
            tenant_id=channel.tenant_id,
            channel_id=channel.id,
        )
        return conversation

    async def merge_context(self, conversation_id: str, patch: dict[str, Any]) -> Conversation:
        """Merge ``patch`` into the stored context (never a full overwrite)."""
        conversation = await self.storage.merge_conversation_context(conversation_id, patch)
        if conversation is None:
            raise ConversationNotFound(conversation_id)
        return conversation

    async def set_stage(self, conversation_id: str, stage: ConversationStage) -> Conversation:
        return await self.merge_context(conversation_id, {"stage": ConversationStage(stage).value})

    async def _transition(
        self,
        conversation_id: str,
        target: ConversationStatus,
        context_patch: dict[str, Any] | None = None,
        **fields: Any,
    ) -> Conversation:
        conversation = await self.get(conversation_id)
        if not can_transition(conversation.status, target):
            raise InvalidTransition(conversation_id, conversation.status.value, target.value)

        previous = conversation.status
        conversation.status = target
        for name, value in fields.items():
            setattr(conversation, name, value)
        if context_patch:
            conversation.merge_context(context_patch)
        await self.storage.save_conversation(conversation)

        logger.info(
            "Conversation status changed",
            conversation_id=conversation_id,
            from_status=previous.value,
            to_status=target.value,
        )
        return conversation

    @staticmethod
    def _transfer_fields(reason: str) -> dict[str, Any]:
        return {
            "context_patch": {"stage": ConversationStage.HUMAN_TRANSFER.value, "transfer_reason": reason},
            "human_transferred_at": datetime.utcnow(),
            "transfer_reason": reason,
        }

    async def transfer_to_human(self, conversation_id: str, reason: str) -> Conversation:
        """Hand the conversation to a human; the bot stops answering it.

        Callers must already hold the conversation lock.
        """
        return await self._transition(conversation_id, ConversationStatus.WAITING_HUMAN, **self._transfer_fields(reason))

    async def _lock_for(self, conversation: Conversation) -> AsyncContextManager[None]:
        # The pipeline locks on the provider id carried by webhook events
        channel = await self.storage.get_channel(conversation.channel_id)
        channel_ref = channel.provider_id if channel else conversation.channel_id
        return self.locked(channel_ref, conversation.contact)

    async def _locked_transition(self, conversation_id: str, target: ConversationStatus, **fields: Any) -> Conversation:
        conversation = await self.get(conversation_id)
        async with await self._lock_for(conversation):
            return await self._transition(conversation_id, target, **fields)

    async def request_transfer(self, conversation_id: str, reason: str) -> Conversation:
        """Transfer requested by an operator, outside the pipeline."""
        return await self._locked_transition(
            conversation_id, ConversationStatus.WAITING_HUMAN, **self._transfer_fields(reason)
        )

    async def reactivate(self, conversation_id: str) -> Conversation:
        """Give a conversation back to the bot after a human handled it."""
        return await self._locked_transition(conversation_id, ConversationStatus.ACTIVE)

    async def complete(self, conversation_id: str) -> Conversation:
        return await self._locked_transition(
            conversation_id,
            ConversationStatus.COMPLETED,
            completed_at=datetime.utcnow(),
            context_patch={"stage": ConversationStage.COMPLETED.value},
        )

    async def abandon_idle(self, tenant_id: str, idle_minutes: int) -> list[Conversation]:
        """Mark active conversations without activity for ``idle_minutes`` as abandoned."""
        cutoff = datetime.utcnow() - timedelta(minutes=idle_minutes)
        abandoned = []
        for conversation in await self.storage.list_conversations(
            tenant_id, statuses=[ConversationStatus.ACTIVE], limit=1000
        ):
            if conversation.last_activity_at >= cutoff:
                continue
            async with await self._lock_for(conversation):
                # A message may have arrived since the listing
                current = await self.get(conversation.id)
                if current.status != ConversationStatus.ACTIVE or current.last_activity_at >= cutoff:
                    continue
                abandoned.append(await self._transition(conversation.id, ConversationStatus.ABANDONED))
        if abandoned:
            logger.info("Abandoned idle conversations", tenant_id=tenant_id, count=len(abandoned))
        return abandoned

    async def transcript(self, conversation: Conversation, limit: int) -> list[Message]:
        """Last ``limit`` messages of the thread, oldest first."""
        return await self.storage.get_recent_messages(conversation.key, limit=limit)

    async def list_active(self, tenant_id: str, limit: int = 50) -> list[Conversation]:
        return await self.storage.list_conversations(
            tenant_id,
            statuses=[ConversationStatus.ACTIVE, ConversationStatus.WAITING_HUMAN],
            limit=limit,
        )

    async def automation_stats(self, tenant_id: str) -> dict[str, Any]:
        """Message counts and share of inbound messages answered by the bot."""
        messages = await self.storage.list_tenant_messages(tenant_id)
        inbound = [m for m in messages if m.direction == MessageDirection.INBOUND]
        automated = sum(1 for m in messages if m.direction == MessageDirection.OUTBOUND and m.is_from_bot)
        transfers = len(
            await self.storage.list_conversations(
                tenant_id,
                statuses=[ConversationStatus.WAITING_HUMAN],
                limit=10_000,
            )
        )
        return {
            "total_messages": len(inbound),
            "automated_responses": automated,
            "human_transfers": transfers,
            "automation_rate": round(automated / len(inbound) * 100, 2) if inbound else 0.0,
        }
