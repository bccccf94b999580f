"""Webhook ingestion pipeline - one inbound event to at most one reply."""

import asyncio
from dataclasses import dataclass
from enum import Enum
from uuid import uuid4

import structlog

from whatsdesk.models import (
    ChannelStatus,
    ConversationStatus,
    InboundEvent,
    Message,
    MessageDirection,
    conversation_key,
)
from whatsdesk.services.actions.executor import ActionExecutor
from whatsdesk.services.agent.orchestrator import AgentOrchestrator
from whatsdesk.services.conversation.store import ConversationStore
from whatsdesk.storage.base import StorageBackend

logger = structlog.get_logger()


class OutcomeStatus(str, Enum):
    DROPPED = "dropped"
    WAITING_HUMAN = "waiting_human"
    NO_ACTIVE_AGENT = "no_active_agent"
    RESPONDED = "responded"
    NO_REPLY = "no_reply"
    FAILED = "failed"


@dataclass
class IngestionOutcome:
    status: OutcomeStatus
    conversation_id: str | None = None
    message_id: str | None = None
    reply_id: str | None = None
    error: str | None = None


class IngestionPipeline:
    """Processes inbound webhook events.

    Events run as independent tasks. Events for the same (channel,
    contact) pair are serialized in arrival order by the conversation
    lock, which is held from channel resolution until the context merge.
    """

    def __init__(
        self,
        storage: StorageBackend,
        conversations: ConversationStore,
        orchestrator: AgentOrchestrator,
        executor: ActionExecutor,
    ) -> None:
        self.storage = storage
        self.conversations = conversations
        self.orchestrator = orchestrator
        self.executor = executor
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, event: InboundEvent) -> asyncio.Task:
        """Schedule ``process_event`` without waiting for it."""
        task = asyncio.create_task(self.process_event(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every dispatched event to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def process_event(self, event: InboundEvent) -> IngestionOutcome:
        """Run the ingestion steps for one event; never raises.

        Args:
            event: Parsed webhook event

        Returns:
            IngestionOutcome describing where processing stopped
        """
        log = logger.bind(
            channel_provider_id=event.channel_provider_id,
            sender=event.sender,
            timestamp=event.timestamp,
        )

        async with self.conversations.locked(event.channel_provider_id, event.sender):
            try:
                return await self._process(event, log)
            except Exception as e:
                log.exception("Inbound event processing failed", error=str(e))
                return IngestionOutcome(status=OutcomeStatus.FAILED, error=str(e))

    async def _process(self, event: InboundEvent, log: structlog.BoundLogger) -> IngestionOutcome:
        # 1. Channel
        channel = await self.storage.get_channel_by_provider_id(event.channel_provider_id)
        if channel is None:
            log.warning("Dropping event for unknown channel")
            return IngestionOutcome(status=OutcomeStatus.DROPPED)
        if channel.status != ChannelStatus.CONNECTED:
            log.warning("Dropping event for disconnected channel", channel_id=channel.id, status=channel.status.value)
            return IngestionOutcome(status=OutcomeStatus.DROPPED)

        # 2. Inbound message
        inbound = Message(
            id=str(uuid4()),
            conversation_key=conversation_key(channel.id, event.sender),
            tenant_id=channel.tenant_id,
            channel_id=channel.id,
            contact=event.sender,
            content=event.body,
            message_type=event.type,
            direction=MessageDirection.INBOUND,
            sent_at=event.sent_at,
        )
        await self.storage.save_message(inbound)

        # 3. Conversation
        conversation = await self.conversations.get_or_create(channel, event.sender)
        log = log.bind(conversation_id=conversation.id, tenant_id=channel.tenant_id)
        if conversation.status == ConversationStatus.WAITING_HUMAN:
            log.info("Conversation waiting for a human, not responding")
            return IngestionOutcome(
                status=OutcomeStatus.WAITING_HUMAN,
                conversation_id=conversation.id,
                message_id=inbound.id,
            )

        # 4. Agent
        reply = await self.orchestrator.respond(channel.tenant_id, conversation, event.body)
        if reply.no_active_agent:
            return IngestionOutcome(
                status=OutcomeStatus.NO_ACTIVE_AGENT,
                conversation_id=conversation.id,
                message_id=inbound.id,
            )

        # 5. Reply before actions
        sent = None
        if reply.should_respond and reply.response_text:
            sent = await self.executor.send_text(channel, conversation, reply.response_text, inbound=inbound)

        # 6. Actions
        await self.executor.apply(conversation, reply.actions, channel)

        # 7. Context
        if reply.context_patch:
            await self.conversations.merge_context(conversation.id, reply.context_patch)

        log.info(
            "Inbound event processed",
            replied=sent is not None,
            actions=[a.type.value for a in reply.actions],
        )
        return IngestionOutcome(
            status=OutcomeStatus.RESPONDED if sent else OutcomeStatus.NO_REPLY,
            conversation_id=conversation.id,
            message_id=inbound.id,
            reply_id=sent.id if sent else None,
        )
