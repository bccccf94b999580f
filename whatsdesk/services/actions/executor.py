"""Action executor - sends replies and applies agent actions."""

from datetime import datetime
from uuid import uuid4

import structlog

from whatsdesk.core.exceptions import ChannelError
from whatsdesk.models import (
    ChannelResource,
    Conversation,
    ConversationStage,
    Message,
    MessageDirection,
)
from whatsdesk.services.agent.intents import ActionType, AgentAction
from whatsdesk.services.channels.base import ChannelClient
from whatsdesk.services.conversation.store import ConversationStore
from whatsdesk.storage.base import StorageBackend

logger = structlog.get_logger()

SERVICE_MENU = """📋 *NOSSOS SERVIÇOS*

1️⃣ Agendamento de consultas
2️⃣ Informações sobre tratamentos
3️⃣ Valores e formas de pagamento
4️⃣ Localização e horários
5️⃣ Falar com atendente

Digite o número da opção desejada ou descreva como posso ajudar! 😊"""


class ActionExecutor:
    """Executes agent actions in the order they were produced.

    A failing action is logged and the next one still runs.
    """

    def __init__(
        self,
        storage: StorageBackend,
        conversations: ConversationStore,
        client: ChannelClient,
    ) -> None:
        self.storage = storage
        self.conversations = conversations
        self.client = client

    async def send_text(
        self,
        channel: ChannelResource,
        conversation: Conversation,
        text: str,
        inbound: Message | None = None,
        from_bot: bool = True,
    ) -> Message | None:
        """Send a text to the conversation's contact and record it.

        The provider call happens first; the outbound message and the
        inbound's stored reply are only written once it succeeded.

        Args:
            channel: Channel to send through
            conversation: Conversation whose contact receives the text
            text: Message body
            inbound: Inbound message this text answers, if any
            from_bot: False when a human operator wrote the text

        Returns:
            The stored outbound message, or None if the provider rejected it
        """
        try:
            result = await self.client.send_text(channel.token, conversation.contact, text)
        except ChannelError as e:
            logger.error(
                "Failed to send message",
                channel_id=channel.id,
                conversation_id=conversation.id,
                error=e.message,
            )
            return None

        outbound = Message(
            id=str(uuid4()),
            conversation_key=conversation.key,
            tenant_id=conversation.tenant_id,
            channel_id=channel.id,
            contact=conversation.contact,
            content=text,
            direction=MessageDirection.OUTBOUND,
            processed=True,
            is_from_bot=from_bot,
            provider_message_id=result.message_id,
            sent_at=datetime.utcnow(),
        )
        await self.storage.save_message(outbound)

        if inbound is not None:
            await self.storage.mark_message_processed(inbound.id, text)

        return outbound

    async def apply(
        self,
        conversation: Conversation,
        actions: list[AgentAction],
        channel: ChannelResource,
    ) -> None:
        for action in actions:
            try:
                await self._apply_one(conversation, action, channel)
            except Exception as e:
                logger.error(
                    "Action failed",
                    action=action.type.value,
                    conversation_id=conversation.id,
                    error=str(e),
                )

    async def _apply_one(
        self,
        conversation: Conversation,
        action: AgentAction,
        channel: ChannelResource,
    ) -> None:
        if action.type == ActionType.SCHEDULE_APPOINTMENT:
            # Booking itself belongs to the scheduling system
            await self.conversations.set_stage(conversation.id, ConversationStage.SCHEDULING)
        elif action.type == ActionType.TRANSFER_HUMAN:
            reason = action.data.get("reason") or "customer_request"
            await self.conversations.transfer_to_human(conversation.id, reason)
        elif action.type == ActionType.SEND_MENU:
            await self.send_text(channel, conversation, SERVICE_MENU)
        else:
            logger.warning("Unknown action", action=action.type)
            return

        logger.info("Action applied", action=action.type.value, conversation_id=conversation.id)
