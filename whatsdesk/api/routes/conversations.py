"""Conversation endpoints for operators."""

from typing import Any

import structlog
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from whatsdesk.api.dependencies import ServicesDep
from whatsdesk.core.config import settings
from whatsdesk.core.exceptions import ChannelNotFound, ConversationNotFound
from whatsdesk.models import Conversation, ConversationStatus
from whatsdesk.services.actions import SERVICE_MENU

logger = structlog.get_logger()

router = APIRouter(prefix="/admin/tenants/{tenant_id}/conversations", tags=["Conversations"])


class OperatorReply(BaseModel):
    text: str = Field(..., min_length=1)


class TransferRequest(BaseModel):
    reason: str = "operator_request"


async def _get_conversation(services: ServicesDep, tenant_id: str, conversation_id: str) -> Conversation:
    conversation = await services.conversations.get(conversation_id)
    if conversation.tenant_id != tenant_id:
        raise ConversationNotFound(conversation_id)
    return conversation


async def _send(services: ServicesDep, conversation: Conversation, text: str, from_bot: bool) -> dict[str, Any]:
    channel = await services.storage.get_channel(conversation.channel_id)
    if channel is None:
        raise ChannelNotFound(conversation.channel_id)

    message = await services.executor.send_text(channel, conversation, text, from_bot=from_bot)
    if message is None:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Channel provider rejected the message",
        )
    return {"message_id": message.id, "conversation_id": conversation.id}


@router.get("")
async def list_conversations(
    tenant_id: str,
    services: ServicesDep,
    status_filter: ConversationStatus | None = None,
    limit: int = 50,
) -> dict[str, Any]:
    """List conversations for a tenant, most recent activity first."""
    conversations = await services.storage.list_conversations(
        tenant_id,
        statuses=[status_filter] if status_filter else None,
        limit=limit,
    )
    return {
        "tenant_id": tenant_id,
        "count": len(conversations),
        "conversations": [c.model_dump() for c in conversations],
    }


@router.get("/stats")
async def automation_stats(tenant_id: str, services: ServicesDep) -> dict[str, Any]:
    return await services.conversations.automation_stats(tenant_id)


@router.post("/abandon-idle")
async def abandon_idle(tenant_id: str, services: ServicesDep, idle_minutes: int | None = None) -> dict[str, Any]:
    """Close active conversations without recent activity."""
    abandoned = await services.conversations.abandon_idle(
        tenant_id, idle_minutes or settings.conversation_idle_minutes
    )
    return {"abandoned": [c.id for c in abandoned]}


@router.get("/{conversation_id}")
async def get_conversation(tenant_id: str, conversation_id: str, services: ServicesDep) -> Conversation:
    return await _get_conversation(services, tenant_id, conversation_id)


@router.get("/{conversation_id}/messages")
async def get_conversation_messages(
    tenant_id: str,
    conversation_id: str,
    services: ServicesDep,
    limit: int = 50,
) -> dict[str, Any]:
    """Get messages for a conversation."""
    conversation = await _get_conversation(services, tenant_id, conversation_id)
    messages = await services.storage.get_messages(conversation.key, limit=limit)

    return {
        "conversation_id": conversation_id,
        "count": len(messages),
        "messages": [
            {
                "id": m.id,
                "content": m.content,
                "direction": m.direction,
                "is_from_bot": m.is_from_bot,
                "processed": m.processed,
                "created_at": m.created_at.isoformat(),
            }
            for m in messages
        ],
    }


@router.post("/{conversation_id}/reply")
async def operator_reply(
    tenant_id: str,
    conversation_id: str,
    data: OperatorReply,
    services: ServicesDep,
) -> dict[str, Any]:
    """Send a message written by a human operator."""
    conversation = await _get_conversation(services, tenant_id, conversation_id)
    return await _send(services, conversation, data.text, from_bot=False)


@router.post("/{conversation_id}/menu")
async def send_menu(tenant_id: str, conversation_id: str, services: ServicesDep) -> dict[str, Any]:
    conversation = await _get_conversation(services, tenant_id, conversation_id)
    return await _send(services, conversation, SERVICE_MENU, from_bot=True)


@router.post("/{conversation_id}/transfer")
async def transfer(
    tenant_id: str,
    conversation_id: str,
    data: TransferRequest,
    services: ServicesDep,
) -> Conversation:
    await _get_conversation(services, tenant_id, conversation_id)
    return await services.conversations.request_transfer(conversation_id, data.reason)


@router.post("/{conversation_id}/reactivate")
async def reactivate(tenant_id: str, conversation_id: str, services: ServicesDep) -> Conversation:
    """Give the conversation back to the bot."""
    await _get_conversation(services, tenant_id, conversation_id)
    return await services.conversations.reactivate(conversation_id)


@router.post("/{conversation_id}/complete")
async def complete(tenant_id: str, conversation_id: str, services: ServicesDep) -> Conversation:
    await _get_conversation(services, tenant_id, conversation_id)
    return await services.conversations.complete(conversation_id)
