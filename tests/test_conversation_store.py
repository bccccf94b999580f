"""Tests for conversation records and status transitions."""

import asyncio
from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from whatsdesk.core.exceptions import ConversationNotFound, InvalidTransition
from whatsdesk.models import ConversationStatus, Message, MessageDirection, can_transition
from whatsdesk.services.conversation import ConversationStore


@pytest.fixture
def conversations(storage):
    return ConversationStore(storage)


@pytest_asyncio.fixture
async def conversation(conversations, connected_channel):
    return await conversations.get_or_create(connected_channel, "5511988887777", contact_name="Ana")


def test_transition_table():
    assert can_transition(ConversationStatus.ACTIVE, ConversationStatus.WAITING_HUMAN)
    assert can_transition(ConversationStatus.WAITING_HUMAN, ConversationStatus.ACTIVE)
    assert not can_transition(ConversationStatus.WAITING_HUMAN, ConversationStatus.ABANDONED)
    assert not can_transition(ConversationStatus.COMPLETED, ConversationStatus.ACTIVE)


@pytest.mark.asyncio
async def test_get_or_create_reuses_open_conversation(conversations, conversation, connected_channel):
    again = await conversations.get_or_create(connected_channel, "5511988887777")

    assert again.id == conversation.id
    assert again.last_activity_at >= conversation.last_activity_at
    assert again.stage == "greeting"


@pytest.mark.asyncio
async def test_completed_conversation_starts_a_new_one(conversations, conversation, connected_channel):
    await conversations.complete(conversation.id)

    fresh = await conversations.get_or_create(connected_channel, "5511988887777")

    assert fresh.id != conversation.id
    assert fresh.status == ConversationStatus.ACTIVE


@pytest.mark.asyncio
async def test_merge_context_keeps_other_keys(conversations, conversation):
    await conversations.merge_context(conversation.id, {"customer_name": "Ana"})
    updated = await conversations.merge_context(conversation.id, {"service_interest": "clareamento"})

    assert updated.context == {"stage": "greeting", "customer_name": "Ana", "service_interest": "clareamento"}


@pytest.mark.asyncio
async def test_request_transfer_then_reactivate(conversations, conversation):
    transferred = await conversations.request_transfer(conversation.id, "customer_request")
    assert transferred.status == ConversationStatus.WAITING_HUMAN
    assert transferred.stage == "human_transfer"

    reactivated = await conversations.reactivate(conversation.id)
    assert reactivated.status == ConversationStatus.ACTIVE


@pytest.mark.asyncio
async def test_invalid_transition(conversations, conversation):
    await conversations.complete(conversation.id)

    with pytest.raises(InvalidTransition) as exc_info:
        await conversations.reactivate(conversation.id)

    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_unknown_conversation(conversations):
    with pytest.raises(ConversationNotFound):
        await conversations.get("missing")


@pytest.mark.asyncio
async def test_abandon_idle(conversations, conversation, storage):
    conversation.last_activity_at = datetime.utcnow() - timedelta(minutes=90)
    await storage.save_conversation(conversation)

    abandoned = await conversations.abandon_idle(conversation.tenant_id, idle_minutes=60)

    assert [c.id for c in abandoned] == [conversation.id]
    assert (await conversations.get(conversation.id)).status == ConversationStatus.ABANDONED


@pytest.mark.asyncio
async def test_recent_activity_is_not_abandoned(conversations, conversation):
    assert await conversations.abandon_idle(conversation.tenant_id, idle_minutes=60) == []


@pytest.mark.asyncio
async def test_message_arriving_during_sweep_keeps_conversation(conversations, conversation, storage, connected_channel):
    conversation.last_activity_at = datetime.utcnow() - timedelta(minutes=90)
    await storage.save_conversation(conversation)

    async with conversations.locked(connected_channel.provider_id, conversation.contact):
        sweep = asyncio.create_task(conversations.abandon_idle(conversation.tenant_id, idle_minutes=60))
        for _ in range(5):
            await asyncio.sleep(0)
        await conversations.get_or_create(connected_channel, conversation.contact)

    assert await sweep == []
    assert (await conversations.get(conversation.id)).status == ConversationStatus.ACTIVE


@pytest.mark.asyncio
async def test_automation_stats(conversations, conversation, storage):
    for i, (direction, from_bot) in enumerate(
        [
            (MessageDirection.INBOUND, False),
            (MessageDirection.OUTBOUND, True),
            (MessageDirection.INBOUND, False),
            (MessageDirection.OUTBOUND, False),
        ]
    ):
        await storage.save_message(
            Message(
                id=f"m{i}",
                conversation_key=conversation.key,
                tenant_id=conversation.tenant_id,
                channel_id=conversation.channel_id,
                contact=conversation.contact,
                content="texto",
                direction=direction,
                is_from_bot=from_bot,
            )
        )
    await conversations.request_transfer(conversation.id, "customer_request")

    stats = await conversations.automation_stats(conversation.tenant_id)

    assert stats == {
        "total_messages": 2,
        "automated_responses": 1,
        "human_transfers": 1,
        "automation_rate": 50.0,
    }
