"""Conversation models and their status state machine."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ConversationStatus(str, Enum):
    """Status of a conversation."""

    ACTIVE = "active"  # Bot is handling
    WAITING_HUMAN = "waiting_human"  # Handed to a human, bot stays silent
    COMPLETED = "completed"
    ABANDONED = "abandoned"  # Idle timeout


class ConversationStage(str, Enum):
    """Value of the ``stage`` key in the conversation context."""

    GREETING = "greeting"
    COLLECTING_INFO = "collecting_info"
    SCHEDULING = "scheduling"
    CONFIRMING = "confirming"
    HUMAN_TRANSFER = "human_transfer"
    COMPLETED = "completed"


# Statuses the ingestion pipeline considers an ongoing conversation
OPEN_STATUSES = (ConversationStatus.ACTIVE, ConversationStatus.WAITING_HUMAN)

VALID_TRANSITIONS: dict[ConversationStatus, set[ConversationStatus]] = {
    ConversationStatus.ACTIVE: {
        ConversationStatus.ACTIVE,
        ConversationStatus.WAITING_HUMAN,
        ConversationStatus.COMPLETED,
        ConversationStatus.ABANDONED,
    },
    ConversationStatus.WAITING_HUMAN: {
        ConversationStatus.ACTIVE,
        ConversationStatus.COMPLETED,
    },
    ConversationStatus.COMPLETED: set(),
    ConversationStatus.ABANDONED: set(),
}


def can_transition(current: ConversationStatus, target: ConversationStatus) -> bool:
    """Check if a status change is allowed."""
    return target in VALID_TRANSITIONS.get(current, set())


def conversation_key(channel_id: str, contact: str) -> str:
    """Key identifying the (channel, contact) thread."""
    return f"{channel_id}:{contact}"


class Conversation(BaseModel):
    """Conversation between one contact and one channel resource."""

    id: str = Field(..., description="Unique conversation identifier")
    tenant_id: str = Field(..., description="Tenant this conversation belongs to")
    channel_id: str = Field(..., description="Channel resource handling the conversation")
    contact: str = Field(..., description="Contact phone or chat identifier")
    contact_name: str | None = None

    # Status
    status: ConversationStatus = ConversationStatus.ACTIVE
    context: dict[str, Any] = Field(
        default_factory=lambda: {"stage": ConversationStage.GREETING.value}
    )

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    last_activity_at: datetime = Field(default_factory=datetime.utcnow)

    # Handoff
    human_transferred_at: datetime | None = None
    transfer_reason: str | None = None
    completed_at: datetime | None = None

    @property
    def key(self) -> str:
        return conversation_key(self.channel_id, self.contact)

    @property
    def stage(self) -> str | None:
        return self.context.get("stage")

    def merge_context(self, patch: dict[str, Any]) -> dict[str, Any]:
        """Merge a patch into the context, keeping keys it does not mention."""
        self.context = {**self.context, **patch}
        return self.context
