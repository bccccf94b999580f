"""Message models for the WhatsApp channel."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MessageDirection(str, Enum):
    """Direction of the message."""

    INBOUND = "inbound"  # From contact
    OUTBOUND = "outbound"  # To contact


class MessageType(str, Enum):
    """Type of message content."""

    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    DOCUMENT = "document"
    LOCATION = "location"


class Message(BaseModel):
    """One entry in a conversation transcript.

    Messages are keyed by the conversation key (channel + contact) because
    inbound messages are stored before their conversation is resolved.
    """

    id: str = Field(..., description="Unique message identifier")
    conversation_key: str = Field(..., description="Channel/contact thread key")
    tenant_id: str
    channel_id: str
    contact: str

    # Content
    content: str
    message_type: MessageType = MessageType.TEXT
    direction: MessageDirection

    # Processing
    processed: bool = False
    reply: str | None = None
    is_from_bot: bool = False
    provider_message_id: str | None = None

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    sent_at: datetime | None = None
    processed_at: datetime | None = None

    def transcript_line(self) -> str:
        """Format for the conversation history block of the system prompt."""
        speaker = "Cliente" if self.direction == MessageDirection.INBOUND else "Assistente"
        return f"{speaker}: {self.content}"


class InboundEvent(BaseModel):
    """Inbound webhook event as posted by the channel provider."""

    model_config = ConfigDict(populate_by_name=True)

    channel_provider_id: str = Field(..., alias="channelProviderId", min_length=1)
    sender: str = Field(..., alias="from", min_length=1)
    body: str = ""
    type: MessageType = MessageType.TEXT
    timestamp: int = Field(..., description="Epoch seconds")

    @property
    def sent_at(self) -> datetime:
        return datetime.utcfromtimestamp(self.timestamp)
