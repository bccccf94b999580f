"""Channel resource models (connected WhatsApp instances)."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class ChannelStatus(str, Enum):
    """Connection state of a channel resource."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ChannelResource(BaseModel):
    """An external messaging endpoint owned by one tenant."""

    id: str = Field(..., description="Internal identifier")
    tenant_id: str
    name: str
    provider_id: str = Field(..., description="Opaque identifier assigned by the provider")
    token: str = Field(..., repr=False, description="Instance token for provider calls")
    status: ChannelStatus = ChannelStatus.DISCONNECTED

    phone: str | None = None
    description: str | None = None
    qrcode: str | None = Field(default=None, repr=False)

    # Profile reported by the provider once connected
    profile_name: str | None = None
    profile_picture_url: str | None = None
    is_business: bool = False

    webhook_url: str | None = None
    created_by: str | None = None

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    connected_at: datetime | None = None
