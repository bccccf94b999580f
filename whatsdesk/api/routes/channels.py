"""Channel resource endpoints."""

from datetime import datetime

import structlog
from fastapi import APIRouter, status
from pydantic import BaseModel

from whatsdesk.api.dependencies import ActorDep, ServicesDep
from whatsdesk.models import ChannelResource, ChannelStatus

logger = structlog.get_logger()

router = APIRouter(prefix="/admin/tenants/{tenant_id}/channels", tags=["Channels"])


class ChannelCreate(BaseModel):
    name: str
    phone: str | None = None
    description: str | None = None


class ChannelResponse(BaseModel):
    """Channel without its provider token."""

    id: str
    tenant_id: str
    name: str
    provider_id: str
    status: ChannelStatus
    phone: str | None = None
    description: str | None = None
    qrcode: str | None = None
    profile_name: str | None = None
    profile_picture_url: str | None = None
    is_business: bool = False
    webhook_url: str | None = None
    created_at: datetime
    connected_at: datetime | None = None

    @classmethod
    def from_channel(cls, channel: ChannelResource) -> "ChannelResponse":
        return cls.model_validate(channel.model_dump(exclude={"token"}))


class ChannelCreateResponse(BaseModel):
    channel: ChannelResponse
    qrcode: str | None = None
    webhook_configured: bool


@router.post("", response_model=ChannelCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_channel(
    tenant_id: str,
    data: ChannelCreate,
    services: ServicesDep,
    actor: ActorDep,
) -> ChannelCreateResponse:
    """Create a channel if the tenant's quota allows it."""
    result = await services.channels.create_channel(
        tenant_id,
        name=data.name,
        phone=data.phone,
        description=data.description,
        created_by=actor,
    )
    return ChannelCreateResponse(
        channel=ChannelResponse.from_channel(result.channel),
        qrcode=result.qrcode,
        webhook_configured=result.webhook_configured,
    )


@router.get("", response_model=list[ChannelResponse])
async def list_channels(tenant_id: str, services: ServicesDep) -> list[ChannelResponse]:
    return [ChannelResponse.from_channel(c) for c in await services.channels.list_channels(tenant_id)]


@router.get("/{channel_id}", response_model=ChannelResponse)
async def get_channel(tenant_id: str, channel_id: str, services: ServicesDep) -> ChannelResponse:
    return ChannelResponse.from_channel(await services.channels.get_channel(tenant_id, channel_id))


@router.post("/{channel_id}/status", response_model=ChannelResponse)
async def refresh_status(tenant_id: str, channel_id: str, services: ServicesDep, actor: ActorDep) -> ChannelResponse:
    """Refresh the channel's status from the provider."""
    channel = await services.channels.check_status(tenant_id, channel_id, actor=actor)
    return ChannelResponse.from_channel(channel)


@router.post("/{channel_id}/reconnect", response_model=ChannelResponse)
async def reconnect(tenant_id: str, channel_id: str, services: ServicesDep, actor: ActorDep) -> ChannelResponse:
    channel = await services.channels.reconnect(tenant_id, channel_id, actor=actor)
    return ChannelResponse.from_channel(channel)


@router.post("/{channel_id}/disconnect", response_model=ChannelResponse)
async def disconnect(tenant_id: str, channel_id: str, services: ServicesDep, actor: ActorDep) -> ChannelResponse:
    channel = await services.channels.disconnect(tenant_id, channel_id, actor=actor)
    return ChannelResponse.from_channel(channel)


@router.delete("/{channel_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_channel(tenant_id: str, channel_id: str, services: ServicesDep, actor: ActorDep) -> None:
    """Delete a channel; protected resources are always refused."""
    await services.channels.delete_channel(tenant_id, channel_id, actor=actor)
