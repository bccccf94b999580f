"""Channel resource lifecycle: creation under quota, guarded teardown."""

from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

import structlog

from whatsdesk.core.config import settings
from whatsdesk.core.exceptions import ChannelError, ChannelNotFound, ProtectionViolation, QuotaExceeded
from whatsdesk.core.locks import KeyedLock
from whatsdesk.models import ChannelResource, ChannelStatus
from whatsdesk.services.channels.base import ChannelClient
from whatsdesk.services.quota import QuotaEnforcer
from whatsdesk.storage.base import StorageBackend

logger = structlog.get_logger()


@dataclass
class ChannelCreation:
    channel: ChannelResource
    qrcode: str | None
    webhook_configured: bool


class ChannelManager:
    """Creates, inspects and removes a tenant's channel resources."""

    def __init__(
        self,
        storage: StorageBackend,
        client: ChannelClient,
        quota: QuotaEnforcer,
        webhook_base_url: str | None = None,
    ) -> None:
        self.storage = storage
        self.client = client
        self.quota = quota
        self.webhook_base_url = (webhook_base_url or settings.webhook_base_url).rstrip("/")
        self._tenant_locks = KeyedLock()

    @property
    def webhook_url(self) -> str:
        return f"{self.webhook_base_url}/webhooks/whatsapp"

    async def get_channel(self, tenant_id: str, channel_id: str) -> ChannelResource:
        channel = await self.storage.get_channel(channel_id)
        if channel is None or channel.tenant_id != tenant_id:
            raise ChannelNotFound(channel_id)
        return channel

    async def list_channels(self, tenant_id: str) -> list[ChannelResource]:
        return await self.storage.list_channels(tenant_id)

    async def create_channel(
        self,
        tenant_id: str,
        name: str,
        phone: str | None = None,
        description: str | None = None,
        created_by: str | None = None,
    ) -> ChannelCreation:
        """Allocate a provider instance if the tenant has a free slot.

        The slot is reserved before the provider is called and given back
        if the instance cannot be created or recorded.

        Raises:
            QuotaExceeded: No slot left (nothing was allocated)
            ChannelError: Provider refused to create the instance
        """
        async with self._tenant_locks.hold(tenant_id):
            decision = await self.quota.try_reserve(tenant_id, actor=created_by)
            if not decision.allowed:
                raise QuotaExceeded(tenant_id, decision.used, decision.limit, decision.reason or "")

            try:
                instance = await self.client.create_instance(name)
                channel = ChannelResource(
                    id=str(uuid4()),
                    tenant_id=tenant_id,
                    name=name,
                    provider_id=instance.provider_id,
                    token=instance.token,
                    status=ChannelStatus.DISCONNECTED,
                    phone=phone,
                    description=description,
                    created_by=created_by,
                )
                await self.storage.save_channel(channel)
            except Exception:
                await self.quota.release(tenant_id)
                raise

        logger.info(
            "Channel created",
            tenant_id=tenant_id,
            channel_id=channel.id,
            provider_id=channel.provider_id,
        )

        # Connecting and webhook setup can be retried later by the tenant
        try:
            connected = await self.client.connect(channel.provider_id, channel.token, phone, actor=created_by)
            channel.status = ChannelStatus.CONNECTING
            channel.qrcode = connected.qrcode
            await self.storage.save_channel(channel)
        except (ChannelError, ProtectionViolation) as e:
            logger.warning("Initial connect failed", channel_id=channel.id, error=e.message)

        webhook_configured = False
        try:
            await self.client.configure_webhook(channel.provider_id, channel.token, self.webhook_url, actor=created_by)
            channel.webhook_url = self.webhook_url
            await self.storage.save_channel(channel)
            webhook_configured = True
        except (ChannelError, ProtectionViolation) as e:
            logger.warning("Webhook configuration failed", channel_id=channel.id, error=e.message)

        return ChannelCreation(channel=channel, qrcode=channel.qrcode, webhook_configured=webhook_configured)

    async def check_status(self, tenant_id: str, channel_id: str, actor: str | None = None) -> ChannelResource:
        """Refresh status and profile fields from the provider."""
        channel = await self.get_channel(tenant_id, channel_id)
        instance = await self.client.get_status(channel.provider_id, channel.token, actor=actor)

        if instance.status == ChannelStatus.CONNECTED and channel.status != ChannelStatus.CONNECTED:
            channel.connected_at = datetime.utcnow()
            channel.qrcode = None
        channel.status = instance.status
        if instance.status == ChannelStatus.CONNECTED:
            channel.profile_name = instance.profile_name or channel.profile_name
            channel.profile_picture_url = instance.profile_picture_url or channel.profile_picture_url
            channel.is_business = instance.is_business
            channel.phone = instance.owner or channel.phone

        await self.storage.save_channel(channel)
        return channel

    async def reconnect(self, tenant_id: str, channel_id: str, actor: str | None = None) -> ChannelResource:
        """Request a fresh QR code for a disconnected channel."""
        channel = await self.get_channel(tenant_id, channel_id)
        instance = await self.client.connect(channel.provider_id, channel.token, channel.phone, actor=actor)
        channel.status = ChannelStatus.CONNECTING
        channel.qrcode = instance.qrcode
        await self.storage.save_channel(channel)
        logger.info("Channel reconnecting", channel_id=channel_id)
        return channel

    async def disconnect(self, tenant_id: str, channel_id: str, actor: str | None = None) -> ChannelResource:
        channel = await self.get_channel(tenant_id, channel_id)
        await self.client.disconnect(channel.provider_id, channel.token, actor=actor)
        channel.status = ChannelStatus.DISCONNECTED
        channel.qrcode = None
        await self.storage.save_channel(channel)
        logger.info("Channel disconnected", channel_id=channel_id)
        return channel

    async def delete_channel(self, tenant_id: str, channel_id: str, actor: str | None = None) -> None:
        """Delete on the provider, then locally, then free the quota slot.

        Runs under the tenant lock so overlapping deletes of one channel
        give back a single slot.

        Raises:
            ProtectionViolation: Always for guarded resources, whatever the
                caller's role
            ChannelNotFound: The channel is unknown or already deleted
        """
        async with self._tenant_locks.hold(tenant_id):
            channel = await self.get_channel(tenant_id, channel_id)
            await self.client.delete_instance(channel.provider_id, channel.token, actor=actor)
            if not await self.storage.delete_channel(channel_id):
                logger.warning("Channel record already gone", tenant_id=tenant_id, channel_id=channel_id)
                return
            await self.quota.release(tenant_id)

        logger.info("Channel deleted", tenant_id=tenant_id, channel_id=channel_id)
