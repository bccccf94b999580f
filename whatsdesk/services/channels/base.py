"""Abstract base class for channel provider clients."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from whatsdesk.models import ChannelStatus
from whatsdesk.services.guardrail import OperationKind, ResourceGuardrail

WEBHOOK_EVENTS = ("connection", "messages", "messages_update")


@dataclass
class ProviderInstance:
    """Instance state as reported by the channel provider."""

    provider_id: str
    token: str
    status: ChannelStatus = ChannelStatus.DISCONNECTED
    name: str | None = None
    qrcode: str | None = None
    paircode: str | None = None
    profile_name: str | None = None
    profile_picture_url: str | None = None
    is_business: bool = False
    owner: str | None = None


@dataclass
class SendResult:
    response: dict[str, Any] = field(default_factory=dict)
    message_id: str | None = None


class ChannelClient(ABC):
    """Client for a token-authenticated messaging provider.

    Public methods that disrupt or destroy an instance go through the
    guardrail's ``safe_operation``; subclasses only implement the raw
    ``_``-prefixed calls and cannot skip the check.
    """

    def __init__(self, guardrail: ResourceGuardrail) -> None:
        self.guardrail = guardrail

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Get the channel name identifier."""
        ...

    # ==================== Guarded Operations ====================

    async def connect(
        self,
        provider_id: str,
        token: str,
        phone: str | None = None,
        actor: str | None = None,
    ) -> ProviderInstance:
        """Start pairing (QR code, or pair code when ``phone`` is given)."""
        return await self.guardrail.safe_operation(
            provider_id, OperationKind.MODIFY, lambda: self._connect(token, phone), actor=actor
        )

    async def get_status(self, provider_id: str, token: str, actor: str | None = None) -> ProviderInstance:
        return await self.guardrail.safe_operation(
            provider_id, OperationKind.READ, lambda: self._get_status(token), actor=actor
        )

    async def configure_webhook(
        self,
        provider_id: str,
        token: str,
        url: str,
        actor: str | None = None,
    ) -> dict[str, Any]:
        return await self.guardrail.safe_operation(
            provider_id, OperationKind.MODIFY, lambda: self._configure_webhook(token, url), actor=actor
        )

    async def disconnect(self, provider_id: str, token: str, actor: str | None = None) -> dict[str, Any]:
        return await self.guardrail.safe_operation(
            provider_id, OperationKind.MODIFY, lambda: self._disconnect(token), actor=actor
        )

    async def delete_instance(self, provider_id: str, token: str, actor: str | None = None) -> dict[str, Any]:
        return await self.guardrail.safe_operation(
            provider_id, OperationKind.DELETE, lambda: self._delete_instance(token), actor=actor
        )

    # ==================== Unguarded Operations ====================

    @abstractmethod
    async def create_instance(self, name: str) -> ProviderInstance:
        """Allocate a new instance on the provider (admin credentials)."""
        ...

    @abstractmethod
    async def send_text(self, token: str, phone: str, message: str) -> SendResult:
        """Send a text message.

        Args:
            token: Instance token
            phone: Recipient phone number
            message: Message text

        Returns:
            SendResult with the provider response and message ID

        Raises:
            ChannelError: If the provider rejects or never receives the call
        """
        ...

    async def close(self) -> None:
        """Release transport resources."""
        return None

    # ==================== Raw Provider Calls ====================

    @abstractmethod
    async def _connect(self, token: str, phone: str | None) -> ProviderInstance:
        ...

    @abstractmethod
    async def _get_status(self, token: str) -> ProviderInstance:
        ...

    @abstractmethod
    async def _configure_webhook(self, token: str, url: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def _disconnect(self, token: str) -> dict[str, Any]:
        ...

    @abstractmethod
    async def _delete_instance(self, token: str) -> dict[str, Any]:
        ...
