"""Uazapi WhatsApp channel client."""

from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from whatsdesk.core.config import settings
from whatsdesk.core.exceptions import ChannelError, ConfigurationError
from whatsdesk.models import ChannelStatus
from whatsdesk.services.channels.base import WEBHOOK_EVENTS, ChannelClient, ProviderInstance, SendResult
from whatsdesk.services.guardrail import ResourceGuardrail

logger = structlog.get_logger()


def _status(value: Any) -> ChannelStatus:
    try:
        return ChannelStatus(value)
    except ValueError:
        return ChannelStatus.DISCONNECTED


def parse_instance(data: dict[str, Any], token: str | None = None) -> ProviderInstance:
    """Build a ProviderInstance from an ``instance`` payload."""
    instance = data.get("instance") or data
    status = _status(instance.get("status", ChannelStatus.DISCONNECTED.value))

    # Status calls report the session separately from the instance record
    session = data.get("status")
    if isinstance(session, dict) and session.get("connected") and session.get("loggedIn"):
        status = ChannelStatus.CONNECTED

    return ProviderInstance(
        provider_id=instance.get("id", ""),
        token=token or data.get("token") or instance.get("token", ""),
        status=status,
        name=instance.get("name"),
        qrcode=instance.get("qrcode") or None,
        paircode=instance.get("paircode") or None,
        profile_name=instance.get("profileName"),
        profile_picture_url=instance.get("profilePicUrl"),
        is_business=bool(instance.get("isBusiness", False)),
        owner=instance.get("owner"),
    )


class UazapiClient(ChannelClient):
    """Uazapi REST client.

    Handles:
    - Instance lifecycle (init, connect, status, disconnect, delete)
    - Webhook configuration
    - Sending text messages

    Admin calls authenticate with the ``admintoken`` header, instance
    calls with ``token``.
    """

    def __init__(
        self,
        guardrail: ResourceGuardrail,
        base_url: str | None = None,
        admin_token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(guardrail)
        self.base_url = (base_url or settings.channel_api_base_url).rstrip("/")
        self.admin_token = admin_token if admin_token is not None else settings.channel_admin_token
        # No client-side timeout: a slow provider only blocks its own task
        self._client = http_client or httpx.AsyncClient(base_url=self.base_url, timeout=None)

    @property
    def channel_name(self) -> str:
        return "whatsapp"

    def _admin_headers(self) -> dict[str, str]:
        if not self.admin_token:
            raise ConfigurationError("Channel provider admin token is not configured")
        return {"admintoken": self.admin_token}

    @staticmethod
    def _instance_headers(token: str) -> dict[str, str]:
        return {"token": token}

    async def _send(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        payload: dict[str, Any] | None,
    ) -> httpx.Response:
        return await self._client.request(method, path, headers=headers, json=payload)

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def _send_idempotent(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
    ) -> httpx.Response:
        return await self._send(method, path, headers, None)

    async def _request(
        self,
        method: str,
        path: str,
        headers: dict[str, str],
        payload: dict[str, Any] | None = None,
        idempotent: bool = False,
    ) -> Any:
        try:
            if idempotent:
                response = await self._send_idempotent(method, path, headers)
            else:
                response = await self._send(method, path, headers, payload)
        except httpx.HTTPError as e:
            logger.error("Channel provider unreachable", path=path, error=str(e))
            raise ChannelError(
                f"Uazapi unreachable: {e}",
                channel=self.channel_name,
                details={"path": path},
            ) from e

        if not response.is_success:
            logger.error(
                "Channel provider error",
                path=path,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise ChannelError(
                f"Uazapi Error ({response.status_code}): {response.text}",
                channel=self.channel_name,
                details={"path": path, "status_code": response.status_code},
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {"response": response.text}

    # ==================== Admin Calls ====================

    async def create_instance(self, name: str) -> ProviderInstance:
        data = await self._request("POST", "/instance/init", self._admin_headers(), {"name": name})
        instance = parse_instance(data)
        if not instance.token or not instance.provider_id:
            raise ChannelError(
                "Instance token not returned by provider",
                channel=self.channel_name,
                details={"path": "/instance/init"},
            )
        logger.info("Provider instance created", provider_id=instance.provider_id, name=name)
        return instance

    # ==================== Instance Calls ====================

    async def send_text(self, token: str, phone: str, message: str) -> SendResult:
        data = await self._request(
            "POST",
            "/message/text",
            self._instance_headers(token),
            {"phone": phone, "message": message},
        )
        message_id = data.get("messageId") or data.get("id") if isinstance(data, dict) else None
        logger.info("Sent WhatsApp message", to=phone, message_id=message_id)
        return SendResult(response=data if isinstance(data, dict) else {"response": data}, message_id=message_id)

    async def _connect(self, token: str, phone: str | None) -> ProviderInstance:
        payload = {"phone": phone} if phone else {}
        data = await self._request("POST", "/instance/connect", self._instance_headers(token), payload)
        return parse_instance(data, token=token)

    async def _get_status(self, token: str) -> ProviderInstance:
        data = await self._request("GET", "/instance/status", self._instance_headers(token), idempotent=True)
        return parse_instance(data, token=token)

    async def _configure_webhook(self, token: str, url: str) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/webhook",
            self._instance_headers(token),
            {
                "url": url,
                "events": list(WEBHOOK_EVENTS),
                "excludeMessages": ["wasSentByApi"],
                "enabled": True,
            },
        )

    async def _disconnect(self, token: str) -> dict[str, Any]:
        return await self._request("POST", "/instance/disconnect", self._instance_headers(token))

    async def _delete_instance(self, token: str) -> dict[str, Any]:
        return await self._request("DELETE", "/instance", self._instance_headers(token))

    async def close(self) -> None:
        await self._client.aclose()
