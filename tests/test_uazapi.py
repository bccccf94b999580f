"""Tests for the Uazapi channel client over a mocked transport."""

import json

import httpx
import pytest
from tenacity import wait_none

from whatsdesk.core.exceptions import ChannelError, ConfigurationError, ProtectionViolation
from whatsdesk.models import ChannelStatus
from whatsdesk.services.channels import UazapiClient


class Provider:
    """Records requests and answers from a route table."""

    def __init__(self, routes):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.routes[(request.method, request.url.path)]
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            return answer(request)
        return answer


def make_client(guardrail, routes, admin_token="admin-secret"):
    provider = Provider(routes)
    http_client = httpx.AsyncClient(base_url="https://uazapi.test", transport=httpx.MockTransport(provider))
    client = UazapiClient(guardrail, base_url="https://uazapi.test", admin_token=admin_token, http_client=http_client)
    return client, provider


@pytest.mark.asyncio
async def test_create_instance_uses_admin_token(guardrail):
    client, provider = make_client(
        guardrail,
        {
            ("POST", "/instance/init"): httpx.Response(
                200, json={"instance": {"id": "r1", "name": "Recepção", "status": "disconnected"}, "token": "tok-1"}
            )
        },
    )

    instance = await client.create_instance("Recepção")

    assert instance.provider_id == "r1"
    assert instance.token == "tok-1"
    assert provider.requests[0].headers["admintoken"] == "admin-secret"
    assert json.loads(provider.requests[0].content) == {"name": "Recepção"}


@pytest.mark.asyncio
async def test_create_instance_requires_admin_token(guardrail):
    client, provider = make_client(guardrail, {}, admin_token="")

    with pytest.raises(ConfigurationError):
        await client.create_instance("Recepção")

    assert provider.requests == []


@pytest.mark.asyncio
async def test_send_text(guardrail):
    client, provider = make_client(
        guardrail, {("POST", "/message/text"): httpx.Response(200, json={"messageId": "wamid-9"})}
    )

    result = await client.send_text("tok-1", "5511988887777", "Olá!")

    assert result.message_id == "wamid-9"
    assert provider.requests[0].headers["token"] == "tok-1"
    assert json.loads(provider.requests[0].content) == {"phone": "5511988887777", "message": "Olá!"}


@pytest.mark.asyncio
async def test_non_2xx_raises_channel_error(guardrail):
    client, _ = make_client(guardrail, {("POST", "/message/text"): httpx.Response(500, text="boom")})

    with pytest.raises(ChannelError) as exc_info:
        await client.send_text("tok-1", "5511988887777", "Olá!")

    assert exc_info.value.details["status_code"] == 500


@pytest.mark.asyncio
async def test_send_is_not_retried(guardrail):
    client, provider = make_client(
        guardrail, {("POST", "/message/text"): httpx.ConnectError("connection refused")}
    )

    with pytest.raises(ChannelError):
        await client.send_text("tok-1", "5511988887777", "Olá!")

    assert len(provider.requests) == 1


@pytest.mark.asyncio
async def test_status_read_retries_transport_errors(guardrail, monkeypatch):
    monkeypatch.setattr(UazapiClient._send_idempotent.retry, "wait", wait_none())
    attempts = []

    def flaky(request):
        attempts.append(request)
        if len(attempts) < 3:
            raise httpx.ReadError("connection reset")
        return httpx.Response(
            200,
            json={
                "instance": {"id": "r1", "status": "connecting", "profileName": "Clínica", "owner": "5511999990000"},
                "status": {"connected": True, "loggedIn": True},
            },
        )

    client, _ = make_client(guardrail, {("GET", "/instance/status"): flaky})

    instance = await client.get_status("r1", "tok-1")

    assert len(attempts) == 3
    assert instance.status == ChannelStatus.CONNECTED
    assert instance.profile_name == "Clínica"


@pytest.mark.asyncio
async def test_delete_of_protected_instance_never_reaches_provider(guardrail):
    client, provider = make_client(guardrail, {("DELETE", "/instance"): httpx.Response(200, json={})})

    with pytest.raises(ProtectionViolation):
        await client.delete_instance("r9b63a61541c8a6", "tok-prod")

    assert provider.requests == []


@pytest.mark.asyncio
async def test_webhook_configuration_payload(guardrail):
    client, provider = make_client(guardrail, {("POST", "/webhook"): httpx.Response(200, json={"enabled": True})})

    await client.configure_webhook("r1", "tok-1", "https://hooks.example.com/webhooks/whatsapp")

    body = json.loads(provider.requests[0].content)
    assert body["events"] == ["connection", "messages", "messages_update"]
    assert body["excludeMessages"] == ["wasSentByApi"]
