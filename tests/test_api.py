"""API tests for the admin and webhook endpoints."""

import pytest
import pytest_asyncio

from whatsdesk.core.config import settings
from whatsdesk.models import ChannelResource, ChannelStatus, ConversationStatus

TENANT = "test-tenant"
ADMIN = {"X-Actor-Role": "admin", "X-Actor": "admin@example.com"}


def inbound(body="Quero agendar uma consulta", provider_id="prov-abc"):
    return {"channelProviderId": provider_id, "from": "5511988887777", "body": body, "timestamp": 1_700_000_000}


@pytest_asyncio.fixture
async def conversation(services, connected_channel):
    return await services.conversations.get_or_create(connected_channel, "5511988887777")


# ==================== Tenants ====================


@pytest.mark.asyncio
async def test_create_tenant(client):
    payload = {"id": "acme", "name": "Acme", "profile": {"company_name": "Acme Odonto"}}

    response = await client.post("/admin/tenants", json=payload)
    assert response.status_code == 201
    assert response.json()["status"] == "trial"

    duplicate = await client.post("/admin/tenants", json=payload)
    assert duplicate.status_code == 409


@pytest.mark.asyncio
async def test_unknown_tenant_is_404(client):
    response = await client.get("/admin/tenants/missing")

    assert response.status_code == 404
    assert response.json()["error"] == "TENANT_NOT_FOUND"


@pytest.mark.asyncio
async def test_unknown_role_header_is_rejected(client):
    response = await client.put(f"/admin/tenants/{TENANT}/quota", json={"limit": 3}, headers={"X-Actor-Role": "root"})

    assert response.status_code == 400


# ==================== Webhook ====================


@pytest.mark.asyncio
async def test_webhook_accepts_and_processes(client, services, connected_channel, active_agent):
    response = await client.post("/webhooks/whatsapp", json=inbound())

    assert response.status_code == 200
    assert response.json() == {"status": "accepted"}

    await services.pipeline.drain()
    assert [m["phone"] for m in services.channel_client.sent] == ["5511988887777"]


@pytest.mark.asyncio
async def test_webhook_ignores_other_events(client, services):
    response = await client.post("/webhooks/whatsapp", json={"event": "connection", "status": "open"})

    assert response.status_code == 200
    assert response.json() == {"status": "ignored"}
    assert services.pipeline.pending == 0


@pytest.mark.asyncio
async def test_webhook_rejects_non_json(client):
    response = await client.post(
        "/webhooks/whatsapp", content=b"not json", headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_webhook_token(client, monkeypatch):
    monkeypatch.setattr(settings, "webhook_secret", "s3cret")

    denied = await client.post("/webhooks/whatsapp", json={"event": "ping"})
    allowed = await client.post("/webhooks/whatsapp", json={"event": "ping"}, headers={"X-Webhook-Token": "s3cret"})

    assert denied.status_code == 401
    assert allowed.status_code == 200


# ==================== Channels and guardrail ====================


@pytest.mark.asyncio
async def test_create_channel_hides_token(client, demo_tenant):
    response = await client.post(f"/admin/tenants/{TENANT}/channels", json={"name": "Recepção"})

    assert response.status_code == 201
    data = response.json()
    assert data["webhook_configured"] is True
    assert "token" not in data["channel"]


@pytest.mark.asyncio
async def test_create_channel_over_quota(client, services, demo_tenant):
    await services.quota.set_tenant_limit(TENANT, 0, actor_role="admin")

    response = await client.post(f"/admin/tenants/{TENANT}/channels", json={"name": "Recepção"})

    assert response.status_code == 409
    assert response.json()["error"] == "QUOTA_EXCEEDED"


@pytest.mark.asyncio
async def test_delete_protected_channel_is_locked(client, services, storage, demo_tenant):
    await storage.save_channel(
        ChannelResource(
            id="chan-prod",
            tenant_id=TENANT,
            name="Produção",
            provider_id="r9b63a61541c8a6",
            token="tok-prod",
            status=ChannelStatus.CONNECTED,
        )
    )

    response = await client.delete(
        f"/admin/tenants/{TENANT}/channels/chan-prod",
        headers={"X-Actor-Role": "system_owner"},
    )

    assert response.status_code == 423
    assert response.json()["error"] == "PROTECTION_VIOLATION"
    assert services.channel_client.deleted == []


@pytest.mark.asyncio
async def test_protect_requires_elevated_role(client):
    payload = {"resource_id": "prov-vip", "reason": "VIP", "client_label": "Cliente VIP"}

    denied = await client.post("/admin/protected", json=payload)
    created = await client.post("/admin/protected", json=payload, headers=ADMIN)

    assert denied.status_code == 403
    assert created.status_code == 201

    check = await client.get("/admin/protected/prov-vip/check", params={"operation": "delete"})
    assert check.json()["allowed"] is False


@pytest.mark.asyncio
async def test_quota_update_requires_elevated_role(client):
    denied = await client.put(f"/admin/tenants/{TENANT}/quota", json={"limit": 5})
    allowed = await client.put(f"/admin/tenants/{TENANT}/quota", json={"limit": 5}, headers=ADMIN)

    assert denied.status_code == 403
    assert allowed.status_code == 200
    assert allowed.json()["limit"] == 5


# ==================== Knowledge ====================


@pytest.mark.asyncio
async def test_upload_and_search_document(client):
    response = await client.post(
        f"/admin/tenants/{TENANT}/knowledge/documents",
        files={"file": ("faq.txt", "Fazemos clareamento dental a laser.".encode(), "text/plain")},
        data={"name": "FAQ", "category": "faq", "keywords": "clareamento, laser"},
    )

    assert response.status_code == 201
    document = response.json()
    assert document["status"] == "ready"
    assert document["chunk_count"] == 1
    assert document["keywords"] == ["clareamento", "laser"]
    assert "raw_text" not in document

    search = await client.post(f"/admin/tenants/{TENANT}/knowledge/search", json={"query": "clareamento"})
    assert [r["document_name"] for r in search.json()["results"]] == ["FAQ"]


@pytest.mark.asyncio
async def test_upload_rejects_unsupported_type(client):
    response = await client.post(
        f"/admin/tenants/{TENANT}/knowledge/documents",
        files={"file": ("foto.png", b"\x89PNG", "image/png")},
        data={"name": "Foto"},
    )

    assert response.status_code == 400


# ==================== Agents ====================


@pytest.mark.asyncio
async def test_agent_lifecycle(client, demo_tenant):
    payload = {
        "name": "Atendente",
        "provider": "openai",
        "model": "gpt-4o-mini",
        "api_key": "sk-test",
        "tenant_id": TENANT,
    }

    created = await client.post("/admin/agents", json=payload)
    assert created.status_code == 201
    agent = created.json()
    assert agent["active"] is False
    assert "api_key" not in agent

    activated = await client.post(f"/admin/agents/{agent['id']}/activate")
    assert activated.json()["active"] is True

    unknown_model = await client.post("/admin/agents", json={**payload, "model": "gpt-99"})
    assert unknown_model.status_code == 400


@pytest.mark.asyncio
async def test_global_agent_requires_elevated_role(client):
    payload = {"name": "Global", "provider": "openai", "model": "gpt-4o", "api_key": "sk-test"}

    denied = await client.post("/admin/agents", json=payload)
    created = await client.post("/admin/agents", json=payload, headers=ADMIN)

    assert denied.status_code == 403
    assert created.status_code == 201
    assert created.json()["tenant_id"] is None


@pytest.mark.asyncio
async def test_invalid_prompt_template_rejected(client):
    response = await client.post(
        "/admin/prompts",
        json={"name": "curto", "body": "Oi {company_name}", "variables": []},
        headers=ADMIN,
    )

    assert response.status_code == 400
    assert response.json()["error"] == "VALIDATION_ERROR"


# ==================== Conversations ====================


@pytest.mark.asyncio
async def test_operator_transfer_and_reply(client, services, conversation):
    base = f"/admin/tenants/{TENANT}/conversations/{conversation.id}"

    transferred = await client.post(f"{base}/transfer", json={"reason": "vip"})
    assert transferred.json()["status"] == ConversationStatus.WAITING_HUMAN.value

    reply = await client.post(f"{base}/reply", json={"text": "Oi, aqui é a Maria."})
    assert reply.status_code == 200
    assert services.channel_client.sent[-1]["message"] == "Oi, aqui é a Maria."

    services.channel_client.fail_send = True
    failed = await client.post(f"{base}/reply", json={"text": "Ainda aí?"})
    assert failed.status_code == 502


@pytest.mark.asyncio
async def test_conversation_of_other_tenant_is_404(client, conversation):
    response = await client.get(f"/admin/tenants/other-tenant/conversations/{conversation.id}")

    assert response.status_code == 404
