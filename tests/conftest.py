"""Pytest configuration and fixtures."""

import os
from typing import Any

# Use litellm's bundled model cost map; the remote fetch fails offline and
# its warning path deadlocks the import under pytest.
os.environ.setdefault("LITELLM_LOCAL_MODEL_COST_MAP", "True")

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from whatsdesk.api.dependencies import build_services, set_services
from whatsdesk.api.main import create_app
from whatsdesk.core.exceptions import ChannelError, LLMError
from whatsdesk.models import (
    AgentConfig,
    AgentProvider,
    ChannelResource,
    ChannelStatus,
    Tenant,
    TenantProfile,
    TenantStatus,
)
from whatsdesk.services.channels import ChannelClient, ProviderInstance, SendResult
from whatsdesk.services.guardrail import ResourceGuardrail
from whatsdesk.services.knowledge import InMemoryBlobStore
from whatsdesk.services.llm import LLMProvider, LLMResponse
from whatsdesk.storage.memory import InMemoryStorage


class FakeChannelClient(ChannelClient):
    """In-process channel provider that records every call."""

    def __init__(self, guardrail: ResourceGuardrail) -> None:
        super().__init__(guardrail)
        self.sent: list[dict[str, str]] = []
        self.created: list[str] = []
        self.deleted: list[str] = []
        self.calls: list[tuple[str, str]] = []
        self.fail_send = False
        self.fail_create = False
        self.status = ChannelStatus.CONNECTED
        self._counter = 0

    @property
    def channel_name(self) -> str:
        return "fake"

    async def create_instance(self, name: str) -> ProviderInstance:
        if self.fail_create:
            raise ChannelError("instance limit on provider", channel="fake")
        self._counter += 1
        provider_id = f"prov-{self._counter}"
        self.created.append(provider_id)
        return ProviderInstance(provider_id=provider_id, token=f"tok-{self._counter}", name=name)

    async def send_text(self, token: str, phone: str, message: str) -> SendResult:
        if self.fail_send:
            raise ChannelError("send failed", channel="fake")
        self.sent.append({"token": token, "phone": phone, "message": message})
        return SendResult(response={"ok": True}, message_id=f"wamid-{len(self.sent)}")

    async def _connect(self, token: str, phone: str | None) -> ProviderInstance:
        self.calls.append(("connect", token))
        return ProviderInstance(
            provider_id=token, token=token, status=ChannelStatus.CONNECTING, qrcode="data:image/png;base64,QR"
        )

    async def _get_status(self, token: str) -> ProviderInstance:
        self.calls.append(("status", token))
        return ProviderInstance(
            provider_id=token,
            token=token,
            status=self.status,
            profile_name="Clínica Teste",
            owner="5511999990000",
        )

    async def _configure_webhook(self, token: str, url: str) -> dict[str, Any]:
        self.calls.append(("webhook", token))
        return {"url": url}

    async def _disconnect(self, token: str) -> dict[str, Any]:
        self.calls.append(("disconnect", token))
        return {}

    async def _delete_instance(self, token: str) -> dict[str, Any]:
        self.calls.append(("delete", token))
        self.deleted.append(token)
        return {}


class FakeLLM(LLMProvider):
    """LLM provider returning scripted replies without network calls."""

    def __init__(self, reply: str = "Olá! Como posso ajudar?") -> None:
        super().__init__()
        self.reply = reply
        self.fail = False
        self.requests: list[dict[str, Any]] = []

    async def complete(
        self,
        agent: AgentConfig,
        messages: list[dict[str, str]],
        system_prompt: str | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        self.requests.append({"agent": agent, "messages": messages, "system_prompt": system_prompt})
        if self.fail:
            raise LLMError("Completion request failed: 500", provider=agent.provider.value)
        return LLMResponse(
            content=self.reply,
            model=agent.model,
            tokens_input=120,
            tokens_output=30,
            total_tokens=150,
            cost_usd=0.0002,
            latency_ms=42.0,
        )


@pytest.fixture
def storage():
    """Create in-memory storage for tests."""
    return InMemoryStorage()


@pytest_asyncio.fixture
async def demo_tenant(storage):
    """Create a demo tenant for tests."""
    tenant = Tenant(
        id="test-tenant",
        name="Test Company",
        status=TenantStatus.ACTIVE,
        profile=TenantProfile(
            company_name="Clínica Sorriso",
            business_area="odontologia",
            available_services="limpeza, clareamento",
            company_address="Av. Paulista, 1000",
            company_phone="+55 11 3000-0000",
            business_hours="seg a sex, 9h às 18h",
        ),
    )
    await storage.save_tenant(tenant)
    return tenant


@pytest.fixture
def guardrail(storage):
    return ResourceGuardrail(storage, lookup_timeout=0.5)


@pytest.fixture
def fake_client(guardrail):
    return FakeChannelClient(guardrail)


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def services(storage, fake_llm):
    """Service graph wired with fakes for the provider and the LLM."""
    return build_services(
        storage=storage,
        blobs=InMemoryBlobStore(),
        llm=fake_llm,
        channel_client_factory=FakeChannelClient,
    )


@pytest_asyncio.fixture
async def connected_channel(storage, demo_tenant):
    channel = ChannelResource(
        id="chan-1",
        tenant_id=demo_tenant.id,
        name="Recepção",
        provider_id="prov-abc",
        token="tok-abc",
        status=ChannelStatus.CONNECTED,
    )
    await storage.save_channel(channel)
    return channel


@pytest_asyncio.fixture
async def active_agent(storage, demo_tenant):
    agent = AgentConfig(
        id="agent-1",
        tenant_id=demo_tenant.id,
        name="Atendente Virtual",
        provider=AgentProvider.OPENAI,
        model="gpt-4o-mini",
        api_key="sk-test",
        custom_instructions="Você é a assistente virtual da Clínica Sorriso.",
    )
    await storage.save_agent_config(agent)
    return await storage.activate_agent_config(agent.id)


@pytest.fixture
def app(services):
    """Create test application."""
    set_services(services)
    yield create_app()
    set_services(None)


@pytest_asyncio.fixture
async def client(app):
    """Create test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
