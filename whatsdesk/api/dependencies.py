"""FastAPI dependencies for dependency injection."""

import hmac
from dataclasses import dataclass
from typing import Annotated, Callable

from fastapi import Depends, Header, HTTPException, status

from whatsdesk.core.config import Settings, settings
from whatsdesk.models import UserRole
from whatsdesk.services.actions import ActionExecutor
from whatsdesk.services.agent import AgentConfigService, AgentOrchestrator, PromptTemplateService
from whatsdesk.services.channels import ChannelClient, ChannelManager, UazapiClient
from whatsdesk.services.conversation import ConversationStore
from whatsdesk.services.guardrail import ResourceGuardrail
from whatsdesk.services.knowledge import BlobStore, InMemoryBlobStore, KnowledgeStore, LocalBlobStore
from whatsdesk.services.llm import LLMProvider
from whatsdesk.services.pipeline import IngestionPipeline
from whatsdesk.services.quota import QuotaEnforcer
from whatsdesk.storage.base import StorageBackend
from whatsdesk.storage.memory import InMemoryStorage


@dataclass
class Services:
    """Every long-lived collaborator of the application, wired once."""

    storage: StorageBackend
    guardrail: ResourceGuardrail
    quota: QuotaEnforcer
    knowledge: KnowledgeStore
    llm: LLMProvider
    channel_client: ChannelClient
    channels: ChannelManager
    conversations: ConversationStore
    agents: AgentConfigService
    prompts: PromptTemplateService
    orchestrator: AgentOrchestrator
    executor: ActionExecutor
    pipeline: IngestionPipeline

    async def shutdown(self) -> None:
        await self.pipeline.drain()
        await self.orchestrator.drain()
        await self.channel_client.close()


def _build_storage(config: Settings) -> StorageBackend:
    if config.storage_backend == "firestore":
        from whatsdesk.storage.firestore import FirestoreStorage

        return FirestoreStorage(project_id=config.gcp_project_id or None)
    return InMemoryStorage()


def _build_blobs(config: Settings) -> BlobStore:
    if config.blob_backend == "local":
        return LocalBlobStore(config.blob_directory)
    return InMemoryBlobStore()


def build_services(
    config: Settings | None = None,
    storage: StorageBackend | None = None,
    blobs: BlobStore | None = None,
    llm: LLMProvider | None = None,
    channel_client_factory: Callable[[ResourceGuardrail], ChannelClient] | None = None,
) -> Services:
    """Wire the service graph from settings.

    Any collaborator can be passed in to replace the configured one.
    """
    config = config or settings
    storage = storage or _build_storage(config)
    guardrail = ResourceGuardrail(
        storage,
        extra_protected_ids=config.protected_resource_ids,
        lookup_timeout=config.guardrail_lookup_timeout_seconds,
    )
    quota = QuotaEnforcer(storage, default_limit=config.default_connection_limit)
    knowledge = KnowledgeStore(
        storage,
        blobs or _build_blobs(config),
        chunk_size=config.knowledge_chunk_size,
        chunk_overlap=config.knowledge_chunk_overlap,
        max_upload_bytes=config.knowledge_max_upload_bytes,
    )
    llm = llm or LLMProvider()
    if channel_client_factory is not None:
        channel_client = channel_client_factory(guardrail)
    else:
        channel_client = UazapiClient(
            guardrail,
            base_url=config.channel_api_base_url,
            admin_token=config.channel_admin_token,
        )
    channels = ChannelManager(storage, channel_client, quota, webhook_base_url=config.webhook_base_url)
    conversations = ConversationStore(storage)
    orchestrator = AgentOrchestrator(
        storage,
        knowledge,
        llm,
        conversations,
        history_turns=config.agent_history_turns,
        top_k=config.agent_knowledge_top_k,
    )
    executor = ActionExecutor(storage, conversations, channel_client)
    pipeline = IngestionPipeline(storage, conversations, orchestrator, executor)

    return Services(
        storage=storage,
        guardrail=guardrail,
        quota=quota,
        knowledge=knowledge,
        llm=llm,
        channel_client=channel_client,
        channels=channels,
        conversations=conversations,
        agents=orchestrator.agents,
        prompts=PromptTemplateService(storage),
        orchestrator=orchestrator,
        executor=executor,
        pipeline=pipeline,
    )


# Services singleton
_services: Services | None = None


def get_services() -> Services:
    """Get the services container, building it on first use."""
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services: Services | None) -> None:
    """Replace the services container (for testing)."""
    global _services
    _services = services


def get_storage() -> StorageBackend:
    return get_services().storage


# Type aliases for cleaner dependency injection
ServicesDep = Annotated[Services, Depends(get_services)]
StorageDep = Annotated[StorageBackend, Depends(get_storage)]
SettingsDep = Annotated[Settings, Depends(lambda: settings)]


def get_actor_role(x_actor_role: Annotated[str | None, Header()] = None) -> UserRole:
    """Role of the caller, set by the authenticating front proxy."""
    if not x_actor_role:
        return UserRole.STAFF
    try:
        return UserRole(x_actor_role.strip().lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown role: {x_actor_role}",
        )


def get_actor(x_actor: Annotated[str | None, Header()] = None) -> str | None:
    return x_actor


ActorRoleDep = Annotated[UserRole, Depends(get_actor_role)]
ActorDep = Annotated[str | None, Depends(get_actor)]


async def verify_webhook_token(x_webhook_token: Annotated[str | None, Header()] = None) -> bool:
    """Check the shared webhook secret when one is configured."""
    if not settings.webhook_secret:
        return True

    if not x_webhook_token or not hmac.compare_digest(x_webhook_token, settings.webhook_secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook token",
        )

    return True


WebhookAuthDep = Annotated[bool, Depends(verify_webhook_token)]
