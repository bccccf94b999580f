"""Agent configuration management."""

from uuid import uuid4

import structlog

from whatsdesk.core.exceptions import AgentNotFound, ValidationError
from whatsdesk.models import AgentConfig, AgentProvider
from whatsdesk.services.llm.provider import LLMProvider
from whatsdesk.storage.base import StorageBackend

logger = structlog.get_logger()


class AgentConfigService:
    """CRUD and activation of agent configurations.

    Scopes: a tenant id, or ``None`` for the global scope.
    """

    def __init__(self, storage: StorageBackend, llm: LLMProvider) -> None:
        self.storage = storage
        self.llm = llm

    async def create_agent(
        self,
        name: str,
        provider: AgentProvider,
        model: str,
        api_key: str,
        tenant_id: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
        system_prompt_id: str | None = None,
        custom_instructions: str | None = None,
        created_by: str | None = None,
        verify_credentials: bool = False,
    ) -> AgentConfig:
        """Create an inactive agent after checking model and (optionally) the key."""
        provider = AgentProvider(provider)
        if not self.llm.is_supported_model(provider, model):
            raise ValidationError(
                f"Model {model} is not available for provider {provider.value}",
                details={"available": list(self.llm.spec_for(provider).models)},
            )
        if system_prompt_id and await self.storage.get_prompt_template(system_prompt_id) is None:
            raise ValidationError("Unknown prompt template", details={"system_prompt_id": system_prompt_id})

        agent = AgentConfig(
            id=str(uuid4()),
            tenant_id=tenant_id,
            name=name,
            provider=provider,
            model=model,
            api_key=api_key,
            temperature=temperature,
            max_tokens=max_tokens,
            system_prompt_id=system_prompt_id,
            custom_instructions=custom_instructions,
            active=False,
            created_by=created_by,
        )

        if verify_credentials and not await self.llm.verify_credentials(agent):
            raise ValidationError("API key or model rejected by the provider", details={"provider": provider.value})

        await self.storage.save_agent_config(agent)
        logger.info("Agent created", agent_id=agent.id, tenant_id=tenant_id, model=model)
        return agent

    async def get_agent(self, agent_id: str) -> AgentConfig:
        agent = await self.storage.get_agent_config(agent_id)
        if agent is None:
            raise AgentNotFound(agent_id)
        return agent

    async def list_agents(self, tenant_id: str | None) -> list[AgentConfig]:
        return await self.storage.list_agent_configs(tenant_id)

    async def update_agent(
        self,
        agent_id: str,
        name: str | None = None,
        model: str | None = None,
        api_key: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        system_prompt_id: str | None = None,
        custom_instructions: str | None = None,
    ) -> AgentConfig:
        agent = await self.get_agent(agent_id)

        if model is not None:
            if not self.llm.is_supported_model(agent.provider, model):
                raise ValidationError(f"Model {model} is not available for provider {agent.provider.value}")
            agent.model = model
        if name is not None:
            agent.name = name
        if api_key is not None:
            agent.api_key = api_key
        if temperature is not None:
            agent.temperature = temperature
        if max_tokens is not None:
            agent.max_tokens = max_tokens
        if system_prompt_id is not None:
            agent.system_prompt_id = system_prompt_id or None
        if custom_instructions is not None:
            agent.custom_instructions = custom_instructions

        # Re-validate field constraints after assignment
        agent = AgentConfig.model_validate(agent.model_dump())
        await self.storage.save_agent_config(agent)
        return agent

    async def activate_agent(self, agent_id: str) -> AgentConfig:
        """Make this agent the only active one of its scope, in one storage commit."""
        agent = await self.storage.activate_agent_config(agent_id)
        if agent is None:
            raise AgentNotFound(agent_id)
        logger.info("Agent activated", agent_id=agent_id, tenant_id=agent.tenant_id)
        return agent

    async def delete_agent(self, agent_id: str) -> None:
        if not await self.storage.delete_agent_config(agent_id):
            raise AgentNotFound(agent_id)
        logger.info("Agent deleted", agent_id=agent_id)

    async def resolve_active(self, tenant_id: str) -> AgentConfig | None:
        """The tenant's active agent, else the global one."""
        agent = await self.storage.get_active_agent_config(tenant_id)
        if agent is None:
            agent = await self.storage.get_active_agent_config(None)
        return agent
