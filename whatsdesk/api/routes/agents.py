"""Agent configuration and prompt template endpoints."""

from datetime import datetime
from typing import Any

import structlog
from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from whatsdesk.api.dependencies import ActorDep, ActorRoleDep, ServicesDep
from whatsdesk.core.exceptions import PermissionDenied
from whatsdesk.models import AgentConfig, AgentProvider, PromptTemplate, UserRole, is_elevated
from whatsdesk.services.agent import validate_prompt

logger = structlog.get_logger()

router = APIRouter(prefix="/admin", tags=["Agents"])


# ==================== Pydantic Schemas ====================


class AgentCreate(BaseModel):
    name: str
    provider: AgentProvider
    model: str
    api_key: str = Field(..., min_length=1)
    tenant_id: str | None = Field(default=None, description="Omit for a global agent")
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=1000, gt=0)
    system_prompt_id: str | None = None
    custom_instructions: str | None = None
    verify_credentials: bool = False


class AgentUpdate(BaseModel):
    name: str | None = None
    model: str | None = None
    api_key: str | None = None
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_tokens: int | None = Field(default=None, gt=0)
    system_prompt_id: str | None = None
    custom_instructions: str | None = None


class AgentResponse(BaseModel):
    """Agent without its API key."""

    id: str
    tenant_id: str | None
    name: str
    provider: AgentProvider
    model: str
    temperature: float
    max_tokens: int
    system_prompt_id: str | None
    custom_instructions: str | None
    active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_agent(cls, agent: AgentConfig) -> "AgentResponse":
        return cls.model_validate(agent.model_dump(exclude={"api_key"}))


class PromptCreate(BaseModel):
    name: str
    body: str
    variables: list[str] = Field(default_factory=list)
    description: str | None = None
    version: str = "1.0.0"


class PromptValidateRequest(BaseModel):
    body: str
    variables: list[str] = Field(default_factory=list)


def _require_elevated(operation: str, role: UserRole) -> None:
    if not is_elevated(role):
        raise PermissionDenied(operation, role)


# ==================== Agent Endpoints ====================


@router.post("/agents", response_model=AgentResponse, status_code=status.HTTP_201_CREATED)
async def create_agent(
    data: AgentCreate,
    services: ServicesDep,
    role: ActorRoleDep,
    actor: ActorDep,
) -> AgentResponse:
    """Create an inactive agent; global agents need an elevated role."""
    if data.tenant_id is None:
        _require_elevated("create_global_agent", role)

    agent = await services.agents.create_agent(created_by=actor, **data.model_dump())
    return AgentResponse.from_agent(agent)


@router.get("/agents", response_model=list[AgentResponse])
async def list_agents(services: ServicesDep, tenant_id: str | None = None) -> list[AgentResponse]:
    return [AgentResponse.from_agent(a) for a in await services.agents.list_agents(tenant_id)]


@router.patch("/agents/{agent_id}", response_model=AgentResponse)
async def update_agent(agent_id: str, data: AgentUpdate, services: ServicesDep) -> AgentResponse:
    agent = await services.agents.update_agent(agent_id, **data.model_dump(exclude_unset=True))
    return AgentResponse.from_agent(agent)


@router.post("/agents/{agent_id}/activate", response_model=AgentResponse)
async def activate_agent(agent_id: str, services: ServicesDep, role: ActorRoleDep) -> AgentResponse:
    """Make this the only active agent of its scope."""
    agent = await services.agents.get_agent(agent_id)
    if agent.tenant_id is None:
        _require_elevated("activate_global_agent", role)
    return AgentResponse.from_agent(await services.agents.activate_agent(agent_id))


@router.delete("/agents/{agent_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_agent(agent_id: str, services: ServicesDep) -> None:
    await services.agents.delete_agent(agent_id)


@router.get("/tenants/{tenant_id}/usage")
async def agent_usage(tenant_id: str, services: ServicesDep, limit: int = 100) -> dict[str, Any]:
    """Recent completion usage with token and cost totals."""
    logs = await services.storage.list_usage_logs(tenant_id, limit=limit)
    return {
        "tenant_id": tenant_id,
        "count": len(logs),
        "total_tokens": sum(log.total_tokens for log in logs),
        "total_cost_usd": round(sum(log.cost_usd for log in logs), 6),
        "logs": [log.model_dump() for log in logs],
    }


# ==================== Prompt Template Endpoints ====================


@router.post("/prompts", status_code=status.HTTP_201_CREATED)
async def create_prompt(
    data: PromptCreate,
    services: ServicesDep,
    role: ActorRoleDep,
    actor: ActorDep,
) -> dict[str, Any]:
    _require_elevated("create_prompt_template", role)
    template, validation = await services.prompts.create(created_by=actor, **data.model_dump())
    return {"template": template.model_dump(), "warnings": validation.warnings}


@router.get("/prompts", response_model=list[PromptTemplate])
async def list_prompts(services: ServicesDep) -> list[PromptTemplate]:
    return await services.prompts.list_templates()


@router.post("/prompts/validate")
async def validate_prompt_body(data: PromptValidateRequest) -> dict[str, Any]:
    """Check a template body without saving it."""
    result = validate_prompt(data.body, data.variables)
    return {"valid": result.valid, "errors": result.errors, "warnings": result.warnings}


@router.post("/prompts/{template_id}/activate", response_model=PromptTemplate)
async def activate_prompt(template_id: str, services: ServicesDep, role: ActorRoleDep) -> PromptTemplate:
    _require_elevated("activate_prompt_template", role)
    return await services.prompts.activate(template_id)
