"""Agent configuration, prompt template and usage models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class AgentProvider(str, Enum):
    """OpenAI-compatible completion providers."""

    OPENROUTER = "openrouter"
    OPENAI = "openai"


class AgentConfig(BaseModel):
    """A (provider, model, parameters, prompt) binding.

    ``tenant_id`` of ``None`` places the agent in the global scope.
    """

    id: str
    tenant_id: str | None = None
    name: str
    provider: AgentProvider
    model: str
    api_key: str = Field(..., repr=False)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, ge=1, le=8000)
    system_prompt_id: str | None = None
    custom_instructions: str | None = None
    active: bool = False

    created_by: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class PromptTemplate(BaseModel):
    """System prompt with a fixed set of named ``{placeholders}``.

    Templates live in the global scope; at most one is active.
    """

    id: str
    name: str
    version: str = "1.0.0"
    body: str
    variables: list[str] = Field(default_factory=list)
    description: str | None = None
    active: bool = False

    created_by: str | None = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class AgentUsageLog(BaseModel):
    """Token and cost accounting for one completion call."""

    id: str
    agent_id: str
    tenant_id: str
    conversation_id: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0
    latency_ms: float = 0.0
    fallback: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)
