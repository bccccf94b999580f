"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = False
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # Storage
    storage_backend: Literal["memory", "firestore"] = "memory"
    firestore_emulator_host: str | None = None
    gcp_project_id: str = ""

    # Raw uploaded files
    blob_backend: Literal["memory", "local"] = "memory"
    blob_directory: str = "./data/blobs"

    # Channel provider
    channel_api_base_url: str = "https://optus.uazapi.com"
    channel_admin_token: str = ""
    webhook_base_url: str = "http://localhost:8000"
    webhook_secret: str = ""

    # Completion providers
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openai_base_url: str = "https://api.openai.com/v1"
    openrouter_referer: str = "https://whatsdesk.app"
    openrouter_title: str = "WhatsDesk"

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    # Knowledge base
    knowledge_chunk_size: int = 500
    knowledge_chunk_overlap: int = 50
    knowledge_max_upload_bytes: int = 10 * 1024 * 1024
    knowledge_search_limit: int = 5

    # Agent
    agent_history_turns: int = 5
    agent_knowledge_top_k: int = 3

    # Quota
    default_connection_limit: int = Field(default=2, ge=0)

    # Guardrail
    protected_resource_ids: list[str] = Field(default_factory=list)
    guardrail_lookup_timeout_seconds: float = 5.0

    # Conversation settings
    conversation_idle_minutes: int = 24 * 60

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
