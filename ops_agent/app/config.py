from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central application configuration."""

    app_name: str = Field(default="Tenant Ops Agent")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # MongoDB
    mongo_uri: str = Field(default="mongodb://localhost:27017")
    mongo_database: str = Field(default="warehouse_ops")
    sessions_collection: str = Field(default="agent_sessions")
    session_ttl_minutes: int = Field(default=30)

    # Reasoning gateway (OpenAI-compatible chat completions)
    reasoning_api_url: str = Field(
        default="https://ai.gateway.lovable.dev/v1",
        validation_alias=AliasChoices("REASONING_API_URL", "AI_GATEWAY_URL"),
    )
    reasoning_api_key: str = Field(
        default="",
        validation_alias=AliasChoices("REASONING_API_KEY", "LOVABLE_API_KEY"),
    )
    reasoning_model: str = Field(
        default="google/gemini-2.0-flash",
        validation_alias=AliasChoices("REASONING_MODEL"),
    )
    reasoning_timeout_seconds: float = Field(default=60.0)

    # Orchestration
    max_tool_rounds: int = Field(default=5)
    history_window: int = Field(default=10)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
