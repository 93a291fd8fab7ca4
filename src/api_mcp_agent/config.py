"""Environment-driven settings for api-mcp-agent."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MCP_AGENT_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    api_key: str | None = Field(default=None)
    model: str | None = Field(default=None)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(default=32768, gt=0)

    max_retries: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=1.0, ge=0.0)
    validate_model: bool = Field(default=True)

    inter_call_delay: float = Field(default=0.5, ge=0.0)
    monolithic_max_prompt_chars: int = Field(default=30000, gt=0)

    log_level: str = Field(default="INFO")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
