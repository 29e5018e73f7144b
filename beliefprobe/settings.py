"""Environment configuration for the belief sensitivity toolkit."""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings from environment variables (prefix BELIEFPROBE_)."""

    model_config = SettingsConfigDict(
        env_prefix="BELIEFPROBE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Chat-completion backend
    api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("BELIEFPROBE_API_KEY", "OPENROUTER_API_KEY"),
    )
    model: str = "meta-llama/llama-3.3-70b-instruct"
    base_url: str = "https://openrouter.ai/api/v1/chat/completions"
    request_timeout: float = 60.0
    max_retries: int = 2

    # Probe execution
    max_workers: int = Field(default=4, ge=1)
    shift_tolerance: float = Field(default=0.005, ge=0.0)

    # Logging
    log_level: str = "INFO"


def get_settings() -> Settings:
    """Read settings fresh from the environment."""
    return Settings()
