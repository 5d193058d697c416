"""Environment-driven settings for the relay."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Relay settings.

    Provider secrets are read under the names the deployment already uses
    (``SMITHERY_API_KEY``, ``TAVILY_API_KEY`` ...). Service knobs use the
    ``MCPRELAY_`` prefix, e.g. ``MCPRELAY_DB_PATH``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    smithery_api_key: str | None = Field(default=None, validation_alias="SMITHERY_API_KEY")
    smithery_api_base: str = Field(
        default="https://api.smithery.ai",
        validation_alias="SMITHERY_API_BASE",
    )
    smithery_namespace: str = Field(default="n4-app", validation_alias="SMITHERY_NAMESPACE")

    tavily_api_key: str | None = Field(default=None, validation_alias="TAVILY_API_KEY")
    customgpt_project_token: str | None = Field(
        default=None,
        validation_alias="CUSTOMGPT_PROJECT_TOKEN",
    )
    customgpt_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("CUSTOMGPT_API_KEY", "CustomGPT_API_KEY"),
    )
    exa_api_key: str | None = Field(default=None, validation_alias="EXA_API_KEY")
    composio_api_key: str | None = Field(default=None, validation_alias="COMPOSIO_API_KEY")

    supabase_url: str | None = Field(default=None, validation_alias="SUPABASE_URL")
    supabase_anon_key: str | None = Field(default=None, validation_alias="SUPABASE_ANON_KEY")
    supabase_service_role_key: str | None = Field(
        default=None,
        validation_alias="SUPABASE_SERVICE_ROLE_KEY",
    )

    db_path: Path = Field(
        default=Path(".mcprelay/mcprelay.db"),
        validation_alias="MCPRELAY_DB_PATH",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        validation_alias="MCPRELAY_REQUEST_TIMEOUT_SECONDS",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        validation_alias="MCPRELAY_LOG_LEVEL",
    )

    @property
    def managed_relay_base(self) -> str:
        return self.smithery_api_base.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
