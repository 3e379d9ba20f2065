from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CODEGEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_prefix: str = "/api"
    allowed_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    )
    database_url: str = "sqlite+aiosqlite:///./codegen_versions.db"
    log_level: str = "INFO"

    neon_api_key: str = ""
    neon_base_url: str = "https://console.neon.tech/api/v2"

    sandbox_api_key: str = ""
    sandbox_base_url: str = "https://api.freestyle.sh"
    template_repo_url: str = "https://github.com/andrelandgraf/neon-freestyle-template"
    git_base_url: str = "https://git.freestyle.sh"
    deploy_domain_suffix: str = "style.dev"

    assistant_base_url: str = "https://api.assistant-ui.com"
    assistant_api_key: str = ""

    encryption_key: str | None = Field(
        default=None,
        description="32-byte AES key as 64 hex characters",
    )

    operation_poll_interval: float = Field(
        default=5.0,
        gt=0,
        description="Seconds between control-plane operation status polls",
    )
    operation_timeout: float = Field(
        default=300.0,
        gt=0,
        description="Seconds to wait for a control-plane operation to settle",
    )
    http_timeout: float = 30.0

    @field_validator("encryption_key")
    @classmethod
    def _check_encryption_key(cls, value: str | None) -> str | None:
        if value is None or value == "":
            return None
        if len(value) != 64:
            raise ValueError("encryption_key must be 64 hex characters long")
        try:
            bytes.fromhex(value)
        except ValueError as exc:
            raise ValueError("encryption_key must be a hex string") from exc
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
