import json
from typing import Any, List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

WEAK_SECRETS = {"", "change_me", "dev-webhook-secret"}


def parse_list_setting(value: Any, *, name: str) -> List[str]:
    """A list from a JSON array, a comma-separated string or a list."""
    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith("["):
            value = json.loads(text)
            if not isinstance(value, list):
                raise ValueError(f"{name} JSON value must be a list")
        else:
            value = text.split(",")
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    raise ValueError(f"{name} must be a list or a comma-separated string")


class Settings(BaseSettings):
    app_name: str = "Autotag Backend"
    env: str = "dev"

    # DATABASE
    database_url: str
    db_pool_size: int = Field(default=10, ge=1, le=100)
    db_max_overflow: int = Field(default=20, ge=0, le=200)
    db_pool_timeout_seconds: int = Field(default=30, ge=1, le=300)
    db_pool_recycle_seconds: int = Field(default=1800, ge=30, le=86_400)

    # SHOPIFY
    shopify_api_version: str = "2024-01"
    shopify_api_secret: str = "dev-webhook-secret"
    shopify_request_timeout_seconds: int = Field(default=20, ge=1, le=300)

    # TAGGING ENGINE
    tagging_min_request_interval_ms: int = Field(default=500, ge=0, le=60_000)
    tagging_max_attempts: int = Field(default=5, ge=1, le=20)
    tagging_default_retry_ms: int = Field(default=1000, ge=0, le=600_000)
    batch_page_size: int = Field(default=25, ge=1, le=250)
    batch_entity_delay_ms: int = Field(default=500, ge=0, le=60_000)
    batch_cron_secret: str | None = None
    backfill_page_size: int = Field(default=250, ge=1, le=250)
    backfill_progress_every: int = Field(default=100, ge=1)

    # CORS
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    cors_origin_regex: str | None = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, value: Any) -> List[str]:
        return parse_list_setting(value, name="CORS_ORIGINS")

    @field_validator("batch_cron_secret", "cors_origin_regex", mode="before")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return str(value).strip() or None

    @property
    def is_production(self) -> bool:
        return self.env.lower().strip() in {"prod", "production"}

    @model_validator(mode="after")
    def validate_production_safety(self) -> "Settings":
        if not self.is_production:
            return self

        problems = []
        secret = self.shopify_api_secret.strip()
        if secret in WEAK_SECRETS or len(secret) < 16:
            problems.append("SHOPIFY_API_SECRET must be the app's real API secret")
        if "*" in self.cors_origins:
            problems.append("CORS_ORIGINS cannot contain '*'")
        if self.cors_origin_regex:
            problems.append("CORS_ORIGIN_REGEX cannot be set")
        if problems:
            raise ValueError("Unsafe production settings: " + "; ".join(problems))
        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        enable_decoding=False,
    )


settings = Settings()
