"""
Shared configuration management for the Render Cache Proxy.
"""

from typing import List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_BROWSER_ARGS = "--disable-gpu,--no-sandbox,--disable-dev-shm-usage"


def extract_from_string(value: Optional[str]) -> List[str]:
    """Split a comma separated setting: 'a, b,,c' -> ['a', 'b', 'c']."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="RENDER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # HTTP surface
    cors_origins: str = Field(default="")
    trust_proxy: bool = Field(default=True)

    # Observability
    enable_tracing: bool = Field(default=False)
    otel_exporter: Optional[str] = Field(default=None)
    enable_console_tracing: bool = Field(default=False)

    @property
    def cors_origin_list(self) -> List[str]:
        return extract_from_string(self.cors_origins)


class ServiceConfig(BaseConfig):
    """Render service configuration."""

    service_name: str = "renderer"
    host: str = "0.0.0.0"
    port: int = 8080

    # Cache store
    store_backend: str = Field(default="redis", pattern="^(redis|memory)$")
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_key_prefix: str = Field(default="render:")
    default_cache_ttl_ms: float = Field(default=5 * 60 * 1000, ge=0)

    # Rendering
    render_timeout_seconds: float = Field(default=9.0, gt=0)
    request_deadline_seconds: float = Field(default=10.0, gt=0)
    render_wait_until: str = Field(default="networkidle")
    browser_headless: bool = Field(default=True)
    browser_args: str = Field(default=DEFAULT_BROWSER_ARGS)
    ignore_https_errors: bool = Field(default=True)
    coalesce_renders: bool = Field(default=False)

    # Failure notifications
    slack_webhook_url: Optional[str] = Field(default=None)
    notification_timeout_seconds: float = Field(default=5.0, gt=0)

    @model_validator(mode="after")
    def _render_timeout_below_deadline(self) -> "ServiceConfig":
        # The renderer must give up before the request deadline fires.
        if self.render_timeout_seconds >= self.request_deadline_seconds:
            raise ValueError(
                "render_timeout_seconds must be lower than request_deadline_seconds"
            )
        return self

    @property
    def browser_arg_list(self) -> List[str]:
        return extract_from_string(self.browser_args)


def get_config(**overrides) -> ServiceConfig:
    """Get configuration for the render service."""
    return ServiceConfig(**overrides)
