"""
Shared configuration management for the Access Layer authorization service.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACCESS_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Policy store
    policy_store: str = Field(default="memory", description="memory | postgres")
    postgres_dsn: str = Field(default="postgres://localhost:5432/access")
    policy_store_timeout_seconds: Optional[float] = Field(default=5.0)

    # Policy evaluation
    policy_cache_ttl_seconds: float = Field(default=300.0, ge=0)
    expression_timeout_ms: float = Field(default=50.0, gt=0)
    expression_max_steps: int = Field(default=10000, gt=0)
    load_default_policies: bool = Field(default=True)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
