"""
Shared configuration management for the portfolio services.
"""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PORTFOLIO_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Backing store
    postgres_dsn: str = Field(default="postgresql://localhost:5432/portfolio")
    db_min_pool_size: int = Field(default=1, ge=0)
    db_max_pool_size: int = Field(default=10, ge=1)
    db_command_timeout: float = Field(default=30.0, gt=0)

    # Collection cache
    cache_ttl_seconds: float = Field(default=300.0, gt=0)
    preload_on_startup: bool = Field(default=True)

    # CORS (comma-separated, only consulted outside local)
    allowed_origins: str = Field(default="")

    def cors_origins(self) -> List[str]:
        """Origins allowed by CORS for this environment."""
        if self.env == "local":
            return ["*"]
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
