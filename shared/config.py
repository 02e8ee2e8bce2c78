"""
Shared configuration management for the Storefront backend.
"""

from typing import List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"])
    site_url: str = Field(default="https://www.gamecityelectronics.com")

    # Cache store
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379)
    redis_username: Optional[str] = Field(default=None)
    redis_password: Optional[str] = Field(default=None)
    redis_db: int = Field(default=0)
    redis_tls: Optional[bool] = Field(default=None)
    redis_connect_timeout: float = Field(default=1.0)
    redis_socket_timeout: float = Field(default=1.0)

    # Read-through cache
    cache_namespace: str = Field(default="cache:")
    cache_ttl_seconds: int = Field(default=300)
    cache_scan_count: int = Field(default=100)
    cache_delete_batch_size: int = Field(default=500)
    cache_reconnect_base_delay: float = Field(default=0.05)
    cache_reconnect_max_delay: float = Field(default=2.0)
    cache_invalidation_wait_seconds: float = Field(default=0.25)
    cache_normalize_query: bool = Field(default=False)

    # Document store (empty DSN keeps documents in memory)
    postgres_dsn: Optional[str] = Field(default=None)

    # Security
    jwt_secret: str = Field(default="change-me")
    jwt_algorithm: str = Field(default="HS256")

    @model_validator(mode="after")
    def _default_tls(self) -> "BaseConfig":
        # TLS follows the environment unless set explicitly
        if self.redis_tls is None:
            self.redis_tls = self.env == "production"
        return self


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
