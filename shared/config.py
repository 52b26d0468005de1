"""
Shared configuration management for the Query Cache service.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="QUERY_CACHE_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Response cache store
    cache_backend: Literal["memory", "redis"] = "memory"
    cache_max_size_bytes: int = Field(default=50_000_000, gt=0)
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "query_cache:"

    # Upstream query engine
    engine_url: str = "http://localhost:4000/graphql"
    engine_timeout_seconds: float = 10.0
    engine_failure_threshold: int = 5
    engine_recovery_timeout: float = 30.0

    # Observability
    enable_tracing: bool = False
    otel_exporter: str = "http://localhost:4318"


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
