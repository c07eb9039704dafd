"""
Shared configuration management for the Gate Access platform.
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

    # External services
    store_backend: str = Field(default="postgres", description="postgres or memory")
    postgres_dsn: str = Field(default="postgres://localhost:5432/gate_access")
    redis_url: str = Field(default="redis://localhost:6379/0")

    # Collaborators
    auth_service_url: str = Field(default="http://localhost:8010")
    actuator_url: str = Field(default="http://localhost:8090")
    actuator_timeout_seconds: float = Field(default=5.0)

    # Verification
    verification_code_length: int = Field(default=4, ge=1, le=12)
    verification_max_attempts: int = Field(default=5, ge=0)
    verification_attempt_window_seconds: int = Field(default=3600, ge=1)

    # Operator surface
    operator_api_key: Optional[str] = Field(default=None)

    # Observability
    enable_tracing: bool = Field(default=False)
    otel_exporter: str = Field(default="http://localhost:4317")
    enable_console_tracing: bool = Field(default=False)


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
