"""
Shared configuration management for the relay service.
"""

from typing import List, Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Backing store
    redis_url: str = Field(default="redis://localhost:6379/0")
    store_mode: Literal["per_session", "shared_pool"] = Field(default="per_session")
    store_socket_timeout: Optional[float] = Field(default=None)

    # WebSocket server
    ws_host: str = Field(default="127.0.0.1")
    ws_port: int = Field(default=3334)
    ws_path: str = Field(default="/ws")
    max_ws_connections: int = Field(default=1000)

    # Session liveness (seconds)
    heartbeat_interval: float = Field(default=5.0, gt=0)
    client_timeout: float = Field(default=10.0, gt=0)

    # CORS
    cors_allowed_origins: List[str] = Field(default=["http://localhost:5173"])
    cors_allowed_methods: List[str] = Field(default=["GET", "POST", "OPTIONS"])
    cors_allowed_headers: List[str] = Field(default=["Authorization", "Accept", "Content-Type"])
    cors_max_age: int = Field(default=3600)

    @model_validator(mode="after")
    def _check_liveness_window(self):
        # A timeout at or below the interval would drop clients between two probes.
        if self.client_timeout <= self.heartbeat_interval:
            raise ValueError(
                f"client_timeout ({self.client_timeout}) must exceed "
                f"heartbeat_interval ({self.heartbeat_interval})"
            )
        return self


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "127.0.0.1"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
