"""
Centralized configuration management using Pydantic Settings.

Configuration is loaded from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DiscoveryConfig(BaseSettings):
    """mDNS device discovery configuration."""

    model_config = SettingsConfigDict(env_prefix="TIVO_DISCOVERY_")

    service_type: str = Field(default="_tivo-device._tcp", description="DNS-SD service type to browse")
    identifier_key: str = Field(default="TSN", description="TXT key carrying the device identifier")
    ip_version: Literal["v4", "v6", "all"] = Field(default="v4", description="Address families to use")
    resolve_timeout_ms: int = Field(default=3000, description="Per-instance resolve timeout (ms)")
    all_for_now_delay: float = Field(
        default=1.0,
        description="Quiet period after browser start before reporting the initial burst as delivered",
    )
    startup_timeout: float = Field(default=10.0, description="Max seconds to wait for provider setup")
    shutdown_timeout: float = Field(default=10.0, description="Max seconds to wait for the loop thread to exit")
    observation_window: float = Field(
        default=5.0,
        description="Seconds the command-line runner waits before printing results",
    )

    @field_validator("service_type")
    @classmethod
    def _check_service_type(cls, value: str) -> str:
        if not value.startswith("_") or "._" not in value:
            raise ValueError(f"Not a DNS-SD service type: '{value}'")
        return value


class Settings(BaseSettings):
    """Application-wide settings."""

    model_config = SettingsConfigDict(
        env_prefix="TIVO_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = Field(default="INFO", description="Logging level")

    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)


# Singleton settings instance
settings = Settings()
