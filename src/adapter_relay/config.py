"""Configuration management using Pydantic Settings."""

from functools import lru_cache
from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RetryConfig(BaseModel):
    """Exponential backoff parameters. Delays are in seconds."""

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=10.0, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1)


class CircuitBreakerConfig(BaseModel):
    """Circuit breaker configuration."""

    failure_threshold: int = Field(default=5, ge=1)
    recovery_timeout: float = Field(default=60.0, ge=0)


class HealthCheckConfig(BaseModel):
    """Background health monitoring configuration."""

    enabled: bool = False
    interval: float = Field(default=60.0, gt=0)
    path: str = "/health"
    # Adapters checked individually on each tick
    adapters: list[str] = Field(default_factory=list)


class AdapterConfig(BaseModel):
    """Client configuration consumed by AdapterClient."""

    base_url: str
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: float = Field(default=30.0, gt=0)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    health_check: HealthCheckConfig = Field(default_factory=HealthCheckConfig)

    @classmethod
    def build(
        cls,
        base_url: str,
        retry: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> "AdapterConfig":
        """Build config with a partial retry override.

        Args:
            base_url: Adapter service base URL
            retry: Retry fields overriding the defaults
            **kwargs: Remaining AdapterConfig fields

        Returns:
            Configuration value
        """
        return cls(base_url=base_url.rstrip("/"), retry=RetryConfig(**(retry or {})), **kwargs)


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="ADAPTER_RELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server bind host")
    port: int = Field(default=8080, description="Server port")
    log_level: str = Field(default="info", description="Logging level")

    # Adapter service settings
    base_url: str = Field(
        default="http://localhost:3000",
        description="Adapter service base URL",
    )
    api_key: str = Field(default="", description="Bearer token for the adapter service")
    request_timeout: float = Field(default=30.0, description="Per-attempt timeout in seconds")

    # Retry settings
    retry_max_attempts: int = Field(default=3, description="Max attempts per adapter call")
    retry_base_delay: float = Field(default=1.0, description="First backoff delay in seconds")
    retry_max_delay: float = Field(default=10.0, description="Backoff ceiling in seconds")
    retry_backoff_multiplier: float = Field(default=2.0, description="Backoff growth factor")

    # Health monitoring
    health_check_enabled: bool = Field(default=False, description="Enable background health checks")
    health_check_interval: float = Field(default=60.0, description="Seconds between health checks")
    health_check_adapters: list[str] = Field(
        default_factory=list,
        description="Adapters checked individually on each tick",
    )

    # Safety settings
    circuit_breaker_threshold: int = Field(
        default=5,
        description="Failures before circuit breaker opens",
    )
    circuit_breaker_timeout: float = Field(
        default=60.0,
        description="Seconds before circuit breaker retries",
    )

    def to_adapter_config(self) -> AdapterConfig:
        """Build the client configuration value."""
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        return AdapterConfig(
            base_url=self.base_url.rstrip("/"),
            headers=headers,
            timeout=self.request_timeout,
            retry=RetryConfig(
                max_attempts=self.retry_max_attempts,
                base_delay=self.retry_base_delay,
                max_delay=self.retry_max_delay,
                backoff_multiplier=self.retry_backoff_multiplier,
            ),
            circuit_breaker=CircuitBreakerConfig(
                failure_threshold=self.circuit_breaker_threshold,
                recovery_timeout=self.circuit_breaker_timeout,
            ),
            health_check=HealthCheckConfig(
                enabled=self.health_check_enabled,
                interval=self.health_check_interval,
                adapters=self.health_check_adapters,
            ),
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
