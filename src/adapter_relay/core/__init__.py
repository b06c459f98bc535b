"""Core invocation modules."""

from adapter_relay.core.circuit_breaker import (
    Admission,
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitBreakerStats,
    CircuitState,
    get_circuit_breaker_registry,
)
from adapter_relay.core.client import AdapterClient, create_client
from adapter_relay.core.health import SYSTEM_HEALTH_KEY, HealthMonitor, HealthReport
from adapter_relay.core.pipeline import AdapterPipeline, create_pipeline
from adapter_relay.core.retry import compute_delay, is_retryable

__all__ = [
    "Admission",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitBreakerStats",
    "CircuitState",
    "get_circuit_breaker_registry",
    "AdapterClient",
    "create_client",
    "SYSTEM_HEALTH_KEY",
    "HealthMonitor",
    "HealthReport",
    "AdapterPipeline",
    "create_pipeline",
    "compute_delay",
    "is_retryable",
]
