"""Prometheus metrics exposition."""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from adapter_relay import __version__

# Application info
APP_INFO = Info("adapter_relay", "Application information")
APP_INFO.info({"version": __version__})

CALLS_TOTAL = Counter(
    "adapter_relay_calls_total",
    "Logical adapter calls by terminal status",
    ["adapter_id", "status"],
)

ATTEMPTS_TOTAL = Counter(
    "adapter_relay_attempts_total",
    "Network attempts by outcome",
    ["adapter_id", "outcome"],
)

CALL_DURATION = Histogram(
    "adapter_relay_call_duration_seconds",
    "Logical call duration including retries",
    ["adapter_id"],
    buckets=[0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
)

# 0 closed, 1 half-open, 2 open
CIRCUIT_STATE = Gauge(
    "adapter_relay_circuit_state",
    "Circuit breaker state per adapter",
    ["adapter_id"],
)

HEALTH_CHECKS_TOTAL = Counter(
    "adapter_relay_health_checks_total",
    "Health checks by target and result",
    ["target", "healthy"],
)

_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


class MetricsExporter:
    """Exports metrics in Prometheus format."""

    @staticmethod
    def get_prometheus_format() -> tuple[str, bytes]:
        """Get metrics in Prometheus exposition format.

        Returns:
            Tuple of (content_type, metrics_body)
        """
        return CONTENT_TYPE_LATEST, generate_latest()

    @staticmethod
    def record_call(adapter_id: str, status: str, duration: float) -> None:
        """Record the terminal outcome of a logical call."""
        CALLS_TOTAL.labels(adapter_id=adapter_id, status=status).inc()
        CALL_DURATION.labels(adapter_id=adapter_id).observe(duration)

    @staticmethod
    def record_attempt(adapter_id: str, outcome: str) -> None:
        """Record one network attempt (ok, retryable, permanent)."""
        ATTEMPTS_TOTAL.labels(adapter_id=adapter_id, outcome=outcome).inc()

    @staticmethod
    def record_circuit_state(adapter_id: str, state: str) -> None:
        CIRCUIT_STATE.labels(adapter_id=adapter_id).set(_STATE_VALUES.get(state, 0))

    @staticmethod
    def record_health_check(target: str, healthy: bool) -> None:
        HEALTH_CHECKS_TOTAL.labels(target=target, healthy="true" if healthy else "false").inc()
