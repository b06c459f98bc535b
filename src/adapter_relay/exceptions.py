"""Exceptions raised by the adapter client and pipeline."""

from typing import Any


class AdapterRelayError(Exception):
    """Base exception for adapter invocation errors."""


class InvalidAdapterError(AdapterRelayError):
    """Adapter id is not present in the registry."""

    def __init__(self, adapter_id: str) -> None:
        self.adapter_id = adapter_id
        super().__init__(f"Invalid adapter ID: {adapter_id}")


class CircuitOpenError(AdapterRelayError):
    """Circuit breaker rejected the call without a network attempt."""

    def __init__(self, adapter_id: str, stats: Any) -> None:
        self.adapter_id = adapter_id
        self.stats = stats
        super().__init__(f"Circuit open for adapter {adapter_id} (state={stats.state.value})")


class AdapterRequestError(AdapterRelayError):
    """A single network attempt failed.

    Attributes:
        status_code: HTTP status when the adapter answered, else None
        retryable: Whether another attempt may succeed
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retryable: bool = True,
    ) -> None:
        self.status_code = status_code
        self.retryable = retryable
        super().__init__(message)


class PipelineStepError(AdapterRelayError):
    """A sequential pipeline step returned an error response."""

    def __init__(
        self,
        adapter_id: str,
        error: str | None,
        index: int,
        context: dict[str, Any],
    ) -> None:
        self.adapter_id = adapter_id
        self.error = error or "Unknown error occurred"
        self.index = index
        self.context = context
        super().__init__(f"Pipeline step {index} ({adapter_id}) failed: {self.error}")
