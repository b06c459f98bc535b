"""Resilient HTTP client for remote adapters."""

import asyncio
import time
from typing import Any, Sequence

import httpx

from adapter_relay.adapters.registry import AdapterRegistry, get_adapter_registry
from adapter_relay.config import AdapterConfig, Settings
from adapter_relay.core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerRegistry,
    get_circuit_breaker_registry,
)
from adapter_relay.core.health import HealthMonitor, HealthReport
from adapter_relay.core.retry import SleepFunc, build_retrying
from adapter_relay.exceptions import (
    AdapterRelayError,
    AdapterRequestError,
    CircuitOpenError,
    InvalidAdapterError,
)
from adapter_relay.metrics import MetricsExporter
from adapter_relay.models import AdapterRequest, AdapterResponse
from adapter_relay.utils import get_logger

logger = get_logger(__name__)


class AdapterClient:
    """Client for the adapter service.

    Every logical call is validated against the registry, gated by the
    adapter's circuit breaker and retried with exponential backoff.
    Network failures end up in an error ``AdapterResponse``; only an
    unknown adapter id or an open circuit raise.
    """

    def __init__(
        self,
        config: AdapterConfig,
        registry: AdapterRegistry | None = None,
        breakers: CircuitBreakerRegistry | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        """Initialize client.

        Args:
            config: Client configuration
            registry: Adapter registry used for id validation
            breakers: Circuit breaker store shared by all callers
            transport: Custom httpx transport (tests, proxies)
            sleep: Async sleep used between retry attempts
        """
        self.config = config
        self.registry = registry or get_adapter_registry()
        self.breakers = breakers or get_circuit_breaker_registry()
        self._transport = transport
        self._sleep = sleep
        self._health_monitor = HealthMonitor(self)
        self._pending_interval: float | None = None

        if config.health_check.enabled:
            self.start_health_monitoring()

    @property
    def health_monitor(self) -> HealthMonitor:
        return self._health_monitor

    def breaker_for(self, adapter_id: str) -> CircuitBreaker:
        """Circuit breaker guarding an adapter."""
        return self.breakers.get_or_create(adapter_id, self.config.circuit_breaker)

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self.config.timeout)

    @staticmethod
    def encode(request: AdapterRequest) -> dict[str, Any]:
        """Serialize a request body.

        Raises:
            AdapterRequestError: Context holds values that have no JSON form
        """
        try:
            return request.to_wire()
        except ValueError as e:
            raise AdapterRequestError(
                f"Adapter {request.adapter_id} request is not serializable: {e}",
                retryable=False,
            ) from e

    async def send_once(self, request: AdapterRequest) -> AdapterResponse:
        """Make a single network attempt.

        Args:
            request: Adapter request

        Returns:
            Parsed adapter response

        Raises:
            AdapterRequestError: On an unserializable request, an invalid URL,
                a transport failure, a non-2xx status or a malformed body
        """
        adapter_id = request.adapter_id
        url = f"{self.config.base_url}/run-adapter"
        headers = {"Content-Type": "application/json", **self.config.headers}

        payload = self.encode(request)

        logger.debug("adapter.request", adapter_id=adapter_id, url=url)

        try:
            async with self._http_client() as client:
                response = await client.post(url, headers=headers, json=payload)
                response.raise_for_status()
        except httpx.TimeoutException as e:
            raise AdapterRequestError(
                f"Adapter {adapter_id} timed out after {self.config.timeout}s"
            ) from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise AdapterRequestError(
                f"Adapter {adapter_id} failed: {status_code} {e.response.reason_phrase}",
                status_code=status_code,
                retryable=not 400 <= status_code < 500,
            ) from e
        except httpx.InvalidURL as e:
            raise AdapterRequestError(
                f"Adapter {adapter_id} has an invalid URL: {e}",
                retryable=False,
            ) from e
        except httpx.HTTPError as e:
            raise AdapterRequestError(
                f"Adapter {adapter_id} request failed: {str(e) or type(e).__name__}"
            ) from e

        try:
            return AdapterResponse.model_validate(response.json())
        except ValueError as e:
            raise AdapterRequestError(
                f"Adapter {adapter_id} returned an invalid response",
                status_code=response.status_code,
                retryable=False,
            ) from e

    async def fetch_health(self) -> int:
        """Check the system health endpoint once.

        Returns:
            HTTP status code of a 2xx answer

        Raises:
            AdapterRequestError: If the service is unreachable or unhealthy
        """
        url = f"{self.config.base_url}{self.config.health_check.path}"
        try:
            async with self._http_client() as client:
                response = await client.get(url, headers=self.config.headers)
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise AdapterRequestError(
                f"Health check failed: {status_code} {e.response.reason_phrase}",
                status_code=status_code,
            ) from e
        except httpx.InvalidURL as e:
            raise AdapterRequestError(
                f"Health check failed: invalid URL: {e}",
                retryable=False,
            ) from e
        except httpx.HTTPError as e:
            raise AdapterRequestError(
                f"Health check failed: {str(e) or type(e).__name__}"
            ) from e
        return response.status_code

    async def _attempt(self, request: AdapterRequest) -> AdapterResponse:
        try:
            response = await self.send_once(request)
        except AdapterRequestError as e:
            outcome = "retryable" if e.retryable else "permanent"
            MetricsExporter.record_attempt(request.adapter_id, outcome)
            raise
        MetricsExporter.record_attempt(request.adapter_id, "ok")
        return response

    async def _call_with_retry(self, request: AdapterRequest) -> AdapterResponse:
        response: AdapterResponse | None = None
        retrying = build_retrying(self.config.retry, request.adapter_id, self._sleep)
        async for attempt in retrying:
            with attempt:
                response = await self._attempt(request)
        return response

    async def call(
        self,
        adapter_id: str,
        input: str | None,
        context: dict[str, Any] | None = None,
    ) -> AdapterResponse:
        """Invoke one adapter.

        Args:
            adapter_id: Registered adapter id
            input: Text input, may be None
            context: Context sent with the request (not modified)

        Returns:
            Adapter response; ``status="error"`` once retries are exhausted
            or on a permanent failure

        Raises:
            InvalidAdapterError: Unknown adapter id, no attempt made
            CircuitOpenError: Breaker rejected the call, no attempt made
        """
        if not self.registry.is_valid_adapter_id(adapter_id):
            logger.error("adapter.invalid_id", adapter_id=adapter_id)
            raise InvalidAdapterError(adapter_id)

        self._ensure_monitoring()

        request = AdapterRequest(adapter_id=adapter_id, input=input, context=dict(context or {}))
        try:
            self.encode(request)
        except AdapterRequestError as e:
            # Rejected locally, the breaker never sees it
            logger.error("adapter.unserializable", adapter_id=adapter_id, error=str(e))
            MetricsExporter.record_call(adapter_id, "error", 0.0)
            return AdapterResponse.failure(str(e))

        breaker = self.breaker_for(adapter_id)
        admission = breaker.allow_request()
        if admission is None:
            stats = breaker.stats
            logger.warning(
                "adapter.circuit_open",
                adapter_id=adapter_id,
                state=stats.state.value,
                failures=stats.failure_count,
            )
            MetricsExporter.record_call(adapter_id, "rejected", 0.0)
            raise CircuitOpenError(adapter_id, stats)

        start_time = time.monotonic()
        recorded = False
        try:
            response = await self._call_with_retry(request)
            breaker.record_success(admission)
            recorded = True
        except AdapterRequestError as e:
            # Answered-but-rejected calls still prove the adapter is reachable
            if e.retryable:
                breaker.record_failure(admission)
            else:
                breaker.record_success(admission)
            recorded = True
            logger.error(
                "adapter.failed",
                adapter_id=adapter_id,
                status_code=e.status_code,
                retryable=e.retryable,
                error=str(e),
            )
            response = AdapterResponse.failure(str(e))
        finally:
            if not recorded:
                breaker.release_trial(admission)

        duration = time.monotonic() - start_time
        MetricsExporter.record_call(adapter_id, response.status, duration)
        logger.info(
            "adapter.complete",
            adapter_id=adapter_id,
            status=response.status,
            duration_ms=round(duration * 1000, 2),
        )
        return response

    async def _call_isolated(
        self,
        adapter_id: str,
        input: str | None,
        context: dict[str, Any] | None,
    ) -> AdapterResponse:
        try:
            return await self.call(adapter_id, input, context)
        except AdapterRelayError as e:
            return AdapterResponse.failure(str(e))

    async def batch_call_adapters(
        self,
        adapter_ids: Sequence[str],
        input: str | None,
        context: dict[str, Any] | None = None,
    ) -> list[AdapterResponse]:
        """Invoke adapters concurrently.

        Results keep the order of ``adapter_ids``. Each call has its own
        retry budget; a rejected or failed call never affects its siblings.
        """
        results = await asyncio.gather(
            *(self._call_isolated(adapter_id, input, context) for adapter_id in adapter_ids)
        )
        return list(results)

    def circuit_stats(self) -> list[dict]:
        """Statistics of every known circuit breaker."""
        return self.breakers.list_all()

    # Health check methods

    async def check_health(self) -> HealthReport:
        """Run one system health check now."""
        return await self._health_monitor.check_system_health()

    def start_health_monitoring(self, interval: float | None = None) -> None:
        """Start background health checks.

        Without a running event loop the start is deferred to the first
        call or ``async with`` entry.
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self._pending_interval = interval or self.config.health_check.interval
            logger.info("health.monitoring_deferred", interval=self._pending_interval)
            return
        self._health_monitor.start(interval)

    async def stop_health_monitoring(self) -> None:
        """Stop background health checks. Safe if never started."""
        self._pending_interval = None
        await self._health_monitor.stop()

    def _ensure_monitoring(self) -> None:
        if self._pending_interval is not None:
            interval, self._pending_interval = self._pending_interval, None
            self._health_monitor.start(interval)

    async def aclose(self) -> None:
        """Release background resources."""
        await self.stop_health_monitoring()

    async def __aenter__(self) -> "AdapterClient":
        self._ensure_monitoring()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def create_client(
    settings: Settings,
    registry: AdapterRegistry | None = None,
) -> AdapterClient:
    """Factory for adapter client.

    Args:
        settings: Application settings
        registry: Adapter registry for id validation

    Returns:
        Configured client
    """
    return AdapterClient(settings.to_adapter_config(), registry)
