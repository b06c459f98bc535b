"""Background health monitoring for the adapter service."""

import asyncio
import contextlib
import time
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any

from adapter_relay.exceptions import AdapterRequestError, InvalidAdapterError
from adapter_relay.metrics import MetricsExporter
from adapter_relay.models import AdapterRequest
from adapter_relay.utils import get_logger

if TYPE_CHECKING:
    from adapter_relay.core.client import AdapterClient

logger = get_logger(__name__)

# Breaker key for the system-wide check, kept apart from adapter breakers
SYSTEM_HEALTH_KEY = "__system__"
HEALTH_CHECK_CONTEXT = {"healthCheck": True}


@dataclass
class HealthReport:
    """Result of one health check."""

    target: str
    healthy: bool
    status_code: int | None = None
    latency: float = 0.0
    error: str | None = None
    checked_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class HealthMonitor:
    """Recurring health check of the adapter service.

    Checks the system health endpoint and every adapter listed in
    ``health_check.adapters``. Each check passes through the target's
    circuit breaker like a normal call, so a check can serve as the
    HALF_OPEN trial that closes a breaker again.
    """

    def __init__(self, client: "AdapterClient") -> None:
        """Initialize monitor.

        Args:
            client: Client whose configuration and breakers are used
        """
        self.client = client
        self.interval = client.config.health_check.interval
        self._task: asyncio.Task | None = None
        self._reports: dict[str, HealthReport] = {}

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_report(self) -> HealthReport | None:
        """Latest system check result."""
        return self._reports.get(SYSTEM_HEALTH_KEY)

    def start(self, interval: float | None = None) -> None:
        """Start the check loop on the running event loop.

        Starting an active monitor is a no-op unless a different interval
        is given, in which case the loop is restarted.
        """
        if interval is not None and interval != self.interval:
            self.interval = interval
            if self.running:
                self._task.cancel()
                self._task = None

        if self.running:
            return

        self._task = asyncio.get_running_loop().create_task(
            self._run_loop(),
            name="adapter-health-monitor",
        )
        logger.info("health.monitoring_started", interval=self.interval)

    async def stop(self) -> None:
        """Cancel the check loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("health.monitoring_stopped")

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_checks()
            except Exception as e:
                logger.error("health.check_failed", error=str(e))

    async def run_checks(self) -> list[HealthReport]:
        """Check the system endpoint and every configured adapter once."""
        reports = [await self.check_system_health()]
        for adapter_id in self.client.config.health_check.adapters:
            try:
                reports.append(await self.check_adapter_health(adapter_id))
            except InvalidAdapterError as e:
                logger.error("health.invalid_adapter", adapter_id=adapter_id, error=str(e))
        return reports

    async def check_system_health(self) -> HealthReport:
        """Check the system health endpoint once."""
        breaker = self.client.breaker_for(SYSTEM_HEALTH_KEY)
        admission = breaker.allow_request()
        if admission is None:
            return self._store(HealthReport(SYSTEM_HEALTH_KEY, False, error="circuit open"))

        start_time = time.monotonic()
        try:
            status_code = await self.client.fetch_health()
        except AdapterRequestError as e:
            breaker.record_failure(admission)
            report = HealthReport(
                SYSTEM_HEALTH_KEY,
                False,
                status_code=e.status_code,
                latency=time.monotonic() - start_time,
                error=str(e),
            )
        except BaseException:
            breaker.release_trial(admission)
            raise
        else:
            breaker.record_success(admission)
            report = HealthReport(
                SYSTEM_HEALTH_KEY,
                True,
                status_code=status_code,
                latency=time.monotonic() - start_time,
            )
        return self._store(report)

    async def check_adapter_health(self, adapter_id: str) -> HealthReport:
        """Send a single health check request to one adapter.

        Raises:
            InvalidAdapterError: If the adapter id is unknown
        """
        if not self.client.registry.is_valid_adapter_id(adapter_id):
            raise InvalidAdapterError(adapter_id)

        breaker = self.client.breaker_for(adapter_id)
        admission = breaker.allow_request()
        if admission is None:
            return self._store(HealthReport(adapter_id, False, error="circuit open"))

        request = AdapterRequest(
            adapter_id=adapter_id,
            input=None,
            context=dict(HEALTH_CHECK_CONTEXT),
        )
        start_time = time.monotonic()
        try:
            response = await self.client.send_once(request)
        except AdapterRequestError as e:
            if e.retryable:
                breaker.record_failure(admission)
            else:
                breaker.record_success(admission)
            report = HealthReport(
                adapter_id,
                False,
                status_code=e.status_code,
                latency=time.monotonic() - start_time,
                error=str(e),
            )
        except BaseException:
            breaker.release_trial(admission)
            raise
        else:
            breaker.record_success(admission)
            report = HealthReport(
                adapter_id,
                response.ok,
                latency=time.monotonic() - start_time,
                error=response.error,
            )
        return self._store(report)

    def _store(self, report: HealthReport) -> HealthReport:
        self._reports[report.target] = report
        MetricsExporter.record_health_check(report.target, report.healthy)
        if not report.healthy:
            logger.warning(
                "health.unhealthy",
                target=report.target,
                status_code=report.status_code,
                error=report.error,
            )
        return report

    def get_status(self) -> dict[str, Any]:
        """Monitor state and latest check results."""
        return {
            "running": self.running,
            "interval": self.interval,
            "reports": {target: report.to_dict() for target, report in self._reports.items()},
        }
