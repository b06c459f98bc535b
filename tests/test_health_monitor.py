"""Tests for the background health monitor."""

import asyncio

import httpx
import pytest

from adapter_relay.config import CircuitBreakerConfig, HealthCheckConfig
from adapter_relay.core import SYSTEM_HEALTH_KEY, CircuitState
from adapter_relay.exceptions import InvalidAdapterError
from tests.conftest import BASE_URL, adapter_error


class TestHealthChecks:
    """On-demand health checks."""

    @pytest.mark.asyncio
    async def test_healthy_system(self, server, make_client) -> None:
        client = make_client()

        report = await client.check_health()

        assert report.healthy
        assert report.target == SYSTEM_HEALTH_KEY
        assert report.status_code == 200
        assert server.health_calls == 1
        assert client.health_monitor.last_report is report

    @pytest.mark.asyncio
    async def test_check_uses_configured_path(self, make_client) -> None:
        urls = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(204)

        client = make_client(
            transport=httpx.MockTransport(handler),
            health_check=HealthCheckConfig(path="/status"),
        )

        report = await client.check_health()

        assert report.healthy
        assert urls == [f"{BASE_URL}/status"]

    @pytest.mark.asyncio
    async def test_unhealthy_system_feeds_system_breaker_only(self, server, make_client) -> None:
        server.health_script = [(503, {})]
        client = make_client(circuit_breaker=CircuitBreakerConfig(failure_threshold=2))
        await client.call("pdf-extract", "doc")

        first = await client.check_health()
        await client.check_health()

        assert not first.healthy
        assert first.status_code == 503
        assert client.breakers.get(SYSTEM_HEALTH_KEY).state == CircuitState.OPEN
        assert client.breaker_for("pdf-extract").state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_open_system_breaker_skips_check_until_cooldown(self, server, clock, make_client) -> None:
        server.health_script = [(503, {}), (200, {})]
        client = make_client(circuit_breaker=CircuitBreakerConfig(failure_threshold=1, recovery_timeout=10.0))
        await client.check_health()

        skipped = await client.check_health()
        clock.advance(10.0)
        recovered = await client.check_health()

        assert skipped.error == "circuit open"
        assert server.health_calls == 2
        assert recovered.healthy
        assert client.breakers.get(SYSTEM_HEALTH_KEY).state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_unreachable_system(self, server, make_client) -> None:
        server.health_script = [httpx.ConnectError("connection refused")]
        client = make_client()

        report = await client.check_health()

        assert not report.healthy
        assert report.status_code is None
        assert "connection refused" in report.error

    @pytest.mark.asyncio
    async def test_adapter_check_request(self, server, make_client) -> None:
        client = make_client()

        report = await client.health_monitor.check_adapter_health("audit-log")

        assert report.healthy
        assert server.requests == [
            {"adapterId": "audit-log", "input": None, "context": {"healthCheck": True}}
        ]

    @pytest.mark.asyncio
    async def test_adapter_check_feeds_adapter_breaker(self, server, make_client) -> None:
        server.script("web-search", httpx.ConnectError("connection refused"))
        client = make_client(circuit_breaker=CircuitBreakerConfig(failure_threshold=1))

        report = await client.health_monitor.check_adapter_health("web-search")

        assert not report.healthy
        assert server.attempts("web-search") == 1
        assert client.breaker_for("web-search").state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_adapter_reported_error_is_unhealthy_but_reachable(self, server, make_client) -> None:
        server.script("web-search", adapter_error("index offline"))
        client = make_client(circuit_breaker=CircuitBreakerConfig(failure_threshold=1))

        report = await client.health_monitor.check_adapter_health("web-search")

        assert not report.healthy
        assert report.error == "index offline"
        assert client.breaker_for("web-search").state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_adapter_check_rejects_unknown_id(self, make_client) -> None:
        with pytest.raises(InvalidAdapterError):
            await make_client().health_monitor.check_adapter_health("bogus")

    @pytest.mark.asyncio
    async def test_run_checks_covers_configured_adapters(self, server, make_client) -> None:
        client = make_client(health_check=HealthCheckConfig(adapters=["audit-log", "bogus", "slack-notify"]))

        reports = await client.health_monitor.run_checks()

        assert [r.target for r in reports] == [SYSTEM_HEALTH_KEY, "audit-log", "slack-notify"]
        status = client.health_monitor.get_status()
        assert set(status["reports"]) == {SYSTEM_HEALTH_KEY, "audit-log", "slack-notify"}


class TestLifecycle:
    """Start/stop of the recurring health check."""

    @pytest.mark.asyncio
    async def test_stop_without_start_is_noop(self, make_client) -> None:
        client = make_client()

        await client.stop_health_monitoring()
        await client.stop_health_monitoring()

        assert not client.health_monitor.running

    @pytest.mark.asyncio
    async def test_recurring_checks_until_stopped(self, server, make_client) -> None:
        client = make_client()

        client.start_health_monitoring(interval=0.01)
        await asyncio.sleep(0.1)
        await client.stop_health_monitoring()
        calls_at_stop = server.health_calls
        await asyncio.sleep(0.05)

        assert calls_at_stop >= 2
        assert server.health_calls == calls_at_stop
        assert not client.health_monitor.running

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, make_client) -> None:
        client = make_client()

        client.start_health_monitoring(interval=5.0)
        task = client.health_monitor._task
        client.start_health_monitoring()

        assert client.health_monitor._task is task
        await client.stop_health_monitoring()

    @pytest.mark.asyncio
    async def test_new_interval_restarts_loop(self, make_client) -> None:
        client = make_client()

        client.start_health_monitoring(interval=5.0)
        client.start_health_monitoring(interval=1.0)

        assert client.health_monitor.interval == 1.0
        assert client.health_monitor.running
        await client.stop_health_monitoring()

    @pytest.mark.asyncio
    async def test_enabled_config_starts_monitoring(self, make_client) -> None:
        async with make_client(health_check=HealthCheckConfig(enabled=True, interval=30.0)) as client:
            assert client.health_monitor.running

        assert not client.health_monitor.running

    def test_start_without_loop_is_deferred(self, make_client) -> None:
        client = make_client(health_check=HealthCheckConfig(enabled=True, interval=30.0))

        assert not client.health_monitor.running

        async def use_client() -> bool:
            async with client:
                return client.health_monitor.running

        assert asyncio.run(use_client())
        assert not client.health_monitor.running

    @pytest.mark.asyncio
    async def test_check_errors_do_not_kill_loop(self, make_client, monkeypatch) -> None:
        client = make_client()
        monitor = client.health_monitor
        calls = []

        async def flaky_checks():
            calls.append(1)
            raise RuntimeError("check exploded")

        monkeypatch.setattr(monitor, "run_checks", flaky_checks)

        monitor.start(interval=0.01)
        await asyncio.sleep(0.1)
        assert monitor.running
        await monitor.stop()

        assert len(calls) >= 2
