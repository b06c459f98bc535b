"""Test configuration and fixtures."""

import json
from typing import Any, Callable

import httpx
import pytest

from adapter_relay.adapters import AdapterRegistry
from adapter_relay.config import AdapterConfig
from adapter_relay.core import AdapterClient, CircuitBreakerRegistry

BASE_URL = "http://adapters.test"

# Script entry: (status_code, json_body) or an exception raised by the transport
Outcome = tuple[int, Any] | Exception


def ok(output: str | None = None, data: Any = None) -> tuple[int, dict]:
    body: dict[str, Any] = {"status": "ok"}
    if output is not None:
        body["output"] = output
    if data is not None:
        body["data"] = data
    return 200, body


def adapter_error(error: str) -> tuple[int, dict]:
    return 200, {"status": "error", "error": error}


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep that records delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class AdapterServer:
    """Scripted adapter service served through httpx.MockTransport.

    Each adapter id gets a list of outcomes consumed in order; the last
    outcome repeats once the list is exhausted.
    """

    def __init__(self) -> None:
        self.scripts: dict[str, list[Outcome]] = {}
        self.health_script: list[Outcome] = [(200, {"status": "ok"})]
        self.requests: list[dict[str, Any]] = []
        self.headers: list[httpx.Headers] = []
        self.health_calls = 0

    def script(self, adapter_id: str, *outcomes: Outcome) -> None:
        self.scripts[adapter_id] = list(outcomes)

    def attempts(self, adapter_id: str) -> int:
        return sum(1 for body in self.requests if body["adapterId"] == adapter_id)

    @staticmethod
    def _next(script: list[Outcome]) -> Outcome:
        return script.pop(0) if len(script) > 1 else script[0]

    def respond(self, request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            self.health_calls += 1
            outcome = self._next(self.health_script)
        else:
            body = json.loads(request.content)
            self.requests.append(body)
            self.headers.append(request.headers)
            outcome = self._next(self.scripts.setdefault(body["adapterId"], [ok()]))

        if isinstance(outcome, Exception):
            raise outcome
        status_code, payload = outcome
        return httpx.Response(status_code, json=payload)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.respond)


@pytest.fixture
def server() -> AdapterServer:
    return AdapterServer()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def breakers(clock: FakeClock) -> CircuitBreakerRegistry:
    return CircuitBreakerRegistry(clock=clock)


@pytest.fixture
def make_client(
    server: AdapterServer,
    breakers: CircuitBreakerRegistry,
    sleeper: RecordingSleep,
) -> Callable[..., AdapterClient]:
    """Build clients wired to the scripted server."""

    def factory(transport: httpx.AsyncBaseTransport | None = None, **overrides: Any) -> AdapterClient:
        config = AdapterConfig.build(BASE_URL, **overrides)
        return AdapterClient(
            config,
            registry=AdapterRegistry(),
            breakers=breakers,
            transport=transport or server.transport(),
            sleep=sleeper,
        )

    return factory
