"""Tests for AdapterClient calls and fan-out."""

import asyncio
import json

import httpx
import pytest

from adapter_relay.adapters import AdapterRegistry
from adapter_relay.config import AdapterConfig, CircuitBreakerConfig
from adapter_relay.core import AdapterClient
from adapter_relay.exceptions import InvalidAdapterError
from tests.conftest import BASE_URL, ok


class TestCall:
    """Single adapter invocation."""

    @pytest.mark.asyncio
    async def test_invalid_adapter_makes_no_attempt(self, server, make_client) -> None:
        client = make_client()

        with pytest.raises(InvalidAdapterError, match="not-a-real-adapter"):
            await client.call("not-a-real-adapter", "doc")

        assert server.requests == []
        assert client.breakers.get("not-a-real-adapter") is None

    @pytest.mark.asyncio
    async def test_wire_payload_and_headers(self, server, make_client) -> None:
        server.script("user-profile", ok(output="enriched", data={"plan": "pro"}))
        client = make_client(headers={"Authorization": "Bearer secret"})

        response = await client.call("user-profile", "hello", {"userId": "u1", "chatId": "c1"})

        assert response.ok
        assert response.output == "enriched"
        assert response.data == {"plan": "pro"}
        assert server.requests == [
            {"adapterId": "user-profile", "input": "hello", "context": {"userId": "u1", "chatId": "c1"}}
        ]
        headers = server.headers[0]
        assert headers["content-type"] == "application/json"
        assert headers["authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_posts_to_run_adapter(self, make_client) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, str(request.url)))
            return httpx.Response(200, json={"status": "ok"})

        client = make_client(transport=httpx.MockTransport(handler))

        await client.call("audit-log", None)

        assert seen == [("POST", f"{BASE_URL}/run-adapter")]

    @pytest.mark.asyncio
    async def test_context_is_not_mutated(self, server, make_client) -> None:
        context = {"userId": "u1", "meta": {"source": "upload"}}
        client = make_client()

        await client.call("pdf-extract", "doc", context)

        assert context == {"userId": "u1", "meta": {"source": "upload"}}

    @pytest.mark.asyncio
    async def test_null_input_and_missing_context(self, server, make_client) -> None:
        client = make_client()

        await client.call("audit-log", None)

        assert server.requests == [{"adapterId": "audit-log", "input": None, "context": {}}]

    @pytest.mark.asyncio
    async def test_unserializable_context_is_an_error_response(self, server, make_client) -> None:
        client = make_client()

        response = await client.call("pdf-extract", "doc", {"handle": object()})

        assert response.status == "error"
        assert "not serializable" in response.error
        assert server.requests == []
        assert client.breakers.get("pdf-extract") is None

    @pytest.mark.asyncio
    async def test_invalid_base_url_is_an_error_response(self, server, breakers, sleeper) -> None:
        client = AdapterClient(
            AdapterConfig.build("http://adapters.test:notaport"),
            registry=AdapterRegistry(),
            breakers=breakers,
            transport=server.transport(),
            sleep=sleeper,
        )

        response = await client.call("pdf-extract", "doc")
        report = await client.check_health()

        assert response.status == "error"
        assert "invalid URL" in response.error
        assert sleeper.delays == []
        assert not report.healthy
        assert "invalid URL" in report.error
        assert server.requests == []


class TestBatch:
    """Concurrent fan-out."""

    @pytest.mark.asyncio
    async def test_results_follow_input_order(self, make_client) -> None:
        delays = {"pdf-extract": 0.05, "docx-extract": 0.02, "ocr-extract": 0.0}
        completed = []

        async def handler(request: httpx.Request) -> httpx.Response:
            adapter_id = json.loads(request.content)["adapterId"]
            await asyncio.sleep(delays[adapter_id])
            completed.append(adapter_id)
            return httpx.Response(200, json={"status": "ok", "output": adapter_id})

        client = make_client(transport=httpx.MockTransport(handler))

        results = await client.batch_call_adapters(["pdf-extract", "docx-extract", "ocr-extract"], "doc")

        assert completed == ["ocr-extract", "docx-extract", "pdf-extract"]
        assert [r.output for r in results] == ["pdf-extract", "docx-extract", "ocr-extract"]

    @pytest.mark.asyncio
    async def test_failures_are_independent(self, server, sleeper, make_client) -> None:
        server.script("web-search", (503, {}))
        server.script("user-profile", ok(output="profile"))
        client = make_client(retry={"max_attempts": 2})

        results = await client.batch_call_adapters(["web-search", "user-profile"], "q")

        assert results[0].status == "error"
        assert results[1].output == "profile"
        assert server.attempts("web-search") == 2
        assert server.attempts("user-profile") == 1

    @pytest.mark.asyncio
    async def test_rejected_ids_fill_their_slot(self, server, make_client) -> None:
        client = make_client(retry={"max_attempts": 1}, circuit_breaker=CircuitBreakerConfig(failure_threshold=1))
        server.script("slack-notify", (500, {}))
        await client.call("slack-notify", "x")

        results = await client.batch_call_adapters(["bogus", "slack-notify", "email-notify"], "x")

        assert results[0].error == "Invalid adapter ID: bogus"
        assert "Circuit open" in results[1].error
        assert results[2].ok
        assert server.attempts("slack-notify") == 1

    @pytest.mark.asyncio
    async def test_unserializable_context_fills_every_slot(self, server, make_client) -> None:
        client = make_client()

        results = await client.batch_call_adapters(["pdf-extract", "audit-log"], "x", {"handle": object()})

        assert [r.status for r in results] == ["error", "error"]
        assert "pdf-extract" in results[0].error
        assert "audit-log" in results[1].error
        assert server.requests == []

    @pytest.mark.asyncio
    async def test_empty_batch(self, make_client) -> None:
        assert await make_client().batch_call_adapters([], "x") == []
