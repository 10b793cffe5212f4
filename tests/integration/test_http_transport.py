"""
Integration tests for HTTP operations through the pipeline.

Uses pytest-httpx to stand in for the upstream service.
"""

import asyncio
import json

import httpx
import pytest

from request_governor.client import Orchestrator
from request_governor.errors import AbortError, GovernorTimeoutError, UpstreamFailure
from request_governor.resilience import CancelToken
from request_governor.transport import GovernedHttpClient, HttpTransport
from tests.integration.conftest import BASE_URL, http_config


class TestHttpTransport:
    """Tests for HttpTransport operations."""

    @pytest.mark.asyncio
    async def test_operation_decodes_json(self, httpx_mock) -> None:
        httpx_mock.add_response(
            method="GET", url=f"{BASE_URL}/users/1", json={"id": 1, "name": "Ada"}
        )

        async with HttpTransport(BASE_URL) as transport:
            result = await transport.operation("GET", "/users/1")(CancelToken())

        assert result == {"id": 1, "name": "Ada"}
        request = httpx_mock.get_requests()[0]
        assert request.headers["Accept"] == "application/json"
        assert request.headers["User-Agent"].startswith("request-governor/")

    @pytest.mark.asyncio
    async def test_empty_body_is_none(self, httpx_mock) -> None:
        httpx_mock.add_response(method="DELETE", url=f"{BASE_URL}/users/1", status_code=204)

        async with HttpTransport(BASE_URL) as transport:
            assert await transport.send("DELETE", "/users/1") is None

    @pytest.mark.asyncio
    async def test_non_success_status(self, httpx_mock) -> None:
        httpx_mock.add_response(
            url=f"{BASE_URL}/missing", status_code=404, json={"error": "not found"}
        )

        async with HttpTransport(BASE_URL) as transport:
            with pytest.raises(UpstreamFailure) as exc_info:
                await transport.send("GET", "/missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.body == {"error": "not found"}
        assert exc_info.value.url == f"{BASE_URL}/missing"

    @pytest.mark.asyncio
    async def test_network_error(self, httpx_mock) -> None:
        httpx_mock.add_exception(httpx.ConnectError("connection refused"))

        async with HttpTransport(BASE_URL) as transport:
            with pytest.raises(UpstreamFailure) as exc_info:
                await transport.send("GET", "/users")

        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_cancelled_token_stops_request(self, httpx_mock) -> None:
        async def slow_upstream(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json={})

        httpx_mock.add_callback(slow_upstream)
        token = CancelToken()

        async with HttpTransport(BASE_URL) as transport:
            task = asyncio.create_task(transport.operation("GET", "/slow")(token))
            await asyncio.sleep(0.02)
            token.cancel()

            with pytest.raises(AbortError):
                await task

    @pytest.mark.asyncio
    async def test_already_cancelled_token_sends_nothing(self) -> None:
        token = CancelToken()
        token.cancel()

        async with HttpTransport(BASE_URL) as transport:
            with pytest.raises(AbortError):
                await transport.operation("GET", "/never")(token)


class TestGovernedHttpClient:
    """Tests for GovernedHttpClient."""

    @pytest.mark.asyncio
    async def test_get(self, httpx_mock, http_client) -> None:
        httpx_mock.add_response(url=f"{BASE_URL}/users?page=2", json=[{"id": 3}])

        users = await http_client.get("/users", params={"page": 2}, priority=3)

        assert users == [{"id": 3}]
        request = httpx_mock.get_requests()[0]
        assert request.headers["Authorization"] == "Bearer test-token"

    @pytest.mark.asyncio
    async def test_post_and_put_send_json(self, httpx_mock, http_client) -> None:
        httpx_mock.add_response(method="POST", url=f"{BASE_URL}/users", json={"id": 7})
        httpx_mock.add_response(method="PUT", url=f"{BASE_URL}/users/7", json={"id": 7})

        created = await http_client.post("/users", json={"name": "Grace"})
        updated = await http_client.put("/users/7", json={"name": "Grace H."})

        assert created == updated == {"id": 7}
        bodies = [json.loads(r.content) for r in httpx_mock.get_requests()]
        assert bodies == [{"name": "Grace"}, {"name": "Grace H."}]

    @pytest.mark.asyncio
    async def test_retries_server_errors(self, httpx_mock, http_client) -> None:
        httpx_mock.add_response(url=f"{BASE_URL}/flaky", status_code=503)
        httpx_mock.add_response(url=f"{BASE_URL}/flaky", status_code=500)
        httpx_mock.add_response(url=f"{BASE_URL}/flaky", json={"ok": True})

        assert await http_client.get("/flaky") == {"ok": True}
        assert len(httpx_mock.get_requests()) == 3

        metrics = http_client.orchestrator.get_metrics()
        assert metrics.retried_requests == 1

    @pytest.mark.asyncio
    async def test_client_errors_not_retried(self, httpx_mock, http_client) -> None:
        httpx_mock.add_response(method="DELETE", url=f"{BASE_URL}/users/1", status_code=403)

        with pytest.raises(UpstreamFailure) as exc_info:
            await http_client.delete("/users/1")

        assert exc_info.value.status_code == 403
        assert len(httpx_mock.get_requests()) == 1

    @pytest.mark.asyncio
    async def test_timeout_stops_slow_upstream(self, httpx_mock) -> None:
        async def slow_upstream(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json={})

        httpx_mock.add_callback(slow_upstream)

        async with GovernedHttpClient(
            Orchestrator(http_config(maxRetries=0)), HttpTransport(BASE_URL)
        ) as client:
            with pytest.raises(GovernorTimeoutError) as exc_info:
                await client.get("/slow", timeout_ms=50)

            assert exc_info.value.timeout_ms == 50
            assert client.orchestrator.deadline.armed_timers == 0
