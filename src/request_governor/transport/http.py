"""HTTP 传输层：基于 httpx 的异步 HTTP 操作，可被编排器调度与取消。

HTTP transport using httpx, producing operations for the orchestrator.

Provides:
- Operations that stop their in-flight request when their token is cancelled
- Non-2xx responses mapped to UpstreamFailure with status and body
- JSON decoding of successful responses
- GovernedHttpClient: get/post/put/delete routed through an Orchestrator
"""

from __future__ import annotations

import asyncio
import os
from contextlib import suppress
from typing import TYPE_CHECKING, Any

import httpx

from request_governor.client.request import RequestOptions
from request_governor.errors import UpstreamFailure
from request_governor.telemetry.logger import get_logger

if TYPE_CHECKING:
    from request_governor.client.core import Orchestrator
    from request_governor.client.request import Operation
    from request_governor.resilience.cancel import CancelToken

# Network-level timeouts; request deadlines are enforced by the DeadlineGuard
_DEFAULT_TIMEOUT = 30.0
_DEFAULT_CONNECT_TIMEOUT = 10.0

_UA_VERSION: str | None = None

logger = get_logger("request_governor.transport")


def _trust_env_enabled() -> bool:
    """Use env proxy settings only when explicitly enabled."""
    return os.getenv("GOVERNOR_HTTP_TRUST_ENV", "0") == "1"


def _get_ua_version() -> str:
    """Get package version for User-Agent (cached)."""
    global _UA_VERSION
    if _UA_VERSION is None:
        from importlib.metadata import PackageNotFoundError, version

        try:
            _UA_VERSION = version("request-governor")
        except PackageNotFoundError:
            _UA_VERSION = "0.1.0"
    return _UA_VERSION


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpTransport:
    """HTTP transport producing cancellable operations.

    Example:
        >>> transport = HttpTransport("https://api.example.com")
        >>> fetch_user = transport.operation("GET", "/users/1")
        >>> user = await orchestrator.request(fetch_user, priority=5)
    """

    def __init__(
        self,
        base_url: str = "",
        headers: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize HTTP transport.

        Args:
            base_url: Base URL prepended to relative request URLs
            headers: Headers sent with every request
            timeout: Network timeout in seconds (GOVERNOR_HTTP_TIMEOUT_SECS)
            client: Pre-built httpx client to use instead of creating one
        """
        self._base_url = base_url
        self._headers = headers or {}

        self._timeout = timeout
        if self._timeout is None:
            env_timeout = os.getenv("GOVERNOR_HTTP_TIMEOUT_SECS")
            if env_timeout:
                with suppress(ValueError):
                    self._timeout = float(env_timeout)
        if self._timeout is None:
            self._timeout = _DEFAULT_TIMEOUT

        # Lazily created unless provided
        self._client = client
        self._owns_client = client is None

    @property
    def base_url(self) -> str:
        return self._base_url

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout, connect=_DEFAULT_CONNECT_TIMEOUT),
                trust_env=_trust_env_enabled(),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _build_headers(self, extra_headers: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": f"request-governor/{_get_ua_version()}",
        }
        headers.update(self._headers)
        if extra_headers:
            headers.update(extra_headers)
        return headers

    async def send(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """Send one request and decode its response.

        Returns:
            Decoded JSON body (text when the body is not JSON, None when empty)

        Raises:
            UpstreamFailure: On a non-2xx response or a network error
        """
        client = self._get_client()
        try:
            response = await client.request(
                method,
                url,
                json=json,
                params=params,
                headers=self._build_headers(headers),
            )
        except httpx.HTTPError as e:
            raise UpstreamFailure(
                f"HTTP error: {e}", url=f"{self._base_url}{url}"
            ) from e

        if not response.is_success:
            raise UpstreamFailure(
                f"{method} {url} failed with status {response.status_code}",
                status_code=response.status_code,
                body=_decode_body(response),
                url=str(response.request.url),
            )
        return _decode_body(response)

    def operation(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Operation[Any]:
        """Build an operation sending this request when run.

        Each run races the request against the attempt's token; a cancelled
        token stops the in-flight request and raises the matching error.

        Args:
            method: HTTP method
            url: Request URL (relative to base URL)
            json: JSON body
            params: Query parameters
            headers: Additional headers

        Returns:
            Operation for ``Orchestrator.request``
        """

        async def run(token: CancelToken) -> Any:
            token.raise_if_cancelled()
            sending = asyncio.ensure_future(
                self.send(method, url, json=json, params=params, headers=headers)
            )
            cancelled = asyncio.ensure_future(token.wait())
            try:
                await asyncio.wait({sending, cancelled}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                cancelled.cancel()
                if not sending.done():
                    sending.cancel()

            if not sending.done() or sending.cancelled():
                logger.debug("Request stopped", method=method, url=url, reason=token.reason)
                token.raise_if_cancelled()
            return sending.result()

        return run

    async def __aenter__(self) -> HttpTransport:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


class GovernedHttpClient:
    """HTTP verbs routed through an orchestrator.

    Keyword arguments not consumed by the request itself (priority,
    timeout_ms, retry, wait, request_id, metadata) become RequestOptions.

    Example:
        >>> async with GovernedHttpClient(Orchestrator(), HttpTransport(base)) as http:
        ...     users = await http.get("/users", priority=3)
    """

    def __init__(self, orchestrator: Orchestrator, transport: HttpTransport) -> None:
        self._orchestrator = orchestrator
        self._transport = transport

    @property
    def orchestrator(self) -> Orchestrator:
        return self._orchestrator

    @property
    def transport(self) -> HttpTransport:
        return self._transport

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        **options: Any,
    ) -> Any:
        operation = self._transport.operation(
            method, url, json=json, params=params, headers=headers
        )
        metadata = {"method": method, "url": url, **options.pop("metadata", {})}
        return await self._orchestrator.request(
            operation, RequestOptions(metadata=metadata, **options)
        )

    async def get(self, url: str, **kwargs: Any) -> Any:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.request("POST", url, json=json, **kwargs)

    async def put(self, url: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.request("PUT", url, json=json, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", url, **kwargs)

    async def aclose(self) -> None:
        """Settle outstanding requests, then close the transport."""
        await self._orchestrator.aclose()
        await self._transport.close()

    async def __aenter__(self) -> GovernedHttpClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
