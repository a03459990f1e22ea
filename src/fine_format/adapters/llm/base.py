"""Shared HTTP machinery for provider clients.

Each concrete client only knows how to build a request body and read a
response body. Deadlines, transport errors and failure classification are
handled once, here.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, ClassVar

import httpx
from typing_extensions import Self

from fine_format.adapters.llm.errors import make_failure
from fine_format.adapters.llm.types import FailureKind, ProviderFailure

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from types import TracebackType

    from fine_format.adapters.llm.keys import Credential
    from fine_format.adapters.llm.types import Provider, ProviderRequest, ProviderResponse

logger = logging.getLogger(__name__)

# Error bodies are cut to this length before being kept on a failure
MAX_ERROR_BODY = 500


class BaseProviderClient:
    """Async provider client returning ProviderResponse values.

    Can be used as a context manager to reuse one connection pool across
    calls, or standalone (a temporary client is created per call).

    Subclasses implement ``_build_call`` and ``_parse_success``.
    """

    provider: ClassVar[Provider]

    def __init__(self, base_url: str, *, max_binary_bytes: int | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.max_binary_bytes = max_binary_bytes
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        """Enter async context manager, creating a reusable HTTP client."""
        self._client = httpx.AsyncClient()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit async context manager, closing the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @asynccontextmanager
    async def _get_client(self) -> AsyncIterator[httpx.AsyncClient]:
        """Get an HTTP client for making requests."""
        if self._client is not None:
            yield self._client
        else:
            async with httpx.AsyncClient() as client:
                yield client

    def _build_call(
        self,
        request: ProviderRequest,
        credential: Credential,
    ) -> tuple[str, dict[str, str], dict[str, str], dict[str, Any]]:
        """Return (url, query params, headers, json payload) for a request."""
        raise NotImplementedError

    def _parse_success(self, data: dict[str, Any]) -> ProviderResponse:
        """Turn a 2xx JSON body into a ProviderResponse."""
        raise NotImplementedError

    async def send(self, request: ProviderRequest, credential: Credential) -> ProviderResponse:
        """Send a single request with a single credential.

        The call is bounded by ``request.timeout``: when the deadline passes
        the in-flight HTTP call is cancelled and a Timeout failure returned.

        Args:
            request: The request to send.
            credential: The credential to authenticate with.

        Returns:
            ProviderSuccess or a classified ProviderFailure. Never raises for
            remote or transport failures.
        """
        if self.max_binary_bytes is not None and request.binary_size > self.max_binary_bytes:
            size_mb = request.binary_size / 1024 / 1024
            limit_mb = self.max_binary_bytes / 1024 / 1024
            return ProviderFailure(
                kind=FailureKind.BAD_REQUEST,
                message=f"Binary content too large: {size_mb:.1f}MB. Maximum allowed: {limit_mb:.0f}MB",
                retriable=False,
                status_code=413,
            )

        try:
            return await asyncio.wait_for(self._send(request, credential), timeout=request.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{credential} request timed out after {request.timeout}s")
            return ProviderFailure(
                kind=FailureKind.TIMEOUT,
                message=f"Request to {self.provider.value} timed out after {request.timeout}s",
                retriable=True,
            )

    async def _send(self, request: ProviderRequest, credential: Credential) -> ProviderResponse:
        url, params, headers, payload = self._build_call(request, credential)

        try:
            async with self._get_client() as client:
                response = await client.post(
                    url,
                    params=params or None,
                    headers=headers,
                    json=payload,
                    timeout=request.timeout,
                )
        except httpx.TimeoutException as e:
            return make_failure(None, f"Request to {self.provider.value} timed out: {e}")
        except httpx.HTTPError as e:
            return make_failure(None, f"Failed to connect to {self.provider.value} at {self.base_url}: {e}")

        if response.status_code >= 400:
            body = response.text[:MAX_ERROR_BODY]
            return make_failure(
                response.status_code,
                f"{self.provider.value} API error: {response.status_code} - {body}",
            )

        try:
            data = response.json()
        except ValueError:
            return make_failure(response.status_code, f"{self.provider.value} returned a non-JSON body")

        if not isinstance(data, dict):
            return make_failure(response.status_code, f"{self.provider.value} returned an unexpected body")

        return self._parse_success(data)
