import asyncio
import logging
from collections.abc import AsyncGenerator
from types import TracebackType
from typing import Any, Self

import aiohttp

from connector_sync.integrations.core.exceptions import (
    ApiRequestError,
    AuthError,
    RemoteItemNotFoundError,
    TransientApiError,
)
from connector_sync.integrations.core.pagination import PaginationStrategy
from connector_sync.integrations.core.rate_limiter import TokenBucketRateLimiter
from connector_sync.integrations.core.types import (
    ApiResponse,
    AuthContext,
    HttpMethod,
    RequestDefinition,
)

logger = logging.getLogger(__name__)


class ApiClient:
    """Thin aiohttp wrapper used for all vendor calls during a run.

    Failed requests are never retried here; 5xx, 429 and network errors
    surface as ``TransientApiError`` and the next sync attempt is the retry.
    """

    def __init__(
        self,
        rate_limiter: TokenBucketRateLimiter | None = None,
        timeout: float = 30.0,
    ):
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._client: aiohttp.ClientSession | None = None
        self._rate_limiter = rate_limiter
        self.request_count = 0

    async def __aenter__(self) -> Self:
        self._client = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def _get_client(self) -> aiohttp.ClientSession:
        if self._client is None or self._client.closed:
            self._client = aiohttp.ClientSession(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.closed:
            await self._client.close()
            self._client = None

    async def execute(
        self,
        request: RequestDefinition,
        auth_context: AuthContext,
    ) -> ApiResponse:
        if self._rate_limiter:
            await self._rate_limiter.acquire(request.cost)

        headers = self._build_headers(request, auth_context)
        self.request_count += 1
        try:
            response = await self._make_request(request, headers)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Request to {request.url} failed: {e!r}")
            raise TransientApiError(f"Request to {request.url} failed: {e!r}") from e

        self._raise_for_status(request, response)
        return response

    async def execute_paginated(
        self,
        request: RequestDefinition,
        auth_context: AuthContext,
        paginator: PaginationStrategy,
    ) -> AsyncGenerator[list[Any], None]:
        current_request: RequestDefinition | None = paginator.first_request(request)
        logger.debug(f"Starting paginated request to {request.url}")

        while current_request is not None:
            response = await self.execute(current_request, auth_context)
            items = paginator.extract_items(response.data)
            if items:
                yield items
            current_request = paginator.next_request(current_request, response.data)

    def _raise_for_status(self, request: RequestDefinition, response: ApiResponse) -> None:
        if response.is_success:
            return
        if response.is_rate_limited:
            retry_after = self._parse_retry_after(response.headers)
            if self._rate_limiter and retry_after:
                self._rate_limiter.pause(retry_after)
            raise TransientApiError(
                f"Rate limited by {request.url}, retry after {retry_after or 'unknown'}s",
                upstream_status=429,
            )
        if response.is_server_error:
            raise TransientApiError(
                f"Server error {response.status_code} from {request.url}",
                upstream_status=response.status_code,
            )
        if response.is_unauthorized:
            raise AuthError(f"Unauthorized request to {request.url}")
        if response.is_not_found:
            raise RemoteItemNotFoundError(request.url)
        raise ApiRequestError(
            response.status_code, f"API request failed: {response.data}"
        )

    def _build_headers(
        self, request: RequestDefinition, auth_context: AuthContext
    ) -> dict[str, str]:
        headers = {
            "Authorization": auth_context.authorization_header,
            "Accept": "application/json",
        }
        headers.update(request.headers)
        return headers

    async def _make_request(
        self, request: RequestDefinition, headers: dict[str, str]
    ) -> ApiResponse:
        client = await self._get_client()

        kwargs: dict[str, Any] = {
            "headers": headers,
            "params": request.params or None,
        }
        if request.body and request.method in (
            HttpMethod.POST,
            HttpMethod.PUT,
            HttpMethod.PATCH,
        ):
            kwargs["json"] = request.body

        logger.debug(f"{request.method.value} {request.url} params={request.params}")
        async with client.request(
            request.method.value, request.url, **kwargs
        ) as response:
            try:
                data = await response.json()
            except (aiohttp.ContentTypeError, ValueError):
                data = {}

            return ApiResponse(
                status_code=response.status,
                data=data if isinstance(data, dict) else {"items": data},
                headers={k: v for k, v in response.headers.items()},
            )

    def _parse_retry_after(self, headers: dict[str, str]) -> int | None:
        retry_after = headers.get("Retry-After") or headers.get("retry-after")
        if retry_after:
            try:
                return int(retry_after)
            except ValueError:
                pass
        return None
