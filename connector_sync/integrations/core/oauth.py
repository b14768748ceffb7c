import asyncio
import logging
from typing import Any

import aiohttp

from connector_sync.integrations.core.exceptions import AuthError, TransientApiError
from connector_sync.integrations.core.types import TokenResponse

logger = logging.getLogger(__name__)


async def post_token_request(
    token_url: str,
    payload: dict[str, Any],
    as_json: bool = False,
    timeout: float = 30.0,
) -> TokenResponse:
    """POST an authorization_code or refresh_token grant and parse the reply."""
    body_kwarg = "json" if as_json else "data"
    try:
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout)
        ) as session:
            async with session.post(token_url, **{body_kwarg: payload}) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = {}
                status = response.status
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise TransientApiError(f"Token endpoint {token_url} unreachable: {e!r}") from e

    if status >= 400 or not isinstance(data, dict) or "access_token" not in data:
        detail = ""
        if isinstance(data, dict):
            detail = data.get("error_description") or data.get("error") or ""
        logger.error(
            f"Token request to {token_url} failed ({payload.get('grant_type')}): {status} {detail}"
        )
        raise AuthError(f"Token request failed with status {status}: {detail}".strip())

    return TokenResponse(
        access_token=data["access_token"],
        refresh_token=data.get("refresh_token"),
        expires_in=int(data["expires_in"]) if data.get("expires_in") else None,
        token_type=data.get("token_type") or "Bearer",
        scope=data.get("scope"),
    )
