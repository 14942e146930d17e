"""Authorized access to the WHOOP developer API."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

import httpx

from app.core.config import WhoopSettings
from app.utils.http import build_async_client, response_body_preview

if TYPE_CHECKING:
    from app.services.token_lifecycle import TokenLifecycleManager

logger = logging.getLogger(__name__)


class UpstreamDataError(Exception):
    """Raised when a WHOOP data request fails after a valid token was obtained."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class WhoopApiClient:
    """Issue bearer-authorized GET requests against the WHOOP API server."""

    def __init__(
        self,
        settings: WhoopSettings,
        token_manager: TokenLifecycleManager,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._tokens = token_manager
        self._transport = transport

    async def get(
        self, path: str, params: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """GET ``{api_server}/{path}`` and return the decoded JSON object."""
        access_token = await self._tokens.get_valid_access_token()
        url = f"{self._settings.api_server_url.rstrip('/')}/{path.lstrip('/')}"
        query = {key: value for key, value in (params or {}).items() if value is not None}

        try:
            async with build_async_client(
                timeout=self._settings.request_timeout, transport=self._transport
            ) as client:
                response = await client.get(
                    url,
                    params=query,
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "Accept": "application/json",
                    },
                )
        except httpx.HTTPError as exc:
            logger.warning("WHOOP request to %s failed: %s", path, exc)
            raise UpstreamDataError(f"WHOOP request to {path} failed.") from exc

        if not response.is_success:
            logger.warning("WHOOP request to %s returned %s", path, response.status_code)
            raise UpstreamDataError(
                f"WHOOP request to {path} returned {response.status_code}.",
                status_code=response.status_code,
                body=response_body_preview(response),
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamDataError(
                f"WHOOP request to {path} returned a non-JSON body.",
                status_code=response.status_code,
                body=response_body_preview(response),
            ) from exc
        if not isinstance(payload, dict):
            raise UpstreamDataError(
                f"WHOOP request to {path} returned an unexpected payload.",
                status_code=response.status_code,
            )
        return payload


__all__ = ["UpstreamDataError", "WhoopApiClient"]
