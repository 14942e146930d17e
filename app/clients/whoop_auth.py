"""
WHOOP OAuth utilities.

These helpers manage the authorization redirect and the token endpoint calls
behind both the authorization-code exchange and the refresh lifecycle.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
from datetime import datetime, timezone
from hashlib import sha256
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

import httpx

from app.core.config import WhoopSettings
from app.models.oauth import TokenRecord
from app.utils.http import build_async_client, response_body_preview

logger = logging.getLogger(__name__)


class OAuthStateError(Exception):
    """Raised when an OAuth state value is malformed or has been tampered with."""


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str) -> None:
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise OAuthStateError("OAuth state is not valid base64.") from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected_signature):
            raise OAuthStateError("Invalid OAuth state signature.")
        return json.loads(serialized)


_SECRET_FIELDS = ("access_token", "refresh_token", "id_token")


def _redacted(payload: Dict[str, Any]) -> str:
    """Serialize a token payload for error reporting with credentials masked."""
    masked = {
        key: "***" if key in _SECRET_FIELDS and value else value
        for key, value in payload.items()
    }
    return json.dumps(masked, sort_keys=True, default=str)


class NotAuthenticatedError(Exception):
    """Raised when no WHOOP credentials are available; re-run authorization."""


class AuthExchangeError(Exception):
    """Raised when the token endpoint rejects an exchange or cannot be reached."""

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

    def __str__(self) -> str:
        message = super().__str__()
        if self.status_code is not None:
            return f"{message} (status={self.status_code}, body={self.body!r})"
        return message


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WhoopOAuthClient:
    """Build WHOOP authorization URLs and call the token endpoint."""

    def __init__(
        self,
        settings: WhoopSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._clock = clock

    def build_authorization_url(self, state: Optional[str] = None) -> str:
        """Construct the WHOOP consent URL."""
        params = {
            "response_type": "code",
            "client_id": self._settings.client_id,
            "redirect_uri": str(self._settings.redirect_uri),
            "scope": " ".join(self._settings.scope_list),
        }
        if state:
            params["state"] = state
        return f"{self._settings.authorization_url}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str) -> TokenRecord:
        """Exchange a one-time authorization code for a fresh token record."""
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": str(self._settings.redirect_uri),
        }
        issued_at = self._clock()
        payload = await self._request_token(form, grant="authorization_code")
        record = self._build_record(payload, issued_at=issued_at)
        logger.info("WHOOP authorization code exchanged; token expires at %s", record.expires_at)
        return record

    async def refresh(self, record: Optional[TokenRecord]) -> TokenRecord:
        """
        Mint a new access token from the record's refresh token.

        The previous refresh token is kept when the provider does not rotate it.
        """
        if record is None:
            raise NotAuthenticatedError("No WHOOP credentials stored; authorization required.")
        if not record.refresh_token:
            raise NotAuthenticatedError(
                "Stored WHOOP credentials have no refresh token; authorization required."
            )

        form = {
            "grant_type": "refresh_token",
            "refresh_token": record.refresh_token,
            "scope": "offline",
        }
        issued_at = self._clock()
        payload = await self._request_token(form, grant="refresh_token")
        refreshed = self._build_record(
            payload,
            issued_at=issued_at,
            fallback_refresh_token=record.refresh_token,
            fallback_scope=record.scope,
        )
        logger.info("WHOOP access token refreshed; expires at %s", refreshed.expires_at)
        return refreshed

    async def _request_token(self, form: Dict[str, str], *, grant: str) -> Dict[str, Any]:
        auth: httpx.Auth | None = None
        data = dict(form)
        if self._settings.client_auth_method == "client_secret_basic":
            auth = httpx.BasicAuth(self._settings.client_id, self._settings.client_secret)
        else:
            data["client_id"] = self._settings.client_id
            data["client_secret"] = self._settings.client_secret

        try:
            async with build_async_client(
                timeout=self._settings.request_timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self._settings.token_url,
                    data=data,
                    auth=auth,
                    headers={"Accept": "application/json"},
                )
        except httpx.TimeoutException as exc:
            logger.warning("WHOOP token request (%s) timed out", grant)
            raise AuthExchangeError(f"WHOOP token endpoint timed out during {grant}.") from exc
        except httpx.HTTPError as exc:
            logger.warning("WHOOP token request (%s) failed: %s", grant, exc)
            raise AuthExchangeError(f"WHOOP token endpoint unreachable during {grant}.") from exc

        if not response.is_success:
            body = response_body_preview(response)
            logger.warning(
                "WHOOP token endpoint rejected %s with status %s", grant, response.status_code
            )
            raise AuthExchangeError(
                f"WHOOP token endpoint rejected {grant}.",
                status_code=response.status_code,
                body=body,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise AuthExchangeError(
                "WHOOP token endpoint returned a non-JSON body.",
                status_code=response.status_code,
                body=response_body_preview(response),
            ) from exc
        if not isinstance(payload, dict):
            raise AuthExchangeError(
                "WHOOP token endpoint returned an unexpected payload.",
                status_code=response.status_code,
                body=response_body_preview(response),
            )

        if not payload.get("access_token"):
            raise AuthExchangeError(
                "Incomplete token payload returned from WHOOP: missing access_token.",
                status_code=response.status_code,
                body=_redacted(payload),
            )
        try:
            payload["expires_in"] = int(payload.get("expires_in"))
        except (TypeError, ValueError) as exc:
            raise AuthExchangeError(
                "Incomplete token payload returned from WHOOP: invalid expires_in.",
                status_code=response.status_code,
                body=_redacted(payload),
            ) from exc
        return payload

    @staticmethod
    def _build_record(
        payload: Dict[str, Any],
        *,
        issued_at: datetime,
        fallback_refresh_token: Optional[str] = None,
        fallback_scope: Optional[str] = None,
    ) -> TokenRecord:
        return TokenRecord.issue(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or fallback_refresh_token,
            expires_in=payload["expires_in"],
            issued_at=issued_at,
            scope=payload.get("scope") or fallback_scope,
            token_type=payload.get("token_type"),
        )


__all__ = [
    "AuthExchangeError",
    "NotAuthenticatedError",
    "OAuthStateEncoder",
    "OAuthStateError",
    "WhoopOAuthClient",
]
