"""
Lifecycle management for the stored WHOOP OAuth tokens.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from app.clients.credential_store import DEFAULT_IDENTITY, InMemoryCredentialStore
from app.clients.whoop_auth import AuthExchangeError, NotAuthenticatedError, WhoopOAuthClient
from app.models.oauth import TokenRecord

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenLifecycleManager:
    """Hands out valid access tokens, refreshing them inside the skew window."""

    def __init__(
        self,
        store: InMemoryCredentialStore,
        oauth_client: WhoopOAuthClient,
        *,
        refresh_skew: timedelta = timedelta(minutes=5),
        clear_on_refresh_failure: bool = True,
        identity: str = DEFAULT_IDENTITY,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._oauth = oauth_client
        self._skew = refresh_skew
        self._clear_on_failure = clear_on_refresh_failure
        self._identity = identity
        self._clock = clock
        self._refresh_lock = asyncio.Lock()

    async def authorize(self, code: str) -> TokenRecord:
        """Exchange an authorization code and replace any stored record."""
        record = await self._oauth.exchange_authorization_code(code)
        self._store.set(record, self._identity)
        return record

    async def get_valid_access_token(self) -> str:
        """
        Return an access token that is outside the skew window.

        Concurrent callers that see a stale token wait on one refresh instead of
        each spending the refresh token.
        """
        record = self._require_record()
        if not record.is_stale(self._clock(), self._skew):
            return record.access_token

        async with self._refresh_lock:
            # Another caller may have refreshed while this one waited.
            record = self._require_record()
            if not record.is_stale(self._clock(), self._skew):
                return record.access_token

            logger.info("WHOOP access token expires at %s; refreshing", record.expires_at)
            try:
                refreshed = await self._oauth.refresh(record)
            except (AuthExchangeError, NotAuthenticatedError):
                if self._clear_on_failure:
                    logger.warning("WHOOP refresh rejected; clearing stored credentials")
                    self._store.clear(self._identity)
                else:
                    logger.warning("WHOOP refresh rejected; keeping stale credentials")
                raise

            self._store.set(refreshed, self._identity)
            return refreshed.access_token

    def current_record(self) -> Optional[TokenRecord]:
        return self._store.get(self._identity)

    def is_authenticated(self) -> bool:
        return self._store.has_record(self._identity)

    def sign_out(self) -> None:
        self._store.clear(self._identity)

    def _require_record(self) -> TokenRecord:
        record = self._store.get(self._identity)
        if record is None:
            raise NotAuthenticatedError("WHOOP account not connected; authorization required.")
        return record


__all__ = ["TokenLifecycleManager"]
