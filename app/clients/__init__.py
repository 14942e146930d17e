"""Expose constructed client wrappers."""

from .credential_store import DEFAULT_IDENTITY, InMemoryCredentialStore
from .whoop_api import UpstreamDataError, WhoopApiClient
from .whoop_auth import (
    AuthExchangeError,
    NotAuthenticatedError,
    OAuthStateEncoder,
    OAuthStateError,
    WhoopOAuthClient,
)

__all__ = [
    "AuthExchangeError",
    "DEFAULT_IDENTITY",
    "InMemoryCredentialStore",
    "NotAuthenticatedError",
    "OAuthStateEncoder",
    "OAuthStateError",
    "UpstreamDataError",
    "WhoopApiClient",
    "WhoopOAuthClient",
]
