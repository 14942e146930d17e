"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache

from app.clients import (
    InMemoryCredentialStore,
    OAuthStateEncoder,
    WhoopApiClient,
    WhoopOAuthClient,
)
from app.core.config import get_settings
from app.services import TokenLifecycleManager, WhoopDataService


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide an OAuth state encoder keyed by the state secret or client secret."""
    settings = _settings()
    secret = settings.oauth.state_secret or settings.whoop.client_secret
    return OAuthStateEncoder(secret_key=secret)


@lru_cache()
def get_whoop_oauth_client() -> WhoopOAuthClient:
    """Create a singleton WHOOP OAuth client."""
    return WhoopOAuthClient(_settings().whoop)


@lru_cache()
def get_credential_store() -> InMemoryCredentialStore:
    """Provide the process-wide credential store."""
    return InMemoryCredentialStore()


@lru_cache()
def get_token_manager() -> TokenLifecycleManager:
    """Provide the token lifecycle manager guarding the credential store."""
    settings = _settings()
    return TokenLifecycleManager(
        store=get_credential_store(),
        oauth_client=get_whoop_oauth_client(),
        refresh_skew=settings.tokens.refresh_skew,
        clear_on_refresh_failure=settings.tokens.clear_on_refresh_failure,
    )


@lru_cache()
def get_whoop_api_client() -> WhoopApiClient:
    """Provide the bearer-authorized WHOOP API client."""
    return WhoopApiClient(_settings().whoop, get_token_manager())


def get_whoop_data_service() -> WhoopDataService:
    """Build the WHOOP data proxy service."""
    return WhoopDataService(get_whoop_api_client())


__all__ = [
    "get_credential_store",
    "get_oauth_state_encoder",
    "get_token_manager",
    "get_whoop_api_client",
    "get_whoop_data_service",
    "get_whoop_oauth_client",
]
