"""
Application configuration models and helpers.

Centralizes settings management so the FastAPI app, the token lifecycle
manager and the maintenance scripts share one configuration surface.
"""

from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

import os

from pydantic import AnyHttpUrl, Field, HttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Best-effort load key=value pairs from a .env file without extra deps."""
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        cleaned = value.strip().strip('"').strip("'")
        os.environ[key] = cleaned


_load_env_file()


def _split_words(value: str) -> tuple[str, ...]:
    return tuple(part for part in value.replace(",", " ").split() if part)


ClientAuthMethod = Literal["client_secret_post", "client_secret_basic"]


class WhoopSettings(BaseSettings):
    """Configuration required for talking to the WHOOP OAuth and API servers."""

    model_config = SettingsConfigDict(extra="ignore")

    client_id: str = Field(..., validation_alias="WHOOP_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="WHOOP_CLIENT_SECRET")
    redirect_uri: AnyHttpUrl = Field(
        "http://localhost:8000/auth/callback",
        validation_alias="WHOOP_REDIRECT_URI",
    )
    auth_server_url: str = Field(
        "https://api.prod.whoop.com/oauth",
        validation_alias="WHOOP_AUTH_SERVER_URL",
    )
    api_server_url: str = Field(
        "https://api.prod.whoop.com/developer/v2",
        validation_alias="WHOOP_API_SERVER_URL",
    )
    scopes: str = Field(
        "offline read:recovery read:sleep read:workout read:cycles "
        "read:profile read:body_measurement",
        validation_alias="WHOOP_SCOPES",
        description="Space or comma separated OAuth scopes.",
    )
    client_auth_method: ClientAuthMethod = Field(
        "client_secret_post",
        validation_alias="WHOOP_CLIENT_AUTH_METHOD",
        description=(
            "How client credentials reach the token endpoint: form body fields "
            "or an HTTP Basic header."
        ),
    )
    request_timeout: float = Field(10.0, validation_alias="WHOOP_REQUEST_TIMEOUT")

    @property
    def scope_list(self) -> tuple[str, ...]:
        return _split_words(self.scopes)

    @property
    def authorization_url(self) -> str:
        return f"{self.auth_server_url.rstrip('/')}/oauth2/auth"

    @property
    def token_url(self) -> str:
        return f"{self.auth_server_url.rstrip('/')}/oauth2/token"


class TokenSettings(BaseSettings):
    """Token lifecycle tuning."""

    model_config = SettingsConfigDict(extra="ignore")

    refresh_skew_seconds: int = Field(
        300,
        ge=0,
        validation_alias="TOKEN_REFRESH_SKEW_SECONDS",
        description="Refresh tokens this many seconds before they expire.",
    )
    clear_on_refresh_failure: bool = Field(
        True,
        validation_alias="TOKEN_CLEAR_ON_REFRESH_FAILURE",
        description=(
            "Drop the stored record when a refresh is rejected so later calls "
            "fail fast with NotAuthenticatedError."
        ),
    )

    @property
    def refresh_skew(self) -> timedelta:
        return timedelta(seconds=self.refresh_skew_seconds)


class OAuthSettings(BaseSettings):
    """OAuth redirect flow configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    state_secret: Optional[str] = Field(
        None,
        validation_alias="OAUTH_STATE_SECRET",
        description="HMAC key for state values. Defaults to the client secret.",
    )
    require_state: bool = Field(True, validation_alias="OAUTH_REQUIRE_STATE")


class AppSettings(BaseSettings):
    """Root settings object for the FastAPI application."""

    model_config = SettingsConfigDict(extra="ignore")

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    frontend_base_url: Optional[HttpUrl] = Field(
        None,
        validation_alias="FRONTEND_BASE_URL",
        description="Optional URL for redirecting users back to the front-end.",
    )
    cors_allow_origins: str = Field("*", validation_alias="CORS_ALLOW_ORIGINS")
    whoop: WhoopSettings = Field(default_factory=WhoopSettings)
    tokens: TokenSettings = Field(default_factory=TokenSettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)

    @property
    def cors_origin_list(self) -> list[str]:
        return list(_split_words(self.cors_allow_origins))


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "ClientAuthMethod",
    "OAuthSettings",
    "TokenSettings",
    "WhoopSettings",
    "get_settings",
]
