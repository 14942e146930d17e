"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_credential_store,
    get_oauth_state_encoder,
    get_token_manager,
    get_whoop_api_client,
    get_whoop_data_service,
    get_whoop_oauth_client,
)
from .config import SettingsDependency, get_app_settings

__all__ = [
    "SettingsDependency",
    "get_app_settings",
    "get_credential_store",
    "get_oauth_state_encoder",
    "get_token_manager",
    "get_whoop_api_client",
    "get_whoop_data_service",
    "get_whoop_oauth_client",
]
