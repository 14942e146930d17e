"""
FastAPI routes for the WHOOP relay.
"""

from __future__ import annotations

import logging
import secrets
from datetime import date, datetime, timedelta, timezone
from http import HTTPStatus
from typing import Annotated, Any, Awaitable, Dict, Optional, TypeVar
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from app.clients import (
    AuthExchangeError,
    NotAuthenticatedError,
    OAuthStateError,
    UpstreamDataError,
)
from app.core.config import AppSettings
from app.dependencies import (
    SettingsDependency,
    get_app_settings,
    get_oauth_state_encoder,
    get_token_manager,
    get_whoop_data_service,
    get_whoop_oauth_client,
)
from app.schemas import (
    AuthStatus,
    DailySummary,
    OAuthCallbackPayload,
    Page,
    ProfileSummary,
    RecoverySummary,
    SleepSummary,
    StrainSummary,
    WorkoutSummary,
)

auth_router = APIRouter(prefix="/auth", tags=["auth"])
router = APIRouter(tags=["whoop"])
logger = logging.getLogger(__name__)

T = TypeVar("T")

STATE_COOKIE_NAME = "whoop_oauth_state"

_CONNECTED_PAGE = """<!doctype html>
<html>
  <head><title>WHOOP connected</title></head>
  <body>
    <h1>WHOOP connected</h1>
    <p>Authorization succeeded. You can close this window.</p>
  </body>
</html>
"""


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "").lower()


def _verify_state(
    state: Optional[str],
    *,
    cookie_nonce: Optional[str],
    state_encoder: Any,
    settings: AppSettings,
) -> Dict[str, Any]:
    """Reject missing, forged, expired or cross-browser state values."""
    if not state:
        if settings.oauth.require_state:
            raise HTTPException(
                status_code=HTTPStatus.BAD_REQUEST, detail="Missing OAuth state."
            )
        return {}

    try:
        state_data = state_encoder.decode(state)
    except OAuthStateError as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail=str(exc)
        ) from exc

    issued_at_raw = state_data.get("issued_at")
    try:
        issued_at = datetime.fromisoformat(issued_at_raw)
    except (TypeError, ValueError) as exc:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Invalid issued_at in state token.",
        ) from exc
    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)

    now = datetime.now(timezone.utc)
    if now - issued_at > timedelta(seconds=settings.oauth.state_ttl_seconds):
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="OAuth state token has expired."
        )

    if cookie_nonce is not None and cookie_nonce != state_data.get("nonce"):
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="OAuth state does not match this browser session.",
        )
    return state_data


def _origin(url: str) -> tuple[str, str]:
    parts = urlsplit(url)
    return parts.scheme.lower(), parts.netloc.lower()


def _redirect_target(state_data: Dict[str, Any], settings: AppSettings) -> Optional[str]:
    """Where to send a browser after connecting; ``redirect_to`` must stay on the frontend origin."""
    if not settings.frontend_base_url:
        return None
    frontend = str(settings.frontend_base_url)
    redirect_to = state_data.get("redirect_to")
    if isinstance(redirect_to, str) and _origin(redirect_to) == _origin(frontend):
        return redirect_to
    if redirect_to:
        logger.warning("Ignoring redirect_to outside the frontend origin: %s", redirect_to)
    return frontend


async def _complete_authorization(code: str, token_manager: Any) -> dict:
    try:
        record = await token_manager.authorize(code)
    except AuthExchangeError as exc:
        logger.warning("WHOOP authorization code exchange failed: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail="Failed to exchange authorization code.",
        ) from exc

    logger.info("WHOOP account connected")
    return {"status": "connected", "expires_at": record.expires_at.isoformat()}


async def _proxy(call: Awaitable[T]) -> T:
    """Await a data call and translate relay errors into HTTP responses."""
    try:
        return await call
    except NotAuthenticatedError as exc:
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail="WHOOP account not connected.",
        ) from exc
    except AuthExchangeError as exc:
        logger.warning("WHOOP token refresh failed: %s", exc)
        raise HTTPException(
            status_code=HTTPStatus.UNAUTHORIZED,
            detail="WHOOP authorization expired; reconnect via /auth/whoop.",
        ) from exc
    except UpstreamDataError as exc:
        status_code = HTTPStatus.BAD_GATEWAY
        if exc.status_code == HTTPStatus.NOT_FOUND:
            status_code = HTTPStatus.NOT_FOUND
        raise HTTPException(status_code=status_code, detail=str(exc)) from exc


def collection_params(
    limit: int = Query(10, ge=1, le=25, description="Records per page."),
    day: Optional[date] = Query(
        None, alias="date", description="UTC day (YYYY-MM-DD) to restrict results to."
    ),
    start: Optional[datetime] = Query(None, description="Inclusive lower bound."),
    end: Optional[datetime] = Query(None, description="Exclusive upper bound."),
    next_token: Optional[str] = Query(None, description="Cursor from a previous page."),
) -> dict:
    return {
        "limit": limit,
        "day": day,
        "start": start,
        "end": end,
        "next_token": next_token,
    }


@auth_router.get("/whoop", status_code=HTTPStatus.OK)
async def start_whoop_oauth_flow(
    request: Request,
    response: Response,
    oauth_client: Annotated[Any, Depends(get_whoop_oauth_client)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the WHOOP consent screen.",
    ),
    redirect_to: Optional[str] = Query(
        default=None,
        description="Frontend page to return to after connecting; must share the frontend origin.",
    ),
) -> Any:
    """
    Kick off the OAuth flow by generating a state token and authorization URL.

    The state nonce is also pinned to the browser in a cookie so the callback
    can tell that it returns to the same client that started the flow.
    """
    nonce = secrets.token_urlsafe(16)
    state_payload = {"nonce": nonce, "issued_at": datetime.now(timezone.utc).isoformat()}
    if redirect_to:
        state_payload["redirect_to"] = redirect_to
    state = state_encoder.encode(state_payload)
    authorization_url = oauth_client.build_authorization_url(state=state)

    cookie_options = {
        "httponly": True,
        "samesite": "lax",
        "secure": request.url.scheme == "https",
    }
    if redirect or _wants_html(request):
        redirect_response = RedirectResponse(
            url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT
        )
        redirect_response.set_cookie(STATE_COOKIE_NAME, nonce, **cookie_options)
        return redirect_response

    response.set_cookie(STATE_COOKIE_NAME, nonce, **cookie_options)
    return {"authorization_url": authorization_url, "state": state}


@auth_router.post("/callback", status_code=HTTPStatus.OK)
async def handle_whoop_oauth_callback(
    request: Request,
    payload: OAuthCallbackPayload,
    token_manager: Annotated[Any, Depends(get_token_manager)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> Any:
    """Complete the OAuth exchange for clients that post the code themselves."""
    _verify_state(
        payload.state,
        cookie_nonce=request.cookies.get(STATE_COOKIE_NAME),
        state_encoder=state_encoder,
        settings=settings,
    )
    result = await _complete_authorization(payload.code, token_manager)
    response = JSONResponse(content=result)
    response.delete_cookie(STATE_COOKIE_NAME)
    return response


@auth_router.get("/callback", status_code=HTTPStatus.OK)
async def handle_whoop_oauth_callback_get(
    request: Request,
    token_manager: Annotated[Any, Depends(get_token_manager)],
    state_encoder: Annotated[Any, Depends(get_oauth_state_encoder)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
    code: Optional[str] = Query(None, description="Authorization code returned by WHOOP."),
    state: Optional[str] = Query(None, description="OAuth state token."),
    error: Optional[str] = Query(None, description="Error reported by WHOOP."),
    error_description: Optional[str] = Query(None),
    redirect: bool = Query(
        default=False,
        description="When true, redirect browser clients instead of returning JSON.",
    ),
) -> Response:
    if error:
        logger.warning("WHOOP authorization denied: %s %s", error, error_description or "")
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail=f"OAuth error: {error}"
        )
    if not code:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST, detail="Authorization code missing."
        )

    state_data = _verify_state(
        state,
        cookie_nonce=request.cookies.get(STATE_COOKIE_NAME),
        state_encoder=state_encoder,
        settings=settings,
    )
    result = await _complete_authorization(code, token_manager)

    wants_html = _wants_html(request)
    target = _redirect_target(state_data, settings)
    if target and (redirect or wants_html):
        response: Response = RedirectResponse(
            url=target, status_code=HTTPStatus.TEMPORARY_REDIRECT
        )
    elif wants_html:
        response = HTMLResponse(content=_CONNECTED_PAGE)
    else:
        response = JSONResponse(content=result)
    response.delete_cookie(STATE_COOKIE_NAME)
    return response


@auth_router.get("/status", response_model=AuthStatus)
async def auth_status(
    token_manager: Annotated[Any, Depends(get_token_manager)],
) -> AuthStatus:
    record = token_manager.current_record()
    return AuthStatus(
        authenticated=record is not None,
        expires_at=record.expires_at if record else None,
    )


@auth_router.post("/logout", status_code=HTTPStatus.NO_CONTENT)
async def logout(
    token_manager: Annotated[Any, Depends(get_token_manager)],
) -> Response:
    token_manager.sign_out()
    logger.info("WHOOP credentials cleared")
    return Response(status_code=HTTPStatus.NO_CONTENT)


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck(
    token_manager: Annotated[Any, Depends(get_token_manager)],
    settings: AppSettings = SettingsDependency,
) -> dict:
    """Health endpoint for monitoring."""
    return {
        "status": "ok",
        "environment": settings.environment,
        "authenticated": token_manager.is_authenticated(),
    }


@router.get("/profile", response_model=ProfileSummary)
async def get_profile(
    service: Annotated[Any, Depends(get_whoop_data_service)],
) -> ProfileSummary:
    return await _proxy(service.get_profile())


@router.get("/recovery", response_model=Page[RecoverySummary])
async def list_recovery(
    service: Annotated[Any, Depends(get_whoop_data_service)],
    window: Annotated[dict, Depends(collection_params)],
) -> Page[RecoverySummary]:
    return await _proxy(service.list_recoveries(**window))


@router.get("/recovery/latest", response_model=RecoverySummary)
async def latest_recovery(
    service: Annotated[Any, Depends(get_whoop_data_service)],
) -> RecoverySummary:
    """Recovery attached to the most recent physiological cycle."""
    return await _proxy(service.latest_recovery())


@router.get("/sleep", response_model=Page[SleepSummary])
async def list_sleep(
    service: Annotated[Any, Depends(get_whoop_data_service)],
    window: Annotated[dict, Depends(collection_params)],
) -> Page[SleepSummary]:
    return await _proxy(service.list_sleeps(**window))


@router.get("/sleep/latest", response_model=SleepSummary)
async def latest_sleep(
    service: Annotated[Any, Depends(get_whoop_data_service)],
) -> SleepSummary:
    """Sleep attached to the most recent physiological cycle."""
    return await _proxy(service.latest_sleep())


@router.get("/strain", response_model=Page[StrainSummary])
async def list_strain(
    service: Annotated[Any, Depends(get_whoop_data_service)],
    window: Annotated[dict, Depends(collection_params)],
) -> Page[StrainSummary]:
    return await _proxy(service.list_cycles(**window))


@router.get("/workouts", response_model=Page[WorkoutSummary])
async def list_workouts(
    service: Annotated[Any, Depends(get_whoop_data_service)],
    window: Annotated[dict, Depends(collection_params)],
) -> Page[WorkoutSummary]:
    return await _proxy(service.list_workouts(**window))


@router.get("/summary/today", response_model=DailySummary)
async def today_summary(
    service: Annotated[Any, Depends(get_whoop_data_service)],
) -> DailySummary:
    return await _proxy(service.today())


__all__ = ["auth_router", "router"]
