try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import copy
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from app.clients.credential_store import InMemoryCredentialStore
from app.clients.whoop_auth import AuthExchangeError, OAuthStateEncoder
from app.main import app
from app.models.oauth import TokenRecord
from app.services.token_lifecycle import TokenLifecycleManager


class DummyOAuthClient:
    def __init__(self) -> None:
        self.states: list[str] = []
        self.codes: list[str] = []
        self.fail_exchange = False

    def build_authorization_url(self, state: str | None = None) -> str:
        self.states.append(state)
        return f"https://oauth.example.com/auth?state={state}"

    async def exchange_authorization_code(self, code: str) -> TokenRecord:
        self.codes.append(code)
        if self.fail_exchange:
            raise AuthExchangeError("rejected", status_code=400, body="invalid_grant")
        return TokenRecord.issue(
            access_token="access-token",
            refresh_token="refresh-token",
            expires_in=3600,
            issued_at=datetime.now(timezone.utc),
        )

    async def refresh(self, record):  # pragma: no cover - not reached here
        raise AssertionError("refresh should not be called")


@pytest.fixture()
def oauth_overrides():
    from app import dependencies
    from app.core.config import get_settings

    dummy_client = DummyOAuthClient()
    store = InMemoryCredentialStore()
    manager = TokenLifecycleManager(store, dummy_client)
    encoder = OAuthStateEncoder(secret_key="route-test-secret")
    base_settings = copy.deepcopy(get_settings())
    base_settings.frontend_base_url = None

    overrides = {
        dependencies.get_whoop_oauth_client: lambda: dummy_client,
        dependencies.get_token_manager: lambda: manager,
        dependencies.get_oauth_state_encoder: lambda: encoder,
        dependencies.get_app_settings: lambda: base_settings,
    }
    app.dependency_overrides.update(overrides)

    yield dummy_client, store, base_settings, encoder

    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    )


@pytest.mark.anyio
async def test_authorize_returns_json_and_sets_state_cookie(oauth_overrides):
    dummy_client, _, _, _ = oauth_overrides
    async with _client() as client:
        response = await client.get("/auth/whoop")

    assert response.status_code == 200
    data = response.json()
    assert data["authorization_url"].startswith("https://oauth.example.com/auth")
    assert data["state"] == dummy_client.states[-1]
    assert "whoop_oauth_state" in response.cookies


@pytest.mark.anyio
async def test_authorize_redirects_for_html_accept(oauth_overrides):
    async with _client() as client:
        response = await client.get("/auth/whoop", headers={"accept": "text/html"})

    assert response.status_code == 307
    assert response.headers["location"].startswith("https://oauth.example.com/auth")
    assert "whoop_oauth_state" in response.cookies


@pytest.mark.anyio
async def test_callback_exchanges_code_and_seeds_store(oauth_overrides):
    dummy_client, store, _, _ = oauth_overrides

    async with _client() as client:
        await client.get("/auth/whoop")
        state = dummy_client.states[-1]
        callback = await client.get(
            "/auth/callback", params={"state": state, "code": "oauth-code"}
        )
        status = await client.get("/auth/status")

    assert callback.status_code == 200
    assert callback.json()["status"] == "connected"
    assert dummy_client.codes == ["oauth-code"]
    assert store.get().access_token == "access-token"
    assert status.json()["authenticated"] is True
    assert status.json()["expires_at"] is not None


@pytest.mark.anyio
async def test_callback_renders_html_without_frontend(oauth_overrides):
    dummy_client, _, _, _ = oauth_overrides

    async with _client() as client:
        await client.get("/auth/whoop")
        response = await client.get(
            "/auth/callback",
            params={"state": dummy_client.states[-1], "code": "oauth-code"},
            headers={"accept": "text/html"},
        )

    assert response.status_code == 200
    assert "WHOOP connected" in response.text


@pytest.mark.anyio
async def test_callback_redirects_when_frontend_available(oauth_overrides):
    dummy_client, _, settings, _ = oauth_overrides
    settings.frontend_base_url = "https://app.example.com/connected"

    async with _client() as client:
        await client.get("/auth/whoop")
        response = await client.get(
            "/auth/callback",
            params={"state": dummy_client.states[-1], "code": "oauth-code"},
            headers={"accept": "text/html"},
        )

    assert response.status_code == 307
    assert response.headers["location"] == "https://app.example.com/connected"


@pytest.mark.anyio
async def test_callback_honours_redirect_to_on_frontend_origin(oauth_overrides):
    dummy_client, _, settings, _ = oauth_overrides
    settings.frontend_base_url = "https://app.example.com/connected"

    async with _client() as client:
        await client.get(
            "/auth/whoop", params={"redirect_to": "https://app.example.com/done"}
        )
        response = await client.get(
            "/auth/callback",
            params={"state": dummy_client.states[-1], "code": "oauth-code"},
            headers={"accept": "text/html"},
        )

    assert response.status_code == 307
    assert response.headers["location"] == "https://app.example.com/done"


@pytest.mark.anyio
@pytest.mark.parametrize(
    "redirect_to",
    ["https://evil.example.net/done", "http://app.example.com/done"],
)
async def test_callback_ignores_redirect_to_outside_frontend(oauth_overrides, redirect_to):
    dummy_client, _, settings, _ = oauth_overrides
    settings.frontend_base_url = "https://app.example.com/connected"

    async with _client() as client:
        await client.get("/auth/whoop", params={"redirect_to": redirect_to})
        response = await client.get(
            "/auth/callback",
            params={"state": dummy_client.states[-1], "code": "oauth-code"},
            headers={"accept": "text/html"},
        )

    assert response.status_code == 307
    assert response.headers["location"] == "https://app.example.com/connected"


@pytest.mark.anyio
async def test_callback_without_frontend_ignores_redirect_to(oauth_overrides):
    dummy_client, _, _, _ = oauth_overrides

    async with _client() as client:
        await client.get(
            "/auth/whoop", params={"redirect_to": "https://app.example.com/done"}
        )
        response = await client.get(
            "/auth/callback",
            params={"state": dummy_client.states[-1], "code": "oauth-code"},
            headers={"accept": "text/html"},
        )

    assert response.status_code == 200
    assert "location" not in response.headers
    assert "WHOOP connected" in response.text


@pytest.mark.anyio
async def test_callback_post_accepts_json_payload(oauth_overrides):
    dummy_client, store, _, _ = oauth_overrides

    async with _client() as client:
        await client.get("/auth/whoop")
        response = await client.post(
            "/auth/callback",
            json={"code": "posted-code", "state": dummy_client.states[-1]},
        )

    assert response.status_code == 200
    assert dummy_client.codes == ["posted-code"]
    assert store.has_record()


@pytest.mark.anyio
@pytest.mark.parametrize(
    "params",
    [
        {"error": "access_denied"},
        {"state": "whatever"},
        {"code": "oauth-code"},
        {"code": "oauth-code", "state": "forged-state"},
    ],
)
async def test_callback_rejects_bad_requests(oauth_overrides, params):
    dummy_client, store, _, _ = oauth_overrides

    async with _client() as client:
        response = await client.get("/auth/callback", params=params)

    assert response.status_code == 400
    assert dummy_client.codes == []
    assert not store.has_record()


@pytest.mark.anyio
async def test_callback_rejects_expired_state(oauth_overrides):
    dummy_client, _, _, encoder = oauth_overrides
    issued_at = datetime.now(timezone.utc) - timedelta(hours=1)
    state = encoder.encode({"nonce": "n", "issued_at": issued_at.isoformat()})

    async with _client() as client:
        response = await client.get(
            "/auth/callback", params={"state": state, "code": "oauth-code"}
        )

    assert response.status_code == 400
    assert "expired" in response.json()["detail"]
    assert dummy_client.codes == []


@pytest.mark.anyio
async def test_callback_rejects_state_from_another_browser(oauth_overrides):
    dummy_client, _, _, encoder = oauth_overrides
    state = encoder.encode(
        {"nonce": "someone-else", "issued_at": datetime.now(timezone.utc).isoformat()}
    )

    async with _client() as client:
        await client.get("/auth/whoop")
        response = await client.get(
            "/auth/callback", params={"state": state, "code": "oauth-code"}
        )

    assert response.status_code == 400
    assert dummy_client.codes == []


@pytest.mark.anyio
async def test_callback_reports_failed_exchange(oauth_overrides):
    dummy_client, store, _, _ = oauth_overrides
    dummy_client.fail_exchange = True

    async with _client() as client:
        await client.get("/auth/whoop")
        response = await client.get(
            "/auth/callback",
            params={"state": dummy_client.states[-1], "code": "used-code"},
        )

    assert response.status_code == 400
    assert not store.has_record()


@pytest.mark.anyio
async def test_logout_clears_credentials(oauth_overrides):
    dummy_client, store, _, _ = oauth_overrides

    async with _client() as client:
        await client.get("/auth/whoop")
        await client.get(
            "/auth/callback",
            params={"state": dummy_client.states[-1], "code": "oauth-code"},
        )
        response = await client.post("/auth/logout")
        status = await client.get("/auth/status")

    assert response.status_code == 204
    assert not store.has_record()
    assert status.json() == {"authenticated": False, "expires_at": None}
