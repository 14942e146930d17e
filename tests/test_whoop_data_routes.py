try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from app.clients.credential_store import InMemoryCredentialStore
from app.clients.whoop_api import UpstreamDataError, WhoopApiClient
from app.clients.whoop_auth import AuthExchangeError
from app.core.config import WhoopSettings
from app.main import app
from app.models.oauth import TokenRecord
from app.schemas import Page, RecoverySummary
from app.services.token_lifecycle import TokenLifecycleManager
from app.services.whoop_data import WhoopDataService


class RejectingOAuthClient:
    def __init__(self) -> None:
        self.refresh_calls = 0

    async def refresh(self, record):
        self.refresh_calls += 1
        raise AuthExchangeError("rejected", status_code=400, body="invalid_grant")


class FakeDataService:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.windows: list[dict] = []

    async def list_recoveries(self, **window):
        self.windows.append(window)
        if self.error is not None:
            raise self.error
        return Page[RecoverySummary](
            records=[RecoverySummary(cycle_id=1, recovery_score=67)], next_token="next"
        )


@pytest.fixture()
def wire():
    """Wire a real token manager and API client onto a fake WHOOP API."""
    from app import dependencies

    store = InMemoryCredentialStore()
    oauth_client = RejectingOAuthClient()
    manager = TokenLifecycleManager(store, oauth_client)
    upstream_requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        upstream_requests.append(request)
        return httpx.Response(
            200, json={"records": [{"id": 7, "score": {"strain": 12.5}}], "next_token": None}
        )

    settings = WhoopSettings(WHOOP_CLIENT_ID="client", WHOOP_CLIENT_SECRET="secret")
    api_client = WhoopApiClient(settings, manager, transport=httpx.MockTransport(handler))

    app.dependency_overrides.update(
        {
            dependencies.get_token_manager: lambda: manager,
            dependencies.get_whoop_data_service: lambda: WhoopDataService(api_client),
        }
    )

    yield store, oauth_client, upstream_requests

    app.dependency_overrides.clear()


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://testserver"
    )


def _record(expires_in: timedelta) -> TokenRecord:
    now = datetime.now(timezone.utc)
    return TokenRecord(
        access_token="valid-access",
        refresh_token="R1",
        issued_at=now,
        expires_at=now + expires_in,
    )


@pytest.mark.anyio
async def test_health_reports_authentication(wire):
    store, _, _ = wire
    async with _client() as client:
        before = await client.get("/api/health")
        store.set(_record(timedelta(hours=1)))
        after = await client.get("/api/health")

    assert before.json()["status"] == "ok"
    assert before.json()["authenticated"] is False
    assert after.json()["authenticated"] is True


@pytest.mark.anyio
async def test_data_requires_connected_account(wire):
    _, oauth_client, upstream_requests = wire

    async with _client() as client:
        response = await client.get("/api/strain")

    assert response.status_code == 401
    assert response.json()["detail"] == "WHOOP account not connected."
    assert upstream_requests == []
    assert oauth_client.refresh_calls == 0


@pytest.mark.anyio
async def test_strain_uses_stored_token(wire):
    store, oauth_client, upstream_requests = wire
    store.set(_record(timedelta(hours=1)))

    async with _client() as client:
        response = await client.get("/api/strain", params={"limit": 5})

    assert response.status_code == 200
    body = response.json()
    assert body["records"][0]["cycle_id"] == 7
    assert body["records"][0]["strain"] == 12.5
    assert upstream_requests[0].headers["authorization"] == "Bearer valid-access"
    assert oauth_client.refresh_calls == 0


@pytest.mark.anyio
async def test_rejected_refresh_surfaces_as_unauthorized(wire):
    store, oauth_client, upstream_requests = wire
    store.set(_record(timedelta(minutes=1)))

    async with _client() as client:
        first = await client.get("/api/workouts")
        second = await client.get("/api/workouts")

    assert first.status_code == 401
    assert "reconnect" in first.json()["detail"]
    assert second.json()["detail"] == "WHOOP account not connected."
    assert oauth_client.refresh_calls == 1
    assert upstream_requests == []


@pytest.mark.anyio
async def test_collection_query_parameters_reach_service():
    from app import dependencies

    service = FakeDataService()
    app.dependency_overrides[dependencies.get_whoop_data_service] = lambda: service
    try:
        async with _client() as client:
            response = await client.get(
                "/api/recovery",
                params={"limit": 3, "date": "2024-05-01", "next_token": "abc"},
            )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json()["records"][0]["recovery_score"] == 67
    window = service.windows[0]
    assert window["limit"] == 3
    assert window["day"].isoformat() == "2024-05-01"
    assert window["next_token"] == "abc"


@pytest.mark.anyio
async def test_limit_outside_page_bounds_is_rejected():
    async with _client() as client:
        response = await client.get("/api/recovery", params={"limit": 100})

    assert response.status_code == 422


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("upstream_status", "expected"),
    [(404, 404), (500, 502), (None, 502)],
)
async def test_upstream_errors_map_to_gateway_statuses(upstream_status, expected):
    from app import dependencies

    service = FakeDataService(
        error=UpstreamDataError("WHOOP request failed.", status_code=upstream_status)
    )
    app.dependency_overrides[dependencies.get_whoop_data_service] = lambda: service
    try:
        async with _client() as client:
            response = await client.get("/api/recovery")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == expected
