import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from conftest import clover_order, paged
from possync.db.session import get_session_factory
from possync.main import app
from possync.routers.sync import get_client_factory, get_sync_enabled, get_sync_guard
from possync.utils.single_flight import MerchantSyncGuard


@pytest.fixture
def guard():
    return MerchantSyncGuard()


@pytest.fixture
def sync_enabled():
    return {"value": True}


@pytest.fixture
async def api(session_factory, client_factory, guard, sync_enabled):
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_client_factory] = lambda: client_factory
    app.dependency_overrides[get_sync_guard] = lambda: guard
    app.dependency_overrides[get_sync_enabled] = lambda: sync_enabled["value"]
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.clear()


def _mock_empty_catalog(clover_mock):
    for collection in ("categories", "items", "item_stocks"):
        clover_mock.get(f"/v3/merchants/MID123/{collection}").mock(side_effect=paged([]))


@pytest.mark.asyncio
async def test_full_sync_ok(api, clover_mock, merchant_id):
    clover_mock.get("/v3/merchants/MID123/categories").mock(side_effect=paged([{"id": "CAT_1", "name": "Drinks"}]))
    clover_mock.get("/v3/merchants/MID123/items").mock(side_effect=paged([]))
    clover_mock.get("/v3/merchants/MID123/item_stocks").mock(side_effect=paged([]))

    response = await api.post(f"/api/merchants/{merchant_id}/sync/full")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["enabled"] is True
    assert body["categories"]["processed"] == 1


@pytest.mark.asyncio
async def test_disabled_sync_returns_report(api, clover_mock, merchant_id, sync_enabled):
    sync_enabled["value"] = False
    route = clover_mock.get("/v3/merchants/MID123/categories").mock(side_effect=paged([]))

    response = await api.post(f"/api/merchants/{merchant_id}/sync/full")

    assert response.status_code == 200
    assert response.json()["enabled"] is False
    assert not route.called


@pytest.mark.asyncio
async def test_configuration_errors_map_to_client_errors(api, make_merchant):
    unmapped = await make_merchant(clover_merchant_id=None)
    tokenless = await make_merchant(clover_merchant_id="MID_NO_TOKEN", access_token=None)
    expired = await make_merchant(
        clover_merchant_id="MID_EXPIRED",
        expires_at=datetime.now(timezone.utc) - timedelta(minutes=5),
    )
    inactive = await make_merchant(clover_merchant_id="MID_INACTIVE", active=False)

    assert (await api.post(f"/api/merchants/{uuid.uuid4()}/sync/full")).status_code == 404
    assert (await api.post(f"/api/merchants/{unmapped}/sync/full")).status_code == 400
    assert (await api.post(f"/api/merchants/{tokenless}/sync/orders")).status_code == 400
    assert (await api.post(f"/api/merchants/{expired}/sync/full")).status_code == 401
    assert (await api.post(f"/api/merchants/{inactive}/sync/orders")).status_code == 403


@pytest.mark.asyncio
async def test_remote_auth_failure_is_401_with_report(api, clover_mock, merchant_id):
    clover_mock.get("/v3/merchants/MID123/categories").mock(return_value=httpx.Response(401))

    response = await api.post(f"/api/merchants/{merchant_id}/sync/full")

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["auth_failed"] is True


@pytest.mark.asyncio
async def test_remote_outage_is_500_with_partial_report(api, clover_mock, merchant_id):
    clover_mock.get("/v3/merchants/MID123/categories").mock(side_effect=paged([{"id": "CAT_1"}]))
    clover_mock.get("/v3/merchants/MID123/items").mock(return_value=httpx.Response(500))

    response = await api.post(f"/api/merchants/{merchant_id}/sync/full")

    assert response.status_code == 500
    body = response.json()
    assert body["success"] is False
    assert body["categories"]["processed"] == 1


@pytest.mark.asyncio
async def test_concurrent_sync_is_409(api, guard, clover_mock, merchant_id):
    _mock_empty_catalog(clover_mock)

    async with guard.hold(merchant_id):
        response = await api.post(f"/api/merchants/{merchant_id}/sync/full")

    assert response.status_code == 409
    assert (await api.post(f"/api/merchants/{merchant_id}/sync/full")).status_code == 200


@pytest.mark.asyncio
async def test_order_sync_with_prune(api, clover_mock, merchant_id):
    route = clover_mock.get("/v3/merchants/MID123/orders")
    route.mock(side_effect=paged([clover_order("A", total=0), clover_order("B", total=0)]))
    await api.post(f"/api/merchants/{merchant_id}/sync/orders")

    route.mock(side_effect=paged([clover_order("A", total=0)]))
    response = await api.post(f"/api/merchants/{merchant_id}/sync/orders", params={"prune": "true", "limit": 50})

    assert response.status_code == 200
    body = response.json()
    assert body["processed"] == 1
    assert body["unmatched"] == 1
    assert body["marked_for_delete"] == 1
    assert route.calls.last.request.url.params["limit"] == "50"


@pytest.mark.asyncio
async def test_sync_status(api, clover_mock, merchant_id):
    clover_mock.get("/v3/merchants/MID123/orders").mock(side_effect=paged([clover_order("A", total=0)]))
    await api.post(f"/api/merchants/{merchant_id}/sync/orders")

    response = await api.get(f"/api/merchants/{merchant_id}/sync/status")

    assert response.status_code == 200
    body = response.json()
    assert body["clover_merchant_id"] == "MID123"
    assert body["token_status"] == "valid"
    assert body["sync_enabled"] is True
    assert body["sync_running"] is False
    assert body["orders"] == 1
    assert (await api.get(f"/api/merchants/{uuid.uuid4()}/sync/status")).status_code == 404


@pytest.mark.asyncio
async def test_health(api):
    response = await api.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
