import uuid
from datetime import datetime
from typing import Optional

import httpx
import pytest
import respx

from possync.db.models import CloverToken, Merchant
from possync.db.session import create_engine, init_models, make_session_factory
from possync.integrations.clover.api_client import CloverAPIClient

CLOVER_BASE_URL = "https://clover.test"
CLOVER_MERCHANT_ID = "MID123"


def make_client(access_token: str) -> CloverAPIClient:
    return CloverAPIClient(
        access_token,
        base_url=CLOVER_BASE_URL,
        max_attempts=3,
        retry_initial_delay=0,
        pagination_delay=0,
    )


def paged(records: list, envelope: str = "elements"):
    """respx side effect serving records by limit/offset, like Clover does."""

    def handler(request: httpx.Request) -> httpx.Response:
        offset = int(request.url.params.get("offset", 0))
        limit = int(request.url.params.get("limit", 100))
        page = records[offset:offset + limit]
        return httpx.Response(200, json=page if envelope == "bare" else {envelope: page})

    return handler


def clover_order(
    order_id: str,
    total: int,
    line_items: Optional[list] = None,
    state: str = "open",
    payment_state: Optional[str] = None,
    external_id: Optional[str] = None,
) -> dict:
    order = {
        "id": order_id,
        "state": state,
        "total": total,
        "currency": "USD",
        "createdTime": 1700000000000,
        "modifiedTime": 1700000100000,
        "lineItems": {"elements": line_items or []},
    }
    if payment_state:
        order["paymentState"] = payment_state
    if external_id:
        order["externalId"] = external_id
    return order


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db", echo=False)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def client_factory():
    return make_client


@pytest.fixture
def clover_mock():
    with respx.mock(base_url=CLOVER_BASE_URL, assert_all_called=False) as respx_mock:
        yield respx_mock


@pytest.fixture
def make_merchant(session_factory):
    async def _make(
        clover_merchant_id: Optional[str] = CLOVER_MERCHANT_ID,
        access_token: Optional[str] = "test-token",
        active: bool = True,
        expires_at: Optional[datetime] = None,
    ) -> uuid.UUID:
        async with session_factory() as session:
            async with session.begin():
                merchant = Merchant(
                    clover_merchant_id=clover_merchant_id,
                    business_name="Test Shop",
                    active=active,
                )
                session.add(merchant)
                await session.flush()
                if access_token is not None:
                    session.add(
                        CloverToken(
                            merchant_id=merchant.id,
                            access_token=access_token,
                            expires_at=expires_at,
                        )
                    )
                merchant_id = merchant.id
        return merchant_id

    return _make


@pytest.fixture
async def merchant_id(make_merchant):
    return await make_merchant()
