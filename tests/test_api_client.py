import httpx
import pytest

from conftest import CLOVER_BASE_URL, make_client, paged
from possync.integrations.clover.api_client import CloverAPIClient, CloverAPIError, extract_records

ITEMS_PATH = "/v3/merchants/MID123/items"


def _records(count: int) -> list:
    return [{"id": f"ITEM_{i}"} for i in range(count)]


def test_extract_records_envelopes():
    assert extract_records({"elements": [{"id": "A"}]}) == [{"id": "A"}]
    assert extract_records({"items": [{"id": "B"}]}) == [{"id": "B"}]
    assert extract_records([{"id": "C"}]) == [{"id": "C"}]
    assert extract_records({"href": "x"}) == []
    assert extract_records(None) == []


@pytest.mark.asyncio
async def test_fetch_paged_stops_on_short_page(clover_mock):
    route = clover_mock.get(ITEMS_PATH).mock(side_effect=paged(_records(249)))
    pages = []

    async def handler(records):
        pages.append(len(records))

    async with make_client("tok") as client:
        total = await client.fetch_paged(ITEMS_PATH, handler, limit=100)

    assert total == 249
    assert pages == [100, 100, 49]
    assert route.call_count == 3


@pytest.mark.asyncio
async def test_fetch_paged_one_short_of_full_pages(clover_mock):
    route = clover_mock.get(ITEMS_PATH).mock(side_effect=paged(_records(199)))
    pages = []

    async def handler(records):
        pages.append(len(records))

    async with make_client("tok") as client:
        total = await client.fetch_paged(ITEMS_PATH, handler, limit=100)

    assert total == 199
    assert pages == [100, 99]
    assert route.call_count == 2


@pytest.mark.asyncio
async def test_fetch_paged_exact_multiple_needs_trailing_empty_page(clover_mock):
    route = clover_mock.get(ITEMS_PATH).mock(side_effect=paged(_records(200), envelope="items"))
    pages = []

    async def handler(records):
        pages.append(len(records))

    async with make_client("tok") as client:
        total = await client.fetch_paged(ITEMS_PATH, handler, limit=100)

    assert total == 200
    assert pages == [100, 100]
    assert route.call_count == 3
    offsets = [call.request.url.params["offset"] for call in route.calls]
    assert offsets == ["0", "100", "200"]


@pytest.mark.asyncio
async def test_fetch_paged_handles_bare_array(clover_mock):
    clover_mock.get(ITEMS_PATH).mock(side_effect=paged(_records(3), envelope="bare"))
    seen = []

    async def handler(records):
        seen.extend(r["id"] for r in records)

    async with make_client("tok") as client:
        await client.fetch_paged(ITEMS_PATH, handler, limit=2)

    assert seen == ["ITEM_0", "ITEM_1", "ITEM_2"]


@pytest.mark.asyncio
async def test_request_carries_bearer_token_and_params(clover_mock):
    route = clover_mock.get(ITEMS_PATH).mock(return_value=httpx.Response(200, json={"elements": []}))

    async with make_client("  secret  ") as client:
        page = await client.fetch_page(ITEMS_PATH, limit=50, params={"expand": "categories"})

    assert page.records == []
    assert page.more_available is False
    request = route.calls.last.request
    assert request.headers["Authorization"] == "Bearer secret"
    assert request.url.params["expand"] == "categories"
    assert request.url.params["limit"] == "50"


@pytest.mark.asyncio
async def test_fetch_page_rejects_non_positive_limit():
    async with make_client("tok") as client:
        with pytest.raises(ValueError):
            await client.fetch_page(ITEMS_PATH, limit=-1)
        with pytest.raises(ValueError):
            await client.fetch_page(ITEMS_PATH, limit=0)


@pytest.mark.asyncio
async def test_zero_page_size_is_rejected_not_defaulted(clover_mock):
    route = clover_mock.get(ITEMS_PATH).mock(side_effect=paged(_records(3)))

    async def handler(records):
        pass

    client = CloverAPIClient("tok", base_url=CLOVER_BASE_URL, page_size=0, pagination_delay=0)
    async with client:
        with pytest.raises(ValueError):
            await client.fetch_paged(ITEMS_PATH, handler)

    assert not route.called


@pytest.mark.asyncio
async def test_rate_limit_is_retried(clover_mock):
    route = clover_mock.get(ITEMS_PATH).mock(
        side_effect=[
            httpx.Response(429, json={"message": "slow down"}),
            httpx.Response(503),
            httpx.Response(200, json={"elements": [{"id": "A"}]}),
        ]
    )

    async with make_client("tok") as client:
        page = await client.fetch_page(ITEMS_PATH, limit=10)

    assert [r["id"] for r in page.records] == ["A"]
    assert route.call_count == 3


@pytest.mark.asyncio
async def test_server_errors_exhaust_retries(clover_mock):
    route = clover_mock.get(ITEMS_PATH).mock(return_value=httpx.Response(500, text="boom"))

    async with make_client("tok") as client:
        with pytest.raises(CloverAPIError) as exc_info:
            await client.fetch_page(ITEMS_PATH, limit=10)

    assert exc_info.value.status_code == 500
    assert exc_info.value.body == "boom"
    assert route.call_count == 3


@pytest.mark.asyncio
async def test_client_errors_are_not_retried(clover_mock):
    route = clover_mock.get(ITEMS_PATH).mock(return_value=httpx.Response(401, json={"message": "Unauthorized"}))

    async with make_client("tok") as client:
        with pytest.raises(CloverAPIError) as exc_info:
            await client.fetch_page(ITEMS_PATH, limit=10)

    assert exc_info.value.status_code == 401
    assert exc_info.value.is_auth_error
    assert route.call_count == 1


@pytest.mark.asyncio
async def test_network_failure_becomes_api_error(clover_mock):
    clover_mock.get(ITEMS_PATH).mock(side_effect=httpx.ConnectError("refused"))

    async with make_client("tok") as client:
        with pytest.raises(CloverAPIError) as exc_info:
            await client.get(ITEMS_PATH)

    assert exc_info.value.status_code == 0
    assert not exc_info.value.is_auth_error


def test_base_url_override():
    client = CloverAPIClient("tok", base_url=f"{CLOVER_BASE_URL}/")
    assert client.base_url == CLOVER_BASE_URL
