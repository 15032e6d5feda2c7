import httpx
import pytest

from possync.utils.retry import PermanentError, TransientError, is_transient_error, retry_with_backoff


def _status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://clover.test/v3/merchants/MID/items")
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(f"HTTP {status_code}", request=request, response=response)


@pytest.mark.parametrize("status_code", [408, 429, 500, 502, 503])
def test_retryable_statuses_are_transient(status_code):
    assert is_transient_error(_status_error(status_code))


@pytest.mark.parametrize("status_code", [400, 401, 403, 404, 422])
def test_other_client_errors_are_permanent(status_code):
    assert not is_transient_error(_status_error(status_code))


def test_network_errors_are_transient():
    assert is_transient_error(httpx.ConnectError("refused"))
    assert is_transient_error(httpx.ReadTimeout("slow"))
    assert not is_transient_error(ValueError("bad"))


def test_sync_function_retries_until_success():
    calls = []

    @retry_with_backoff(max_attempts=3, initial_delay=0)
    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise _status_error(503)
        return "ok"

    assert flaky() == "ok"
    assert len(calls) == 3


def test_permanent_error_is_not_retried_and_keeps_cause():
    calls = []

    @retry_with_backoff(max_attempts=3, initial_delay=0)
    def rejected():
        calls.append(1)
        raise _status_error(404)

    with pytest.raises(PermanentError) as exc_info:
        rejected()

    assert len(calls) == 1
    assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)


@pytest.mark.asyncio
async def test_async_function_gives_up_after_max_attempts():
    calls = []

    @retry_with_backoff(max_attempts=2, initial_delay=0)
    async def always_down():
        calls.append(1)
        raise httpx.ConnectError("refused")

    with pytest.raises(TransientError):
        await always_down()

    assert len(calls) == 2
