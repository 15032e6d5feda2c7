import asyncio
import uuid

import pytest

from possync.sync.errors import SyncInProgressError
from possync.utils.single_flight import MerchantSyncGuard


@pytest.mark.asyncio
async def test_second_holder_for_same_merchant_is_rejected():
    guard = MerchantSyncGuard()
    merchant_id = uuid.uuid4()

    async with guard.hold(merchant_id):
        assert guard.is_running(merchant_id)
        with pytest.raises(SyncInProgressError):
            async with guard.hold(merchant_id):
                pass

    assert not guard.is_running(merchant_id)


@pytest.mark.asyncio
async def test_released_after_failure():
    guard = MerchantSyncGuard()
    merchant_id = uuid.uuid4()

    with pytest.raises(RuntimeError):
        async with guard.hold(merchant_id):
            raise RuntimeError("sync blew up")

    async with guard.hold(merchant_id):
        pass


@pytest.mark.asyncio
async def test_different_merchants_run_concurrently():
    guard = MerchantSyncGuard()

    async def run(merchant_id):
        async with guard.hold(merchant_id):
            await asyncio.sleep(0.01)
            return merchant_id

    first, second = uuid.uuid4(), uuid.uuid4()
    results = await asyncio.gather(run(first), run(second))

    assert results == [first, second]
