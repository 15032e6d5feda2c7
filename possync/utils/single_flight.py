"""
Per-merchant single-flight guard.
At most one sync runs per merchant in this process; a second request is rejected, not queued.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Set
from uuid import UUID

import structlog

from possync.sync.errors import SyncInProgressError

logger = structlog.get_logger()


class MerchantSyncGuard:
    def __init__(self) -> None:
        self._running: Set[UUID] = set()

    def is_running(self, merchant_id: UUID) -> bool:
        return merchant_id in self._running

    @asynccontextmanager
    async def hold(self, merchant_id: UUID) -> AsyncIterator[None]:
        """
        Claim the merchant for the duration of the block.

        Raises:
            SyncInProgressError: another holder is active for this merchant.
        """
        # Check-and-claim has no await in between, so it is atomic on the event loop
        if merchant_id in self._running:
            logger.warning("Sync already running for merchant", merchant_id=str(merchant_id))
            raise SyncInProgressError(merchant_id)
        self._running.add(merchant_id)
        try:
            yield
        finally:
            self._running.discard(merchant_id)


# Shared by the HTTP layer and the in-process worker
sync_guard = MerchantSyncGuard()
