"""
Clover polling sync worker.
Every N seconds runs a full catalog sync followed by an order sync for each active,
Clover-mapped merchant. Merchants whose sync is already running are skipped.
"""

import asyncio
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from possync.config import settings
from possync.db.models import Merchant
from possync.db.session import get_session_factory, init_models
from possync.sync.catalog import CatalogSyncService
from possync.sync.common import ClientFactory
from possync.sync.errors import SyncConfigurationError, SyncInProgressError
from possync.sync.orders import OrderSyncService
from possync.utils.single_flight import MerchantSyncGuard, sync_guard

logger = structlog.get_logger()


class CloverSyncWorker:
    """Polls Clover for every active merchant on a fixed interval."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        client_factory: Optional[ClientFactory] = None,
        guard: Optional[MerchantSyncGuard] = None,
    ) -> None:
        self.session_factory = session_factory or get_session_factory()
        self.catalog = CatalogSyncService(self.session_factory, client_factory=client_factory)
        self.orders = OrderSyncService(self.session_factory, client_factory=client_factory)
        self.guard = guard or sync_guard
        self.running = False

    async def start(self) -> None:
        self.running = True
        logger.info(
            "Clover sync worker started",
            poll_interval_seconds=settings.clover_sync_interval_seconds,
        )

        while self.running:
            try:
                if settings.clover_sync_enabled:
                    await self.poll_all_merchants()
            except Exception as e:
                logger.error("Error in Clover sync worker", error=str(e), exc_info=True)

            await asyncio.sleep(settings.clover_sync_interval_seconds)

    async def stop(self) -> None:
        self.running = False
        logger.info("Clover sync worker stopped")

    async def list_merchant_ids(self) -> list[UUID]:
        async with self.session_factory() as session:
            rows = await session.scalars(
                select(Merchant.id).where(
                    Merchant.active.is_(True),
                    Merchant.clover_merchant_id.is_not(None),
                )
            )
            return list(rows)

    async def sync_merchant(self, merchant_id: UUID) -> None:
        """Full sync, then orders; orders are skipped when the catalog run could not reach Clover."""
        async with self.guard.hold(merchant_id):
            full = await self.catalog.perform_full_sync(
                merchant_id, enabled=settings.clover_sync_enabled
            )
            if not full.success:
                logger.warning(
                    "Clover catalog sync failed; skipping orders",
                    merchant_id=str(merchant_id),
                    error=full.error,
                    auth_failed=full.auth_failed,
                )
                return
            orders = await self.orders.sync_orders(
                merchant_id,
                enabled=settings.clover_sync_enabled,
                prune=settings.clover_orders_prune,
            )
            logger.info(
                "Clover sync completed",
                merchant_id=str(merchant_id),
                categories=full.categories.processed,
                products=full.products.processed,
                inventory=full.inventory.processed,
                record_errors=full.has_record_errors,
                orders=orders.processed,
                marked_for_delete=orders.marked_for_delete,
            )

    async def poll_all_merchants(self) -> None:
        for merchant_id in await self.list_merchant_ids():
            try:
                await self.sync_merchant(merchant_id)
            except SyncInProgressError:
                logger.info("Clover sync already running; skipping merchant", merchant_id=str(merchant_id))
            except SyncConfigurationError as e:
                logger.warning(
                    "Clover merchant not ready for sync",
                    merchant_id=str(merchant_id),
                    error=str(e),
                )
            except Exception as e:
                logger.error(
                    "Failed to sync Clover merchant",
                    merchant_id=str(merchant_id),
                    error=str(e),
                    exc_info=True,
                )


async def run_clover_sync_worker() -> None:
    """Entry point: run the Clover sync worker loop."""
    await init_models()
    worker = CloverSyncWorker()
    try:
        await worker.start()
    except asyncio.CancelledError:
        await worker.stop()
