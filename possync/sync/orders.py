"""
Clover order sync and reconciliation.

Every order is written in its own transaction (order row + full replacement of its
line items). After a complete sweep, local orders Clover no longer returned are
counted and, when pruning is requested, tombstoned. Rows are never deleted.
"""

import time
from typing import Any, Dict, List, Optional, Set
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from possync.db.models import TOMBSTONE_STATUS, Order
from possync.integrations.clover.api_client import CloverAPIError
from possync.sync.common import ClientFactory, default_client_factory, describe_error, record_key
from possync.sync.credentials import load_sync_context
from possync.sync.mappers import upsert_order
from possync.sync.report import OrderSyncReport, format_duration

logger = structlog.get_logger()

ORDERS_PATH = "/v3/merchants/{clover_merchant_id}/orders"
ORDERS_PARAMS = {"expand": "lineItems"}

# Bound on the size of one tombstoning UPDATE ... WHERE id IN (...)
PRUNE_CHUNK_SIZE = 500


class OrderSyncService:
    """Order sync for one merchant at a time."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.session_factory = session_factory
        self.client_factory = client_factory or default_client_factory

    async def _write_order(
        self, merchant_id: UUID, record: Dict[str, Any], report: OrderSyncReport
    ) -> None:
        key = record_key(record)
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    created = await upsert_order(session, merchant_id, record)
        except Exception as e:
            logger.exception(
                "Error syncing Clover order",
                merchant_id=str(merchant_id),
                clover_id=key,
                error=describe_error(e),
            )
            report.add_error(f"Order {key}: {describe_error(e)}")
            return
        if created:
            report.inserted += 1
        else:
            report.updated += 1

    async def _find_unmatched(self, merchant_id: UUID, seen: Set[str]) -> List[UUID]:
        """Local, non-tombstoned orders whose Clover id was not in this sweep."""
        async with self.session_factory() as session:
            rows = await session.execute(
                select(Order.id, Order.clover_order_id).where(
                    Order.merchant_id == merchant_id,
                    Order.clover_order_id.is_not(None),
                    Order.status != TOMBSTONE_STATUS,
                )
            )
            return [order_id for order_id, clover_order_id in rows if clover_order_id not in seen]

    async def _tombstone(self, order_ids: List[UUID]) -> int:
        marked = 0
        async with self.session_factory() as session:
            async with session.begin():
                for start in range(0, len(order_ids), PRUNE_CHUNK_SIZE):
                    chunk = order_ids[start:start + PRUNE_CHUNK_SIZE]
                    result = await session.execute(
                        update(Order)
                        .where(Order.id.in_(chunk), Order.status != TOMBSTONE_STATUS)
                        .values(status=TOMBSTONE_STATUS)
                        .execution_options(synchronize_session=False)
                    )
                    marked += result.rowcount
        return marked

    async def sync_orders(
        self,
        merchant_id: UUID,
        *,
        enabled: bool,
        prune: bool = False,
        limit: Optional[int] = None,
    ) -> OrderSyncReport:
        """
        Sync all Clover orders (with line items) for one merchant.

        Args:
            merchant_id: Local merchant UUID.
            enabled: Deployment kill-switch; when False nothing is fetched.
            prune: Tombstone local orders missing from Clover. Without it the
                missing orders are only counted (unmatched).
            limit: Page size override.

        Returns:
            OrderSyncReport. Reconciliation only runs after a complete sweep that
            returned at least one order; an aborted or empty sweep never tombstones.

        Raises:
            SyncConfigurationError: merchant, mapping or token problems (before any network call).
        """
        if not enabled:
            logger.info("Clover sync disabled; skipping order sync", merchant_id=str(merchant_id))
            return OrderSyncReport.disabled()

        context = await load_sync_context(self.session_factory, merchant_id)
        started = time.monotonic()
        report = OrderSyncReport()
        seen: Set[str] = set()
        logger.info(
            "Starting Clover order sync",
            merchant_id=str(merchant_id),
            clover_merchant_id=context.clover_merchant_id,
            prune=prune,
        )

        async def handle_page(records: List[Dict[str, Any]]) -> None:
            for record in records:
                report.processed += 1
                if isinstance(record, dict) and record.get("id"):
                    # Recorded before the write so a failed order is never pruned
                    seen.add(str(record["id"]))
                await self._write_order(merchant_id, record, report)

        sweep_complete = False
        async with self.client_factory(context.access_token) as client:
            try:
                await client.fetch_paged(
                    ORDERS_PATH.format(clover_merchant_id=context.clover_merchant_id),
                    handle_page,
                    limit=limit,
                    params=ORDERS_PARAMS,
                )
                sweep_complete = True
            except CloverAPIError as e:
                logger.error(
                    "Clover order sync aborted",
                    merchant_id=str(merchant_id),
                    status_code=e.status_code,
                    error=str(e),
                )
                report.success = False
                report.error = str(e)
                report.auth_failed = e.is_auth_error

        if sweep_complete and seen:
            unmatched = await self._find_unmatched(merchant_id, seen)
            report.unmatched = len(unmatched)
            if prune and unmatched:
                report.marked_for_delete = await self._tombstone(unmatched)
                logger.info(
                    "Tombstoned orders missing from Clover",
                    merchant_id=str(merchant_id),
                    marked_for_delete=report.marked_for_delete,
                )
        elif sweep_complete:
            logger.info(
                "Clover returned no orders; skipping reconciliation",
                merchant_id=str(merchant_id),
            )

        report.duration = format_duration(started, time.monotonic())
        logger.info(
            "Clover order sync finished",
            merchant_id=str(merchant_id),
            success=report.success,
            processed=report.processed,
            inserted=report.inserted,
            updated=report.updated,
            unmatched=report.unmatched,
            marked_for_delete=report.marked_for_delete,
            errors=len(report.errors or []),
            duration=report.duration,
        )
        return report
