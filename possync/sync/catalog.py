"""
Category / product / inventory sync from Clover.

Phases run strictly in order (categories -> products -> inventory) because each one
resolves foreign keys against rows the previous phase wrote. Every fetched page is
written in its own transaction; every record inside it gets a savepoint, so one bad
record rolls back alone and the rest of the page still commits.
"""

import time
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from possync.integrations.clover.api_client import CloverAPIClient, CloverAPIError
from possync.sync.common import ClientFactory, default_client_factory, describe_error, record_key
from possync.sync.credentials import SyncContext, load_sync_context
from possync.sync.mappers import upsert_category, upsert_inventory_level, upsert_product
from possync.sync.report import FullSyncReport, PhaseReport, format_duration

logger = structlog.get_logger()

Upsert = Callable[[AsyncSession, UUID, Dict[str, Any]], Awaitable[Optional[bool]]]

CATEGORIES_PATH = "/v3/merchants/{clover_merchant_id}/categories"
ITEMS_PATH = "/v3/merchants/{clover_merchant_id}/items"
ITEM_STOCKS_PATH = "/v3/merchants/{clover_merchant_id}/item_stocks"


class CatalogSyncService:
    """Full catalog sync for one merchant at a time."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.session_factory = session_factory
        self.client_factory = client_factory or default_client_factory

    async def _write_page(
        self,
        merchant_id: UUID,
        records: List[Dict[str, Any]],
        upsert: Upsert,
        label: str,
        report: PhaseReport,
    ) -> None:
        """Upsert one page in a single transaction, isolating failures per record."""
        inserted = 0
        updated = 0
        skipped = 0
        errors: List[str] = []

        async with self.session_factory() as session:
            async with session.begin():
                for record in records:
                    key = record_key(record)
                    try:
                        async with session.begin_nested():
                            result = await upsert(session, merchant_id, record)
                    except Exception as e:
                        logger.exception(
                            "Error syncing Clover record",
                            merchant_id=str(merchant_id),
                            phase=label,
                            clover_id=key,
                            error=describe_error(e),
                        )
                        errors.append(f"{label} {key}: {describe_error(e)}")
                        continue
                    if result is None:
                        skipped += 1
                    elif result:
                        inserted += 1
                    else:
                        updated += 1

        # Counted only once the page transaction has committed
        report.inserted += inserted
        report.updated += updated
        report.processed += inserted + updated
        report.skipped += skipped
        for message in errors:
            report.add_error(message)

    async def _run_phase(
        self,
        client: CloverAPIClient,
        context: SyncContext,
        label: str,
        path: str,
        upsert: Upsert,
        params: Optional[Dict[str, Any]] = None,
    ) -> PhaseReport:
        report = PhaseReport()
        offset = 0

        async def handle_page(records: List[Dict[str, Any]]) -> None:
            nonlocal offset
            try:
                await self._write_page(context.merchant_id, records, upsert, label, report)
            except Exception as e:
                # Commit or connection failure: this page is lost, later pages still run
                logger.exception(
                    "Error writing Clover page",
                    merchant_id=str(context.merchant_id),
                    phase=label,
                    offset=offset,
                    error=describe_error(e),
                )
                report.add_error(f"{label} page at offset {offset}: {describe_error(e)}")
            offset += len(records)

        try:
            await client.fetch_paged(
                path.format(clover_merchant_id=context.clover_merchant_id),
                handle_page,
                params=params,
            )
        except CloverAPIError as e:
            logger.error(
                "Clover sync phase aborted",
                merchant_id=str(context.merchant_id),
                phase=label,
                status_code=e.status_code,
                error=str(e),
            )
            report.success = False
            report.error = str(e)
            report.status_code = e.status_code

        logger.info(
            "Clover sync phase finished",
            merchant_id=str(context.merchant_id),
            phase=label,
            success=report.success,
            processed=report.processed,
            inserted=report.inserted,
            skipped=report.skipped,
            errors=len(report.errors or []),
        )
        return report

    async def sync_categories(self, client: CloverAPIClient, context: SyncContext) -> PhaseReport:
        return await self._run_phase(client, context, "Category", CATEGORIES_PATH, upsert_category)

    async def sync_products(self, client: CloverAPIClient, context: SyncContext) -> PhaseReport:
        # Category references are only embedded when expanded
        return await self._run_phase(
            client, context, "Product", ITEMS_PATH, upsert_product, params={"expand": "categories"}
        )

    async def sync_inventory(self, client: CloverAPIClient, context: SyncContext) -> PhaseReport:
        return await self._run_phase(
            client, context, "Inventory", ITEM_STOCKS_PATH, upsert_inventory_level
        )

    async def perform_full_sync(self, merchant_id: UUID, *, enabled: bool) -> FullSyncReport:
        """
        Sync categories, products and inventory for one merchant.

        Args:
            merchant_id: Local merchant UUID.
            enabled: Deployment kill-switch; when False nothing is fetched.

        Returns:
            FullSyncReport. A phase that cannot reach Clover ends the run with
            success=False; per-record failures only land in the phase's errors.

        Raises:
            SyncConfigurationError: merchant, mapping or token problems (before any network call).
        """
        if not enabled:
            logger.info("Clover sync disabled; skipping full sync", merchant_id=str(merchant_id))
            return FullSyncReport.disabled()

        context = await load_sync_context(self.session_factory, merchant_id)
        started = time.monotonic()
        report = FullSyncReport()
        logger.info(
            "Starting full Clover sync",
            merchant_id=str(merchant_id),
            clover_merchant_id=context.clover_merchant_id,
        )

        phases = (
            ("categories", self.sync_categories),
            ("products", self.sync_products),
            ("inventory", self.sync_inventory),
        )
        async with self.client_factory(context.access_token) as client:
            for name, run_phase in phases:
                phase_report = await run_phase(client, context)
                setattr(report, name, phase_report)
                if not phase_report.success:
                    report.success = False
                    report.error = phase_report.error
                    report.auth_failed = phase_report.status_code in (401, 403)
                    break

        report.duration = format_duration(started, time.monotonic())
        logger.info(
            "Full Clover sync finished",
            merchant_id=str(merchant_id),
            success=report.success,
            categories=report.categories.processed,
            products=report.products.processed,
            inventory=report.inventory.processed,
            duration=report.duration,
        )
        return report
