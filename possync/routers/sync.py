"""
FastAPI router for triggering Clover syncs per merchant and inspecting sync readiness.
Maps sync configuration errors to 4xx and mid-sync faults to 5xx with the partial report.
"""

from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from possync.config import settings
from possync.db.models import TOMBSTONE_STATUS, Category, InventoryLevel, Merchant, Order, Product
from possync.db.session import get_session_factory
from possync.sync.catalog import CatalogSyncService
from possync.sync.common import ClientFactory, default_client_factory
from possync.sync.credentials import check_token_status
from possync.sync.errors import (
    CloverTokenExpiredError,
    MerchantInactiveError,
    MerchantNotFoundError,
    SyncConfigurationError,
    SyncInProgressError,
)
from possync.sync.orders import OrderSyncService
from possync.sync.report import FullSyncReport, OrderSyncReport
from possync.utils.single_flight import MerchantSyncGuard, sync_guard

logger = structlog.get_logger()

router = APIRouter(prefix="/api/merchants", tags=["sync"])


class SyncStatusResponse(BaseModel):
    """Response model for sync readiness of one merchant."""

    merchant_id: str
    clover_merchant_id: Optional[str] = None
    active: bool
    sync_enabled: bool
    sync_running: bool
    token_status: str  # valid, missing, expired, error
    token_error: Optional[str] = None
    categories: int = 0
    products: int = 0
    inventory: int = 0
    orders: int = 0


def get_sync_enabled() -> bool:
    return settings.clover_sync_enabled


def get_client_factory() -> ClientFactory:
    return default_client_factory


def get_sync_guard() -> MerchantSyncGuard:
    return sync_guard


def _configuration_error_status(error: SyncConfigurationError) -> int:
    if isinstance(error, MerchantNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, MerchantInactiveError):
        return status.HTTP_403_FORBIDDEN
    if isinstance(error, CloverTokenExpiredError):
        return status.HTTP_401_UNAUTHORIZED
    # Not mapped, token missing, token unreadable
    return status.HTTP_400_BAD_REQUEST


def _report_response(report: FullSyncReport | OrderSyncReport):
    if report.success:
        return report
    status_code = (
        status.HTTP_401_UNAUTHORIZED if report.auth_failed else status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    return JSONResponse(status_code=status_code, content=report.model_dump())


@router.post("/{merchant_id}/sync/full", response_model=FullSyncReport)
async def run_full_sync(
    merchant_id: UUID,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    client_factory: ClientFactory = Depends(get_client_factory),
    guard: MerchantSyncGuard = Depends(get_sync_guard),
    enabled: bool = Depends(get_sync_enabled),
):
    """Sync categories, products and inventory from Clover for one merchant."""
    service = CatalogSyncService(session_factory, client_factory=client_factory)
    try:
        async with guard.hold(merchant_id):
            report = await service.perform_full_sync(merchant_id, enabled=enabled)
    except SyncInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except SyncConfigurationError as e:
        logger.warning("Full sync rejected", merchant_id=str(merchant_id), error=str(e))
        raise HTTPException(status_code=_configuration_error_status(e), detail=str(e)) from e
    except Exception as e:
        logger.exception("Full sync failed", merchant_id=str(merchant_id), error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Full sync failed: {e}",
        ) from e
    return _report_response(report)


@router.post("/{merchant_id}/sync/orders", response_model=OrderSyncReport)
async def run_order_sync(
    merchant_id: UUID,
    prune: bool = Query(False, description="Tombstone local orders no longer in Clover"),
    limit: Optional[int] = Query(None, gt=0, le=1000, description="Page size"),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    client_factory: ClientFactory = Depends(get_client_factory),
    guard: MerchantSyncGuard = Depends(get_sync_guard),
    enabled: bool = Depends(get_sync_enabled),
):
    """Sync Clover orders for one merchant, optionally pruning orders Clover no longer has."""
    service = OrderSyncService(session_factory, client_factory=client_factory)
    try:
        async with guard.hold(merchant_id):
            report = await service.sync_orders(merchant_id, enabled=enabled, prune=prune, limit=limit)
    except SyncInProgressError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except SyncConfigurationError as e:
        logger.warning("Order sync rejected", merchant_id=str(merchant_id), error=str(e))
        raise HTTPException(status_code=_configuration_error_status(e), detail=str(e)) from e
    except Exception as e:
        logger.exception("Order sync failed", merchant_id=str(merchant_id), error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Order sync failed: {e}",
        ) from e
    return _report_response(report)


@router.get("/{merchant_id}/sync/status", response_model=SyncStatusResponse)
async def get_sync_status(
    merchant_id: UUID,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    guard: MerchantSyncGuard = Depends(get_sync_guard),
    enabled: bool = Depends(get_sync_enabled),
):
    """Whether a merchant can be synced, plus local row counts."""
    async with session_factory() as session:
        merchant = await session.get(Merchant, merchant_id)
        if merchant is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Merchant not found: {merchant_id}",
            )
        counts = {}
        for name, model, extra in (
            ("categories", Category, None),
            ("products", Product, None),
            ("inventory", InventoryLevel, None),
            ("orders", Order, Order.status != TOMBSTONE_STATUS),
        ):
            query = select(func.count()).select_from(model).where(model.merchant_id == merchant_id)
            if extra is not None:
                query = query.where(extra)
            counts[name] = await session.scalar(query) or 0
        clover_merchant_id = merchant.clover_merchant_id
        active = merchant.active

    token_status, token_error = await check_token_status(session_factory, merchant_id)
    return SyncStatusResponse(
        merchant_id=str(merchant_id),
        clover_merchant_id=clover_merchant_id,
        active=active,
        sync_enabled=enabled,
        sync_running=guard.is_running(merchant_id),
        token_status=token_status,
        token_error=token_error,
        **counts,
    )
