"""
Resolve the per-merchant preconditions of a sync run: the merchant row,
its Clover merchant ID and a usable Clover access token.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from possync.db.models import CloverToken, Merchant
from possync.integrations.clover.token_encryption import decrypt_token
from possync.sync.errors import (
    CloverMerchantNotMappedError,
    CloverTokenExpiredError,
    CloverTokenMissingError,
    MerchantInactiveError,
    MerchantNotFoundError,
    SyncConfigurationError,
)

logger = structlog.get_logger()

TokenStatus = Literal["valid", "missing", "expired", "error"]


@dataclass(frozen=True)
class SyncContext:
    merchant_id: UUID
    clover_merchant_id: str
    access_token: str

    def __repr__(self) -> str:
        return f"SyncContext(merchant_id={self.merchant_id}, clover_merchant_id={self.clover_merchant_id})"


def _is_expired(expires_at: datetime | None) -> bool:
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        # SQLite drops tzinfo; values are written in UTC
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc) >= expires_at


async def get_merchant_clover_token(session: AsyncSession, merchant_id: UUID) -> str:
    """
    Return the decrypted access token for a merchant.

    Raises:
        CloverTokenMissingError: no token row (or an empty token).
        CloverTokenExpiredError: expires_at is in the past.
    """
    token = await session.get(CloverToken, merchant_id)
    if token is None or not (token.access_token or "").strip():
        raise CloverTokenMissingError(merchant_id)
    if _is_expired(token.expires_at):
        raise CloverTokenExpiredError(merchant_id)
    try:
        return decrypt_token(token.access_token.strip())
    except ValueError as e:
        raise SyncConfigurationError(str(e)) from e


async def load_sync_context(
    session_factory: async_sessionmaker[AsyncSession], merchant_id: UUID
) -> SyncContext:
    """
    Check every precondition of a sync run. No network call happens here.

    Raises:
        SyncConfigurationError subclasses, one per failed precondition.
    """
    async with session_factory() as session:
        merchant = await session.scalar(select(Merchant).where(Merchant.id == merchant_id))
        if merchant is None:
            raise MerchantNotFoundError(merchant_id)
        if not merchant.active:
            raise MerchantInactiveError(merchant_id)
        if not merchant.clover_merchant_id:
            raise CloverMerchantNotMappedError(merchant_id)
        access_token = await get_merchant_clover_token(session, merchant_id)

    return SyncContext(
        merchant_id=merchant_id,
        clover_merchant_id=merchant.clover_merchant_id,
        access_token=access_token,
    )


async def check_token_status(
    session_factory: async_sessionmaker[AsyncSession], merchant_id: UUID
) -> tuple[TokenStatus, str | None]:
    """Token health for status reporting: (status, error message or None)."""
    try:
        async with session_factory() as session:
            await get_merchant_clover_token(session, merchant_id)
    except CloverTokenMissingError:
        return "missing", None
    except CloverTokenExpiredError:
        return "expired", None
    except SyncConfigurationError as e:
        logger.warning("Clover token check failed", merchant_id=str(merchant_id), error=str(e))
        return "error", str(e)
    return "valid", None
