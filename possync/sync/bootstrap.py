"""
Merchant bootstrap: link a local merchant to a Clover account and store its credential.
This is an explicit onboarding step; sync runs never create merchants.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from possync.db.models import CloverToken, Merchant
from possync.integrations.clover.models import CloverMerchant
from possync.integrations.clover.token_encryption import encrypt_token
from possync.sync.common import ClientFactory, default_client_factory

logger = structlog.get_logger()


@dataclass(frozen=True)
class ProvisionedMerchant:
    merchant_id: UUID
    clover_merchant_id: str
    business_name: str
    created: bool


async def fetch_business_name(
    clover_merchant_id: str,
    access_token: str,
    client_factory: Optional[ClientFactory] = None,
) -> str:
    """Display name from GET /v3/merchants/{mId}, falling back to the Clover id."""
    client_factory = client_factory or default_client_factory
    async with client_factory(access_token) as client:
        profile = await client.get_merchant(clover_merchant_id)
    merchant = CloverMerchant.model_validate({"id": clover_merchant_id, **profile})
    return (merchant.name or "").strip() or f"Clover merchant {clover_merchant_id}"


async def provision_merchant(
    session_factory: async_sessionmaker[AsyncSession],
    clover_merchant_id: str,
    access_token: str,
    *,
    business_name: Optional[str] = None,
    refresh_token: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    scope: Optional[str] = None,
    client_factory: Optional[ClientFactory] = None,
) -> ProvisionedMerchant:
    """
    Create or refresh the merchant mapped to clover_merchant_id and store its token.

    When business_name is not given it is fetched from Clover, which also proves the
    token works. Tokens are encrypted at rest when an encryption key is configured.

    Raises:
        ValueError: empty Clover merchant id or access token.
        CloverAPIError: the merchant profile could not be fetched.
    """
    clover_merchant_id = (clover_merchant_id or "").strip()
    access_token = (access_token or "").strip()
    if not clover_merchant_id:
        raise ValueError("clover_merchant_id is required")
    if not access_token:
        raise ValueError("access_token is required")

    if not business_name:
        business_name = await fetch_business_name(clover_merchant_id, access_token, client_factory)

    async with session_factory() as session:
        async with session.begin():
            merchant = await session.scalar(
                select(Merchant).where(Merchant.clover_merchant_id == clover_merchant_id)
            )
            created = merchant is None
            if created:
                merchant = Merchant(
                    clover_merchant_id=clover_merchant_id,
                    business_name=business_name,
                    active=True,
                )
                session.add(merchant)
                await session.flush()
            else:
                merchant.business_name = business_name
                merchant.active = True

            token = await session.get(CloverToken, merchant.id)
            if token is None:
                token = CloverToken(merchant_id=merchant.id)
                session.add(token)
            token.access_token = encrypt_token(access_token)
            token.refresh_token = encrypt_token(refresh_token)
            token.token_type = "bearer"
            token.scope = scope
            token.expires_at = expires_at

            result = ProvisionedMerchant(
                merchant_id=merchant.id,
                clover_merchant_id=clover_merchant_id,
                business_name=business_name,
                created=created,
            )

    logger.info(
        "Created Clover merchant" if created else "Updated Clover merchant",
        merchant_id=str(result.merchant_id),
        clover_merchant_id=clover_merchant_id,
    )
    return result
