"""
Entity upsert mappers: one Clover record -> one local row, keyed on (merchant_id, Clover id).

Each mapper runs inside the caller's transaction (page or order scoped) and flushes
before returning, so constraint violations surface at the record that caused them.
Re-running a mapper with identical input leaves observable state unchanged.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from possync.config import settings
from possync.db.models import (
    Category,
    InventoryLevel,
    InventorySource,
    Order,
    OrderLineItem,
    Product,
)
from possync.integrations.clover.transformer import CloverTransformer

logger = structlog.get_logger()

# Local-only values that a blank incoming value must not overwrite
PRESERVED_PRODUCT_FIELDS = ("sku", "upc", "description", "brand")


def _same(current: Any, value: Any) -> bool:
    if isinstance(current, datetime) and isinstance(value, datetime):
        # SQLite hands back naive datetimes; stored values are UTC
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
    return current == value


def _apply(row: Any, fields: dict[str, Any]) -> None:
    # The ORM only issues an UPDATE for attributes whose value actually changed
    for key, value in fields.items():
        if not _same(getattr(row, key), value):
            setattr(row, key, value)


async def resolve_category_id(
    session: AsyncSession, merchant_id: UUID, clover_category_id: str | None
) -> UUID | None:
    if not clover_category_id:
        return None
    return await session.scalar(
        select(Category.id).where(
            Category.merchant_id == merchant_id,
            Category.clover_id == clover_category_id,
        )
    )


async def resolve_product_id(
    session: AsyncSession, merchant_id: UUID, clover_item_id: str | None
) -> UUID | None:
    if not clover_item_id:
        return None
    return await session.scalar(
        select(Product.id).where(
            Product.merchant_id == merchant_id,
            Product.clover_id == clover_item_id,
        )
    )


async def upsert_category(session: AsyncSession, merchant_id: UUID, record: dict[str, Any]) -> bool:
    """
    Insert or update one category.

    Returns:
        True when a new row was inserted.
    """
    fields = CloverTransformer.category_fields(record)
    category = await session.scalar(
        select(Category).where(
            Category.merchant_id == merchant_id,
            Category.clover_id == fields["clover_id"],
        )
    )
    created = category is None
    if created:
        category = Category(merchant_id=merchant_id, **fields)
        session.add(category)
    else:
        _apply(category, fields)
    await session.flush()
    return created


async def upsert_product(session: AsyncSession, merchant_id: UUID, record: dict[str, Any]) -> bool:
    """
    Insert or update one product from a Clover item.

    A blank incoming SKU/UPC/description/brand keeps the locally stored value.
    An unknown category reference leaves category_id NULL.

    Returns:
        True when a new row was inserted.
    """
    fields, clover_category_id = CloverTransformer.product_fields(record)
    fields["category_id"] = await resolve_category_id(session, merchant_id, clover_category_id)
    if clover_category_id and fields["category_id"] is None:
        logger.warning(
            "Category not found for product; leaving category unset",
            merchant_id=str(merchant_id),
            clover_id=fields["clover_id"],
            clover_category_id=clover_category_id,
        )

    product = await session.scalar(
        select(Product).where(
            Product.merchant_id == merchant_id,
            Product.clover_id == fields["clover_id"],
        )
    )
    created = product is None
    if created:
        product = Product(merchant_id=merchant_id, **fields)
        session.add(product)
    else:
        for key in PRESERVED_PRODUCT_FIELDS:
            if fields[key] is None:
                fields.pop(key)
        _apply(product, fields)
    await session.flush()
    return created


async def upsert_inventory_level(
    session: AsyncSession, merchant_id: UUID, record: dict[str, Any]
) -> bool | None:
    """
    Insert or update the stock level of one product from a Clover item_stock.
    reserved and reorder_level are local-only and never overwritten.

    Returns:
        True when inserted, False when updated, None when the product is unknown locally (skipped).
    """
    fields = CloverTransformer.stock_fields(record)
    product_id = await resolve_product_id(session, merchant_id, fields["clover_item_id"])
    if product_id is None:
        logger.warning(
            "Product not found for inventory item",
            merchant_id=str(merchant_id),
            clover_item_id=fields["clover_item_id"],
        )
        return None

    level = await session.get(InventoryLevel, product_id)
    created = level is None
    if created:
        level = InventoryLevel(
            product_id=product_id,
            merchant_id=merchant_id,
            reserved=0,
            reorder_level=settings.default_reorder_level,
            sync_source=InventorySource.SYNC.value,
            **fields,
        )
        session.add(level)
    else:
        if any(not _same(getattr(level, key), value) for key, value in fields.items()):
            _apply(level, fields)
            level.sync_source = InventorySource.SYNC.value
    await session.flush()
    return created


async def upsert_order(session: AsyncSession, merchant_id: UUID, record: dict[str, Any]) -> bool:
    """
    Insert or update one order and fully replace its line items.

    completed_at is set the first time the order is seen as paid and never cleared.

    Returns:
        True when a new order row was inserted.
    """
    fields, line_items = CloverTransformer.order_fields(record)
    paid_now = CloverTransformer.is_paid(record)

    order = await session.scalar(
        select(Order).where(
            Order.merchant_id == merchant_id,
            Order.clover_order_id == fields["clover_order_id"],
        )
    )
    created = order is None
    if created:
        order = Order(
            merchant_id=merchant_id,
            source="clover",
            completed_at=datetime.now(timezone.utc) if paid_now else None,
            **fields,
        )
        session.add(order)
    else:
        _apply(order, fields)
        if paid_now and order.completed_at is None:
            order.completed_at = datetime.now(timezone.utc)
    await session.flush()

    await session.execute(delete(OrderLineItem).where(OrderLineItem.order_id == order.id))
    for position, line_item in enumerate(line_items):
        product_id = await resolve_product_id(session, merchant_id, line_item["clover_item_id"])
        session.add(
            OrderLineItem(
                order_id=order.id,
                product_id=product_id,
                position=position,
                **line_item,
            )
        )
    await session.flush()
    return created
