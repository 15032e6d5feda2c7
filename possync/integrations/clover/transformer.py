"""
Clover data transformation: raw Clover records -> local column values.
Money stays in integer cents end to end; nothing here does float arithmetic on amounts.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import structlog

from possync.integrations.clover.models import (
    CloverCategory,
    CloverItem,
    CloverItemStock,
    CloverLineItem,
    CloverOrder,
)

logger = structlog.get_logger()

PAID_PAYMENT_STATE = "PAID"


def parse_clover_timestamp(value: int | None) -> datetime | None:
    """Clover timestamps are Unix milliseconds."""
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class CloverTransformer:
    """Transform Clover records into field dicts for the local schema."""

    @staticmethod
    def category_fields(raw: dict[str, Any]) -> dict[str, Any]:
        category = CloverCategory.model_validate(raw)
        return {
            "clover_id": category.id,
            "name": blank_to_none(category.name) or "Unnamed Category",
            "sort_order": category.sortOrder or 0,
            "active": not category.deleted,
            "clover_created_at": parse_clover_timestamp(category.createdTime),
            "clover_modified_at": parse_clover_timestamp(category.modifiedTime),
        }

    @staticmethod
    def product_fields(raw: dict[str, Any]) -> tuple[dict[str, Any], str | None]:
        """
        Convert a Clover item to product columns.

        Returns:
            (fields, clover_category_id). The category reference is the first
            entry of item.categories and is resolved by the caller.
        """
        item = CloverItem.model_validate(raw)
        if item.price is not None and item.price < 0:
            raise ValueError(f"negative price {item.price}")
        clover_category_id = None
        if item.categories and item.categories.elements:
            clover_category_id = item.categories.elements[0].id
        fields = {
            "clover_id": item.id,
            "name": blank_to_none(item.name) or "Unnamed Product",
            "description": blank_to_none(item.alternateName),
            "brand": None,  # Clover items carry no brand
            "price_cents": item.price or 0,
            "sku": blank_to_none(item.sku),
            "upc": blank_to_none(item.code),
            "visible_in_kiosk": not item.hidden,
            "active": not item.deleted,
            "clover_created_at": parse_clover_timestamp(item.createdTime),
            "clover_modified_at": parse_clover_timestamp(item.modifiedTime),
        }
        return fields, clover_category_id

    @staticmethod
    def stock_fields(raw: dict[str, Any]) -> dict[str, Any]:
        """
        Convert a Clover item_stock to inventory columns.
        Fractional quantities are truncated; negative stock (oversold) is clamped to 0.
        """
        stock = CloverItemStock.model_validate(raw)
        if not stock.item.id:
            raise ValueError("item_stock has no item id")
        quantity = stock.quantity if stock.quantity is not None else stock.stockCount
        try:
            on_hand = int(Decimal(str(quantity or 0)))
        except InvalidOperation as e:
            raise ValueError(f"invalid quantity {quantity!r}") from e
        if on_hand < 0:
            logger.warning(
                "Negative Clover stock clamped to zero",
                clover_item_id=stock.item.id,
                quantity=quantity,
            )
            on_hand = 0
        return {
            "clover_item_id": stock.item.id,
            "on_hand": on_hand,
            "clover_modified_at": parse_clover_timestamp(stock.modifiedTime),
        }

    @staticmethod
    def line_item_fields(line_item: CloverLineItem) -> dict[str, Any]:
        quantity = line_item.quantity if line_item.quantity is not None else 1
        if quantity <= 0:
            raise ValueError(f"line item {line_item.id} has non-positive quantity {quantity}")
        unit_price_cents = line_item.price or 0
        extra = line_item.model_extra or {}
        variant = extra.get("modifications") or extra.get("variant") or {}
        discount_cents = 0  # Line discounts are not consumed
        return {
            "clover_line_item_id": line_item.id,
            "clover_item_id": line_item.item.id if line_item.item else None,
            "product_name": blank_to_none(line_item.name) or "Unnamed Item",
            "product_sku": blank_to_none(line_item.itemCode),
            "variant_info": json.dumps(variant, sort_keys=True),
            "quantity": quantity,
            "unit_price_cents": unit_price_cents,
            "discount_cents": discount_cents,
            "line_total_cents": quantity * unit_price_cents - discount_cents,
        }

    @staticmethod
    def order_fields(raw: dict[str, Any]) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        """
        Convert a Clover order to order columns plus line item rows.

        The remote total is authoritative. Subtotal is the sum of line totals,
        discount is 0 and tax absorbs the difference so that
        total == subtotal + tax - discount always holds.
        """
        order = CloverOrder.model_validate(raw)
        elements = order.lineItems.elements if order.lineItems else []
        line_items = [CloverTransformer.line_item_fields(li) for li in elements]

        # Line totals (quantity x unit price), not bare unit prices
        subtotal_cents = sum(li["line_total_cents"] for li in line_items)
        total_cents = order.total or 0
        discount_cents = 0
        tax_cents = total_cents - subtotal_cents + discount_cents

        fields = {
            "clover_order_id": order.id,
            "external_reference": blank_to_none(order.externalId) or order.id,
            "status": order.state or "open",
            "payment_state": order.paymentState,
            "currency": order.currency or "USD",
            "subtotal_cents": subtotal_cents,
            "tax_cents": tax_cents,
            "discount_cents": discount_cents,
            "total_cents": total_cents,
            "clover_created_at": parse_clover_timestamp(order.createdTime),
            "clover_modified_at": parse_clover_timestamp(order.modifiedTime),
        }
        return fields, line_items

    @staticmethod
    def is_paid(raw: dict[str, Any]) -> bool:
        return (raw.get("paymentState") or "").upper() == PAID_PAYMENT_STATE
