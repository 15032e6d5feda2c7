"""
Pydantic models for the Clover REST collections consumed by sync:
categories, items, item_stocks and orders (with expanded line items).
Money is always integer cents.
"""

from typing import Any

from pydantic import BaseModel


class CloverRef(BaseModel):
    """Reference to another Clover object, e.g. {"id": "ITEM123"}."""

    id: str | None = None

    class Config:
        extra = "allow"


class CloverRefList(BaseModel):
    """Expanded reference collection: {"elements": [...]}."""

    elements: list[CloverRef] = []

    class Config:
        extra = "allow"


class CloverCategory(BaseModel):
    """Clover category from GET /v3/merchants/{mId}/categories."""

    id: str
    name: str | None = None
    sortOrder: int | None = None
    deleted: bool | None = None
    createdTime: int | None = None  # Unix time in milliseconds
    modifiedTime: int | None = None

    class Config:
        extra = "allow"


class CloverItem(BaseModel):
    """
    Clover inventory item from GET /v3/merchants/{mId}/items.
    Price is in cents (integer). code carries the UPC/EAN barcode.
    """

    id: str
    name: str | None = None
    alternateName: str | None = None
    price: int | None = None  # Cents
    sku: str | None = None
    code: str | None = None
    hidden: bool | None = None
    deleted: bool | None = None
    categories: CloverRefList | None = None
    createdTime: int | None = None
    modifiedTime: int | None = None

    class Config:
        extra = "allow"


class CloverItemStock(BaseModel):
    """Clover stock level from GET /v3/merchants/{mId}/item_stocks."""

    item: CloverRef
    quantity: float | None = None
    stockCount: int | None = None
    modifiedTime: int | None = None

    class Config:
        extra = "allow"


class CloverLineItem(BaseModel):
    """Line item of an order (orders are requested with expand=lineItems)."""

    id: str | None = None
    name: str | None = None
    price: int | None = None  # Cents per unit
    quantity: int | None = None
    item: CloverRef | None = None
    alternateName: str | None = None
    itemCode: str | None = None

    class Config:
        extra = "allow"


class CloverLineItemList(BaseModel):
    elements: list[CloverLineItem] = []

    class Config:
        extra = "allow"


class CloverOrder(BaseModel):
    """Clover order from GET /v3/merchants/{mId}/orders?expand=lineItems."""

    id: str
    externalId: str | None = None
    state: str | None = None
    paymentState: str | None = None
    total: int | None = None  # Cents, authoritative
    currency: str | None = None
    lineItems: CloverLineItemList | None = None
    createdTime: int | None = None
    modifiedTime: int | None = None

    class Config:
        extra = "allow"


class CloverMerchant(BaseModel):
    """Clover merchant from GET /v3/merchants/{mId} (used when provisioning)."""

    id: str
    name: str | None = None

    class Config:
        extra = "allow"


class CloverPage(BaseModel):
    """One page of a paginated collection, envelope already stripped."""

    records: list[dict[str, Any]]
    more_available: bool
