"""
SQLAlchemy models for the local POS store.
Every row is scoped to one merchant; money columns are integer cents.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# Local lifecycle status for orders that disappeared upstream.
# Clover order states are upper/lower-case words like "open", "locked", "PAID"; none is "delete".
TOMBSTONE_STATUS = "delete"


class Base(DeclarativeBase):
    pass


class StockStatus(str, enum.Enum):
    OUT_OF_STOCK = "OUT_OF_STOCK"
    LOW_STOCK = "LOW_STOCK"
    IN_STOCK = "IN_STOCK"


class InventorySource(str, enum.Enum):
    MANUAL = "manual"
    SYNC = "sync"
    WEBHOOK = "webhook"
    ADJUSTMENT = "adjustment"


def stock_status(on_hand: int, reorder_level: int) -> StockStatus:
    """Derive stock status; the boundary on_hand == reorder_level counts as low."""
    if on_hand <= 0:
        return StockStatus.OUT_OF_STOCK
    if on_hand <= reorder_level:
        return StockStatus.LOW_STOCK
    return StockStatus.IN_STOCK


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class Merchant(TimestampMixin, Base):
    __tablename__ = "merchants"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # Nullable until the tenant is linked to a Clover account
    clover_merchant_id: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    business_name: Mapped[str] = mapped_column(String(255))
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    clover_token: Mapped[Optional["CloverToken"]] = relationship(
        back_populates="merchant", cascade="all, delete-orphan", uselist=False
    )


class CloverToken(Base):
    """Per-merchant Clover OAuth credential. Tokens may be Fernet-encrypted at rest."""

    __tablename__ = "clover_tokens"

    merchant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("merchants.id", ondelete="CASCADE"), primary_key=True
    )
    access_token: Mapped[str] = mapped_column(Text)
    refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    token_type: Mapped[str] = mapped_column(String(32), default="bearer")
    scope: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    merchant: Mapped[Merchant] = relationship(back_populates="clover_token")


class Category(TimestampMixin, Base):
    __tablename__ = "categories"
    __table_args__ = (
        # NULL clover_id (manually created categories) never conflicts
        UniqueConstraint("merchant_id", "clover_id", name="unique_merchant_clover_category"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    merchant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("merchants.id", ondelete="CASCADE"), index=True
    )
    clover_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    clover_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    clover_modified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class Product(TimestampMixin, Base):
    __tablename__ = "products"
    __table_args__ = (
        UniqueConstraint("merchant_id", "clover_id", name="unique_merchant_clover_product"),
        UniqueConstraint("merchant_id", "sku", name="unique_merchant_sku"),
        UniqueConstraint("merchant_id", "upc", name="unique_merchant_upc"),
        CheckConstraint("price_cents >= 0", name="check_price_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    merchant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("merchants.id", ondelete="CASCADE"), index=True
    )
    clover_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    brand: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    price_cents: Mapped[int] = mapped_column(Integer, default=0)
    sku: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    upc: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    visible_in_kiosk: Mapped[bool] = mapped_column(Boolean, default=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    clover_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    clover_modified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    category: Mapped[Optional[Category]] = relationship()
    inventory: Mapped[Optional["InventoryLevel"]] = relationship(
        back_populates="product", uselist=False, passive_deletes=True
    )


class InventoryLevel(Base):
    """Stock level, one row per product."""

    __tablename__ = "inventory"
    __table_args__ = (
        CheckConstraint("on_hand >= 0", name="check_on_hand_non_negative"),
        CheckConstraint("reserved >= 0", name="check_reserved_non_negative"),
        CheckConstraint("reorder_level >= 0", name="check_reorder_level_non_negative"),
    )

    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id", ondelete="CASCADE"), primary_key=True
    )
    merchant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("merchants.id", ondelete="CASCADE"), index=True
    )
    clover_item_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    on_hand: Mapped[int] = mapped_column(Integer, default=0)
    reserved: Mapped[int] = mapped_column(Integer, default=0)
    reorder_level: Mapped[int] = mapped_column(Integer, default=5)
    sync_source: Mapped[str] = mapped_column(String(32), default=InventorySource.MANUAL.value)
    clover_modified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    product: Mapped[Product] = relationship(back_populates="inventory")

    @property
    def stock_status(self) -> StockStatus:
        return stock_status(self.on_hand, self.reorder_level)

    @property
    def available(self) -> int:
        return max(0, self.on_hand - self.reserved)


class Order(TimestampMixin, Base):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("merchant_id", "clover_order_id", name="unique_merchant_clover_order"),
        CheckConstraint(
            "total_cents = subtotal_cents + tax_cents - discount_cents",
            name="check_order_total",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    merchant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("merchants.id", ondelete="CASCADE"), index=True
    )
    clover_order_id: Mapped[str] = mapped_column(String(64), index=True)
    external_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # Mirrors the Clover order state, or TOMBSTONE_STATUS once pruned
    status: Mapped[str] = mapped_column(String(32), index=True)
    payment_state: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    subtotal_cents: Mapped[int] = mapped_column(Integer, default=0)
    tax_cents: Mapped[int] = mapped_column(Integer, default=0)
    discount_cents: Mapped[int] = mapped_column(Integer, default=0)
    total_cents: Mapped[int] = mapped_column(Integer, default=0)
    source: Mapped[str] = mapped_column(String(32), default="clover")
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    clover_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    clover_modified_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    line_items: Mapped[list["OrderLineItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="OrderLineItem.position",
    )


class OrderLineItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_quantity_positive"),
        CheckConstraint(
            "line_total_cents = quantity * unit_price_cents - discount_cents",
            name="check_line_total",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("orders.id", ondelete="CASCADE"), index=True
    )
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    clover_line_item_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    clover_item_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    # Snapshot fields survive product removal
    product_name: Mapped[str] = mapped_column(String(255))
    product_sku: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    variant_info: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer)
    unit_price_cents: Mapped[int] = mapped_column(Integer)
    discount_cents: Mapped[int] = mapped_column(Integer, default=0)
    line_total_cents: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    order: Mapped[Order] = relationship(back_populates="line_items")
