"""Orders pulled from the platforms and their line items.

An item's ``allocated_quantity`` is what this order currently holds back
from its product's stock, so re-syncing an order never moves stock twice.
"""

from sqlalchemy import (
    CheckConstraint, Column, String, Integer, Numeric, DateTime, ForeignKey, Index, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import relationship

from kuralis_sync.models.base import Base, TimestampMixin, UUIDMixin

CANCELLED = "cancelled"


class Order(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "orders"

    shop_id = Column(Uuid(as_uuid=True), ForeignKey("shops.id"), nullable=False, index=True)
    platform = Column(String(20), nullable=False)
    platform_order_id = Column(String(255), nullable=False)

    fulfillment_status = Column(String(50))
    payment_status = Column(String(50))
    subtotal = Column(Numeric(12, 2))
    total_price = Column(Numeric(12, 2))
    shipping_cost = Column(Numeric(12, 2))
    customer_name = Column(String(255))

    order_placed_at = Column(DateTime(timezone=True))
    paid_at = Column(DateTime(timezone=True))
    cancelled_at = Column(DateTime(timezone=True))
    last_synced_at = Column(DateTime(timezone=True))

    # Relationships
    shop = relationship("Shop")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("platform", "platform_order_id", name="uq_order_platform_order"),
        Index("idx_order_shop_placed", "shop_id", "order_placed_at"),
    )

    @property
    def cancelled(self) -> bool:
        return self.fulfillment_status == CANCELLED

    @property
    def total_items(self) -> int:
        return sum(item.quantity or 0 for item in self.items)

    def __repr__(self) -> str:
        return f"<Order {self.platform}:{self.platform_order_id} {self.fulfillment_status}>"


class OrderItem(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "order_items"

    order_id = Column(Uuid(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    kuralis_product_id = Column(Uuid(as_uuid=True), ForeignKey("kuralis_products.id"), index=True)

    platform_item_id = Column(String(255), nullable=False)
    title = Column(String(500))
    quantity = Column(Integer, nullable=False, default=0)
    allocated_quantity = Column(Integer, nullable=False, default=0)

    # Relationships
    order = relationship("Order", back_populates="items")
    kuralis_product = relationship("KuralisProduct")

    __table_args__ = (
        UniqueConstraint("order_id", "platform_item_id", name="uq_order_item_platform_item"),
        CheckConstraint("allocated_quantity >= 0", name="ck_order_items_allocated"),
    )
