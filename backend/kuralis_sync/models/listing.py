"""Platform listing models.

Listings from every platform share one table, discriminated by ``platform``.
A null ``kuralis_product_id`` means the listing has not been migrated into
the local catalog yet.
"""

from sqlalchemy import (
    Column, String, Integer, Numeric, DateTime, Text, ForeignKey, Index, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import relationship

from kuralis_sync.enums import Platform, ListingStatus
from kuralis_sync.models.base import Base, JSONType, TimestampMixin, UUIDMixin


class Listing(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "listings"

    platform = Column(String(20), nullable=False)
    platform_item_id = Column(String(255), nullable=False)
    shop_id = Column(Uuid(as_uuid=True), ForeignKey("shops.id"), nullable=False, index=True)
    kuralis_product_id = Column(Uuid(as_uuid=True), ForeignKey("kuralis_products.id"), index=True)

    title = Column(String(500))
    sku = Column(String(255), index=True)
    price = Column(Numeric(12, 2))
    quantity = Column(Integer, default=0)
    status = Column(String(20), nullable=False, default=ListingStatus.ACTIVE.value)

    remote_updated_at = Column(DateTime(timezone=True))
    last_synced_at = Column(DateTime(timezone=True))

    # eBay
    listing_format = Column(String(50))
    end_time = Column(DateTime(timezone=True))
    quantity_sold = Column(Integer)

    # Shopify
    handle = Column(String(255))

    extra_data = Column(JSONType, default=dict)
    description = Column(Text)

    # Relationships
    shop = relationship("Shop", back_populates="listings")
    kuralis_product = relationship("KuralisProduct", back_populates="listings")

    __mapper_args__ = {"polymorphic_on": platform}

    __table_args__ = (
        UniqueConstraint("platform", "platform_item_id", name="uq_listing_platform_item"),
        UniqueConstraint("kuralis_product_id", "platform", name="uq_listing_product_platform"),
        Index("idx_listing_shop_platform", "shop_id", "platform"),
    )

    @property
    def migrated(self) -> bool:
        return self.kuralis_product_id is not None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.platform_item_id} status={self.status}>"


class EbayListing(Listing):
    __mapper_args__ = {"polymorphic_identity": Platform.EBAY.value}


class ShopifyListing(Listing):
    __mapper_args__ = {"polymorphic_identity": Platform.SHOPIFY.value}


LISTING_CLASSES: dict[Platform, type[Listing]] = {
    Platform.EBAY: EbayListing,
    Platform.SHOPIFY: ShopifyListing,
}
