"""Shop model: the account that owns listings, products and job runs."""

from sqlalchemy import Column, String, Boolean, DateTime, Text
from sqlalchemy.orm import relationship

from kuralis_sync.enums import Platform
from kuralis_sync.models.base import Base, TimestampMixin, UUIDMixin


class Shop(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "shops"

    name = Column(String(255), nullable=False)

    # Shopify connection
    shopify_domain = Column(String(255), unique=True, index=True)
    shopify_token = Column(Text)

    # eBay connection
    ebay_user_id = Column(String(255), unique=True, index=True)
    ebay_token = Column(Text)
    last_listing_import_at = Column(DateTime(timezone=True))

    # Sync config
    is_active = Column(Boolean, default=True, nullable=False)
    sync_enabled = Column(Boolean, default=True, nullable=False)
    # Orders allocate and release product stock
    inventory_sync = Column(Boolean, default=True, nullable=False)

    # Relationships
    listings = relationship("Listing", back_populates="shop")
    kuralis_products = relationship("KuralisProduct", back_populates="shop")
    job_runs = relationship("JobRun", back_populates="shop")

    def connected_platforms(self) -> list[Platform]:
        platforms = []
        if self.shopify_domain and self.shopify_token:
            platforms.append(Platform.SHOPIFY)
        if self.ebay_token:
            platforms.append(Platform.EBAY)
        return platforms
