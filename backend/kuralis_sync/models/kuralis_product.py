"""Local catalog product. The canonical record a listing is migrated into."""

from sqlalchemy import CheckConstraint, Column, String, Integer, Numeric, DateTime, Text, ForeignKey, Uuid
from sqlalchemy.orm import relationship, validates

from kuralis_sync.enums import Platform
from kuralis_sync.errors import ListingValidationError
from kuralis_sync.models.base import Base, TimestampMixin, UUIDMixin


class KuralisProduct(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "kuralis_products"
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_kuralis_products_quantity"),
        CheckConstraint("weight_oz >= 0", name="ck_kuralis_products_weight"),
    )

    shop_id = Column(Uuid(as_uuid=True), ForeignKey("shops.id"), nullable=False, index=True)

    title = Column(String(500), nullable=False)
    description = Column(Text)
    sku = Column(String(255), index=True)
    price = Column(Numeric(12, 2))
    quantity = Column(Integer, nullable=False, default=0)
    initial_quantity = Column(Integer)
    weight_oz = Column(Numeric(10, 2), default=0)
    status = Column(String(20), nullable=False, default="active")  # active, inactive

    source_platform = Column(String(20))
    imported_at = Column(DateTime(timezone=True))
    last_synced_at = Column(DateTime(timezone=True))
    last_inventory_update = Column(DateTime(timezone=True))

    # Relationships
    shop = relationship("Shop", back_populates="kuralis_products")
    listings = relationship("Listing", back_populates="kuralis_product")

    @validates("quantity")
    def validate_quantity(self, key, value):
        if value is None or int(value) < 0:
            raise ListingValidationError(f"{key} must be a non-negative integer, got {value!r}")
        return int(value)

    @validates("weight_oz")
    def validate_weight(self, key, value):
        if value is not None and value < 0:
            raise ListingValidationError(f"{key} must not be negative, got {value!r}")
        return value

    def listing_for(self, platform: Platform):
        for listing in self.listings:
            if listing.platform == platform.value:
                return listing
        return None

    @property
    def listed_platforms(self) -> list[str]:
        return sorted({listing.platform for listing in self.listings})
