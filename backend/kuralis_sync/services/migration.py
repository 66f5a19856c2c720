"""Migration of platform listings into the local product catalog."""

import logging
import uuid
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kuralis_sync.enums import ListingStatus, Platform
from kuralis_sync.errors import ListingValidationError, RecordNotFoundError
from kuralis_sync.models.kuralis_product import KuralisProduct
from kuralis_sync.models.listing import Listing
from kuralis_sync.utils import utcnow

logger = logging.getLogger(__name__)

BATCH_SIZE = 100


def unmigrated_count(db: Session, account_id: uuid.UUID, platform: Platform | None = None) -> int:
    """Number of listings not yet linked to a local product."""
    query = select(func.count(Listing.id)).where(
        Listing.shop_id == account_id,
        Listing.kuralis_product_id.is_(None),
    )
    if platform:
        query = query.where(Listing.platform == platform.value)
    return db.execute(query).scalar_one()


def get_listing(db: Session, account_id: uuid.UUID, listing_id: uuid.UUID) -> Listing:
    """Fetch a listing owned by the account or raise RecordNotFoundError."""
    listing = db.execute(
        select(Listing).where(Listing.id == listing_id, Listing.shop_id == account_id)
    ).scalar_one_or_none()
    if listing is None:
        raise RecordNotFoundError("Listing not found")
    return listing


def product_from_listing(listing: Listing) -> KuralisProduct:
    if not listing.title:
        raise ListingValidationError(f"Listing {listing.platform_item_id} has no title")
    now = utcnow()
    quantity = max(listing.quantity or 0, 0)
    return KuralisProduct(
        id=uuid.uuid4(),
        shop_id=listing.shop_id,
        title=listing.title,
        description=listing.description,
        sku=listing.sku,
        price=listing.price,
        quantity=quantity,
        initial_quantity=quantity,
        weight_oz=0,
        status="active" if listing.status == ListingStatus.ACTIVE.value else "inactive",
        source_platform=listing.platform,
        imported_at=now,
        last_synced_at=now,
    )


def migrate_listing(db: Session, listing: Listing, product: KuralisProduct | None = None) -> KuralisProduct:
    """Link ``listing`` to ``product``, or to a new product built from the listing.

    Already-migrated listings are returned unchanged. Does not commit.
    """
    if listing.kuralis_product_id is not None:
        return listing.kuralis_product

    if product is None:
        product = product_from_listing(listing)
        db.add(product)
    else:
        if product.shop_id != listing.shop_id:
            raise RecordNotFoundError("Product not found")
        if product.listing_for(Platform(listing.platform)) is not None:
            raise ListingValidationError(
                f"Product {product.id} is already linked to a {listing.platform} listing"
            )

    listing.kuralis_product = product
    db.flush()
    logger.info(f"Migrated {listing.platform} listing {listing.platform_item_id} to product {product.id}")
    return product


def link_listing(db: Session, account_id: uuid.UUID, listing_id: uuid.UUID,
                 product_id: uuid.UUID | None = None) -> KuralisProduct:
    listing = get_listing(db, account_id, listing_id)
    product = None
    if product_id is not None:
        product = db.get(KuralisProduct, product_id)
        if product is None or product.shop_id != account_id:
            raise RecordNotFoundError("Product not found")
    product = migrate_listing(db, listing, product)
    db.commit()
    return product


def migrate_listings(
    db: Session,
    account_id: uuid.UUID,
    listing_ids: list,
    on_progress: Callable[..., None] | None = None,
) -> dict:
    """Create products for many listings, skipping ones already migrated.

    Each listing is migrated in its own savepoint so one bad listing does not
    roll back the batch.
    """
    ids = [uuid.UUID(str(listing_id)) for listing_id in listing_ids]
    listings = db.execute(
        select(Listing).where(Listing.shop_id == account_id, Listing.id.in_(ids))
    ).scalars().all()

    pending = [listing for listing in listings if listing.kuralis_product_id is None]
    skipped = len(listings) - len(pending)
    if skipped:
        logger.info(f"Skipping {skipped} already migrated listings for shop {account_id}")
    if on_progress:
        on_progress(total=len(pending), processed=0, message=f"Starting migration of {len(pending)} listings")

    migrated = 0
    failures = []
    for index, listing in enumerate(pending, start=1):
        try:
            with db.begin_nested():
                migrate_listing(db, listing)
            migrated += 1
        except (ListingValidationError, IntegrityError) as e:
            logger.error(f"Failed to migrate listing {listing.id} ({listing.title}): {e}")
            failures.append({"listing_id": str(listing.id), "title": listing.title, "error": str(e)})

        if index % BATCH_SIZE == 0:
            db.commit()
            if on_progress:
                on_progress(processed=index, message=f"Processed {index}/{len(pending)} listings")

    db.commit()
    summary = {"migrated": migrated, "skipped": skipped, "failed": len(failures), "failures": failures}
    if on_progress:
        on_progress(
            processed=len(pending),
            message=f"Migration completed: {migrated} successful, {len(failures)} failed",
        )
    logger.info(f"Migration for shop {account_id}: {migrated} migrated, {skipped} skipped, {len(failures)} failed")
    return summary
