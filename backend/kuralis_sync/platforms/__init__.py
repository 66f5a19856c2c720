"""Platforms package. Import all clients to trigger @register_platform decorators."""

from kuralis_sync.platforms.ebay import EbayClient  # noqa: F401
from kuralis_sync.platforms.shopify import ShopifyClient  # noqa: F401
