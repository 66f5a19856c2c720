"""Platform registry: maps platforms to client classes."""

import logging
from typing import Type

from kuralis_sync.enums import PLATFORM_LABELS, Platform
from kuralis_sync.errors import PlatformNotConfiguredError
from kuralis_sync.platforms.base import PlatformClient

logger = logging.getLogger(__name__)

# Platform -> client class mapping
_REGISTRY: dict[Platform, Type[PlatformClient]] = {}


def register_platform(platform: Platform):
    """Decorator to register a client class for a platform."""
    def decorator(cls: Type[PlatformClient]):
        cls.platform = platform
        _REGISTRY[platform] = cls
        logger.debug(f"Registered client for platform: {platform.value}")
        return cls
    return decorator


def get_client_class(platform: Platform) -> Type[PlatformClient] | None:
    """Look up the client class for a given platform."""
    return _REGISTRY.get(platform)


def build_client(shop, platform: Platform) -> PlatformClient:
    """Instantiate the client for ``platform`` with the shop's credentials."""
    # Import platforms package to trigger @register_platform decorators
    import kuralis_sync.platforms  # noqa: F401

    if platform not in shop.connected_platforms():
        raise PlatformNotConfiguredError(f"{PLATFORM_LABELS[platform]} is not connected for shop {shop.id}")

    client_class = get_client_class(platform)
    if not client_class:
        raise PlatformNotConfiguredError(f"No client registered for platform: {platform.value}")
    return client_class(shop)
