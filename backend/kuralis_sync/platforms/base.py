"""Base platform client abstract class."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Iterator

import httpx

from kuralis_sync.config import get_settings
from kuralis_sync.enums import Platform
from kuralis_sync.errors import (
    PlatformRateLimitError,
    PlatformRequestError,
    PlatformUnavailableError,
)
from kuralis_sync.schemas.listing import RemoteListing
from kuralis_sync.schemas.order import RemoteOrder
from kuralis_sync.utils import parse_retry_after

logger = logging.getLogger(__name__)


class PlatformClient(ABC):
    """Abstract base class for all platform adapters.

    Subclasses must implement:
        list_changed_since(since) -> iterator of RemoteListing (all when since is None)
        get_item(item_id) -> RemoteListing | None
        end_item(item_id, reason)
        update_item(item_id, fields)
        list_orders_since(since) -> iterator of RemoteOrder placed at or after since
    """

    platform: Platform

    def __init__(self, shop, http_client: httpx.Client | None = None):
        self.shop = shop
        self.settings = get_settings()
        self.http = http_client or httpx.Client(timeout=self.settings.platform_timeout_seconds)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def close(self) -> None:
        self.http.close()

    @abstractmethod
    def list_changed_since(self, since: datetime | None) -> Iterator[RemoteListing]:
        ...

    @abstractmethod
    def get_item(self, item_id: str) -> RemoteListing | None:
        ...

    @abstractmethod
    def end_item(self, item_id: str, reason: str) -> None:
        ...

    @abstractmethod
    def update_item(self, item_id: str, fields: dict[str, Any]) -> None:
        ...

    @abstractmethod
    def list_orders_since(self, since: datetime) -> Iterator[RemoteOrder]:
        ...

    def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Issue a request and map transport and status failures onto sync errors."""
        try:
            resp = self.http.request(method, url, **kwargs)
        except httpx.TransportError as e:
            raise PlatformUnavailableError(f"{self.platform.value} request failed: {e}") from e

        if resp.status_code == 429:
            raise PlatformRateLimitError(
                f"{self.platform.value} rate limited",
                retry_after=parse_retry_after(resp.headers.get("Retry-After")),
            )
        if resp.status_code >= 500:
            raise PlatformUnavailableError(f"{self.platform.value} returned {resp.status_code}")
        if resp.status_code >= 400:
            raise PlatformRequestError(
                f"{self.platform.value} returned {resp.status_code}: {resp.text[:500]}",
                codes=[str(resp.status_code)],
            )
        return resp
