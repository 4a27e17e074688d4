"""
Abstract listing adapter.

An adapter turns a query plus a source descriptor into normalized listings.
Concrete adapters may raise ``SourceUnavailableError``; the listing service
wrapping them guarantees that callers never see an exception.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

from pricescout.config.settings import Settings, get_settings
from pricescout.models.schemas import Listing, SearchRequest, SourceDescriptor


class AdapterStatus(str, Enum):
    """Adapter health status."""
    AVAILABLE = "available"
    RATE_LIMITED = "rate_limited"
    ERROR = "error"


class ListingAdapter(ABC):
    """
    Abstract base class for listing adapters.

    Subclasses implement ``fetch_listings`` for one source or one family of
    sources and report success/failure through ``_update_status``.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._status = AdapterStatus.AVAILABLE
        self._last_error: Optional[str] = None
        self._request_count = 0
        self._error_count = 0

    @property
    @abstractmethod
    def name(self) -> str:
        """Adapter name identifier."""
        pass

    @property
    def is_live(self) -> bool:
        """Whether this adapter talks to the network."""
        return True

    @property
    def status(self) -> AdapterStatus:
        return self._status

    async def connect(self) -> None:
        """Acquire network resources. No-op by default."""

    async def disconnect(self) -> None:
        """Release network resources. No-op by default."""

    async def __aenter__(self) -> "ListingAdapter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    def _update_status(self, success: bool, error: Optional[str] = None) -> None:
        """Update adapter status based on request result."""
        self._request_count += 1
        if success:
            self._error_count = 0
            self._status = AdapterStatus.AVAILABLE
        else:
            self._error_count += 1
            self._last_error = error
            if self._error_count >= 3:
                if "rate limit" in (error or "").lower():
                    self._status = AdapterStatus.RATE_LIMITED
                else:
                    self._status = AdapterStatus.ERROR

    @abstractmethod
    async def fetch_listings(
        self,
        source: SourceDescriptor,
        query: SearchRequest,
    ) -> list[Listing]:
        """Fetch listings for ``query.product`` from ``source``."""
        pass

    def get_stats(self) -> dict[str, Any]:
        """Get adapter statistics."""
        return {
            "name": self.name,
            "status": self._status.value,
            "live": self.is_live,
            "request_count": self._request_count,
            "error_count": self._error_count,
            "last_error": self._last_error,
        }


__all__ = ["AdapterStatus", "ListingAdapter"]
