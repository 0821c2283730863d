"""
Abstract provider capabilities exposed by external media clients.

Wire-level adapters implement these; the engine only ever sees already
parsed InboundItem objects.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from models.base import MediaKind
from schemas.media import InboundItem
from schemas.jobs import QueryOptions


class MediaProvider(ABC):
    """Bulk fetch capability for one media kind"""

    @abstractmethod
    async def fetch_all(self, options: Optional[QueryOptions] = None) -> List[InboundItem]:
        """
        Fetch the full catalog for this kind.

        Args:
            options: Limit and provider-specific filters

        Returns:
            List of parsed inbound items
        """
        pass


class SeriesProvider(MediaProvider):
    """Series capability: series plus their seasons and episodes"""

    @abstractmethod
    async def fetch_seasons(self, series_item_id: str) -> List[InboundItem]:
        """Fetch the seasons of a series, by the client's series id"""
        pass

    @abstractmethod
    async def fetch_episodes(self, series_item_id: str, season_number: int) -> List[InboundItem]:
        """Fetch the episodes of one season of a series"""
        pass


class MediaClient(ABC):
    """
    A configured connection to one external media server.

    Subclasses are built by the client factory from a ClientConfig.
    """

    client_type: str = "generic"

    def __init__(self, config):
        self.config = config
        self.client_id = config.client_id
        self.connection = dict(config.connection or {})

    @abstractmethod
    def get_provider(self, kind: MediaKind) -> Optional[MediaProvider]:
        """Return the provider for a kind, or None if the client lacks it"""
        pass

    def supports(self, kind: MediaKind) -> bool:
        return self.get_provider(kind) is not None
