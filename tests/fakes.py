"""
Test doubles: inbound item builder, fake external clients and an
in-memory item repository
"""

import asyncio
import itertools
from typing import Dict, List, Optional, Tuple

from core.exceptions import PersistenceError
from mediasync.providers.base import MediaClient, SeriesProvider
from models.base import MediaKind
from schemas.media import InboundItem

USER_ID = 1
CLIENT_ID = 7
OTHER_CLIENT_ID = 8


# ============================================================================
# INBOUND ITEMS
# ============================================================================

def build_item(
    kind: MediaKind,
    title: str,
    client_item_id: Optional[str] = None,
    client_id: int = CLIENT_ID,
    release_year: Optional[int] = None,
    external_ids: Optional[Dict[str, str]] = None,
    **payload
) -> InboundItem:
    """Build an inbound item as a provider would return it"""
    return InboundItem(
        kind=kind,
        title=title,
        release_year=release_year,
        source_links={client_id: client_item_id} if client_item_id else {},
        external_ids=external_ids or {},
        payload={"kind": kind.value, **payload},
    )


# ============================================================================
# FAKE EXTERNAL CLIENTS
# ============================================================================

class FakeProvider(SeriesProvider):
    """
    Provider serving canned items.

    seasons: series item id -> seasons
    episodes: (series item id, season number) -> episodes
    gate: if set, fetch_all waits on this event before returning
    """

    def __init__(
        self,
        items: Optional[List[InboundItem]] = None,
        seasons: Optional[Dict[str, List[InboundItem]]] = None,
        episodes: Optional[Dict[Tuple[str, int], List[InboundItem]]] = None,
        error: Optional[Exception] = None,
        season_error: Optional[Exception] = None,
        delay: Optional[float] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.items = items or []
        self.seasons = seasons or {}
        self.episodes = episodes or {}
        self.error = error
        self.season_error = season_error
        self.delay = delay
        self.gate = gate
        self.fetch_calls = []

    async def fetch_all(self, options=None):
        self.fetch_calls.append(options)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        items = list(self.items)
        if options is not None and options.limit:
            items = items[:options.limit]
        return items

    async def fetch_seasons(self, series_item_id):
        if self.season_error is not None:
            raise self.season_error
        return list(self.seasons.get(series_item_id, []))

    async def fetch_episodes(self, series_item_id, season_number):
        return list(self.episodes.get((series_item_id, season_number), []))


class FakeMediaClient(MediaClient):
    client_type = "fake"

    def __init__(self, config, providers=None):
        super().__init__(config)
        self.providers = providers or {}

    def get_provider(self, kind):
        return self.providers.get(kind)


class InMemoryItemRepository:
    """Item repository keeping canonical items in a dict"""

    def __init__(self):
        self.items = {}
        self.updates = []
        self._ids = itertools.count(1)

    def _match(self, predicate):
        for item_id in sorted(self.items):
            if predicate(self.items[item_id]):
                return self.items[item_id].copy(deep=True)
        return None

    async def find_by_source_link(self, kind, client_id, client_item_id):
        return self._match(lambda i: i.kind == kind and i.source_links.get(client_id) == client_item_id)

    async def find_by_external_identifier(self, kind, source, value):
        return self._match(lambda i: i.kind == kind and i.external_ids.get(source) == value)

    async def find_by_title_year(self, kind, client_id, title, year):
        return self._match(
            lambda i: i.kind == kind and i.title == title
            and i.release_year == year and client_id in i.source_links
        )

    async def get_by_id(self, item_id):
        item = self.items.get(item_id)
        return item.copy(deep=True) if item is not None else None

    async def create(self, item):
        # Yield so concurrent callers interleave between resolve and write
        await asyncio.sleep(0)
        saved = item.copy(deep=True)
        saved.id = next(self._ids)
        self.items[saved.id] = saved
        return saved.copy(deep=True)

    async def update(self, item):
        if item.id not in self.items:
            raise PersistenceError("Media item not found for update", context={"item_id": item.id})
        self.updates.append(item.id)
        self.items[item.id] = item.copy(deep=True)
        return item.copy(deep=True)

    async def rollback(self):
        pass
