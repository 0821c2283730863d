"""
Identity resolution: find the canonical record an inbound item belongs to.

Resolution order, first match wins:
1. Source link (kind, client id, client item id) - authoritative
2. External identifiers in fixed precedence imdb > tmdb > tvdb > musicbrainz
3. Exact title + release year among items already linked to the same client
   (not applied to seasons, whose titles only mean something inside their
   series)
"""

from typing import Optional
import logging

from models.base import MediaKind
from schemas.media import InboundItem, CanonicalItem
from core.exceptions import UnattributableItemError, ResolutionError

logger = logging.getLogger(__name__)

EXTERNAL_ID_PRECEDENCE = ("imdb", "tmdb", "tvdb", "musicbrainz")

TITLE_YEAR_EXEMPT_KINDS = frozenset({MediaKind.SEASON})


class IdentityResolver:
    """
    Looks up the canonical record for an inbound item.

    The resolver only reads. Callers hold the identity lock for the item
    across resolve and the following write.
    """

    def __init__(self, repository):
        self.repository = repository

    async def resolve(self, item: InboundItem, client_id: int) -> Optional[CanonicalItem]:
        """
        Return the matching canonical item, or None if the item is new.

        Raises:
            UnattributableItemError: If the item has no id for this client
            ResolutionError: If a repository lookup fails
        """
        client_item_id = item.client_item_id(client_id)
        if not client_item_id:
            raise UnattributableItemError(
                "Inbound item has no identifier for the syncing client",
                context={
                    "client_id": client_id,
                    "kind": item.kind.value,
                    "title": item.title
                }
            )

        try:
            match = await self.repository.find_by_source_link(item.kind, client_id, client_item_id)
            if match is not None:
                return match

            for source in EXTERNAL_ID_PRECEDENCE:
                value = item.external_ids.get(source)
                if not value:
                    continue
                match = await self.repository.find_by_external_identifier(item.kind, source, value)
                if match is not None:
                    logger.debug(
                        f"Matched {item.kind.value} '{item.title}' to item {match.id} by {source}={value}"
                    )
                    return match

            if (
                item.kind not in TITLE_YEAR_EXEMPT_KINDS
                and item.title
                and item.release_year is not None
            ):
                match = await self.repository.find_by_title_year(
                    item.kind, client_id, item.title, item.release_year
                )
                if match is not None:
                    logger.debug(
                        f"Matched {item.kind.value} '{item.title}' ({item.release_year}) "
                        f"to item {match.id} by title and year"
                    )
                return match

            return None

        except Exception as e:
            raise ResolutionError(
                "Identity lookup failed",
                context={
                    "client_id": client_id,
                    "client_item_id": client_item_id,
                    "kind": item.kind.value
                },
                original_exception=e
            )
