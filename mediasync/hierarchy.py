"""
Hierarchy linking for series -> season -> episode.

Runs after the episodes, seasons and series of a tree have been reconciled
and persisted. Each record is read, modified and written back through the
item repository; a record is only written when its payload changed, so a
second pass over unchanged children is a no-op.
"""

from dataclasses import dataclass, field
from typing import List, Optional
import logging

from schemas.media import InboundItem, merge_ids
from core.exceptions import ItemProcessingError

logger = logging.getLogger(__name__)


@dataclass
class SeasonBranch:
    """An inbound season with the episodes fetched for it"""
    item: InboundItem
    episodes: List[InboundItem] = field(default_factory=list)


@dataclass
class SeriesTree:
    """An inbound series with its fetched seasons"""
    series: InboundItem
    seasons: List[SeasonBranch] = field(default_factory=list)


@dataclass
class SeasonLink:
    """Persisted season id plus the persisted ids of its episodes"""
    season_id: int
    episode_ids: List[int] = field(default_factory=list)


class HierarchyLinker:
    """Back-propagates surrogate ids through a reconciled series tree"""

    def __init__(self, repository):
        self.repository = repository

    async def link(self, series_id: Optional[int], seasons: List[SeasonLink]) -> int:
        """
        Link seasons and episodes to each other and to their series.

        Args:
            series_id: Canonical series id, or None when the series is
                unknown (seasons and episodes are still linked together)
            seasons: Persisted seasons of the series

        Returns:
            Number of records written
        """
        writes = 0
        linked_seasons = []

        for season_link in seasons:
            season = await self.repository.get_by_id(season_link.season_id)
            if season is None:
                logger.warning(f"Season {season_link.season_id} not found, skipping hierarchy link")
                continue

            before = season.payload.dict()
            if series_id is not None:
                season.payload.series_id = series_id
            season.payload.episode_ids = merge_ids(season.payload.episode_ids, season_link.episode_ids)
            if season.payload.dict() != before:
                writes += await self._write(season)

            season_number = season.payload.season_number
            linked_seasons.append((season_number, season.id, season_link.episode_ids))

            for episode_id in season_link.episode_ids:
                episode = await self.repository.get_by_id(episode_id)
                if episode is None:
                    logger.warning(
                        f"Episode {episode_id} of season {season.id} not found, skipping hierarchy link"
                    )
                    continue

                before = episode.payload.dict()
                if series_id is not None:
                    episode.payload.series_id = series_id
                episode.payload.season_id = season.id
                episode.payload.season_number = season_number
                if episode.payload.dict() != before:
                    writes += await self._write(episode)

        if series_id is None or not linked_seasons:
            return writes

        series = await self.repository.get_by_id(series_id)
        if series is None:
            logger.warning(f"Series {series_id} not found, skipping hierarchy link")
            return writes

        before = series.payload.dict()
        for season_number, season_id, episode_ids in linked_seasons:
            series.payload.set_season_id(season_number, season_id)
            series.payload.add_season_episode_ids(season_number, episode_ids)
        if series.payload.dict() != before:
            writes += await self._write(series)

        logger.debug(f"Linked series {series_id}: {len(linked_seasons)} seasons, {writes} writes")
        return writes

    async def _write(self, item) -> int:
        try:
            await self.repository.update(item)
            return 1
        except ItemProcessingError as e:
            logger.error(
                f"Hierarchy link write failed for item {item.id}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return 0
