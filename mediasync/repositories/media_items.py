"""
Item repository: canonical media items and their identity tables.

Every write is its own committed unit. Updates are additive for source
links and external identifiers: rows are inserted or overwritten, never
deleted.
"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
import logging

from models.base import MediaKind
from models.media_item import MediaItem, MediaItemSource, MediaItemExternalID
from schemas.media import CanonicalItem
from core.exceptions import PersistenceError

logger = logging.getLogger(__name__)


def to_canonical(row: MediaItem) -> CanonicalItem:
    """Convert an ORM row (with loaded identity collections) to a CanonicalItem"""
    return CanonicalItem(
        id=row.id,
        kind=row.kind,
        title=row.title,
        release_year=row.release_year,
        release_date=row.release_date,
        source_links={s.client_id: s.client_item_id for s in row.sources},
        external_ids={e.source: e.value for e in row.external_ids},
        payload=row.details or None,
    )


class MediaItemRepository:
    """Persistence for canonical media items"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def _first(self, stmt) -> Optional[CanonicalItem]:
        result = await self.db.execute(
            stmt.order_by(MediaItem.id).limit(1).execution_options(populate_existing=True)
        )
        row = result.scalars().first()
        return to_canonical(row) if row is not None else None

    async def find_by_source_link(
        self,
        kind: MediaKind,
        client_id: int,
        client_item_id: str
    ) -> Optional[CanonicalItem]:
        stmt = (
            select(MediaItem)
            .join(MediaItemSource, MediaItemSource.item_id == MediaItem.id)
            .where(
                MediaItemSource.kind == kind,
                MediaItemSource.client_id == client_id,
                MediaItemSource.client_item_id == client_item_id
            )
        )
        return await self._first(stmt)

    async def find_by_external_identifier(
        self,
        kind: MediaKind,
        source: str,
        value: str
    ) -> Optional[CanonicalItem]:
        stmt = (
            select(MediaItem)
            .join(MediaItemExternalID, MediaItemExternalID.item_id == MediaItem.id)
            .where(
                MediaItemExternalID.kind == kind,
                MediaItemExternalID.source == source.lower(),
                MediaItemExternalID.value == value
            )
        )
        return await self._first(stmt)

    async def find_by_title_year(
        self,
        kind: MediaKind,
        client_id: int,
        title: str,
        year: int
    ) -> Optional[CanonicalItem]:
        """Exact title and year, scoped to items already linked to the client. Lowest id wins."""
        stmt = (
            select(MediaItem)
            .join(MediaItemSource, MediaItemSource.item_id == MediaItem.id)
            .where(
                MediaItem.kind == kind,
                MediaItem.title == title,
                MediaItem.release_year == year,
                MediaItemSource.client_id == client_id
            )
        )
        return await self._first(stmt)

    async def get_by_id(self, item_id: int) -> Optional[CanonicalItem]:
        row = await self._get_row(item_id)
        return to_canonical(row) if row is not None else None

    async def _get_row(self, item_id: int) -> Optional[MediaItem]:
        result = await self.db.execute(
            select(MediaItem)
            .where(MediaItem.id == item_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create(self, item: CanonicalItem) -> CanonicalItem:
        """
        Insert a new canonical item with its source links and external ids.

        Raises:
            PersistenceError: If the insert fails (e.g. a source link is
                already attached to another item)
        """
        row = MediaItem(
            kind=item.kind,
            title=item.title,
            release_year=item.release_year,
            release_date=item.release_date,
            details=item.payload.dict(),
        )
        row.sources = [
            MediaItemSource(kind=item.kind, client_id=client_id, client_item_id=client_item_id)
            for client_id, client_item_id in item.source_links.items()
        ]
        row.external_ids = [
            MediaItemExternalID(kind=item.kind, source=source, value=value)
            for source, value in item.external_ids.items()
        ]

        try:
            self.db.add(row)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(
                "Failed to create media item",
                context={
                    "operation": "INSERT",
                    "table_name": "media_items",
                    "kind": item.kind.value,
                    "title": item.title
                },
                original_exception=e
            )

        logger.debug(f"Created {item.kind.value} {row.id} '{item.title}'")
        return await self.get_by_id(row.id)

    async def update(self, item: CanonicalItem) -> CanonicalItem:
        """
        Overwrite descriptive fields and payload; upsert links and external ids.

        Raises:
            PersistenceError: If the item does not exist or the write fails
        """
        try:
            row = await self._get_row(item.id) if item.id is not None else None
            if row is None:
                raise PersistenceError(
                    "Media item not found for update",
                    context={"operation": "UPDATE", "table_name": "media_items", "item_id": item.id}
                )

            row.title = item.title
            row.release_year = item.release_year
            row.release_date = item.release_date
            row.details = item.payload.dict()

            sources = {s.client_id: s for s in row.sources}
            for client_id, client_item_id in item.source_links.items():
                source = sources.get(client_id)
                if source is None:
                    row.sources.append(MediaItemSource(
                        kind=row.kind, client_id=client_id, client_item_id=client_item_id
                    ))
                elif source.client_item_id != client_item_id:
                    source.client_item_id = client_item_id

            external_ids = {e.source: e for e in row.external_ids}
            for source_name, value in item.external_ids.items():
                external_id = external_ids.get(source_name)
                if external_id is None:
                    row.external_ids.append(MediaItemExternalID(
                        kind=row.kind, source=source_name, value=value
                    ))
                elif external_id.value != value:
                    external_id.value = value

            await self.db.commit()

        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(
                "Failed to update media item",
                context={"operation": "UPDATE", "table_name": "media_items", "item_id": item.id},
                original_exception=e
            )

        return await self.get_by_id(item.id)

    async def rollback(self):
        """Discard the in-flight unit of work"""
        await self.db.rollback()
