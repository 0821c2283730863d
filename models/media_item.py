from sqlalchemy import Column, String, Integer, Enum, Date, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from models.base import Base, BigIntPK, JSONType, MediaKind, utcnow


class MediaItem(Base):
    """
    Canonical, deduplicated record for one real-world media entity.

    Design:
    - One table for every kind, partitioned by the `kind` column
    - Descriptive fields (title, release year/date) are top-level columns
      so the title+year fallback lookup can use an index
    - Kind-specific payload (genres, cast, hierarchy links) lives in `details`
    - Identity lives in two child tables so lookups stay indexable:
      source links (one per external client) and external identifiers
      (one per identifier source)
    """
    __tablename__ = "media_items"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    kind = Column(Enum(MediaKind), nullable=False, index=True)

    # Descriptive fields
    title = Column(String(500), nullable=False)
    release_year = Column(Integer, nullable=True)
    release_date = Column(Date, nullable=True)

    # Kind-specific payload, including hierarchy fields
    details = Column(JSONType, nullable=False, default=dict)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Relationships
    sources = relationship(
        "MediaItemSource",
        back_populates="item",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    external_ids = relationship(
        "MediaItemExternalID",
        back_populates="item",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_media_items_kind_title_year", "kind", "title", "release_year"),
    )


class MediaItemSource(Base):
    """
    Source link: one external client's identifier for a canonical item.

    The unique index on (kind, client_id, client_item_id) guarantees that a
    client item can be attached to at most one canonical record; the unique
    index on (item_id, client_id) keeps one entry per client per record.
    """
    __tablename__ = "media_item_sources"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    item_id = Column(BigIntPK, ForeignKey("media_items.id", ondelete="CASCADE"), nullable=False)
    kind = Column(Enum(MediaKind), nullable=False)
    client_id = Column(Integer, nullable=False)
    client_item_id = Column(String(255), nullable=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    item = relationship("MediaItem", back_populates="sources")

    __table_args__ = (
        Index("idx_media_source_client_item", "kind", "client_id", "client_item_id", unique=True),
        Index("idx_media_source_item_client", "item_id", "client_id", unique=True),
    )


class MediaItemExternalID(Base):
    """
    External identifier (imdb, tmdb, tvdb, musicbrainz, ...) of a canonical item.

    Rows are only ever inserted or overwritten during reconciliation.
    """
    __tablename__ = "media_item_external_ids"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    item_id = Column(BigIntPK, ForeignKey("media_items.id", ondelete="CASCADE"), nullable=False)
    kind = Column(Enum(MediaKind), nullable=False)
    source = Column(String(50), nullable=False)
    value = Column(String(255), nullable=False)

    item = relationship("MediaItem", back_populates="external_ids")

    __table_args__ = (
        Index("idx_media_external_item_source", "item_id", "source", unique=True),
        Index("idx_media_external_lookup", "kind", "source", "value"),
    )
