"""
Pydantic schemas for data validation and serialization.

This package defines the Pydantic models that flow through the sync engine:

Schemas:
    media: Inbound and canonical media items with kind-specific payloads
    jobs: Provider query options and sync run results

Features:
    - Automatic data validation
    - Type coercion and conversion
    - Discriminated union on `kind` for media payloads

Usage:
    from schemas import InboundItem, CanonicalItem, SyncResult
    from schemas.media import SeriesPayload, SeasonEntry

Example:
    # Validate an item returned by a provider
    item = InboundItem(
        kind=MediaKind.MOVIE,
        title="The Matrix",
        release_year=1999,
        source_links={1: "mv-42"},
        external_ids={"IMDB": "tt0133093"},
    )

    # Identifier sources are lower-cased, the payload defaults from kind
    assert item.external_ids == {"imdb": "tt0133093"}
    assert item.payload.kind == "movie"
"""

from schemas.media import (
    InboundItem,
    CanonicalItem,
    MoviePayload,
    SeriesPayload,
    SeasonEntry,
    SeasonPayload,
    EpisodePayload,
    TrackPayload,
    AlbumPayload,
    ArtistPayload,
)
from schemas.jobs import QueryOptions, SyncResult

__all__ = [
    "InboundItem",
    "CanonicalItem",
    "MoviePayload",
    "SeriesPayload",
    "SeasonEntry",
    "SeasonPayload",
    "EpisodePayload",
    "TrackPayload",
    "AlbumPayload",
    "ArtistPayload",
    "QueryOptions",
    "SyncResult",
]
