"""
Pydantic schemas for inbound and canonical media items.

Both shapes share one envelope (kind, title, release info, identity maps)
and a kind-specific payload. The payload is a discriminated union keyed on
its `kind` literal, so a stored `details` dict round-trips to the right
variant.
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List, Dict, Any, Union, Literal, Annotated
from datetime import date
from models.base import MediaKind


# ============================================================================
# PAYLOAD VARIANTS
# ============================================================================

class PayloadBase(BaseModel):
    """Fields common to every kind-specific payload"""
    overview: Optional[str] = None
    genres: List[str] = Field(default_factory=list)
    extra: Dict[str, Any] = Field(default_factory=dict)

    @validator("genres", pre=True)
    def clean_genres(cls, v):
        """Ensure genres is a list of non-empty strings"""
        if v is None:
            return []
        if isinstance(v, str):
            return [g.strip() for g in v.split(",") if g.strip()]
        return [str(g).strip() for g in v if str(g).strip()]


class MoviePayload(PayloadBase):
    kind: Literal["movie"] = "movie"
    runtime_minutes: Optional[int] = Field(None, ge=0)
    rating: Optional[float] = Field(None, ge=0, le=10)


class SeasonEntry(BaseModel):
    """One season of a series, as seen from the series record"""
    season_number: int
    season_id: Optional[int] = None
    episode_ids: List[int] = Field(default_factory=list)


class SeriesPayload(PayloadBase):
    kind: Literal["series"] = "series"
    status: Optional[str] = None
    rating: Optional[float] = Field(None, ge=0, le=10)
    seasons: List[SeasonEntry] = Field(default_factory=list)

    def season_entry(self, season_number: int) -> SeasonEntry:
        """Return the entry for a season number, creating it if missing"""
        for entry in self.seasons:
            if entry.season_number == season_number:
                return entry
        entry = SeasonEntry(season_number=season_number)
        self.seasons.append(entry)
        self.seasons.sort(key=lambda e: e.season_number)
        return entry

    def set_season_id(self, season_number: int, season_id: int):
        self.season_entry(season_number).season_id = season_id

    def add_season_episode_ids(self, season_number: int, episode_ids: List[int]):
        """Merge episode ids into a season entry, keeping order and dropping duplicates"""
        entry = self.season_entry(season_number)
        entry.episode_ids = merge_ids(entry.episode_ids, episode_ids)


class SeasonPayload(PayloadBase):
    kind: Literal["season"] = "season"
    season_number: int = Field(0, ge=0)
    series_id: Optional[int] = None
    episode_ids: List[int] = Field(default_factory=list)


class EpisodePayload(PayloadBase):
    kind: Literal["episode"] = "episode"
    episode_number: Optional[int] = Field(None, ge=0)
    season_number: Optional[int] = Field(None, ge=0)
    series_id: Optional[int] = None
    season_id: Optional[int] = None
    runtime_minutes: Optional[int] = Field(None, ge=0)


class TrackPayload(PayloadBase):
    kind: Literal["track"] = "track"
    track_number: Optional[int] = Field(None, ge=0)
    duration_seconds: Optional[int] = Field(None, ge=0)
    album_title: Optional[str] = None
    artist_name: Optional[str] = None


class AlbumPayload(PayloadBase):
    kind: Literal["album"] = "album"
    artist_name: Optional[str] = None
    track_count: Optional[int] = Field(None, ge=0)


class ArtistPayload(PayloadBase):
    kind: Literal["artist"] = "artist"
    biography: Optional[str] = None


MediaPayload = Annotated[
    Union[
        MoviePayload,
        SeriesPayload,
        SeasonPayload,
        EpisodePayload,
        TrackPayload,
        AlbumPayload,
        ArtistPayload,
    ],
    Field(discriminator="kind"),
]


def merge_ids(existing: List[int], incoming: List[int]) -> List[int]:
    """Append incoming ids not already present, preserving order"""
    merged = list(existing)
    seen = set(merged)
    for item_id in incoming:
        if item_id not in seen:
            merged.append(item_id)
            seen.add(item_id)
    return merged


# ============================================================================
# ITEM ENVELOPES
# ============================================================================

class MediaItemBase(BaseModel):
    """
    Shared envelope for inbound and canonical items.

    Identity:
    - source_links: external client id -> that client's item id
    - external_ids: identifier source (imdb, tmdb, ...) -> value
    """

    kind: MediaKind
    title: str = Field(..., min_length=1, max_length=500)
    release_year: Optional[int] = Field(None, ge=0, le=3000)
    release_date: Optional[date] = None

    source_links: Dict[int, str] = Field(default_factory=dict)
    external_ids: Dict[str, str] = Field(default_factory=dict)

    payload: Optional[MediaPayload] = None

    @validator("title")
    def clean_title(cls, v):
        """Clean and normalize title"""
        v = v.strip()
        if not v:
            raise ValueError("Title cannot be empty after stripping")
        return v

    @validator("source_links", pre=True)
    def clean_source_links(cls, v):
        """Drop links without an item id"""
        if v is None:
            return {}
        return {k: str(val).strip() for k, val in v.items() if val is not None and str(val).strip()}

    @validator("external_ids", pre=True)
    def clean_external_ids(cls, v):
        """Lower-case identifier sources and drop empty values"""
        if v is None:
            return {}
        return {
            str(k).strip().lower(): str(val).strip()
            for k, val in v.items()
            if val is not None and str(val).strip()
        }

    @validator("payload", pre=True, always=True)
    def default_payload(cls, v, values):
        """Build an empty payload of the item's kind when none is given"""
        kind = values.get("kind")
        if kind is None:
            return v
        if v is None:
            return {"kind": kind.value}
        if isinstance(v, dict) and "kind" not in v:
            return {**v, "kind": kind.value}
        return v

    @validator("payload")
    def check_payload_kind(cls, v, values):
        kind = values.get("kind")
        if v is not None and kind is not None and v.kind != kind.value:
            raise ValueError(f"Payload kind {v.kind} does not match item kind {kind.value}")
        return v

    def client_item_id(self, client_id: int) -> Optional[str]:
        """The item id assigned by the given external client, if any"""
        return self.source_links.get(client_id)


class InboundItem(MediaItemBase):
    """A record exactly as a provider returned it, already parsed"""
    pass


class CanonicalItem(MediaItemBase):
    """
    The local, deduplicated record for one real-world media entity.

    `id` is assigned by the repository on create and never changes.
    """
    id: Optional[int] = None
