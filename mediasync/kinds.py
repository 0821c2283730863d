"""
Media kind dispatch table.

User-facing kind names (schedules, CLI arguments) accept synonyms and
plurals; everything past this module works with MediaKind members.
"""

from typing import Union
from models.base import MediaKind
from core.exceptions import UnsupportedMediaKindError

# Kinds a sync run can be started for. Seasons are reconciled as part of
# a series run and have no dispatch entry of their own.
KIND_ALIASES = {
    "movie": MediaKind.MOVIE,
    "movies": MediaKind.MOVIE,
    "series": MediaKind.SERIES,
    "serie": MediaKind.SERIES,
    "tvshows": MediaKind.SERIES,
    "tvshow": MediaKind.SERIES,
    "tv": MediaKind.SERIES,
    "shows": MediaKind.SERIES,
    "show": MediaKind.SERIES,
    "episode": MediaKind.EPISODE,
    "episodes": MediaKind.EPISODE,
    "music": MediaKind.TRACK,
    "tracks": MediaKind.TRACK,
    "track": MediaKind.TRACK,
    "songs": MediaKind.TRACK,
    "song": MediaKind.TRACK,
    "artist": MediaKind.ARTIST,
    "artists": MediaKind.ARTIST,
    "album": MediaKind.ALBUM,
    "albums": MediaKind.ALBUM,
}

# Kinds run by a full sync, in order
FULL_SYNC_KINDS = [
    MediaKind.MOVIE,
    MediaKind.SERIES,
    MediaKind.TRACK,
    MediaKind.ALBUM,
    MediaKind.ARTIST,
]

DEFAULT_CHUNK_SIZE = 50
CHUNK_SIZES = {
    MediaKind.EPISODE: 100,
    MediaKind.TRACK: 100,
}

PLURAL_LABELS = {
    MediaKind.MOVIE: "movies",
    MediaKind.SERIES: "series",
    MediaKind.SEASON: "seasons",
    MediaKind.EPISODE: "episodes",
    MediaKind.TRACK: "tracks",
    MediaKind.ALBUM: "albums",
    MediaKind.ARTIST: "artists",
}


def normalize_media_kind(name: Union[str, MediaKind]) -> MediaKind:
    """
    Map a user-facing kind name to its MediaKind.

    Raises:
        UnsupportedMediaKindError: If the name is not in the dispatch table
    """
    key = name.value if isinstance(name, MediaKind) else str(name)
    key = key.strip().lower().replace(" ", "").replace("_", "")
    kind = KIND_ALIASES.get(key)
    if kind is None:
        raise UnsupportedMediaKindError(
            f"Unsupported media type: {name}",
            context={"media_kind": str(name)}
        )
    return kind


def chunk_size_for(kind: MediaKind) -> int:
    return CHUNK_SIZES.get(kind, DEFAULT_CHUNK_SIZE)


def plural_label(kind: MediaKind) -> str:
    return PLURAL_LABELS.get(kind, kind.value)


def provider_kind(kind: MediaKind) -> MediaKind:
    """The provider capability that serves a kind; episodes and seasons come from series"""
    if kind in (MediaKind.EPISODE, MediaKind.SEASON):
        return MediaKind.SERIES
    return kind


def job_name_for(kind: Union[str, MediaKind]) -> str:
    value = kind.value if isinstance(kind, MediaKind) else str(kind).strip().lower()
    return f"system.media.sync.{value}"
