"""
Unit tests for media item schemas
"""

import pytest
from pydantic import ValidationError
from models.base import MediaKind
from schemas.jobs import QueryOptions
from schemas.media import (
    InboundItem,
    CanonicalItem,
    MoviePayload,
    SeriesPayload,
    SeasonPayload,
    merge_ids
)


class TestInboundItem:
    """Test inbound item validation and cleaning"""

    def test_identity_maps_cleaned(self):
        item = InboundItem(
            kind=MediaKind.MOVIE,
            title="  The Matrix  ",
            source_links={"7": "mv-1", 8: ""},
            external_ids={"IMDB": "tt0133093", "tmdb": "", "TVDB": None},
        )

        assert item.title == "The Matrix"
        assert item.source_links == {7: "mv-1"}
        assert item.external_ids == {"imdb": "tt0133093"}
        assert item.client_item_id(7) == "mv-1"
        assert item.client_item_id(8) is None

    def test_payload_defaults_from_kind(self):
        item = InboundItem(kind=MediaKind.SEASON, title="Season 1")

        assert isinstance(item.payload, SeasonPayload)
        assert item.payload.season_number == 0
        assert item.payload.episode_ids == []

    def test_payload_without_kind_uses_item_kind(self):
        item = InboundItem(kind=MediaKind.MOVIE, title="Alien", payload={"runtime_minutes": 117})

        assert isinstance(item.payload, MoviePayload)
        assert item.payload.runtime_minutes == 117

    def test_payload_kind_mismatch_rejected(self):
        with pytest.raises(ValidationError):
            InboundItem(kind=MediaKind.MOVIE, title="Alien", payload={"kind": "track"})

    def test_blank_title_rejected(self):
        with pytest.raises(ValidationError):
            InboundItem(kind=MediaKind.MOVIE, title="   ")


class TestCanonicalItem:
    """Test canonical item payload round trip"""

    def test_stored_details_select_variant(self):
        details = SeriesPayload(status="ended").dict()
        item = CanonicalItem(id=3, kind=MediaKind.SERIES, title="Dark", payload=details)

        assert isinstance(item.payload, SeriesPayload)
        assert item.payload.status == "ended"
        assert item.id == 3


class TestSeriesPayload:
    """Test series season-list helpers"""

    def test_set_season_id_creates_sorted_entries(self):
        payload = SeriesPayload()
        payload.set_season_id(2, 20)
        payload.set_season_id(1, 10)

        assert [e.season_number for e in payload.seasons] == [1, 2]
        assert payload.season_entry(2).season_id == 20

    def test_add_season_episode_ids_deduplicates(self):
        payload = SeriesPayload()
        payload.add_season_episode_ids(1, [5, 6])
        payload.add_season_episode_ids(1, [6, 7])

        assert payload.season_entry(1).episode_ids == [5, 6, 7]
        assert len(payload.seasons) == 1

    def test_merge_ids_preserves_order(self):
        assert merge_ids([3, 1], [1, 2, 3, 4]) == [3, 1, 2, 4]


class TestQueryOptions:
    """Test building provider options from stored schedule filters"""

    def test_unknown_keys_become_provider_filters(self):
        options = QueryOptions.from_filters({"genre": "horror", "limit": 5})

        assert options.limit == 5
        assert options.filters == {"genre": "horror"}

    def test_nested_filters_merged(self):
        options = QueryOptions.from_filters({"year": 1999, "filters": {"genre": "drama"}})

        assert options.limit is None
        assert options.filters == {"year": 1999, "genre": "drama"}

    def test_stored_filters_not_modified(self):
        stored = {"limit": 2, "genre": "horror"}
        QueryOptions.from_filters(stored)

        assert stored == {"limit": 2, "genre": "horror"}

    @pytest.mark.parametrize("stored", [None, {}])
    def test_empty_filters(self, stored):
        assert QueryOptions.from_filters(stored) is None

    def test_invalid_limit_rejected(self):
        with pytest.raises(ValidationError):
            QueryOptions.from_filters({"limit": 0})
