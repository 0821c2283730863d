"""
Unit tests for the SQLAlchemy repositories (SQLite-backed)
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select, func
from core.exceptions import PersistenceError, JobRunStateError
from mediasync.merge import new_item_from_inbound
from mediasync.repositories import MediaItemRepository, JobRunRepository, JobScheduleRepository
from models.base import MediaKind, JobStatus, SyncFrequency
from models.media_item import MediaItemSource
from schemas.media import MoviePayload
from tests.fakes import build_item, CLIENT_ID, OTHER_CLIENT_ID


async def create_movie(repository, title, client_item_id, client_id=CLIENT_ID, **kwargs):
    inbound = build_item(MediaKind.MOVIE, title, client_item_id, client_id=client_id, **kwargs)
    return await repository.create(new_item_from_inbound(inbound, client_id))


class TestMediaItemRepository:
    """Test canonical item persistence and lookups"""

    @pytest.mark.asyncio
    async def test_create_and_find_by_source_link(self, db_session):
        repository = MediaItemRepository(db_session)

        created = await create_movie(
            repository, "Alien", "mv-1", release_year=1979,
            external_ids={"imdb": "tt0078748"}, runtime_minutes=117
        )
        found = await repository.find_by_source_link(MediaKind.MOVIE, CLIENT_ID, "mv-1")

        assert created.id is not None
        assert found.id == created.id
        assert found.source_links == {CLIENT_ID: "mv-1"}
        assert found.external_ids == {"imdb": "tt0078748"}
        assert isinstance(found.payload, MoviePayload)
        assert found.payload.runtime_minutes == 117

    @pytest.mark.asyncio
    async def test_source_link_lookup_is_kind_scoped(self, db_session):
        repository = MediaItemRepository(db_session)
        await create_movie(repository, "Alien", "x-1")

        assert await repository.find_by_source_link(MediaKind.SERIES, CLIENT_ID, "x-1") is None
        assert await repository.find_by_source_link(MediaKind.MOVIE, OTHER_CLIENT_ID, "x-1") is None

    @pytest.mark.asyncio
    async def test_find_by_external_identifier(self, db_session):
        repository = MediaItemRepository(db_session)
        created = await create_movie(repository, "Alien", "mv-1", external_ids={"tmdb": "348"})

        found = await repository.find_by_external_identifier(MediaKind.MOVIE, "tmdb", "348")

        assert found.id == created.id
        assert await repository.find_by_external_identifier(MediaKind.MOVIE, "imdb", "348") is None

    @pytest.mark.asyncio
    async def test_title_year_scoped_to_client_lowest_id_wins(self, db_session):
        repository = MediaItemRepository(db_session)
        await create_movie(repository, "Solaris", "o-1", client_id=OTHER_CLIENT_ID, release_year=1972)
        first = await create_movie(repository, "Solaris", "mv-1", release_year=1972)
        await create_movie(repository, "Solaris", "mv-2", release_year=1972)

        found = await repository.find_by_title_year(MediaKind.MOVIE, CLIENT_ID, "Solaris", 1972)

        assert found.id == first.id
        assert await repository.find_by_title_year(MediaKind.MOVIE, CLIENT_ID, "Solaris", 2002) is None

    @pytest.mark.asyncio
    async def test_update_is_additive_for_identity(self, db_session):
        repository = MediaItemRepository(db_session)
        created = await create_movie(repository, "Alien", "mv-1", external_ids={"imdb": "tt0078748"})

        changed = created.copy(deep=True)
        changed.title = "Alien (1979)"
        changed.source_links = {OTHER_CLIENT_ID: "office-9"}
        changed.external_ids = {"tmdb": "348"}
        updated = await repository.update(changed)

        assert updated.title == "Alien (1979)"
        assert updated.source_links == {CLIENT_ID: "mv-1", OTHER_CLIENT_ID: "office-9"}
        assert updated.external_ids == {"imdb": "tt0078748", "tmdb": "348"}

    @pytest.mark.asyncio
    async def test_update_overwrites_own_client_link(self, db_session):
        repository = MediaItemRepository(db_session)
        created = await create_movie(repository, "Alien", "mv-1")

        changed = created.copy(deep=True)
        changed.source_links = {CLIENT_ID: "mv-1-renumbered"}
        await repository.update(changed)

        count = await db_session.execute(select(func.count()).select_from(MediaItemSource))
        assert count.scalar() == 1
        assert (await repository.get_by_id(created.id)).source_links == {CLIENT_ID: "mv-1-renumbered"}

    @pytest.mark.asyncio
    async def test_duplicate_source_link_rejected(self, db_session):
        repository = MediaItemRepository(db_session)
        original = await create_movie(repository, "Alien", "mv-1")

        with pytest.raises(PersistenceError):
            await create_movie(repository, "Alien duplicate", "mv-1")

        # Session stays usable after the rollback
        found = await repository.find_by_source_link(MediaKind.MOVIE, CLIENT_ID, "mv-1")
        assert found.id == original.id

    @pytest.mark.asyncio
    async def test_update_missing_item(self, db_session):
        repository = MediaItemRepository(db_session)
        ghost = new_item_from_inbound(build_item(MediaKind.MOVIE, "Ghost", "mv-0"), CLIENT_ID)
        ghost.id = 424242

        with pytest.raises(PersistenceError):
            await repository.update(ghost)

        assert await repository.get_by_id(424242) is None


class TestJobRunRepository:
    """Test job run lifecycle"""

    @pytest.mark.asyncio
    async def test_create_running(self, db_session):
        job_runs = JobRunRepository(db_session)

        run = await job_runs.create("system.media.sync.movie", user_id=1, metadata={"client_id": 7})

        assert run.status == JobStatus.RUNNING
        assert run.progress == 0
        assert run.run_metadata == {"client_id": 7}

    @pytest.mark.asyncio
    async def test_progress_never_decreases(self, db_session):
        job_runs = JobRunRepository(db_session)
        run = await job_runs.create("system.media.sync.movie")

        await job_runs.update_progress(run.id, 40, "Processing")
        await job_runs.update_progress(run.id, 30)
        assert (await job_runs.get(run.id)).progress == 40

        await job_runs.update_progress(run.id, 150)
        stored = await job_runs.get(run.id)
        assert stored.progress == 100
        assert stored.status_message == "Processing"

    @pytest.mark.asyncio
    async def test_counters_and_metadata(self, db_session):
        job_runs = JobRunRepository(db_session)
        run = await job_runs.create("system.media.sync.movie", metadata={"client_id": 7})

        await job_runs.set_total_items(run.id, 10)
        await job_runs.increment_processed(run.id, 4)
        await job_runs.increment_processed(run.id, 3)
        await job_runs.increment_skipped(run.id, 2)
        await job_runs.merge_metadata(run.id, {"client_type": "fake"})

        stored = await job_runs.get(run.id)
        assert (stored.total_items, stored.processed_items, stored.skipped_items) == (10, 7, 2)
        assert stored.run_metadata == {"client_id": 7, "client_type": "fake"}

    @pytest.mark.asyncio
    async def test_complete_once(self, db_session):
        job_runs = JobRunRepository(db_session)
        run = await job_runs.create("system.media.sync.movie")

        await job_runs.complete(run.id, JobStatus.COMPLETED, message="Synced 3 movies")
        stored = await job_runs.get(run.id)

        assert stored.status == JobStatus.COMPLETED
        assert stored.progress == 100
        assert stored.completed_at is not None
        assert stored.duration_seconds >= 0

        with pytest.raises(JobRunStateError):
            await job_runs.complete(run.id, JobStatus.FAILED, error_message="late failure")
        with pytest.raises(JobRunStateError):
            await job_runs.update_progress(run.id, 10)

    @pytest.mark.asyncio
    async def test_complete_requires_terminal_status(self, db_session):
        job_runs = JobRunRepository(db_session)
        run = await job_runs.create("system.media.sync.movie")

        with pytest.raises(JobRunStateError):
            await job_runs.complete(run.id, JobStatus.RUNNING)

    @pytest.mark.asyncio
    async def test_failed_keeps_progress(self, db_session):
        job_runs = JobRunRepository(db_session)
        run = await job_runs.create("system.media.sync.movie")
        await job_runs.update_progress(run.id, 50)

        await job_runs.complete(run.id, JobStatus.FAILED, error_message="boom")
        stored = await job_runs.get(run.id)

        assert stored.status == JobStatus.FAILED
        assert stored.progress == 50
        assert stored.error_message == "boom"

    @pytest.mark.asyncio
    async def test_find_running_scoped_to_client(self, db_session):
        job_runs = JobRunRepository(db_session)
        other = await job_runs.create("system.media.sync.movie", user_id=1, metadata={"client_id": OTHER_CLIENT_ID})
        finished = await job_runs.create("system.media.sync.movie", user_id=1, metadata={"client_id": CLIENT_ID})
        await job_runs.complete(finished.id, JobStatus.FAILED, error_message="boom")

        assert await job_runs.find_running("system.media.sync.movie", 1, CLIENT_ID) is None
        found = await job_runs.find_running("system.media.sync.movie", 1, OTHER_CLIENT_ID)
        assert found.id == other.id
        assert await job_runs.find_running("system.media.sync.track", 1, OTHER_CLIENT_ID) is None

    @pytest.mark.asyncio
    async def test_find_running_ignores_old_runs(self, db_session):
        job_runs = JobRunRepository(db_session)
        run = await job_runs.create("system.media.sync.movie", user_id=1, metadata={"client_id": CLIENT_ID})

        later = run.started_at + timedelta(minutes=1)
        assert await job_runs.find_running("system.media.sync.movie", 1, CLIENT_ID, started_after=later) is None

    @pytest.mark.asyncio
    async def test_list_recent(self, db_session):
        job_runs = JobRunRepository(db_session)
        for kind in ("movie", "series", "track"):
            await job_runs.create(f"system.media.sync.{kind}")

        recent = await job_runs.list_recent(limit=2)

        assert [r.job_name for r in recent] == ["system.media.sync.track", "system.media.sync.series"]


class TestJobScheduleRepository:
    """Test schedule persistence"""

    @pytest.mark.asyncio
    async def test_list_enabled_and_stamp(self, db_session):
        schedules = JobScheduleRepository(db_session)
        enabled = await schedules.create(1, CLIENT_ID, "movies", SyncFrequency.WEEKLY, filters={"limit": 5})
        await schedules.create(1, CLIENT_ID, "music", enabled=False)

        listed = await schedules.list_enabled()
        assert [s.id for s in listed] == [enabled.id]
        assert listed[0].filters == {"limit": 5}

        when = datetime(2024, 3, 1, 12, 0, 0)
        await schedules.stamp_last_run(enabled.id, when)
        assert (await schedules.get(enabled.id)).last_run_at == when

    @pytest.mark.asyncio
    async def test_stamp_unknown_schedule(self, db_session):
        assert await JobScheduleRepository(db_session).stamp_last_run(12345) is None
