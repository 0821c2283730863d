# ============================================================================
# File: mediasync/orchestrator.py
# Description: Sync orchestrator, one job run per (user, client, media kind)
# ============================================================================
"""
Sync Orchestrator - drives one sync run from client lookup to finalization.

Run phases:
1. Client - resolve the configuration and build the client
2. Capability - acquire the provider for the media kind
3. Fetch - one bulk call (plus seasons and episodes for series trees)
4. Reconcile - batch processing, bottom-up for series trees
5. Link - hierarchy linking for series and episode runs
6. Finalize - COMPLETED, or FAILED with the causal message

Job run state machine: RUNNING -> {COMPLETED, FAILED}. Item-level failures
are counted as skipped and never fail the run. Job-level failures mark the
run FAILED and are re-raised to the caller.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, List, Tuple, Union, Dict, Any
import asyncio
import logging

from pydantic import ValidationError

from core.config import settings
from core.exceptions import (
    SyncException,
    ClientConfigurationError,
    ProviderCapabilityError,
    UnsupportedMediaKindError,
    InvalidQueryOptionsError,
    FetchError,
    SyncCancelledError,
    SyncAlreadyRunningError,
    ItemProcessingError,
    PersistenceError
)
from models.base import MediaKind, JobStatus, utcnow
from schemas.jobs import QueryOptions, SyncResult
from schemas.media import InboundItem
from mediasync.batch import BatchProcessor, BatchResult, IdentityLocks, ProgressCallback
from mediasync.clients import ClientConfig, ClientRegistry, ClientFactory
from mediasync.hierarchy import HierarchyLinker, SeriesTree, SeasonBranch, SeasonLink
from mediasync.identity import IdentityResolver
from mediasync.kinds import (
    FULL_SYNC_KINDS,
    normalize_media_kind,
    plural_label,
    provider_kind,
    job_name_for
)
from mediasync.providers.base import MediaClient, MediaProvider, SeriesProvider
from mediasync.repositories import MediaItemRepository, JobRunRepository, JobScheduleRepository

logger = logging.getLogger(__name__)

# Progress reached once the fetch phase is done; batches fill the rest
FETCH_DONE_PROGRESS = 50

TREE_KINDS = (MediaKind.SERIES, MediaKind.EPISODE)


@dataclass
class _RunStats:
    total: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0

    @property
    def processed(self) -> int:
        return self.created + self.updated

    def add(self, result: BatchResult):
        self.created += result.created
        self.updated += result.updated
        self.skipped += result.skipped

    def as_metadata(self):
        return {"created": self.created, "updated": self.updated, "skipped": self.skipped}


class _ProgressTracker:
    """Maps the progress of successive batches onto the 50-100% range of a run"""

    def __init__(self, job_runs: JobRunRepository, run_id: int, total: int, label: str):
        self.job_runs = job_runs
        self.run_id = run_id
        self.total = total
        self.label = label
        self.processed = 0
        self.skipped = 0

    def for_batch(self) -> ProgressCallback:
        base_processed, base_skipped = self.processed, self.skipped

        async def on_progress(processed: int, skipped: int, _batch_total: int):
            delta_processed = base_processed + processed - self.processed
            delta_skipped = base_skipped + skipped - self.skipped
            self.processed += delta_processed
            self.skipped += delta_skipped

            handled = self.processed + self.skipped
            if self.total:
                percent = FETCH_DONE_PROGRESS + handled * (100 - FETCH_DONE_PROGRESS) // self.total
            else:
                percent = 100

            # Best-effort: a failed progress write never fails the run
            try:
                if delta_processed:
                    await self.job_runs.increment_processed(self.run_id, delta_processed)
                if delta_skipped:
                    await self.job_runs.increment_skipped(self.run_id, delta_skipped)
                await self.job_runs.update_progress(
                    self.run_id, percent, f"Processed {handled}/{self.total} {self.label}"
                )
            except PersistenceError as e:
                logger.warning(f"Progress update for job run {self.run_id} failed: {e.message}")

        return on_progress


class SyncOrchestrator:
    """
    Runs sync jobs against external media clients.

    Responsibilities:
    - One job run record per sync attempt, finalized exactly once
    - Refuse a second concurrent run for the same (user, client, kind)
    - Share identity locks across all runs it starts
    - Enforce the optional per-run timeout
    """

    def __init__(
        self,
        session_factory,
        client_registry: ClientRegistry,
        client_factory: ClientFactory,
        locks: Optional[IdentityLocks] = None,
        timeout: Optional[float] = None
    ):
        self.session_factory = session_factory
        self.client_registry = client_registry
        self.client_factory = client_factory
        self.locks = locks if locks is not None else IdentityLocks()
        self.timeout = timeout if timeout is not None else settings.SYNC_TIMEOUT_SECONDS
        self._active = set()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def run_sync(
        self,
        user_id: int,
        client_id: int,
        media_kind: Union[str, MediaKind],
        options: Union[QueryOptions, Dict[str, Any], None] = None,
        schedule_id: Optional[int] = None
    ) -> SyncResult:
        """
        Run one sync for (user, client, media kind).

        Args:
            user_id: Owner of the client
            client_id: External client to sync from
            media_kind: Kind name, synonyms and plurals accepted
            options: Query options forwarded to the provider, or stored
                schedule filters to build them from
            schedule_id: Schedule to stamp after a completed run

        Returns:
            SyncResult of the completed run

        Raises:
            SyncAlreadyRunningError: If the same sync is already running in
                this orchestrator or has a recent RUNNING job run (no job run
                is created)
            SyncException: Any job-level failure, after the run is marked FAILED
            asyncio.CancelledError: If the calling task is cancelled
        """
        try:
            kind = normalize_media_kind(media_kind)
            kind_label = kind.value
        except UnsupportedMediaKindError:
            kind = None
            kind_label = str(media_kind).strip().lower()

        key = (user_id, client_id, kind_label)
        if key in self._active:
            raise SyncAlreadyRunningError(
                f"Sync already running for user {user_id}, client {client_id}, kind {kind_label}",
                context={"user_id": user_id, "client_id": client_id, "media_kind": kind_label}
            )

        self._active.add(key)
        try:
            async with self.session_factory() as session:
                return await self._run(
                    session, user_id, client_id, kind, kind_label, media_kind, options, schedule_id
                )
        finally:
            self._active.discard(key)

    async def run_schedule(self, schedule) -> SyncResult:
        """Run the sync a JobSchedule describes, stamping it on success"""
        return await self.run_sync(
            schedule.user_id,
            schedule.client_id,
            schedule.media_kind,
            options=schedule.filters,
            schedule_id=schedule.id
        )

    async def run_full_sync(self, user_id: int) -> List[SyncResult]:
        """
        Sync every supported kind from every enabled client of a user.

        Kinds a client has no provider for are skipped without a job run.
        A failed run is logged and the remaining runs continue.
        """
        results = []
        configs = await self.client_registry.list_for_user(user_id)
        logger.info(f"Starting full sync for user {user_id} across {len(configs)} clients")

        for config in configs:
            if not config.enabled:
                logger.info(f"Client {config.client_id} is disabled, skipping")
                continue

            try:
                client = self.client_factory.create(config)
            except ClientConfigurationError as e:
                logger.error(
                    f"Full sync: cannot build client {config.client_id}: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
                continue

            for kind in FULL_SYNC_KINDS:
                if not client.supports(provider_kind(kind)):
                    logger.info(f"Client {config.client_id} does not support {plural_label(kind)}, skipping")
                    continue
                try:
                    results.append(await self.run_sync(user_id, config.client_id, kind))
                except SyncException as e:
                    logger.error(
                        f"Full sync: {plural_label(kind)} from client {config.client_id} failed: {e.message}",
                        extra={"error_context": e.to_dict()}
                    )

        logger.info(f"Full sync for user {user_id} finished: {len(results)} runs completed")
        return results

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    async def _run(
        self,
        session,
        user_id: int,
        client_id: int,
        kind: Optional[MediaKind],
        kind_label: str,
        requested_kind,
        options: Union[QueryOptions, Dict[str, Any], None],
        schedule_id: Optional[int]
    ) -> SyncResult:
        job_name = job_name_for(kind_label)
        job_runs = JobRunRepository(session)

        # Another process may be running the same sync
        running = await job_runs.find_running(
            job_name, user_id, client_id,
            started_after=utcnow() - timedelta(minutes=settings.SYNC_STALE_RUN_MINUTES)
        )
        if running is not None:
            raise SyncAlreadyRunningError(
                f"Sync already running for user {user_id}, client {client_id}, "
                f"kind {kind_label} (job run {running.id})",
                context={"user_id": user_id, "client_id": client_id, "media_kind": kind_label,
                         "job_run_id": running.id}
            )

        run = await job_runs.create(
            job_name=job_name,
            user_id=user_id,
            metadata={"client_id": client_id, "media_kind": kind_label, "schedule_id": schedule_id},
            status_message="Starting sync"
        )
        run_id = run.id
        stats = _RunStats()
        context = {"job_run_id": run_id, "user_id": user_id, "client_id": client_id, "media_kind": kind_label}

        try:
            if kind is None:
                raise UnsupportedMediaKindError(
                    f"Unsupported media type: {requested_kind}",
                    context=dict(context)
                )
            if isinstance(options, dict):
                options = self._build_options(options, context)
            await asyncio.wait_for(
                self._execute(session, job_runs, run_id, user_id, client_id, kind, options, stats),
                timeout=self.timeout
            )

        except asyncio.TimeoutError as e:
            error = SyncCancelledError(
                f"Sync timed out after {self.timeout} seconds",
                context=dict(context),
                original_exception=e
            )
            logger.error(f"Job run {run_id} timed out", extra={"error_context": error.to_dict()})
            await self._fail(session, job_runs, run_id, stats, error.message)
            raise error

        except asyncio.CancelledError:
            logger.warning(f"Job run {run_id} cancelled")
            await self._fail(session, job_runs, run_id, stats, "Sync cancelled")
            raise

        except SyncException as e:
            logger.error(
                f"Sync job run {run_id} failed: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            await self._fail(session, job_runs, run_id, stats, e.message)
            raise

        except Exception as e:
            logger.exception(f"Unexpected error in sync job run {run_id}")
            await self._fail(session, job_runs, run_id, stats, str(e))
            raise SyncException(
                "Unexpected error during sync",
                context=dict(context),
                original_exception=e
            )

        label = plural_label(kind)
        await job_runs.merge_metadata(run_id, stats.as_metadata())
        await job_runs.complete(run_id, JobStatus.COMPLETED, message=f"Synced {stats.processed} {label}")

        if schedule_id is not None:
            await JobScheduleRepository(session).stamp_last_run(schedule_id)

        logger.info(
            f"Sync job run {run_id} completed - Total: {stats.total}, Created: {stats.created}, "
            f"Updated: {stats.updated}, Skipped: {stats.skipped}"
        )

        return SyncResult(
            job_run_id=run_id,
            status=JobStatus.COMPLETED,
            user_id=user_id,
            client_id=client_id,
            media_kind=kind.value,
            total_items=stats.total,
            processed_items=stats.processed,
            created=stats.created,
            updated=stats.updated,
            skipped=stats.skipped
        )

    async def _fail(self, session, job_runs: JobRunRepository, run_id: int, stats: _RunStats, message: str):
        """Roll back the in-flight item and finalize the run as FAILED"""
        try:
            await session.rollback()
            await job_runs.merge_metadata(run_id, stats.as_metadata())
            await job_runs.complete(run_id, JobStatus.FAILED, error_message=message, message="Sync failed")
        except Exception:
            logger.exception(f"Could not mark job run {run_id} as failed")

    async def _execute(
        self,
        session,
        job_runs: JobRunRepository,
        run_id: int,
        user_id: int,
        client_id: int,
        kind: MediaKind,
        options: Optional[QueryOptions],
        stats: _RunStats
    ):
        label = plural_label(kind)

        # --------------------------------------------------
        # PHASE 1-2: CLIENT AND CAPABILITY
        # --------------------------------------------------
        config, client = await self._build_client(user_id, client_id)
        await job_runs.merge_metadata(run_id, {"client_type": config.client_type})

        provider = client.get_provider(provider_kind(kind))
        if provider is None:
            raise ProviderCapabilityError(
                f"Client {client_id} ({config.client_type}) does not provide {label}",
                context={"client_id": client_id, "client_type": config.client_type, "media_kind": kind.value}
            )

        # --------------------------------------------------
        # PHASE 3: FETCH
        # --------------------------------------------------
        await job_runs.update_progress(run_id, 0, f"Fetching {label}")

        if kind in TREE_KINDS:
            trees = await self._fetch_series_trees(provider, client_id, kind, options)
            total = sum(
                len(tree.seasons) + sum(len(branch.episodes) for branch in tree.seasons)
                for tree in trees
            )
            if kind == MediaKind.SERIES:
                total += len(trees)
        else:
            items = await self._fetch(provider, client_id, kind, options)
            total = len(items)

        stats.total = total
        await job_runs.set_total_items(run_id, total)
        await job_runs.update_progress(run_id, FETCH_DONE_PROGRESS, f"Processing {total} {label}")
        logger.info(f"Fetched {total} items for {label} sync from client {client_id}")

        # --------------------------------------------------
        # PHASE 4-5: RECONCILE AND LINK
        # --------------------------------------------------
        batch = BatchProcessor(MediaItemRepository(session), self.locks)
        tracker = _ProgressTracker(job_runs, run_id, total, label)

        if kind in TREE_KINDS:
            await self._process_series_trees(trees, client_id, kind, batch, tracker, stats)
        else:
            stats.add(await batch.process(items, client_id, kind, tracker.for_batch()))

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    @staticmethod
    def _build_options(filters: Dict[str, Any], context: Dict[str, Any]) -> Optional[QueryOptions]:
        try:
            return QueryOptions.from_filters(filters)
        except ValidationError as e:
            raise InvalidQueryOptionsError(
                f"Invalid query options in schedule filters: {filters}",
                context={**context, "filters": filters},
                original_exception=e
            )

    async def _build_client(self, user_id: int, client_id: int) -> Tuple[ClientConfig, MediaClient]:
        try:
            config = await self.client_registry.resolve(client_id)
        except ClientConfigurationError:
            raise
        except Exception as e:
            raise ClientConfigurationError(
                f"Failed to resolve client {client_id}",
                context={"client_id": client_id},
                original_exception=e
            )

        if not config.enabled:
            raise ClientConfigurationError(
                f"Client {client_id} is disabled",
                context={"client_id": client_id, "client_type": config.client_type}
            )
        if config.user_id != user_id:
            raise ClientConfigurationError(
                f"Client {client_id} is not registered to user {user_id}",
                context={"client_id": client_id, "user_id": user_id}
            )

        return config, self.client_factory.create(config)

    async def _fetch(
        self,
        provider: MediaProvider,
        client_id: int,
        kind: MediaKind,
        options: Optional[QueryOptions]
    ) -> List[InboundItem]:
        try:
            return list(await provider.fetch_all(options))
        except Exception as e:
            raise FetchError(
                f"Failed to fetch {plural_label(kind)} from client {client_id}",
                context={"client_id": client_id, "media_kind": kind.value},
                original_exception=e
            )

    async def _fetch_series_trees(
        self,
        provider: SeriesProvider,
        client_id: int,
        kind: MediaKind,
        options: Optional[QueryOptions]
    ) -> List[SeriesTree]:
        """Fetch series, then seasons per series and episodes per season"""
        series_items = await self._fetch(provider, client_id, kind, options)
        trees = []

        try:
            for series in series_items:
                tree = SeriesTree(series=series)
                trees.append(tree)

                series_item_id = series.client_item_id(client_id)
                if not series_item_id:
                    # The series itself is skipped as unattributable during reconciliation
                    continue

                for season in await provider.fetch_seasons(series_item_id):
                    season_number = getattr(season.payload, "season_number", 0) or 0
                    episodes = await provider.fetch_episodes(series_item_id, season_number)
                    tree.seasons.append(SeasonBranch(item=season, episodes=list(episodes)))

        except Exception as e:
            raise FetchError(
                f"Failed to fetch seasons and episodes from client {client_id}",
                context={"client_id": client_id, "media_kind": kind.value},
                original_exception=e
            )

        return trees

    async def _process_series_trees(
        self,
        trees: List[SeriesTree],
        client_id: int,
        kind: MediaKind,
        batch: BatchProcessor,
        tracker: _ProgressTracker,
        stats: _RunStats
    ):
        """Reconcile bottom-up (episodes, seasons, series), then link"""
        episodes = [ep for tree in trees for branch in tree.seasons for ep in branch.episodes]
        seasons = [branch.item for tree in trees for branch in tree.seasons]

        episode_result = await batch.process(episodes, client_id, MediaKind.EPISODE, tracker.for_batch())
        stats.add(episode_result)
        season_result = await batch.process(seasons, client_id, MediaKind.SEASON, tracker.for_batch())
        stats.add(season_result)

        if kind == MediaKind.SERIES:
            series_result = await batch.process(
                [tree.series for tree in trees], client_id, MediaKind.SERIES, tracker.for_batch()
            )
            stats.add(series_result)
            series_ids = series_result.item_ids
        else:
            series_ids = [await self._lookup_series(batch.resolver, tree.series, client_id) for tree in trees]

        linker = HierarchyLinker(batch.repository)
        episode_ids = iter(episode_result.item_ids)
        season_ids = iter(season_result.item_ids)
        writes = 0

        for tree, series_id in zip(trees, series_ids):
            links = []
            for branch in tree.seasons:
                season_id = next(season_ids)
                branch_episode_ids = [next(episode_ids) for _ in branch.episodes]
                if season_id is None:
                    if branch.episodes:
                        logger.warning(
                            f"Season '{branch.item.title}' of '{tree.series.title}' was skipped, "
                            f"its episodes stay unlinked"
                        )
                    continue
                links.append(SeasonLink(
                    season_id=season_id,
                    episode_ids=[i for i in branch_episode_ids if i is not None]
                ))

            if links:
                writes += await linker.link(series_id, links)

        logger.info(f"Hierarchy linking finished: {writes} records updated")

    async def _lookup_series(
        self,
        resolver: IdentityResolver,
        series: InboundItem,
        client_id: int
    ) -> Optional[int]:
        """Find the canonical series of an episode run without writing it"""
        try:
            match = await resolver.resolve(series, client_id)
        except ItemProcessingError as e:
            logger.warning(
                f"Cannot resolve series '{series.title}': {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return None
        if match is None:
            logger.warning(f"Series '{series.title}' is not in the catalog yet, linking episodes to seasons only")
            return None
        return match.id
