"""
Job run repository: lifecycle and progress of sync runs.

A run is created RUNNING, moves forward only (progress and counters never
decrease) and is finalized exactly once.
"""

from datetime import datetime
from typing import Optional, Dict, Any, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
import logging

from models.base import JobStatus, JobType, utcnow
from models.job_run import JobRun
from core.exceptions import PersistenceError, JobRunStateError

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


class JobRunRepository:
    """Persistence for JobRun records"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def _commit(self, operation: str, run_id: Optional[int] = None):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(
                f"Failed to {operation} job run",
                context={"operation": operation.upper(), "table_name": "job_runs", "job_run_id": run_id},
                original_exception=e
            )

    async def create(
        self,
        job_name: str,
        user_id: Optional[int] = None,
        job_type: JobType = JobType.SYNC,
        metadata: Optional[Dict[str, Any]] = None,
        status_message: Optional[str] = None
    ) -> JobRun:
        """Create a RUNNING job run"""
        run = JobRun(
            job_name=job_name,
            job_type=job_type,
            user_id=user_id,
            status=JobStatus.RUNNING,
            progress=0,
            started_at=utcnow(),
            total_items=0,
            processed_items=0,
            skipped_items=0,
            status_message=status_message,
            run_metadata=dict(metadata or {}),
        )
        self.db.add(run)
        await self._commit("insert")
        logger.info(f"Created job run {run.id}: {job_name}")
        return run

    async def get(self, run_id: int) -> Optional[JobRun]:
        result = await self.db.execute(
            select(JobRun)
            .where(JobRun.id == run_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_recent(self, limit: int = 20) -> List[JobRun]:
        result = await self.db.execute(
            select(JobRun)
            .order_by(JobRun.started_at.desc(), JobRun.id.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def find_running(
        self,
        job_name: str,
        user_id: Optional[int],
        client_id: int,
        started_after: Optional[datetime] = None
    ) -> Optional[JobRun]:
        """Most recent RUNNING run of a job for (user, client), ignoring runs started before `started_after`"""
        stmt = select(JobRun).where(
            JobRun.job_name == job_name,
            JobRun.user_id == user_id,
            JobRun.status == JobStatus.RUNNING
        )
        if started_after is not None:
            stmt = stmt.where(JobRun.started_at >= started_after)
        result = await self.db.execute(
            stmt.order_by(JobRun.started_at.desc(), JobRun.id.desc())
            .execution_options(populate_existing=True)
        )
        # client_id lives in the JSON metadata
        for run in result.scalars().all():
            if (run.run_metadata or {}).get("client_id") == client_id:
                return run
        return None

    async def _get_running(self, run_id: int) -> JobRun:
        run = await self.get(run_id)
        if run is None:
            raise JobRunStateError(f"Job run {run_id} not found", context={"job_run_id": run_id})
        if run.status != JobStatus.RUNNING:
            raise JobRunStateError(
                f"Job run {run_id} is already {run.status.value}",
                context={"job_run_id": run_id, "status": run.status.value}
            )
        return run

    async def update_progress(self, run_id: int, percent: int, message: Optional[str] = None) -> JobRun:
        """Raise progress to `percent` (clamped to 0-100); progress never goes back"""
        run = await self._get_running(run_id)
        run.progress = max(run.progress or 0, min(max(int(percent), 0), 100))
        if message:
            run.status_message = message
        await self._commit("update", run_id)
        return run

    async def set_total_items(self, run_id: int, total: int) -> JobRun:
        run = await self._get_running(run_id)
        run.total_items = total
        await self._commit("update", run_id)
        return run

    async def increment_processed(self, run_id: int, count: int = 1) -> JobRun:
        run = await self._get_running(run_id)
        run.processed_items = (run.processed_items or 0) + max(count, 0)
        await self._commit("update", run_id)
        return run

    async def increment_skipped(self, run_id: int, count: int = 1) -> JobRun:
        run = await self._get_running(run_id)
        run.skipped_items = (run.skipped_items or 0) + max(count, 0)
        await self._commit("update", run_id)
        return run

    async def merge_metadata(self, run_id: int, values: Dict[str, Any]) -> JobRun:
        run = await self._get_running(run_id)
        run.run_metadata = {**(run.run_metadata or {}), **values}
        await self._commit("update", run_id)
        return run

    async def complete(
        self,
        run_id: int,
        status: JobStatus,
        error_message: Optional[str] = None,
        message: Optional[str] = None
    ) -> JobRun:
        """
        Finalize a run as COMPLETED or FAILED.

        Raises:
            JobRunStateError: If the status is not terminal or the run is
                not RUNNING
        """
        if status not in TERMINAL_STATUSES:
            raise JobRunStateError(
                f"Cannot complete job run {run_id} with status {status.value}",
                context={"job_run_id": run_id, "status": status.value}
            )

        run = await self._get_running(run_id)
        now = utcnow()
        run.status = status
        run.completed_at = now
        run.duration_seconds = (now - run.started_at).total_seconds()
        run.error_message = error_message
        if status == JobStatus.COMPLETED:
            run.progress = 100
        if message:
            run.status_message = message

        await self._commit("update", run_id)
        logger.info(f"Job run {run_id} finalized as {status.value}")
        return run
