"""
Job schedule repository
"""

from typing import Optional, Dict, Any, List
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from models.base import SyncFrequency, utcnow
from models.job_schedule import JobSchedule
from core.exceptions import PersistenceError


class JobScheduleRepository:
    """Persistence for JobSchedule records"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def _commit(self, operation: str):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(
                f"Failed to {operation} job schedule",
                context={"operation": operation.upper(), "table_name": "job_schedules"},
                original_exception=e
            )

    async def create(
        self,
        user_id: int,
        client_id: int,
        media_kind: str,
        frequency: SyncFrequency = SyncFrequency.DAILY,
        enabled: bool = True,
        filters: Optional[Dict[str, Any]] = None
    ) -> JobSchedule:
        schedule = JobSchedule(
            user_id=user_id,
            client_id=client_id,
            media_kind=media_kind,
            frequency=frequency,
            enabled=enabled,
            filters=filters,
        )
        self.db.add(schedule)
        await self._commit("insert")
        return schedule

    async def get(self, schedule_id: int) -> Optional[JobSchedule]:
        result = await self.db.execute(
            select(JobSchedule)
            .where(JobSchedule.id == schedule_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_enabled(self) -> List[JobSchedule]:
        result = await self.db.execute(
            select(JobSchedule)
            .where(JobSchedule.enabled.is_(True))
            .order_by(JobSchedule.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def stamp_last_run(self, schedule_id: int, when: Optional[datetime] = None) -> Optional[JobSchedule]:
        schedule = await self.get(schedule_id)
        if schedule is None:
            return None
        schedule.last_run_at = when or utcnow()
        await self._commit("update")
        return schedule
