import logging
from datetime import datetime, timedelta
from typing import List, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from core.config import settings
from core.exceptions import SyncException
from models.base import SyncFrequency, utcnow
from mediasync.orchestrator import SyncOrchestrator
from mediasync.repositories import JobScheduleRepository
from schemas.jobs import SyncResult

logger = logging.getLogger(__name__)

FREQUENCY_INTERVALS = {
    SyncFrequency.DAILY: timedelta(days=1),
    SyncFrequency.WEEKLY: timedelta(days=7),
    SyncFrequency.MONTHLY: timedelta(days=30),
}


def is_due(schedule, now: Optional[datetime] = None) -> bool:
    """
    Decide whether a schedule should run now.

    Manual schedules never run on their own, a schedule that never ran is
    always due, and an unknown frequency is treated as daily.
    """
    if not schedule.enabled:
        return False

    try:
        frequency = SyncFrequency(schedule.frequency)
    except ValueError:
        frequency = SyncFrequency.DAILY

    if frequency == SyncFrequency.MANUAL:
        return False
    if schedule.last_run_at is None:
        return True

    now = now or utcnow()
    return now - schedule.last_run_at >= FREQUENCY_INTERVALS[frequency]


class SyncScheduler:
    def __init__(self, orchestrator: SyncOrchestrator, session_factory, interval_minutes: Optional[int] = None):
        self.orchestrator = orchestrator
        self.session_factory = session_factory
        self.interval_minutes = interval_minutes or settings.SYNC_POLL_INTERVAL_MINUTES
        self.scheduler = AsyncIOScheduler()

    async def run_due_schedules(self, now: Optional[datetime] = None) -> List[SyncResult]:
        """Run every enabled schedule that is due; a failed run does not stop the rest"""
        async with self.session_factory() as session:
            schedules = await JobScheduleRepository(session).list_enabled()

        due = [s for s in schedules if is_due(s, now)]
        logger.info(f"Scheduler: {len(due)} of {len(schedules)} enabled schedules are due")

        results = []
        for schedule in due:
            try:
                results.append(await self.orchestrator.run_schedule(schedule))
            except SyncException as e:
                logger.error(
                    f"Scheduler: schedule {schedule.id} failed - {e.message}",
                    extra={"error_context": e.to_dict()}
                )
        return results

    async def run_sync_job(self):
        """Job to run due schedules"""
        logger.info("Scheduler: Checking sync schedules")
        try:
            await self.run_due_schedules()
        except Exception as e:
            logger.error(f"Scheduler: sync job failed - {e}")

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.run_sync_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="media_sync_job",
            replace_existing=True
        )
        self.scheduler.start()
        logger.info(f"Sync Scheduler started, polling every {self.interval_minutes} minutes")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Sync Scheduler stopped")
