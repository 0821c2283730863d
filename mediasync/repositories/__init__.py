"""
Async SQLAlchemy repositories used by the sync engine.
"""

from mediasync.repositories.media_items import MediaItemRepository
from mediasync.repositories.job_runs import JobRunRepository
from mediasync.repositories.schedules import JobScheduleRepository

__all__ = [
    "MediaItemRepository",
    "JobRunRepository",
    "JobScheduleRepository",
]
