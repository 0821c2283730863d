"""
SQLAlchemy ORM models for database tables.

This package defines the database schema using SQLAlchemy ORM models:

Models:
    base: Base declarative class, portable column types and shared enums
          (MediaKind, JobStatus, JobType, SyncFrequency)
    media_item: Canonical media items, their source links and external ids
    job_run: Sync job execution tracking
    job_schedule: Recurring sync configuration

Database Schema:
    All models inherit from the Base declarative class. JSON columns use
    JSONB on PostgreSQL and generic JSON on other dialects.

Usage:
    from models import MediaItem, JobRun, JobSchedule
    from models.base import MediaKind, JobStatus

Relationships:
    - MediaItem → MediaItemSource (one-to-many, one per external client)
    - MediaItem → MediaItemExternalID (one-to-many, one per identifier source)
"""

from models.base import Base, MediaKind, JobStatus, JobType, SyncFrequency
from models.media_item import MediaItem, MediaItemSource, MediaItemExternalID
from models.job_run import JobRun
from models.job_schedule import JobSchedule

__all__ = [
    "Base",
    "MediaKind",
    "JobStatus",
    "JobType",
    "SyncFrequency",
    "MediaItem",
    "MediaItemSource",
    "MediaItemExternalID",
    "JobRun",
    "JobSchedule",
]
