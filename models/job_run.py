from sqlalchemy import Column, BigInteger, String, Enum, DateTime, Float, Integer, Text, Index
from models.base import Base, BigIntPK, JSONType, JobStatus, JobType, utcnow


class JobRun(Base):
    """
    Tracks one execution of a sync job.

    Purpose:
    - Audit trail of all sync runs (append-only history)
    - Progress reporting while a run is in flight
    - Error tracking and debugging

    Lifecycle:
    - Created as RUNNING when the orchestrator starts a run
    - progress and processed_items only ever move forward
    - Finalized exactly once as COMPLETED or FAILED
    """
    __tablename__ = "job_runs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    # Job identification
    job_name = Column(String(200), nullable=False, index=True)
    job_type = Column(Enum(JobType), nullable=False, default=JobType.SYNC, index=True)
    user_id = Column(BigInteger, nullable=True, index=True)

    # Run state
    status = Column(Enum(JobStatus), default=JobStatus.PENDING, nullable=False, index=True)
    progress = Column(Integer, nullable=False, default=0)  # 0-100
    status_message = Column(Text, nullable=True)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Counters
    total_items = Column(Integer, nullable=False, default=0)
    processed_items = Column(Integer, nullable=False, default=0)
    skipped_items = Column(Integer, nullable=False, default=0)

    # Error tracking
    error_message = Column(Text, nullable=True)

    # Client id, client type, media kind, created/updated counters
    run_metadata = Column("metadata", JSONType, nullable=True)

    __table_args__ = (
        Index("idx_job_run_name_started", "job_name", "started_at"),
        Index("idx_job_run_status", "status", "started_at"),
    )
