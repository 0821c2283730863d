from sqlalchemy import Column, BigInteger, Integer, String, Enum, DateTime, Boolean, Index
from models.base import Base, BigIntPK, JSONType, SyncFrequency, utcnow


class JobSchedule(Base):
    """
    Durable recurring sync intent for one (user, client, media kind).

    Purpose:
    - Read by the scheduler to decide which syncs are due
    - last_run_at is stamped by the orchestrator after a completed run

    Design:
    - media_kind is stored as given by the user (synonyms allowed) and is
      normalized when the run starts
    - filters holds provider query options (limit, filters)
    """
    __tablename__ = "job_schedules"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    user_id = Column(BigInteger, nullable=False, index=True)
    client_id = Column(Integer, nullable=False, index=True)
    media_kind = Column(String(50), nullable=False)

    frequency = Column(Enum(SyncFrequency), nullable=False, default=SyncFrequency.DAILY)
    enabled = Column(Boolean, nullable=False, default=True, index=True)
    filters = Column(JSONType, nullable=True)

    last_run_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_job_schedule_target", "user_id", "client_id", "media_kind", unique=True),
    )
