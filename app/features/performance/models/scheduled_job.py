from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, Index, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from app.platform.db.base import BaseModel


class JobStatus(enum.Enum):
    """Collection job state machine: queued -> running -> completed | failed"""
    queued = "queued"
    running = "running"
    completed = "completed"
    failed = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.completed, JobStatus.failed})
ACTIVE_STATUSES = frozenset({JobStatus.queued, JobStatus.running})


class ScheduledJob(BaseModel):
    """
    Lifecycle wrapper around one measurement batch.

    Transitioned exactly twice (queued -> running, running -> terminal) and
    immutable afterwards. `batch_id` correlates the raw runs and median
    metrics the batch produced.
    """
    __tablename__ = "scheduled_jobs"

    site_id = Column(String, ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    site = relationship("Site", back_populates="jobs")

    job_type = Column(String(50), default="lighthouse", nullable=False)
    status = Column(Enum(JobStatus), default=JobStatus.queued, nullable=False, index=True)

    scheduled_for = Column(DateTime, default=datetime.utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    error = Column(Text, nullable=True)

    batch_id = Column(String(36), nullable=True, index=True)

    # Partial-failure bookkeeping: (page, device) groups planned vs. groups with a median
    groups_attempted = Column(Integer, nullable=True)
    groups_succeeded = Column(Integer, nullable=True)

    celery_task_id = Column(String(128), nullable=True, index=True)

    __table_args__ = (
        Index("idx_scheduled_jobs_site_status", "site_id", "status"),
    )
