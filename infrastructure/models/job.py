"""
Job queue models
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, Text, JSON,
    Index, ForeignKey
)
from datetime import datetime, timezone

from .base import Base


class JobModel(Base):
    __tablename__ = "jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_type = Column(String(100), nullable=False, index=True)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="queued",
                    comment="queued/running/succeeded/failed/dead_lettered")
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=8)
    next_run_at = Column(DateTime(timezone=True), nullable=True)
    lease_expires_at = Column(DateTime(timezone=True), nullable=True)
    locked_by = Column(String(100), nullable=True)
    last_error = Column(Text, nullable=True)
    dedupe_key = Column(String(255), nullable=True, unique=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_jobs_status_next_run", "status", "next_run_at"),
        Index("ix_jobs_status_lease", "status", "lease_expires_at"),
    )

    def __repr__(self):
        return f"<JobModel(id={self.id}, type='{self.job_type}', status='{self.status}', attempts={self.attempts})>"


class JobAttemptModel(Base):
    __tablename__ = "job_attempts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    attempt = Column(Integer, nullable=False)
    worker_id = Column(String(100), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=False)
    outcome = Column(String(20), nullable=False, comment="succeeded/failed/lease_expired")
    error = Column(Text, nullable=True)
