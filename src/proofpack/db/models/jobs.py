"""Rows of the background job queue (see proofpack.services.job_queue)."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - resolved at runtime by the mapper

from sqlalchemy import DateTime, Enum, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from proofpack.db.models.base import (
    Base,
    JobStatus,
    OptionalTimestampTZ,
    TimestampTZ,
    UUIDPrimaryKey,
)


class Job(Base):
    __tablename__ = "jobs"
    __table_args__ = (
        # Claim query: queue + status + run_at, ordered by priority.
        Index("ix_jobs_queue_pending", "queue", "status", "run_at", "priority"),
        Index("ix_jobs_job_type", "job_type"),
        Index("ix_jobs_completed_at", "completed_at"),
    )

    job_id: Mapped[UUIDPrimaryKey]
    job_type: Mapped[str] = mapped_column(String(100))
    queue: Mapped[str] = mapped_column(String(100), default="default")
    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, name="job_status", create_constraint=True), default=JobStatus.PENDING
    )
    priority: Mapped[int] = mapped_column(default=100)
    run_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    payload_json: Mapped[dict | None] = mapped_column(JSONB)
    correlation_id: Mapped[str | None] = mapped_column(String(255))

    # Retry bookkeeping
    attempts: Mapped[int] = mapped_column(default=0)
    max_attempts: Mapped[int] = mapped_column(default=3)
    base_backoff_seconds: Mapped[int] = mapped_column(default=60)
    last_error: Mapped[str | None] = mapped_column(Text)

    # Set while a worker holds the job
    locked_by: Mapped[str | None] = mapped_column(String(255))
    locked_at: Mapped[OptionalTimestampTZ]

    started_at: Mapped[OptionalTimestampTZ]
    completed_at: Mapped[OptionalTimestampTZ]
    result_json: Mapped[dict | None] = mapped_column(JSONB)

    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]
