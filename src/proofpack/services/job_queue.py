"""Background jobs stored in PostgreSQL.

A job moves PENDING -> RUNNING -> COMPLETED, or back to PENDING with a
doubled delay when its handler fails, until it runs out of attempts and is
left FAILED as a dead letter. Workers claim with FOR UPDATE SKIP LOCKED, so
concurrent workers never pick the same row.

Two job types exist: notification redelivery and the periodic expiry sweep.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from proofpack.db.models.base import JobStatus
from proofpack.db.models.jobs import Job

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class JobType(str, Enum):
    NOTIFICATION_DELIVER = "notification_deliver"
    EXPIRY_SWEEP = "expiry_sweep"


class JobQueueError(Exception):
    """A queue operation could not be carried out."""


class JobNotFoundError(JobQueueError):
    pass


def compute_backoff_seconds(base_backoff_seconds: int, attempts: int) -> int:
    """Retry delay after the `attempts`-th failed run: base, 2*base, 4*base..."""
    return base_backoff_seconds * (2 ** max(attempts - 1, 0))


class JobQueueService:
    """Job queue operations inside the caller's session.

    Nothing here commits. The worker commits a claim before running the
    handler and commits the outcome afterwards.

    Example:
        jobs = JobQueueService(session)
        await jobs.enqueue(JobType.NOTIFICATION_DELIVER, {"recipient": user_id})
        await session.commit()
    """

    def __init__(
        self,
        session: AsyncSession,
        default_queue: str = "default",
        default_max_attempts: int = 3,
        default_base_backoff: int = 60,
    ) -> None:
        self.session = session
        self.default_queue = default_queue
        self.default_max_attempts = default_max_attempts
        self.default_base_backoff = default_base_backoff

    async def enqueue(
        self,
        job_type: str | JobType,
        payload: dict[str, Any] | None = None,
        run_at: datetime | None = None,
        queue: str | None = None,
        priority: int = 100,
        max_attempts: int | None = None,
        base_backoff_seconds: int | None = None,
        correlation_id: str | None = None,
    ) -> uuid.UUID:
        """Store a new pending job and return its id.

        Args:
            job_type: Selects the worker handler.
            payload: JSON data passed to the handler.
            run_at: Not claimable before this time; now if omitted.
            queue: Queue name; the service default if omitted.
            priority: Smaller values are claimed first.
            max_attempts: Runs allowed before the job is dead-lettered.
            base_backoff_seconds: Delay after the first failure.
            correlation_id: Request id that caused the job, if any.

        Raises:
            JobQueueError: The insert failed.
        """
        kind = job_type.value if isinstance(job_type, JobType) else job_type
        job = Job(
            job_type=kind,
            status=JobStatus.PENDING,
            run_at=run_at or datetime.now(UTC),
            payload_json=payload,
            queue=queue or self.default_queue,
            priority=priority,
            attempts=0,
            max_attempts=max_attempts or self.default_max_attempts,
            base_backoff_seconds=base_backoff_seconds or self.default_base_backoff,
            correlation_id=correlation_id,
        )
        self.session.add(job)
        try:
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Could not store %s job: %s", kind, e)
            raise JobQueueError(f"Failed to enqueue job {kind}: {e}") from e

        logger.info("Queued %s job %s on %s (run_at=%s)", kind, job.job_id, job.queue, job.run_at)
        return job.job_id

    async def claim_job(
        self,
        worker_id: str,
        queue: str | None = None,
        job_types: list[str] | None = None,
    ) -> Job | None:
        """Lock the most urgent runnable job for `worker_id`.

        Returns:
            The job, now RUNNING with its attempt counted, or None when the
            queue has nothing runnable.

        Raises:
            JobQueueError: The claim query failed.
        """
        now = datetime.now(UTC)
        conditions = [
            Job.queue == (queue or self.default_queue),
            Job.status == JobStatus.PENDING,
            Job.run_at <= now,
        ]
        if job_types:
            conditions.append(Job.job_type.in_(job_types))
        stmt = (
            select(Job)
            .where(*conditions)
            .order_by(Job.priority, Job.run_at)
            .limit(1)
            .with_for_update(skip_locked=True)
        )

        try:
            job = (await self.session.execute(stmt)).scalar_one_or_none()
            if job is None:
                return None
            job.status = JobStatus.RUNNING
            job.attempts += 1
            job.started_at = job.locked_at = now
            job.locked_by = worker_id
            await self.session.flush()
        except SQLAlchemyError as e:
            logger.error("Claim on queue %s failed: %s", queue or self.default_queue, e)
            raise JobQueueError(f"Failed to claim job: {e}") from e

        logger.debug("%s took job %s (%s)", worker_id, job.job_id, job.job_type)
        return job

    async def complete_job(self, job_id: uuid.UUID, result: dict[str, Any] | None = None) -> None:
        job = await self._require(job_id)
        job.status = JobStatus.COMPLETED
        job.completed_at = datetime.now(UTC)
        job.result_json = result
        self._unlock(job)
        await self.session.flush()
        logger.info("Job %s (%s) completed", job_id, job.job_type)

    async def fail_job(self, job_id: uuid.UUID, error: str) -> bool:
        """Record a failed run.

        Returns:
            True when the job went back to PENDING for another attempt,
            False when it was dead-lettered.

        Raises:
            JobNotFoundError: No job has this id.
        """
        job = await self._require(job_id)
        now = datetime.now(UTC)
        job.last_error = error
        self._unlock(job)

        retry = job.attempts < job.max_attempts
        if retry:
            delay = compute_backoff_seconds(job.base_backoff_seconds, job.attempts)
            job.status = JobStatus.PENDING
            job.run_at = now + timedelta(seconds=delay)
        else:
            job.status = JobStatus.FAILED
            job.completed_at = now
        await self.session.flush()

        if retry:
            logger.info(
                "Job %s (%s) failed attempt %d of %d; next try in %ds",
                job_id,
                job.job_type,
                job.attempts,
                job.max_attempts,
                delay,
            )
        else:
            logger.warning(
                "Job %s (%s) dead-lettered after %d attempts: %s",
                job_id,
                job.job_type,
                job.attempts,
                error,
            )
        return retry

    async def get_pending_count(self, queue: str | None = None, job_type: str | None = None) -> int:
        stmt = select(func.count()).select_from(Job).where(Job.status == JobStatus.PENDING)
        if queue:
            stmt = stmt.where(Job.queue == queue)
        if job_type:
            stmt = stmt.where(Job.job_type == job_type)
        return (await self.session.execute(stmt)).scalar() or 0

    async def cleanup_stale_jobs(self, stale_threshold_seconds: int = 600) -> int:
        """Put RUNNING jobs locked longer than the threshold back in the queue.

        A worker that died mid-job leaves its row RUNNING forever otherwise.
        The attempt it used stays counted.

        Returns:
            How many jobs were reset.
        """
        now = datetime.now(UTC)
        cutoff = now - timedelta(seconds=stale_threshold_seconds)
        stmt = (
            update(Job)
            .where(Job.status == JobStatus.RUNNING, Job.locked_at < cutoff)
            .values(status=JobStatus.PENDING, locked_at=None, locked_by=None, run_at=now)
            .returning(Job.job_id)
        )
        try:
            reset = list((await self.session.execute(stmt)).scalars().all())
        except SQLAlchemyError as e:
            raise JobQueueError(f"Stale job reset failed: {e}") from e

        if reset:
            logger.warning("Stale jobs reset to pending: %s", reset)
        return len(reset)

    @staticmethod
    def _unlock(job: Job) -> None:
        job.locked_at = None
        job.locked_by = None

    async def _require(self, job_id: uuid.UUID) -> Job:
        result = await self.session.execute(select(Job).where(Job.job_id == job_id))
        job = result.scalar_one_or_none()
        if job is None:
            raise JobNotFoundError(f"No job with id {job_id}")
        return job
