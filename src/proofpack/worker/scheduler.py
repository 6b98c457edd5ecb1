"""Periodic job scheduling.

The worker has one periodic job, the expiry sweep. Scheduling state lives
in the jobs table: after a restart the newest stored run of a job marks
when it was last enqueued. A new run is never enqueued while an earlier one
is still pending or running.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select

from proofpack.db.models.base import JobStatus
from proofpack.db.models.jobs import Job
from proofpack.services.job_queue import JobQueueError, JobQueueService, JobType
from proofpack.worker.handlers.expiry import DEFAULT_BATCH_SIZE

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from proofpack.core.config import WorkerSettings

logger = logging.getLogger(__name__)

IN_FLIGHT = (JobStatus.PENDING, JobStatus.RUNNING)


@dataclass
class ScheduledJob:
    """A job enqueued once every `interval`.

    `last_scheduled` is None until the scheduler has either enqueued the
    job or recovered its newest run from the jobs table.
    """

    job_type: str
    interval: timedelta
    payload: dict[str, Any] = field(default_factory=dict)
    queue: str = "default"
    priority: int = 100
    enabled: bool = True
    last_scheduled: datetime | None = None

    def next_due(self) -> datetime | None:
        if self.last_scheduled is None:
            return None
        return self.last_scheduled + self.interval

    def is_due(self, now: datetime) -> bool:
        due = self.next_due()
        return due is None or now >= due


def default_schedules(settings: WorkerSettings) -> list[ScheduledJob]:
    sweep = ScheduledJob(
        job_type=JobType.EXPIRY_SWEEP.value,
        interval=timedelta(hours=settings.expiry_sweep_interval_hours),
        payload={"batch_size": DEFAULT_BATCH_SIZE},
        priority=150,
    )
    return [sweep]


class Scheduler:
    """Enqueues the periodic jobs that are due, within the caller's session.

    Example:
        async with session_factory() as session:
            if await Scheduler(session, default_schedules(settings.worker)).tick():
                await session.commit()
    """

    def __init__(self, session: AsyncSession, schedules: list[ScheduledJob] | None = None) -> None:
        self.session = session
        self.schedules = list(schedules or [])
        self._queue = JobQueueService(session)

    async def tick(self) -> list[str]:
        """Enqueue every enabled job that is due.

        Returns:
            Job types enqueued by this tick.
        """
        now = datetime.now(UTC)
        enqueued = []
        for schedule in self.schedules:
            if schedule.enabled and await self._enqueue_if_due(schedule, now):
                enqueued.append(schedule.job_type)
        return enqueued

    async def _enqueue_if_due(self, schedule: ScheduledJob, now: datetime) -> bool:
        if schedule.last_scheduled is None:
            schedule.last_scheduled = await self._latest_run(schedule)
        if not schedule.is_due(now):
            return False
        if await self._run_in_flight(schedule):
            logger.debug("Previous %s run still in flight, not enqueueing", schedule.job_type)
            return False

        try:
            await self._queue.enqueue(
                job_type=schedule.job_type,
                payload=dict(schedule.payload),
                queue=schedule.queue,
                priority=schedule.priority,
            )
        except JobQueueError:
            logger.exception("Could not enqueue periodic job %s", schedule.job_type)
            return False

        schedule.last_scheduled = now
        logger.info(
            "Enqueued periodic job %s on queue %s; next due %s",
            schedule.job_type,
            schedule.queue,
            schedule.next_due().isoformat(),
        )
        return True

    async def _latest_run(self, schedule: ScheduledJob) -> datetime | None:
        result = await self.session.execute(
            select(func.max(Job.created_at)).where(
                Job.job_type == schedule.job_type,
                Job.queue == schedule.queue,
            )
        )
        return result.scalar()

    async def _run_in_flight(self, schedule: ScheduledJob) -> bool:
        result = await self.session.execute(
            select(Job.job_id)
            .where(
                Job.job_type == schedule.job_type,
                Job.queue == schedule.queue,
                Job.status.in_(IN_FLIGHT),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None


async def run_scheduler_loop(
    session_factory: async_sessionmaker[AsyncSession],
    schedules: list[ScheduledJob],
    check_interval: float = 60.0,
    shutdown_event: asyncio.Event | None = None,
) -> None:
    """Tick every `check_interval` seconds until `shutdown_event` is set.

    The same ScheduledJob objects are passed to every tick, so the
    in-memory last_scheduled survives between ticks.
    """
    stop = shutdown_event or asyncio.Event()
    logger.info(
        "Scheduler running every %.0fs with %d periodic job(s)", check_interval, len(schedules)
    )

    while not stop.is_set():
        try:
            async with session_factory() as session:
                if await Scheduler(session, schedules).tick():
                    await session.commit()
        except Exception:
            logger.exception("Scheduler tick failed")

        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=check_interval)

    logger.info("Scheduler loop exited")
