"""Proof Pack worker process.

Runs two loops until SIGTERM or SIGINT:

- the Worker, which claims one job at a time from each configured queue and
  hands it to the handler registered for its job type;
- the periodic scheduler, which enqueues the expiry sweep.

Started with the proofpack-worker console script or
`python -m proofpack.worker`.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import signal
import sys
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, NoReturn

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from proofpack.db import get_database_url
from proofpack.services.job_queue import JobQueueService, JobType
from proofpack.services.notifications import NotificationTransport
from proofpack.worker.handlers import deliver_notification_handler, expiry_sweep_handler
from proofpack.worker.scheduler import default_schedules, run_scheduler_loop

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine

    from proofpack.core.config import Settings
    from proofpack.db.models.jobs import Job

logger = logging.getLogger(__name__)

JobHandler = Callable[[AsyncSession, "Job"], Awaitable[dict[str, Any] | None]]


@dataclass
class WorkerConfig:
    """Runtime options of one worker process.

    Attributes:
        database_url: Async (psycopg) database URL.
        worker_id: Written to locked_by on claimed jobs.
        poll_interval: Idle wait between passes over the queues, in seconds.
        queues: Queues visited on every pass, in order.
        job_types: Restrict claims to these job types; empty claims any.
        stale_job_threshold_seconds: A running job locked longer than this
            is returned to pending.
        shutdown_timeout: Grace period for in-flight work on shutdown.
        pool_size: Connections kept by the worker's engine.
    """

    database_url: str
    worker_id: str = field(default_factory=lambda: f"worker-{uuid.uuid4().hex[:8]}")
    poll_interval: float = 1.0
    queues: list[str] = field(default_factory=lambda: ["default"])
    job_types: list[str] = field(default_factory=list)
    stale_job_threshold_seconds: int = 600
    shutdown_timeout: float = 30.0
    pool_size: int = 5

    @classmethod
    def from_settings(cls, settings: Settings) -> WorkerConfig:
        return cls(
            database_url=get_database_url(),
            poll_interval=settings.worker.poll_interval,
            queues=list(settings.worker.queues),
            stale_job_threshold_seconds=settings.worker.stale_job_threshold_seconds,
            pool_size=settings.database.pool_size,
        )


class Worker:
    """Claims and runs jobs from the PostgreSQL job queue.

    A claim is committed before its handler runs, so a crash mid-handler
    leaves a RUNNING row that the stale-job cleanup later returns to
    pending. Handler failures are recorded in a separate session after the
    handler's own transaction has been rolled back.

    Example:
        worker = Worker(WorkerConfig.from_settings(settings))
        register_default_handlers(worker, settings, transport)
        await worker.start()
    """

    def __init__(self, config: WorkerConfig) -> None:
        self.config = config
        self._handlers: dict[str, JobHandler] = {}
        self._shutdown_event = asyncio.Event()
        self._engine: AsyncEngine | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._started_at: datetime | None = None
        self._jobs_processed = 0
        self._jobs_failed = 0

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._engine = create_async_engine(
                self.config.database_url,
                pool_size=self.config.pool_size,
                pool_pre_ping=True,
                connect_args={"application_name": "proofpack-worker"},
            )
            self._session_factory = async_sessionmaker(self._engine, expire_on_commit=False)
        return self._session_factory

    def register_handler(self, job_type: str | JobType, handler: JobHandler) -> None:
        key = JobType(job_type).value if isinstance(job_type, JobType) else job_type
        self._handlers[key] = handler
        logger.debug("Handler registered for %s", key)

    async def start(self) -> None:
        """Run until stop() is called, then dispose of the engine."""
        self._started_at = datetime.now(UTC)
        logger.info("Worker %s polling queues %s", self.config.worker_id, self.config.queues)
        try:
            await self._run_loop()
        finally:
            if self._engine is not None:
                await self._engine.dispose()
            logger.info(
                "Worker %s stopped after %s: %d completed, %d dead-lettered",
                self.config.worker_id,
                self._get_uptime(),
                self._jobs_processed,
                self._jobs_failed,
            )

    async def stop(self) -> None:
        logger.info("Stopping worker %s", self.config.worker_id)
        self._shutdown_event.set()

    async def _run_loop(self) -> None:
        stopping = self._shutdown_event.is_set
        while not stopping():
            try:
                for queue in self.config.queues:
                    if stopping():
                        break
                    await self._process_queue(queue)
                if not stopping():
                    await self._cleanup_stale_jobs()
            except Exception:
                logger.exception("Worker pass failed; retrying after a pause")
                await asyncio.sleep(1.0)
                continue

            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._shutdown_event.wait(), self.config.poll_interval)

    async def _process_queue(self, queue: str) -> bool:
        """Run at most one job from `queue`.

        Returns:
            True if a job was claimed, whatever its outcome.
        """
        async with self.session_factory() as session:
            jobs = JobQueueService(session)
            job = await jobs.claim_job(
                worker_id=self.config.worker_id,
                queue=queue,
                job_types=self.config.job_types or None,
            )
            if job is None:
                return False
            await session.commit()

            job_id, job_type = job.job_id, job.job_type
            handler = self._handlers.get(job_type)
            if handler is None:
                logger.error("No handler for job %s of type %s", job_id, job_type)
                await jobs.fail_job(job_id, f"No handler registered for job_type={job_type}")
                await session.commit()
                self._jobs_failed += 1
                return True

            logger.info(
                "Running %s job %s (attempt %d of %d)",
                job_type,
                job_id,
                job.attempts,
                job.max_attempts,
            )
            try:
                result = await handler(session, job)
                await jobs.complete_job(job_id, result)
                await session.commit()
            except Exception as e:
                logger.exception("%s job %s raised", job_type, job_id)
                await session.rollback()
                await self._record_failure(job_id, str(e))
            else:
                self._jobs_processed += 1
        return True

    async def _record_failure(self, job_id: uuid.UUID, error: str) -> None:
        async with self.session_factory() as session:
            will_retry = await JobQueueService(session).fail_job(job_id, error)
            await session.commit()
        if will_retry:
            logger.info("Job %s will be retried", job_id)
        else:
            logger.warning("Job %s exhausted its attempts", job_id)
            self._jobs_failed += 1

    async def _cleanup_stale_jobs(self) -> None:
        async with self.session_factory() as session:
            reset = await JobQueueService(session).cleanup_stale_jobs(
                stale_threshold_seconds=self.config.stale_job_threshold_seconds
            )
            if reset:
                await session.commit()
                logger.warning("Returned %d stale running jobs to pending", reset)

    def _get_uptime(self) -> str:
        if self._started_at is None:
            return "0s"
        total = int((datetime.now(UTC) - self._started_at).total_seconds())
        hours, rest = divmod(total, 3600)
        minutes, seconds = divmod(rest, 60)
        parts = []
        if hours:
            parts.append(f"{hours}h")
        if hours or minutes:
            parts.append(f"{minutes}m")
        parts.append(f"{seconds}s")
        return " ".join(parts)


def register_default_handlers(
    worker: Worker, settings: Settings, transport: NotificationTransport
) -> None:
    """Register the notification redelivery and expiry sweep handlers."""
    worker.register_handler(
        JobType.NOTIFICATION_DELIVER,
        functools.partial(deliver_notification_handler, transport=transport),
    )
    worker.register_handler(
        JobType.EXPIRY_SWEEP,
        functools.partial(expiry_sweep_handler, settings=settings),
    )


async def _serve(settings: Settings) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    config = WorkerConfig.from_settings(settings)
    worker = Worker(config)
    transport = NotificationTransport.from_settings(settings.notifications)
    register_default_handlers(worker, settings, transport)

    tasks = [
        asyncio.create_task(worker.start()),
        asyncio.create_task(
            run_scheduler_loop(
                worker.session_factory,
                default_schedules(settings.worker),
                shutdown_event=stop,
            )
        ),
    ]
    try:
        await stop.wait()
        logger.info("Shutdown signal received")
        await worker.stop()
        await asyncio.wait_for(asyncio.gather(*tasks), timeout=config.shutdown_timeout)
    except TimeoutError:
        logger.warning("Worker still busy after %.0fs; cancelling", config.shutdown_timeout)
        for task in tasks:
            task.cancel()
    finally:
        await transport.aclose()


def run() -> NoReturn:
    """Entry point of the proofpack-worker console script."""
    from proofpack.core.settings import configure_logging, get_settings

    settings = get_settings()
    configure_logging(settings)
    logger.info("Proof Pack worker starting (environment=%s)", settings.environment.value)

    try:
        asyncio.run(_serve(settings))
    except Exception:
        logger.exception("Worker exited with an error")
        sys.exit(1)

    logger.info("Proof Pack worker shut down")
    sys.exit(0)


if __name__ == "__main__":
    run()
