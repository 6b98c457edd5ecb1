"""Expiry sweep handler.

Pack Health depends on the calendar: a document enters the expiry warning
window, then expires, without any edit to the pack. The daily expiry_sweep
job recomputes every pack holding a document whose expiration date lies in
[today - 1, today + warning window], which covers every transition since
the previous sweep.

Each pack is recomputed in its own savepoint so one failing pack does not
abort the sweep. Notification events of new expiry warnings are queued as
notification_deliver jobs in the same transaction as the recompute.
"""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from proofpack.core.errors import ProofPackError
from proofpack.db.models.packs import Document
from proofpack.services.job_queue import JobQueueService, JobType
from proofpack.services.proof_packs import ProofPackService

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from proofpack.core.config import Settings
    from proofpack.db.models.jobs import Job

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 200


async def _find_packs_in_window(
    session: AsyncSession,
    start: date,
    end: date,
    after: uuid.UUID | None,
    limit: int,
) -> list[uuid.UUID]:
    stmt = (
        select(Document.proof_pack_id)
        .where(
            Document.expiration_date.is_not(None),
            Document.expiration_date >= start,
            Document.expiration_date <= end,
        )
        .distinct()
        .order_by(Document.proof_pack_id)
        .limit(limit)
    )
    if after is not None:
        stmt = stmt.where(Document.proof_pack_id > after)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def expiry_sweep_handler(
    session: AsyncSession,
    job: Job,
    *,
    settings: Settings,
) -> dict[str, Any] | None:
    """Handle expiry_sweep jobs.

    Expected job payload:
        batch_size: (optional) Maximum packs per job (default: 200)
        after_pack_id: (optional) Resume after this pack id

    Args:
        session: Database session for the transaction.
        job: The job being processed.
        settings: Application settings (warning window, retry policy).

    Returns:
        Result dict with sweep counts.
    """
    payload = job.payload_json or {}
    batch_size = int(payload.get("batch_size", DEFAULT_BATCH_SIZE))
    after = payload.get("after_pack_id")
    after_id = uuid.UUID(after) if after else None

    today = datetime.now(UTC).date()
    window_end = today + timedelta(days=settings.scoring.expiry_warning_days)
    pack_ids = await _find_packs_in_window(
        session, today - timedelta(days=1), window_end, after_id, batch_size
    )

    service = ProofPackService(session, settings)
    job_queue = JobQueueService(
        session,
        default_max_attempts=settings.notifications.retry_max_attempts,
        default_base_backoff=settings.notifications.retry_base_backoff_seconds,
    )
    recomputed = 0
    failed: list[str] = []
    notifications = 0

    for pack_id in pack_ids:
        try:
            async with session.begin_nested():
                result = await service.recompute(pack_id)
                for event in result.events:
                    await job_queue.enqueue(JobType.NOTIFICATION_DELIVER, event.to_payload())
                    notifications += 1
            recomputed += 1
        except (ProofPackError, SQLAlchemyError) as e:
            logger.warning("Expiry sweep skipped pack: proof_pack_id=%s, error=%s", pack_id, e)
            failed.append(str(pack_id))

    if len(pack_ids) >= batch_size:
        await job_queue.enqueue(
            JobType.EXPIRY_SWEEP,
            payload={"batch_size": batch_size, "after_pack_id": str(pack_ids[-1])},
            priority=50,
        )
        logger.info("Scheduled continuation of expiry sweep after %s", pack_ids[-1])

    logger.info(
        "Expiry sweep complete: recomputed=%d, failed=%d, notifications=%d",
        recomputed,
        len(failed),
        notifications,
    )
    return {
        "recomputed": recomputed,
        "failed_pack_ids": failed,
        "notifications_queued": notifications,
        "window_end": window_end.isoformat(),
    }
