"""Notification redelivery handler.

Processes notification_deliver jobs queued by NotificationDispatcher when
an inline send failed. A failed redelivery raises, so the worker records
the attempt and the job queue schedules the next one with exponential
backoff until the job is dead-lettered.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from proofpack.services.notifications import NotificationEvent

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from proofpack.db.models.jobs import Job
    from proofpack.services.notifications import NotificationTransport

logger = logging.getLogger(__name__)


async def deliver_notification_handler(
    session: AsyncSession,
    job: Job,
    *,
    transport: NotificationTransport,
) -> dict[str, Any] | None:
    """Handle notification_deliver jobs.

    Expected job payload:
        template_kind: Notification kind
        recipient: Recipient user id
        params: Template parameters

    Args:
        session: Database session for the transaction (unused).
        job: The job being processed.
        transport: Transport used to deliver the event.

    Returns:
        Result dict with the delivered kind and recipient.

    Raises:
        ValueError: If the payload is not a notification event.
        NotificationDeliveryError: If the transport rejects the event again.
    """
    payload = job.payload_json or {}
    try:
        event = NotificationEvent.from_payload(payload)
    except (KeyError, ValueError) as e:
        msg = f"Invalid notification payload: {e}"
        raise ValueError(msg) from e

    await transport.send(event)

    logger.info(
        "Notification redelivered: job_id=%s, kind=%s, attempt=%d",
        job.job_id,
        event.kind.value,
        job.attempts,
    )
    return {"kind": event.kind.value, "recipient": event.recipient, "attempts": job.attempts}
