"""Best-effort notification dispatch.

Events are emitted after the triggering transaction has committed. A
failed send never propagates: it is logged and a notification_deliver job
is queued so the worker can retry delivery with exponential backoff.

Example:
    dispatcher = NotificationDispatcher.from_settings(get_settings())
    await dispatcher.emit_all(result.events)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any

import httpx
from sqlalchemy.exc import SQLAlchemyError

from proofpack.db import get_async_session
from proofpack.services.job_queue import JobQueueError, JobQueueService, JobType

if TYPE_CHECKING:
    from collections.abc import Iterable
    from contextlib import AbstractAsyncContextManager

    from sqlalchemy.ext.asyncio import AsyncSession

    from proofpack.core.config import NotificationSettings, Settings

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    """Templates understood by the notification transport."""

    REVIEW_COMPLETED = "review_completed"
    NDA_ACCEPTED = "nda_accepted"
    EXPIRING_DOCUMENT = "expiring_document"
    INTRODUCTION_REQUESTED = "introduction_requested"


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    """A notification to deliver.

    Attributes:
        kind: Template to render.
        recipient: User id of the recipient; the transport resolves the address.
        params: Template parameters (JSON-serializable).
    """

    kind: NotificationKind
    recipient: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "template_kind": self.kind.value,
            "recipient": self.recipient,
            "params": self.params,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> NotificationEvent:
        return cls(
            kind=NotificationKind(payload["template_kind"]),
            recipient=payload["recipient"],
            params=dict(payload.get("params") or {}),
        )


class NotificationDeliveryError(Exception):
    """Raised when the transport does not accept a notification."""


class NotificationTransport:
    """HTTP client for the notification transport.

    The transport accepts a JSON body {template_kind, recipient, params}
    and answers 2xx once it has taken responsibility for delivery.
    """

    def __init__(
        self,
        endpoint_url: str,
        api_key: str = "",
        timeout: float = 5.0,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the transport client.

        Args:
            endpoint_url: URL receiving notification sends.
            api_key: Bearer key for the transport; omitted when empty.
            timeout: Seconds allowed for one send.
            transport: Optional httpx transport (tests use httpx.MockTransport).
        """
        self._endpoint_url = endpoint_url
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: NotificationSettings) -> NotificationTransport:
        return cls(
            endpoint_url=settings.endpoint_url,
            api_key=settings.api_key.get_secret_value(),
            timeout=settings.timeout,
        )

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._http_client

    async def aclose(self) -> None:
        """Close the HTTP client and release connections."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def send(self, event: NotificationEvent) -> None:
        """Send one notification.

        Raises:
            NotificationDeliveryError: On timeout, connection failure or a
                non-2xx response.
        """
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            response = await self._get_http_client().post(
                self._endpoint_url,
                json=event.to_payload(),
                headers=headers,
            )
        except httpx.TimeoutException as e:
            raise NotificationDeliveryError(f"Notification transport timed out: {e}") from e
        except httpx.RequestError as e:
            raise NotificationDeliveryError(f"Notification request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise NotificationDeliveryError(
                f"Notification transport returned status {response.status_code}"
            )

        logger.info(
            "Notification delivered: kind=%s, recipient=%s",
            event.kind.value,
            event.recipient,
        )


class NotificationDispatcher:
    """Emits notification events without ever failing the caller."""

    def __init__(
        self,
        transport: NotificationTransport,
        *,
        enabled: bool = True,
        retry_max_attempts: int = 5,
        retry_base_backoff_seconds: int = 60,
        session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]] = (
            get_async_session
        ),
    ) -> None:
        self._transport = transport
        self._enabled = enabled
        self._retry_max_attempts = retry_max_attempts
        self._retry_base_backoff_seconds = retry_base_backoff_seconds
        self._session_factory = session_factory

    @classmethod
    def from_settings(cls, settings: Settings) -> NotificationDispatcher:
        notifications = settings.notifications
        return cls(
            NotificationTransport.from_settings(notifications),
            enabled=notifications.enabled,
            retry_max_attempts=notifications.retry_max_attempts,
            retry_base_backoff_seconds=notifications.retry_base_backoff_seconds,
        )

    @property
    def transport(self) -> NotificationTransport:
        return self._transport

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def emit(self, event: NotificationEvent) -> bool:
        """Send an event, queueing a retry if the send fails.

        Returns:
            True if the transport accepted the event inline.
        """
        if not self._enabled:
            logger.debug("Notifications disabled, dropping %s event", event.kind.value)
            return False

        try:
            await self._transport.send(event)
        except NotificationDeliveryError as e:
            logger.warning(
                "Notification failed, scheduling retry: kind=%s, recipient=%s, error=%s",
                event.kind.value,
                event.recipient,
                e,
            )
            await self._schedule_retry(event, str(e))
            return False
        except Exception as e:
            logger.exception(
                "Unexpected error sending %s notification to %s, scheduling retry",
                event.kind.value,
                event.recipient,
            )
            await self._schedule_retry(event, f"{type(e).__name__}: {e}")
            return False
        return True

    async def emit_all(self, events: Iterable[NotificationEvent]) -> None:
        for event in events:
            await self.emit(event)

    async def _schedule_retry(self, event: NotificationEvent, error: str) -> None:
        run_at = datetime.now(UTC) + timedelta(seconds=self._retry_base_backoff_seconds)
        try:
            async with self._session_factory() as session:
                queue = JobQueueService(
                    session,
                    default_max_attempts=self._retry_max_attempts,
                    default_base_backoff=self._retry_base_backoff_seconds,
                )
                job_id = await queue.enqueue(
                    JobType.NOTIFICATION_DELIVER,
                    payload={**event.to_payload(), "first_error": error},
                    run_at=run_at,
                )
                await session.commit()
        except (JobQueueError, SQLAlchemyError, OSError):
            logger.exception(
                "Could not queue notification retry: kind=%s, recipient=%s",
                event.kind.value,
                event.recipient,
            )
            return

        logger.info("Notification retry queued: job_id=%s, kind=%s", job_id, event.kind.value)
