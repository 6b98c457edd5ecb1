"""Shared FastAPI dependencies.

Provides the per-request database session, the long-lived collaborator
clients (created lazily and stored on app.state, closed by the app
lifespan) and the per-request service objects. Tests replace any of them
through app.dependency_overrides.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from proofpack.core.config import Settings
from proofpack.core.settings import get_settings
from proofpack.services.audit_log import AuditLogService
from proofpack.services.disclosure import ClientInfo, DisclosureGateway
from proofpack.services.eligibility import EligibilityFilter
from proofpack.services.identity import IdentityClient
from proofpack.services.job_queue import JobQueueService
from proofpack.services.notifications import NotificationDispatcher
from proofpack.services.proof_packs import ProofPackService
from proofpack.services.review import ReviewWorkflow
from proofpack.services.storage import ObjectStoreClient


# ---------------------------------------------------------------------------
# Settings and database session
# ---------------------------------------------------------------------------


def get_app_settings(request: Request) -> Settings:
    """Settings passed to create_app(), or the cached environment settings."""
    return getattr(request.app.state, "settings", None) or get_settings()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session.

    Handlers commit explicitly once at the end; an exception rolls back.
    """
    from proofpack.db import get_async_session

    async with get_async_session() as session:
        yield session


AppSettings = Annotated[Settings, Depends(get_app_settings)]
DbSession = Annotated[AsyncSession, Depends(get_db_session)]


# ---------------------------------------------------------------------------
# Collaborator clients
# ---------------------------------------------------------------------------


def get_identity_client(request: Request) -> IdentityClient:
    client = getattr(request.app.state, "identity_client", None)
    if client is None:
        client = IdentityClient.from_settings(get_app_settings(request).identity)
        request.app.state.identity_client = client
    return client


def get_object_store(request: Request) -> ObjectStoreClient:
    client = getattr(request.app.state, "object_store", None)
    if client is None:
        client = ObjectStoreClient.from_settings(get_app_settings(request).s3)
        request.app.state.object_store = client
    return client


def get_notifier(request: Request) -> NotificationDispatcher:
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        notifier = NotificationDispatcher.from_settings(get_app_settings(request))
        request.app.state.notifier = notifier
    return notifier


Notifier = Annotated[NotificationDispatcher, Depends(get_notifier)]


def get_client_ip(request: Request) -> str | None:
    """Extract the client IP, honouring X-Forwarded-For from a proxy."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return None


def get_client_info(request: Request) -> ClientInfo:
    return ClientInfo(
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )


Client = Annotated[ClientInfo, Depends(get_client_info)]


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


def get_proof_pack_service(db: DbSession, settings: AppSettings) -> ProofPackService:
    return ProofPackService(db, settings)


def get_review_workflow(db: DbSession, settings: AppSettings) -> ReviewWorkflow:
    return ReviewWorkflow(db, settings)


def get_disclosure_gateway(
    db: DbSession,
    settings: AppSettings,
    object_store: Annotated[ObjectStoreClient, Depends(get_object_store)],
) -> DisclosureGateway:
    return DisclosureGateway(db, settings, object_store)


def get_eligibility_filter(db: DbSession) -> EligibilityFilter:
    return EligibilityFilter(db)


def get_audit_log_service(db: DbSession) -> AuditLogService:
    return AuditLogService(db)


def get_job_queue_service(db: DbSession) -> JobQueueService:
    return JobQueueService(db)
