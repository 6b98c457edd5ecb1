"""Platform admin API router.

Operational checks for platform admins only.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from proofpack.api.dependencies import get_audit_log_service, get_job_queue_service
from proofpack.api.middleware.auth import AuthenticatedUser, require_role
from proofpack.api.schemas.admin import AuditChainSchema, IntegrityResponse
from proofpack.api.schemas.common import ErrorResponse
from proofpack.services.access import ROLE_PLATFORM_ADMIN
from proofpack.services.audit_log import AuditLogService
from proofpack.services.job_queue import JobQueueService, JobType

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    responses={
        401: {"description": "Authentication required", "model": ErrorResponse},
        403: {"description": "Platform admin role required", "model": ErrorResponse},
    },
)

PlatformAdmin = Annotated[AuthenticatedUser, Depends(require_role(ROLE_PLATFORM_ADMIN))]


@router.get("/health")
async def health() -> dict[str, str]:
    """Health check for the admin namespace."""
    return {"status": "healthy", "namespace": "admin"}


@router.get(
    "/integrity",
    response_model=IntegrityResponse,
    summary="Audit chain verification and job backlog",
)
async def get_integrity(
    user: PlatformAdmin,
    audit: Annotated[AuditLogService, Depends(get_audit_log_service)],
    jobs: Annotated[JobQueueService, Depends(get_job_queue_service)],
) -> IntegrityResponse:
    """Re-verify every audit record and count pending jobs per job type.

    A broken chain is reported with status "degraded" and a 200 response;
    the errors list names each violation in chain order.
    """
    verification = await audit.verify_chain()
    pending = {kind.value: await jobs.get_pending_count(job_type=kind.value) for kind in JobType}

    if not verification.valid:
        logger.error(
            "Audit chain verification failed for %s: %d errors over %d records",
            user.user_id,
            len(verification.errors),
            verification.checked_records,
        )
    else:
        logger.info(
            "Audit chain verified by %s: %d records", user.user_id, verification.checked_records
        )

    return IntegrityResponse(
        status="healthy" if verification.valid else "degraded",
        audit_chain=AuditChainSchema(
            valid=verification.valid,
            checked_records=verification.checked_records,
            errors=verification.errors,
        ),
        pending_jobs=pending,
    )
