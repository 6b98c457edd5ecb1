"""Introduction request API router."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status

from proofpack.api.dependencies import DbSession, Notifier, get_eligibility_filter
from proofpack.api.middleware.auth import AuthenticatedUser, require_role
from proofpack.api.schemas.common import ErrorResponse
from proofpack.api.schemas.directory import IntroductionRequestBody, IntroductionResponse
from proofpack.services.access import ROLE_BUYER
from proofpack.services.eligibility import EligibilityFilter

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/introductions",
    tags=["introductions"],
    responses={
        401: {"description": "Authentication required", "model": ErrorResponse},
        403: {"description": "Buyer role required", "model": ErrorResponse},
    },
)


@router.get("/health")
async def health() -> dict[str, str]:
    """Health check for the introductions namespace."""
    return {"status": "healthy", "namespace": "introductions"}


@router.post(
    "",
    response_model=IntroductionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Pack is not eligible", "model": ErrorResponse}},
    summary="Request an introduction",
    description="""
    Ask to be introduced to the SME behind an eligible pack. Eligibility is
    re-checked against the pack's current score when the request is made.
    """,
)
async def request_introduction(
    body: IntroductionRequestBody,
    user: Annotated[AuthenticatedUser, Depends(require_role(ROLE_BUYER))],
    db: DbSession,
    directory: Annotated[EligibilityFilter, Depends(get_eligibility_filter)],
    notifier: Notifier,
) -> IntroductionResponse:
    result = await directory.request_introduction(
        user.user_id,
        body.proof_pack_id,
        body.project_description,
        timeline=body.timeline,
        budget_range=body.budget_range,
        preferred_contact_method=body.preferred_contact_method,
    )
    await db.commit()
    await notifier.emit_all(result.events)
    return IntroductionResponse.model_validate(result.introduction)
