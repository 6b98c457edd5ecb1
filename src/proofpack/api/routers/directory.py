"""Buyer directory API router.

Lists approved packs that meet the eligibility threshold. Packs below the
threshold are never listed, whatever `min_score` the caller passes.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from proofpack.api.dependencies import get_eligibility_filter
from proofpack.api.middleware.auth import CurrentUser
from proofpack.api.schemas.common import ErrorResponse
from proofpack.api.schemas.directory import DirectoryEntrySchema, DirectoryResponse
from proofpack.services.eligibility import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, EligibilityFilter
from proofpack.services.scoring import ELIGIBILITY_THRESHOLD

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/directory",
    tags=["directory"],
    responses={
        401: {"description": "Authentication required", "model": ErrorResponse},
    },
)


@router.get("/health")
async def health() -> dict[str, str]:
    """Health check for the directory namespace."""
    return {"status": "healthy", "namespace": "directory"}


@router.get(
    "",
    response_model=DirectoryResponse,
    summary="Eligible SME directory",
)
async def list_directory(
    user: CurrentUser,
    directory: Annotated[EligibilityFilter, Depends(get_eligibility_filter)],
    min_score: Annotated[int, Query(ge=0, le=100)] = ELIGIBILITY_THRESHOLD,
    industry: Annotated[str | None, Query(max_length=100)] = None,
    certification: Annotated[str | None, Query(max_length=100)] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
) -> DirectoryResponse:
    """Approved, eligible packs sorted by Pack Health score, highest first."""
    result = await directory.list_eligible(
        min_score,
        industry=industry,
        certification=certification,
        page=page,
        page_size=page_size,
    )
    return DirectoryResponse(
        items=[DirectoryEntrySchema.model_validate(e) for e in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        pages=result.pages,
    )
