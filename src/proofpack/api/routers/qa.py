"""QA review API router.

Reviewer operations: the review queue, claiming, the approve/reject
decision, cancellation and findings. All endpoints require the qa_reviewer
role (platform admins pass every role check).
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from proofpack.api.dependencies import DbSession, Notifier, get_review_workflow
from proofpack.api.middleware.auth import AuthenticatedUser, require_role
from proofpack.api.schemas.common import ErrorResponse
from proofpack.api.schemas.proof_packs import ReviewSchema
from proofpack.api.schemas.review import (
    CancelReviewRequest,
    CreateFindingRequest,
    FindingSchema,
    QueueItemSchema,
    QueueResponse,
    ReviewDecisionRequest,
    ReviewOutcomeResponse,
    UpdateFindingRequest,
)
from proofpack.services.access import ROLE_QA_REVIEWER
from proofpack.services.review import ReviewOutcome, ReviewWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/qa",
    tags=["qa"],
    responses={
        401: {"description": "Authentication required", "model": ErrorResponse},
        403: {"description": "QA reviewer role required", "model": ErrorResponse},
        409: {"description": "Review state conflict", "model": ErrorResponse},
    },
)

Reviewer = Annotated[AuthenticatedUser, Depends(require_role(ROLE_QA_REVIEWER))]
Workflow = Annotated[ReviewWorkflow, Depends(get_review_workflow)]


def _outcome_response(outcome: ReviewOutcome) -> ReviewOutcomeResponse:
    return ReviewOutcomeResponse(
        review=ReviewSchema.model_validate(outcome.review),
        pack_status=outcome.pack.status if outcome.pack else None,
        overall_score=outcome.pack.overall_score if outcome.pack else None,
    )


@router.get("/health")
async def health() -> dict[str, str]:
    """Health check for the QA namespace."""
    return {"status": "healthy", "namespace": "qa"}


@router.get(
    "/queue",
    response_model=QueueResponse,
    summary="Open review queue",
)
async def get_queue(
    user: Reviewer,
    workflow: Workflow,
    min_score: Annotated[int | None, Query(ge=0, le=100)] = None,
    max_score: Annotated[int | None, Query(ge=0, le=100)] = None,
    industry: Annotated[str | None, Query(max_length=100)] = None,
) -> QueueResponse:
    """Scheduled and in-progress reviews, oldest submission first."""
    items = await workflow.list_queue(
        min_score=min_score, max_score=max_score, industry=industry
    )
    return QueueResponse(
        items=[
            QueueItemSchema(
                review_id=item.review.review_id,
                proof_pack_id=item.pack.proof_pack_id,
                pack_title=item.pack.title,
                company_name=item.company_name,
                industry=item.industry,
                overall_score=item.pack.overall_score,
                review_status=item.review.status.value,
                reviewer_id=item.review.reviewer_id,
                submitted_at=item.pack.submitted_at,
            )
            for item in items
        ],
        total=len(items),
    )


@router.post(
    "/review",
    response_model=ReviewOutcomeResponse,
    responses={400: {"description": "Decision rule violated", "model": ErrorResponse}},
    summary="Approve or reject a pack",
    description="""
    Record the QA decision for a pack's open review. A scheduled review is
    claimed for the caller first.

    - reject requires comments
    - approve is blocked while a critical finding is open
    - approving a pack below the eligibility threshold requires comments
    """,
)
async def review_pack(
    body: ReviewDecisionRequest,
    user: Reviewer,
    db: DbSession,
    workflow: Workflow,
    notifier: Notifier,
) -> ReviewOutcomeResponse:
    outcome = await workflow.decide(body.proof_pack_id, user.user_id, body.action, body.comments)
    await db.commit()
    await notifier.emit_all(outcome.events)
    return _outcome_response(outcome)


@router.post(
    "/reviews/{review_id}/claim",
    response_model=ReviewSchema,
    summary="Claim a review",
)
async def claim_review(
    review_id: UUID,
    user: Reviewer,
    db: DbSession,
    workflow: Workflow,
) -> ReviewSchema:
    review = await workflow.claim(review_id, user.user_id)
    await db.commit()
    return ReviewSchema.model_validate(review)


@router.post(
    "/reviews/{review_id}/cancel",
    response_model=ReviewOutcomeResponse,
    summary="Cancel a review",
)
async def cancel_review(
    review_id: UUID,
    user: Reviewer,
    db: DbSession,
    workflow: Workflow,
    body: CancelReviewRequest | None = None,
) -> ReviewOutcomeResponse:
    outcome = await workflow.cancel(review_id, user.user_id)
    await db.commit()
    logger.info(
        "Review cancelled via API",
        extra={"review_id": str(review_id), "reason": body.reason if body else None},
    )
    return _outcome_response(outcome)


@router.get(
    "/reviews/{review_id}/findings",
    response_model=list[FindingSchema],
    summary="List findings",
)
async def list_findings(
    review_id: UUID,
    user: Reviewer,
    workflow: Workflow,
) -> list[FindingSchema]:
    await workflow.get_review(review_id)
    findings = await workflow.list_findings(review_id)
    return [FindingSchema.model_validate(f) for f in findings]


@router.post(
    "/reviews/{review_id}/findings",
    response_model=FindingSchema,
    status_code=status.HTTP_201_CREATED,
    summary="Add a finding",
)
async def add_finding(
    review_id: UUID,
    body: CreateFindingRequest,
    user: Reviewer,
    db: DbSession,
    workflow: Workflow,
) -> FindingSchema:
    finding = await workflow.add_finding(
        review_id, user.user_id, body.severity, body.category, body.description
    )
    await db.commit()
    return FindingSchema.model_validate(finding)


@router.patch(
    "/findings/{finding_id}",
    response_model=FindingSchema,
    summary="Downgrade or resolve a finding",
)
async def update_finding(
    finding_id: UUID,
    body: UpdateFindingRequest,
    user: Reviewer,
    db: DbSession,
    workflow: Workflow,
) -> FindingSchema:
    finding = None
    if body.severity is not None:
        finding = await workflow.downgrade_finding(finding_id, body.severity)
    if body.status == "resolved":
        finding = await workflow.resolve_finding(finding_id, user.user_id)
    if finding is None:
        finding = await workflow.get_finding(finding_id)
    await db.commit()
    return FindingSchema.model_validate(finding)
