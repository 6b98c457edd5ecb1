"""Pydantic schemas for the QA review endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from proofpack.api.schemas.proof_packs import ReviewSchema
from proofpack.db.models.base import FindingSeverity, FindingStatus, PackStatus


class ReviewDecisionRequest(BaseModel):
    """Approve or reject the open review of a pack.

    `action` is checked by the workflow so that an unknown action is a
    400 with field detail like the other decision rules.
    """

    proof_pack_id: UUID
    action: Annotated[str, Field(description="approve or reject")]
    comments: Annotated[str | None, Field(max_length=10000)] = None


class CancelReviewRequest(BaseModel):
    reason: Annotated[str | None, Field(max_length=1000)] = None


class ReviewOutcomeResponse(BaseModel):
    review: ReviewSchema
    pack_status: PackStatus | None = None
    overall_score: int | None = None


class QueueItemSchema(BaseModel):
    review_id: UUID
    proof_pack_id: UUID
    pack_title: str
    company_name: str
    industry: str | None = None
    overall_score: int
    review_status: str
    reviewer_id: str | None = None
    submitted_at: datetime | None = None


class QueueResponse(BaseModel):
    items: list[QueueItemSchema]
    total: int


class FindingSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    finding_id: UUID
    review_id: UUID
    severity: FindingSeverity
    category: str
    description: str
    status: FindingStatus
    created_by: str
    created_at: datetime | None = None
    resolved_at: datetime | None = None
    resolved_by: str | None = None


class CreateFindingRequest(BaseModel):
    severity: FindingSeverity
    category: Annotated[str, Field(min_length=1, max_length=100)]
    description: Annotated[str, Field(min_length=1, max_length=10000)]


class UpdateFindingRequest(BaseModel):
    """Downgrade a finding's severity and/or resolve it."""

    severity: FindingSeverity | None = None
    status: Literal["resolved"] | None = None
