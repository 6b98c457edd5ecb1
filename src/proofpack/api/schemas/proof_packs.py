"""Pydantic schemas for the owner-facing proof pack endpoints."""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Annotated
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from proofpack.api.schemas.common import DocumentSchema, PackHealthSchema
from proofpack.db.models.base import (
    AccessAction,
    DocumentCategory,
    GapCategory,
    GapSeverity,
    GapStatus,
    PackStatus,
    ReviewDecision,
    ReviewStatus,
)
from proofpack.services.proof_packs import pack_health

if TYPE_CHECKING:
    from proofpack.db.models.packs import ProofPack


class CreatePackRequest(BaseModel):
    sme_id: UUID
    title: Annotated[str, Field(min_length=1, max_length=255)]
    description: Annotated[str | None, Field(max_length=5000)] = None


class PackResponse(BaseModel):
    """A pack with its cached Pack Health."""

    proof_pack_id: UUID
    sme_id: UUID
    owner_user_id: str
    title: str
    description: str | None = None
    status: PackStatus
    version: int
    health: PackHealthSchema
    sub_scores_overridden: bool = False
    health_computed_at: datetime | None = None
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None

    @classmethod
    def from_pack(cls, pack: ProofPack) -> PackResponse:
        return cls(
            proof_pack_id=pack.proof_pack_id,
            sme_id=pack.sme_id,
            owner_user_id=pack.owner_user_id,
            title=pack.title,
            description=pack.description,
            status=pack.status,
            version=pack.version,
            health=PackHealthSchema.model_validate(pack_health(pack)),
            sub_scores_overridden=pack.sub_scores_overridden,
            health_computed_at=pack.health_computed_at,
            submitted_at=pack.submitted_at,
            reviewed_at=pack.reviewed_at,
        )


class GapSchema(BaseModel):
    """A stored gap, or a freshly analyzed one (no gap_id yet)."""

    model_config = ConfigDict(from_attributes=True)

    gap_id: UUID | None = None
    gap_key: str
    category: GapCategory
    severity: GapSeverity
    recommendation: str
    status: GapStatus
    document_id: UUID | None = None


class PackDetailResponse(BaseModel):
    pack: PackResponse
    documents: list[DocumentSchema]
    gaps: list[GapSchema]


class RecomputeResponse(BaseModel):
    pack: PackResponse
    gaps: list[GapSchema]


class AddDocumentRequest(BaseModel):
    """Metadata of a document already uploaded to the object store."""

    category: DocumentCategory
    file_name: Annotated[str, Field(min_length=1, max_length=255)]
    storage_key: Annotated[str, Field(min_length=1, max_length=500)]
    mime_type: Annotated[str | None, Field(max_length=100)] = None
    file_size: Annotated[int | None, Field(ge=0)] = None
    expiration_date: date | None = None
    document_type: Annotated[str | None, Field(max_length=100)] = None
    notes: str | None = None


class UpdateDocumentRequest(BaseModel):
    """Partial document update; only fields present in the body change."""

    category: DocumentCategory | None = None
    file_name: Annotated[str | None, Field(min_length=1, max_length=255)] = None
    storage_key: Annotated[str | None, Field(min_length=1, max_length=500)] = None
    mime_type: Annotated[str | None, Field(max_length=100)] = None
    file_size: Annotated[int | None, Field(ge=0)] = None
    expiration_date: date | None = None
    document_type: Annotated[str | None, Field(max_length=100)] = None
    notes: str | None = None
    position: Annotated[int | None, Field(ge=0)] = None


class DocumentChangeResponse(BaseModel):
    document: DocumentSchema | None = None
    pack: PackResponse
    gaps: list[GapSchema]


class SubScoresRequest(BaseModel):
    """Admin override of the four sub-scores; range checks happen in the score engine."""

    completeness: float
    expiration: float
    quality: float
    remediation: float


class RemediationActionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    action_id: str
    description: str
    estimated_impact: int
    effort_level: str
    priority: int


class RemediationPlanResponse(BaseModel):
    proof_pack_id: UUID
    overall_score: int
    actions: list[RemediationActionSchema]


class ReviewSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    review_id: UUID
    proof_pack_id: UUID
    reviewer_id: str | None = None
    status: ReviewStatus
    decision: ReviewDecision | None = None
    comments: str | None = None
    created_at: datetime | None = None
    claimed_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None


class SubmissionResponse(BaseModel):
    pack: PackResponse
    review: ReviewSchema


# ---------------------------------------------------------------------------
# Sharing
# ---------------------------------------------------------------------------


class CreateShareRequest(BaseModel):
    expires_in_days: Annotated[
        int | None,
        Field(
            ge=0,
            le=3650,
            description="Link lifetime in days; 0 for no expiry, omitted for the default",
        ),
    ] = None


class ShareGrantSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    share_grant_id: UUID
    proof_pack_id: UUID
    created_by: str
    created_at: datetime | None = None
    expires_at: datetime | None = None
    revoked: bool
    revoked_at: datetime | None = None
    nda_version: str


class ShareLinkResponse(BaseModel):
    """A new share link. The token is only ever returned here."""

    grant: ShareGrantSchema
    token: str
    share_path: str


class ShareGrantListResponse(BaseModel):
    grants: list[ShareGrantSchema]
    total: int


class PublishNdaVersionRequest(BaseModel):
    nda_version: Annotated[str, Field(min_length=1, max_length=50)]


class AccessLogEntrySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    entry_id: int
    share_grant_id: UUID
    user_id: str | None = None
    document_id: UUID | None = None
    action: AccessAction
    created_at: datetime | None = None


class AccessLogResponse(BaseModel):
    proof_pack_id: UUID
    entries: list[AccessLogEntrySchema]
