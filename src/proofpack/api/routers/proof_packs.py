"""Proof pack API router.

Owner and admin operations on a pack: document metadata, Pack Health
recompute, admin sub-score overrides, gap tracking, submission for QA
review, and the share links that disclose an approved pack to buyers.

Every handler commits once at the end; notification events are emitted
only after the commit.
"""

from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status

from proofpack.api.dependencies import (
    DbSession,
    Notifier,
    get_disclosure_gateway,
    get_proof_pack_service,
)
from proofpack.api.middleware.auth import CurrentUser
from proofpack.api.schemas.common import DocumentSchema, ErrorResponse
from proofpack.api.schemas.proof_packs import (
    AccessLogEntrySchema,
    AccessLogResponse,
    AddDocumentRequest,
    CreatePackRequest,
    CreateShareRequest,
    DocumentChangeResponse,
    GapSchema,
    PackDetailResponse,
    PackResponse,
    PublishNdaVersionRequest,
    RecomputeResponse,
    RemediationActionSchema,
    RemediationPlanResponse,
    ReviewSchema,
    ShareGrantListResponse,
    ShareGrantSchema,
    ShareLinkResponse,
    SubmissionResponse,
    SubScoresRequest,
    UpdateDocumentRequest,
)
from proofpack.services.disclosure import DisclosureGateway
from proofpack.services.proof_packs import (
    DocumentChange,
    DocumentInput,
    ProofPackService,
    RecomputeResult,
)
from proofpack.services.scoring import SubScores

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/proof-packs",
    tags=["proof-packs"],
    responses={
        401: {"description": "Authentication required", "model": ErrorResponse},
        403: {"description": "Access denied", "model": ErrorResponse},
        404: {"description": "Not found", "model": ErrorResponse},
    },
)

PackService = Annotated[ProofPackService, Depends(get_proof_pack_service)]
Gateway = Annotated[DisclosureGateway, Depends(get_disclosure_gateway)]


def _recompute_response(result: RecomputeResult) -> RecomputeResponse:
    return RecomputeResponse(
        pack=PackResponse.from_pack(result.pack),
        gaps=[GapSchema.model_validate(g) for g in result.gaps],
    )


def _document_change_response(change: DocumentChange) -> DocumentChangeResponse:
    return DocumentChangeResponse(
        document=DocumentSchema.model_validate(change.document) if change.document else None,
        pack=PackResponse.from_pack(change.recompute.pack),
        gaps=[GapSchema.model_validate(g) for g in change.recompute.gaps],
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@router.get("/health")
async def health() -> dict[str, str]:
    """Health check for the proof pack namespace."""
    return {"status": "healthy", "namespace": "proof-packs"}


# ---------------------------------------------------------------------------
# Packs
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=RecomputeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a proof pack",
)
async def create_pack(
    body: CreatePackRequest,
    user: CurrentUser,
    db: DbSession,
    service: PackService,
    notifier: Notifier,
) -> RecomputeResponse:
    result = await service.create_pack(
        body.sme_id, user.to_actor(), body.title, body.description
    )
    await db.commit()
    await notifier.emit_all(result.events)
    return _recompute_response(result)


@router.get(
    "/{proof_pack_id}",
    response_model=PackDetailResponse,
    summary="Get a proof pack",
)
async def get_pack(
    proof_pack_id: UUID,
    user: CurrentUser,
    service: PackService,
) -> PackDetailResponse:
    """Pack, documents and stored gaps. Readable by the owner, admins and reviewers."""
    pack = await service.get_pack_for(proof_pack_id, user.to_actor())
    documents = await service.list_documents(proof_pack_id)
    gaps = await service.list_gaps(proof_pack_id)
    return PackDetailResponse(
        pack=PackResponse.from_pack(pack),
        documents=[DocumentSchema.model_validate(d) for d in documents],
        gaps=[GapSchema.model_validate(g) for g in gaps],
    )


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@router.post(
    "/{proof_pack_id}/documents",
    response_model=DocumentChangeResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Pack is under review", "model": ErrorResponse}},
    summary="Add document metadata",
)
async def add_document(
    proof_pack_id: UUID,
    body: AddDocumentRequest,
    user: CurrentUser,
    db: DbSession,
    service: PackService,
    notifier: Notifier,
) -> DocumentChangeResponse:
    change = await service.add_document(
        proof_pack_id,
        user.to_actor(),
        DocumentInput(**body.model_dump()),
    )
    await db.commit()
    await notifier.emit_all(change.events)
    return _document_change_response(change)


@router.patch(
    "/{proof_pack_id}/documents/{document_id}",
    response_model=DocumentChangeResponse,
    responses={409: {"description": "Pack is under review", "model": ErrorResponse}},
    summary="Update document metadata",
)
async def update_document(
    proof_pack_id: UUID,
    document_id: UUID,
    body: UpdateDocumentRequest,
    user: CurrentUser,
    db: DbSession,
    service: PackService,
    notifier: Notifier,
) -> DocumentChangeResponse:
    change = await service.update_document(
        proof_pack_id,
        document_id,
        user.to_actor(),
        body.model_dump(exclude_unset=True),
    )
    await db.commit()
    await notifier.emit_all(change.events)
    return _document_change_response(change)


@router.delete(
    "/{proof_pack_id}/documents/{document_id}",
    response_model=DocumentChangeResponse,
    responses={409: {"description": "Pack is under review", "model": ErrorResponse}},
    summary="Remove a document",
)
async def remove_document(
    proof_pack_id: UUID,
    document_id: UUID,
    user: CurrentUser,
    db: DbSession,
    service: PackService,
    notifier: Notifier,
) -> DocumentChangeResponse:
    change = await service.remove_document(proof_pack_id, document_id, user.to_actor())
    await db.commit()
    await notifier.emit_all(change.events)
    return _document_change_response(change)


# ---------------------------------------------------------------------------
# Pack Health
# ---------------------------------------------------------------------------


@router.post(
    "/{proof_pack_id}/recompute",
    response_model=RecomputeResponse,
    summary="Recompute Pack Health",
)
async def recompute(
    proof_pack_id: UUID,
    user: CurrentUser,
    db: DbSession,
    service: PackService,
    notifier: Notifier,
) -> RecomputeResponse:
    await service.get_owned_pack(proof_pack_id, user.to_actor())
    result = await service.recompute(proof_pack_id)
    await db.commit()
    await notifier.emit_all(result.events)
    return _recompute_response(result)


@router.put(
    "/{proof_pack_id}/sub-scores",
    response_model=RecomputeResponse,
    responses={400: {"description": "Sub-score out of range", "model": ErrorResponse}},
    summary="Override sub-scores (platform admin)",
)
async def override_sub_scores(
    proof_pack_id: UUID,
    body: SubScoresRequest,
    user: CurrentUser,
    db: DbSession,
    service: PackService,
    notifier: Notifier,
) -> RecomputeResponse:
    result = await service.override_sub_scores(
        proof_pack_id,
        SubScores(
            completeness=body.completeness,
            expiration=body.expiration,
            quality=body.quality,
            remediation=body.remediation,
        ),
        user.to_actor(),
    )
    await db.commit()
    await notifier.emit_all(result.events)
    return _recompute_response(result)


@router.delete(
    "/{proof_pack_id}/sub-scores",
    response_model=RecomputeResponse,
    summary="Clear a sub-score override (platform admin)",
)
async def clear_override(
    proof_pack_id: UUID,
    user: CurrentUser,
    db: DbSession,
    service: PackService,
    notifier: Notifier,
) -> RecomputeResponse:
    result = await service.clear_override(proof_pack_id, user.to_actor())
    await db.commit()
    await notifier.emit_all(result.events)
    return _recompute_response(result)


# ---------------------------------------------------------------------------
# Gaps and remediation
# ---------------------------------------------------------------------------


@router.get(
    "/{proof_pack_id}/gaps",
    response_model=list[GapSchema],
    summary="List gaps",
)
async def list_gaps(
    proof_pack_id: UUID,
    user: CurrentUser,
    service: PackService,
) -> list[GapSchema]:
    await service.get_pack_for(proof_pack_id, user.to_actor())
    gaps = await service.list_gaps(proof_pack_id)
    return [GapSchema.model_validate(g) for g in gaps]


@router.post(
    "/{proof_pack_id}/gaps/{gap_id}/resolve",
    response_model=RecomputeResponse,
    summary="Mark a gap resolved",
)
async def resolve_gap(
    proof_pack_id: UUID,
    gap_id: UUID,
    user: CurrentUser,
    db: DbSession,
    service: PackService,
    notifier: Notifier,
) -> RecomputeResponse:
    result = await service.resolve_gap(proof_pack_id, gap_id, user.to_actor())
    await db.commit()
    await notifier.emit_all(result.events)
    return _recompute_response(result)


@router.get(
    "/{proof_pack_id}/remediation",
    response_model=RemediationPlanResponse,
    summary="Remediation plan",
)
async def get_remediation_plan(
    proof_pack_id: UUID,
    user: CurrentUser,
    service: PackService,
) -> RemediationPlanResponse:
    actor = user.to_actor()
    actions = await service.get_remediation_plan(proof_pack_id, actor)
    pack = await service.get_pack(proof_pack_id)
    return RemediationPlanResponse(
        proof_pack_id=proof_pack_id,
        overall_score=pack.overall_score,
        actions=[RemediationActionSchema.model_validate(a) for a in actions],
    )


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


@router.post(
    "/{proof_pack_id}/submit",
    response_model=SubmissionResponse,
    responses={
        400: {"description": "Pack Health below the threshold", "model": ErrorResponse},
        409: {"description": "Pack is not in a submittable state", "model": ErrorResponse},
    },
    summary="Submit for QA review",
)
async def submit(
    proof_pack_id: UUID,
    user: CurrentUser,
    db: DbSession,
    service: PackService,
    notifier: Notifier,
) -> SubmissionResponse:
    result = await service.submit(proof_pack_id, user.to_actor())
    await db.commit()
    await notifier.emit_all(result.events)
    return SubmissionResponse(
        pack=PackResponse.from_pack(result.pack),
        review=ReviewSchema.model_validate(result.review),
    )


# ---------------------------------------------------------------------------
# Share links
# ---------------------------------------------------------------------------


@router.post(
    "/{proof_pack_id}/share",
    response_model=ShareLinkResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Pack is not approved or eligible", "model": ErrorResponse}},
    summary="Create a share link",
)
async def create_share_link(
    proof_pack_id: UUID,
    user: CurrentUser,
    db: DbSession,
    gateway: Gateway,
    body: CreateShareRequest | None = None,
) -> ShareLinkResponse:
    expires_in_days = body.expires_in_days if body else None
    link = await gateway.create_share_grant(proof_pack_id, user.to_actor(), expires_in_days)
    await db.commit()
    return ShareLinkResponse(
        grant=ShareGrantSchema.model_validate(link.grant),
        token=link.token,
        share_path=f"/api/share/{link.token}",
    )


@router.get(
    "/{proof_pack_id}/share",
    response_model=ShareGrantListResponse,
    summary="List share links",
)
async def list_share_links(
    proof_pack_id: UUID,
    user: CurrentUser,
    gateway: Gateway,
) -> ShareGrantListResponse:
    grants = await gateway.list_share_grants(proof_pack_id, user.to_actor())
    return ShareGrantListResponse(
        grants=[ShareGrantSchema.model_validate(g) for g in grants],
        total=len(grants),
    )


@router.delete(
    "/{proof_pack_id}/share/{share_grant_id}",
    response_model=ShareGrantSchema,
    summary="Revoke a share link",
)
async def revoke_share_link(
    proof_pack_id: UUID,
    share_grant_id: UUID,
    user: CurrentUser,
    db: DbSession,
    gateway: Gateway,
) -> ShareGrantSchema:
    grant = await gateway.revoke_share_grant(proof_pack_id, share_grant_id, user.to_actor())
    await db.commit()
    return ShareGrantSchema.model_validate(grant)


@router.post(
    "/{proof_pack_id}/share/{share_grant_id}/nda-version",
    response_model=ShareGrantSchema,
    summary="Publish a new NDA version",
    description="""
    Attach a new NDA version to a share link. Viewers who accepted an
    earlier version must accept again before viewing the pack.
    """,
)
async def publish_nda_version(
    proof_pack_id: UUID,
    share_grant_id: UUID,
    body: PublishNdaVersionRequest,
    user: CurrentUser,
    db: DbSession,
    gateway: Gateway,
) -> ShareGrantSchema:
    grant = await gateway.publish_nda_version(
        proof_pack_id, share_grant_id, user.to_actor(), body.nda_version
    )
    await db.commit()
    return ShareGrantSchema.model_validate(grant)


@router.get(
    "/{proof_pack_id}/access-log",
    response_model=AccessLogResponse,
    summary="Disclosure access log",
)
async def get_access_log(
    proof_pack_id: UUID,
    user: CurrentUser,
    gateway: Gateway,
) -> AccessLogResponse:
    entries = await gateway.list_access_log(proof_pack_id, user.to_actor())
    return AccessLogResponse(
        proof_pack_id=proof_pack_id,
        entries=[AccessLogEntrySchema.model_validate(e) for e in entries],
    )
