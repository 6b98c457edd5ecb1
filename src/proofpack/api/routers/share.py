"""Share link API router.

Buyer-facing disclosure of an approved pack through a share token:

- GET /share/{token}: unauthenticated summary
- GET|POST /share/{token}/nda: NDA status and acceptance (authenticated)
- GET /share/{token}/view: full pack (authenticated, NDA accepted)
- POST /share/{token}/view: download handle for one document

Unknown, expired and revoked tokens all return the same 403 body.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from proofpack.api.dependencies import Client, DbSession, Notifier, get_disclosure_gateway
from proofpack.api.middleware.auth import CurrentUser
from proofpack.api.schemas.common import DocumentSchema, ErrorResponse, PackHealthSchema
from proofpack.api.schemas.share import (
    AcceptNdaRequest,
    DownloadRequest,
    DownloadResponse,
    NdaStatusResponse,
    SharedPackResponse,
    ShareInfoResponse,
    SMEProfileSchema,
)
from proofpack.services.disclosure import DisclosureGateway

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/share",
    tags=["share"],
    responses={
        403: {"description": "Access denied", "model": ErrorResponse},
        503: {"description": "Dependency unavailable", "model": ErrorResponse},
    },
)

Gateway = Annotated[DisclosureGateway, Depends(get_disclosure_gateway)]


@router.get("/health")
async def health() -> dict[str, str]:
    """Health check for the share namespace."""
    return {"status": "healthy", "namespace": "share"}


@router.get(
    "/{token}",
    response_model=ShareInfoResponse,
    summary="Share link summary",
)
async def get_share_info(
    token: str,
    db: DbSession,
    gateway: Gateway,
    client: Client,
) -> ShareInfoResponse:
    """Company, industry, overall score and document count. No authentication."""
    summary = await gateway.get_info(token, client)
    await db.commit()
    return ShareInfoResponse.model_validate(summary)


@router.get(
    "/{token}/nda",
    response_model=NdaStatusResponse,
    summary="NDA acceptance status",
)
async def get_nda_status(
    token: str,
    user: CurrentUser,
    gateway: Gateway,
) -> NdaStatusResponse:
    nda = await gateway.get_nda_status(token, user.user_id)
    return NdaStatusResponse.model_validate(nda)


@router.post(
    "/{token}/nda",
    response_model=NdaStatusResponse,
    responses={400: {"description": "NDA not accepted", "model": ErrorResponse}},
    summary="Accept the NDA",
)
async def accept_nda(
    token: str,
    body: AcceptNdaRequest,
    user: CurrentUser,
    db: DbSession,
    gateway: Gateway,
    notifier: Notifier,
    client: Client,
) -> NdaStatusResponse:
    """Accept the share link's current NDA version. Repeating it is a no-op."""
    result = await gateway.accept_nda(token, user.user_id, body.accepted, client)
    await db.commit()
    await notifier.emit_all(result.events)
    return NdaStatusResponse.model_validate(result.status)


@router.get(
    "/{token}/view",
    response_model=SharedPackResponse,
    summary="View the shared pack",
)
async def view_pack(
    token: str,
    user: CurrentUser,
    db: DbSession,
    gateway: Gateway,
    client: Client,
) -> SharedPackResponse:
    view = await gateway.view_pack(token, user.user_id, client)
    await db.commit()
    return SharedPackResponse(
        proof_pack_id=view.pack.proof_pack_id,
        title=view.pack.title,
        description=view.pack.description,
        health=PackHealthSchema.model_validate(view.health),
        documents=[DocumentSchema.model_validate(d) for d in view.documents],
        sme=SMEProfileSchema.model_validate(view.sme),
    )


@router.post(
    "/{token}/view",
    response_model=DownloadResponse,
    responses={404: {"description": "Document not in pack", "model": ErrorResponse}},
    summary="Request a document download",
)
async def request_download(
    token: str,
    body: DownloadRequest,
    user: CurrentUser,
    db: DbSession,
    gateway: Gateway,
    client: Client,
) -> DownloadResponse:
    """Presigned, time-limited download URL for one document of the pack."""
    handle = await gateway.request_download(token, user.user_id, body.document_id, client)
    await db.commit()
    return DownloadResponse.model_validate(handle)
