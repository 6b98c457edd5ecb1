"""Pydantic schemas for the share link endpoints."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from proofpack.api.schemas.common import DocumentSchema, PackHealthSchema


class ShareInfoResponse(BaseModel):
    """Unauthenticated summary. Contains no document metadata."""

    model_config = ConfigDict(from_attributes=True)

    pack_title: str
    company_name: str
    industry: str | None = None
    overall_score: int
    document_count: int


class NdaStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    accepted: bool
    nda_version: str


class AcceptNdaRequest(BaseModel):
    accepted: bool


class SMEProfileSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    company_name: str
    industry: str | None = None
    description: str | None = None
    website: str | None = None
    certifications: list[str] = []
    capabilities: list[str] = []


class SharedPackResponse(BaseModel):
    proof_pack_id: UUID
    title: str
    description: str | None = None
    health: PackHealthSchema
    documents: list[DocumentSchema]
    sme: SMEProfileSchema


class DownloadRequest(BaseModel):
    document_id: UUID


class DownloadResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    document_id: UUID
    file_name: str
    url: str
    expires_at: datetime
