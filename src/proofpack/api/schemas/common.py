"""Schemas shared by several API namespaces."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from proofpack.db.models.base import DocumentCategory


class ErrorResponse(BaseModel):
    """Error envelope returned by the error middleware."""

    error: str
    message: str
    detail: dict[str, Any] | None = None
    request_id: str | None = None


class PackHealthSchema(BaseModel):
    """Pack Health sub-scores and the derived overall score."""

    model_config = ConfigDict(from_attributes=True)

    completeness_score: float
    expiration_score: float
    quality_score: float
    remediation_score: float
    overall_score: int
    is_eligible: bool


class DocumentSchema(BaseModel):
    """Document metadata. The object store key is never exposed."""

    model_config = ConfigDict(from_attributes=True)

    document_id: UUID
    category: DocumentCategory
    file_name: str
    mime_type: str | None = None
    file_size: int | None = None
    expiration_date: date | None = None
    document_type: str | None = None
    notes: str | None = None
    position: int = 0
    uploaded_at: datetime | None = None
