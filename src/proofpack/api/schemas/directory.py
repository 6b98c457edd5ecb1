"""Pydantic schemas for the buyer directory and introductions."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from proofpack.db.models.base import IntroductionStatus


class DirectoryEntrySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    proof_pack_id: UUID
    sme_id: UUID
    title: str
    company_name: str
    industry: str | None = None
    certifications: list[str] = []
    overall_score: int


class DirectoryResponse(BaseModel):
    items: list[DirectoryEntrySchema]
    total: int
    page: int
    page_size: int
    pages: int


class IntroductionRequestBody(BaseModel):
    proof_pack_id: UUID
    project_description: Annotated[str, Field(min_length=1, max_length=5000)]
    timeline: Annotated[str | None, Field(max_length=100)] = None
    budget_range: Annotated[str | None, Field(max_length=100)] = None
    preferred_contact_method: Literal["email", "phone", "video"] = "email"


class IntroductionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    introduction_id: UUID
    proof_pack_id: UUID
    sme_id: UUID
    status: IntroductionStatus
    score_at_request: int
    preferred_contact_method: str
    created_at: datetime | None = None
