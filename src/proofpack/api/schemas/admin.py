"""Schemas for the platform admin namespace."""

from __future__ import annotations

from pydantic import BaseModel, Field


class AuditChainSchema(BaseModel):
    """Result of walking the audit chain from the first record."""

    valid: bool
    checked_records: int
    errors: list[str] = Field(default_factory=list)


class IntegrityResponse(BaseModel):
    """Audit chain verification and the background job backlog."""

    status: str
    audit_chain: AuditChainSchema
    pending_jobs: dict[str, int]
