"""Test data factories for Proof Pack Core.

Builders for transient ORM objects and mocked SQLAlchemy sessions, so
service tests can run without a database.
"""

from __future__ import annotations

import uuid
from datetime import UTC, date, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from proofpack.db.models.base import DocumentCategory, PackStatus, ReviewStatus
from proofpack.db.models.disclosure import ShareGrant
from proofpack.db.models.packs import Document, ProofPack
from proofpack.db.models.reviews import QAReview
from proofpack.db.models.smes import SMEProfile

OWNER_ID = "user-owner-1"
REVIEWER_ID = "user-reviewer-1"
BUYER_ID = "user-buyer-1"
ADMIN_ID = "user-admin-1"


def make_result(
    *,
    scalar: Any = None,
    scalars: list[Any] | None = None,
    rows: list[tuple] | None = None,
    one: tuple | None = None,
    rowcount: int = 1,
) -> MagicMock:
    """Build a mock of an SQLAlchemy Result.

    Args:
        scalar: Value for scalar_one_or_none() and scalar().
        scalars: Values for scalars().all().
        rows: Values for all().
        one: Value for one_or_none().
        rowcount: Rows matched by an UPDATE or INSERT.
    """
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalar.return_value = scalar
    result.scalars.return_value.all.return_value = scalars or []
    result.all.return_value = rows or []
    result.one_or_none.return_value = one
    result.rowcount = rowcount
    return result


def create_mock_session(*results: MagicMock) -> AsyncMock:
    """Create a mock async session whose execute() returns `results` in order."""
    session = AsyncMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.refresh = AsyncMock()
    session.delete = AsyncMock()
    session.get = AsyncMock()
    session.execute = AsyncMock(side_effect=list(results))
    return session


def audit_results() -> tuple[MagicMock, MagicMock]:
    """Results of an audit append on an empty chain: chain lock, then tail lookup."""
    return make_result(), make_result(scalar=None)


def make_sme(**overrides: Any) -> SMEProfile:
    values: dict[str, Any] = {
        "sme_id": uuid.uuid4(),
        "owner_user_id": OWNER_ID,
        "company_name": "Acme Fabrication Ltd",
        "industry": "Manufacturing",
        "certifications": ["ISO 9001"],
        "capabilities": ["CNC machining"],
    }
    values.update(overrides)
    return SMEProfile(**values)


def make_pack(**overrides: Any) -> ProofPack:
    values: dict[str, Any] = {
        "proof_pack_id": uuid.uuid4(),
        "sme_id": uuid.uuid4(),
        "owner_user_id": OWNER_ID,
        "title": "ISO readiness pack",
        "description": None,
        "status": PackStatus.DRAFT,
        "version": 0,
        "completeness_score": 0.0,
        "expiration_score": 0.0,
        "quality_score": 0.0,
        "remediation_score": 0.0,
        "overall_score": 0,
        "sub_scores_overridden": False,
        "created_at": datetime.now(UTC),
        "updated_at": datetime.now(UTC),
    }
    values.update(overrides)
    return ProofPack(**values)


def make_document(
    category: DocumentCategory = DocumentCategory.CERTIFICATIONS,
    *,
    file_name: str = "iso-9001-certificate.pdf",
    expiration_date: date | None = None,
    document_type: str | None = "certificate",
    notes: str | None = "Issued by the national accreditation body",
    **overrides: Any,
) -> Document:
    values: dict[str, Any] = {
        "document_id": uuid.uuid4(),
        "proof_pack_id": uuid.uuid4(),
        "category": category,
        "file_name": file_name,
        "storage_key": f"packs/{uuid.uuid4()}/{file_name}",
        "expiration_date": expiration_date,
        "document_type": document_type,
        "notes": notes,
        "position": 0,
    }
    values.update(overrides)
    return Document(**values)


def make_review(**overrides: Any) -> QAReview:
    values: dict[str, Any] = {
        "review_id": uuid.uuid4(),
        "proof_pack_id": uuid.uuid4(),
        "status": ReviewStatus.SCHEDULED,
        "reviewer_id": None,
        "decision": None,
        "comments": None,
        "created_at": datetime.now(UTC),
    }
    values.update(overrides)
    return QAReview(**values)


def make_grant(**overrides: Any) -> ShareGrant:
    values: dict[str, Any] = {
        "share_grant_id": uuid.uuid4(),
        "token_hash": "0" * 64,
        "proof_pack_id": uuid.uuid4(),
        "created_by": OWNER_ID,
        "created_at": datetime.now(UTC),
        "expires_at": None,
        "revoked": False,
        "nda_version": "2024-01",
    }
    values.update(overrides)
    return ShareGrant(**values)
