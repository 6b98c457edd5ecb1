"""QA review models: reviews and reviewer findings."""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import Enum, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from proofpack.db.models.base import (
    Base,
    FindingSeverity,
    FindingStatus,
    OptionalTimestampTZ,
    ReviewDecision,
    ReviewStatus,
    TimestampTZ,
    UUIDPrimaryKey,
)


class QAReview(Base):
    """Human QA review of a submitted pack.

    Created as SCHEDULED on submission. Status changes are applied with a
    compare-and-swap on `status` so concurrent reviewers cannot both win.
    """

    __tablename__ = "qa_reviews"

    review_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    proof_pack_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("proof_packs.proof_pack_id", ondelete="CASCADE"),
        nullable=False,
    )
    reviewer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[ReviewStatus] = mapped_column(
        Enum(ReviewStatus, name="review_status", create_constraint=True),
        nullable=False,
        default=ReviewStatus.SCHEDULED,
    )
    decision: Mapped[ReviewDecision | None] = mapped_column(
        Enum(ReviewDecision, name="review_decision", create_constraint=True),
        nullable=True,
    )
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    claimed_at: Mapped[OptionalTimestampTZ]
    completed_at: Mapped[OptionalTimestampTZ]
    cancelled_at: Mapped[OptionalTimestampTZ]
    cancelled_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_qa_reviews_pack_id", "proof_pack_id"),
        Index("ix_qa_reviews_status", "status"),
    )


class Finding(Base):
    """An issue raised by a reviewer during a QA review."""

    __tablename__ = "findings"

    finding_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    review_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("qa_reviews.review_id", ondelete="CASCADE"),
        nullable=False,
    )
    severity: Mapped[FindingSeverity] = mapped_column(
        Enum(FindingSeverity, name="finding_severity", create_constraint=True),
        nullable=False,
    )
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[FindingStatus] = mapped_column(
        Enum(FindingStatus, name="finding_status", create_constraint=True),
        nullable=False,
        default=FindingStatus.OPEN,
    )
    created_by: Mapped[str] = mapped_column(String(255), nullable=False)
    resolved_at: Mapped[OptionalTimestampTZ]
    resolved_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    __table_args__ = (Index("ix_findings_review_id", "review_id"),)
