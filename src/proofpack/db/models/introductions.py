"""Buyer introduction requests."""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from proofpack.db.models.base import (
    Base,
    IntroductionStatus,
    TimestampTZ,
    UserId,
    UUIDPrimaryKey,
)


class IntroductionRequest(Base):
    """A buyer's request to be introduced to an eligible SME.

    `score_at_request` records the overall score that satisfied the
    eligibility check when the request was accepted.
    """

    __tablename__ = "introduction_requests"

    introduction_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    buyer_user_id: Mapped[UserId] = mapped_column(nullable=False)
    proof_pack_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("proof_packs.proof_pack_id", ondelete="CASCADE"),
        nullable=False,
    )
    sme_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("sme_profiles.sme_id", ondelete="CASCADE"),
        nullable=False,
    )

    project_description: Mapped[str] = mapped_column(Text, nullable=False)
    timeline: Mapped[str | None] = mapped_column(String(100), nullable=True)
    budget_range: Mapped[str | None] = mapped_column(String(100), nullable=True)
    preferred_contact_method: Mapped[str] = mapped_column(
        String(50), nullable=False, default="email"
    )
    score_at_request: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[IntroductionStatus] = mapped_column(
        Enum(IntroductionStatus, name="introduction_status", create_constraint=True),
        nullable=False,
        default=IntroductionStatus.PENDING,
    )

    __table_args__ = (
        Index("ix_introduction_requests_sme_id", "sme_id"),
        Index("ix_introduction_requests_buyer", "buyer_user_id"),
    )
