"""Proof Pack models: packs, documents and gaps."""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution
from datetime import date  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import BigInteger, Boolean, Enum, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from proofpack.db.models.base import (
    Base,
    DocumentCategory,
    GapCategory,
    GapSeverity,
    GapStatus,
    MediumString,
    OptionalTimestampTZ,
    PackStatus,
    TimestampTZ,
    UserId,
    UUIDPrimaryKey,
)


class ProofPack(Base):
    """A bundle of compliance evidence owned by an SME.

    The health columns cache the last PackHealth computed for the current
    document set. `version` is incremented by every recompute and guards
    concurrent recomputes with a compare-and-swap.
    """

    __tablename__ = "proof_packs"

    proof_pack_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    sme_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("sme_profiles.sme_id", ondelete="CASCADE"),
        nullable=False,
    )
    owner_user_id: Mapped[UserId] = mapped_column(nullable=False)

    title: Mapped[MediumString] = mapped_column(nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[PackStatus] = mapped_column(
        Enum(PackStatus, name="pack_status", create_constraint=True),
        nullable=False,
        default=PackStatus.DRAFT,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Cached PackHealth
    completeness_score: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False, default=0)
    expiration_score: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False, default=0)
    quality_score: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False, default=0)
    remediation_score: Mapped[float] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=False, default=0)
    overall_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    health_computed_at: Mapped[OptionalTimestampTZ]

    # Admin-supplied sub-scores replace the metadata-derived ones until cleared
    sub_scores_overridden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    submitted_at: Mapped[OptionalTimestampTZ]
    reviewed_at: Mapped[OptionalTimestampTZ]

    __table_args__ = (
        Index("ix_proof_packs_sme_id", "sme_id"),
        Index("ix_proof_packs_owner_user_id", "owner_user_id"),
        Index("ix_proof_packs_status_score", "status", "overall_score"),
        Index("ix_proof_packs_submitted_at", "submitted_at"),
    )


class Document(Base):
    """Metadata of one evidence document in a pack.

    The file itself lives in the object store under `storage_key` and is
    never read by the service.
    """

    __tablename__ = "documents"

    document_id: Mapped[UUIDPrimaryKey]
    uploaded_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    proof_pack_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("proof_packs.proof_pack_id", ondelete="CASCADE"),
        nullable=False,
    )

    category: Mapped[DocumentCategory] = mapped_column(
        Enum(DocumentCategory, name="document_category", create_constraint=True),
        nullable=False,
    )
    file_name: Mapped[MediumString] = mapped_column(nullable=False)
    mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    file_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    storage_key: Mapped[str] = mapped_column(String(500), nullable=False)

    expiration_date: Mapped[date | None] = mapped_column(nullable=True)
    document_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_documents_pack_position", "proof_pack_id", "position"),
        Index("ix_documents_expiration_date", "expiration_date"),
    )


class Gap(Base):
    """A deficiency found by the gap analysis of a pack.

    The whole gap set of a pack is replaced on every recompute. `gap_key`
    identifies the underlying condition so a resolution survives
    regeneration.
    """

    __tablename__ = "gaps"

    gap_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    proof_pack_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("proof_packs.proof_pack_id", ondelete="CASCADE"),
        nullable=False,
    )
    gap_key: Mapped[str] = mapped_column(String(200), nullable=False)
    document_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    category: Mapped[GapCategory] = mapped_column(
        Enum(GapCategory, name="gap_category", create_constraint=True),
        nullable=False,
    )
    severity: Mapped[GapSeverity] = mapped_column(
        Enum(GapSeverity, name="gap_severity", create_constraint=True),
        nullable=False,
    )
    recommendation: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[GapStatus] = mapped_column(
        Enum(GapStatus, name="gap_status", create_constraint=True),
        nullable=False,
        default=GapStatus.OPEN,
    )
    resolved_at: Mapped[OptionalTimestampTZ]

    __table_args__ = (
        Index("ix_gaps_pack_key", "proof_pack_id", "gap_key", unique=True),
    )
