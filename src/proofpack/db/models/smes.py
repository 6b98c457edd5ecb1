"""SME company profiles."""

from __future__ import annotations

from sqlalchemy import Index, String, Text
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from proofpack.db.models.base import (
    Base,
    MediumString,
    ShortString,
    TimestampTZ,
    UserId,
    UUIDPrimaryKey,
)


class SMEProfile(Base):
    """Company profile of a small or medium enterprise.

    Supplies the company name and industry shown on share link summaries
    and the industry/certification filters of the buyer directory.
    """

    __tablename__ = "sme_profiles"

    sme_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]
    updated_at: Mapped[TimestampTZ]

    owner_user_id: Mapped[UserId] = mapped_column(nullable=False)
    company_name: Mapped[MediumString] = mapped_column(nullable=False)
    industry: Mapped[ShortString | None] = mapped_column(nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    website: Mapped[str | None] = mapped_column(String(500), nullable=True)

    certifications: Mapped[list[str]] = mapped_column(
        ARRAY(String(100)),
        nullable=False,
        default=list,
    )
    capabilities: Mapped[list[str]] = mapped_column(
        ARRAY(String(100)),
        nullable=False,
        default=list,
    )

    __table_args__ = (
        Index("ix_sme_profiles_owner_user_id", "owner_user_id"),
        Index("ix_sme_profiles_industry", "industry"),
    )
