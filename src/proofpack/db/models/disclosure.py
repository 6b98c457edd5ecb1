"""Disclosure models: share grants, NDA acceptances and the access log.

Access log entries are insert-only; nothing in the service updates or
deletes them.
"""

from __future__ import annotations

import uuid  # noqa: TC003 - required at runtime for SQLAlchemy type resolution

from sqlalchemy import BigInteger, Boolean, Enum, ForeignKey, Identity, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from proofpack.db.models.base import (
    AccessAction,
    Base,
    OptionalTimestampTZ,
    TimestampTZ,
    UserId,
    UUIDPrimaryKey,
)


class ShareGrant(Base):
    """A share link for one pack.

    Only the SHA-256 of the opaque token is stored; the raw token is
    returned to the owner once at creation.
    """

    __tablename__ = "share_grants"

    share_grant_id: Mapped[UUIDPrimaryKey]
    created_at: Mapped[TimestampTZ]

    token_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    proof_pack_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("proof_packs.proof_pack_id", ondelete="CASCADE"),
        nullable=False,
    )
    created_by: Mapped[UserId] = mapped_column(nullable=False)
    expires_at: Mapped[OptionalTimestampTZ]

    revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    revoked_at: Mapped[OptionalTimestampTZ]
    revoked_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    nda_version: Mapped[str] = mapped_column(String(50), nullable=False)

    __table_args__ = (
        Index("ix_share_grants_token_hash", "token_hash", unique=True),
        Index("ix_share_grants_proof_pack_id", "proof_pack_id"),
    )


class NDAAcceptance(Base):
    """A viewer's acceptance of a share grant's NDA.

    One row per (grant, user); a newer NDA version updates the row.
    """

    __tablename__ = "nda_acceptances"

    acceptance_id: Mapped[UUIDPrimaryKey]

    share_grant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("share_grants.share_grant_id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[UserId] = mapped_column(nullable=False)
    nda_version: Mapped[str] = mapped_column(String(50), nullable=False)
    accepted_at: Mapped[TimestampTZ]
    ip_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        Index(
            "ix_nda_acceptances_grant_user",
            "share_grant_id",
            "user_id",
            unique=True,
        ),
    )


class AccessLogEntry(Base):
    """One disclosure event on a share grant."""

    __tablename__ = "access_log_entries"

    entry_id: Mapped[int] = mapped_column(BigInteger, Identity(always=True), primary_key=True)
    created_at: Mapped[TimestampTZ]

    share_grant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("share_grants.share_grant_id", ondelete="RESTRICT"),
        nullable=False,
    )
    proof_pack_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    document_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    action: Mapped[AccessAction] = mapped_column(
        Enum(AccessAction, name="access_action", create_constraint=True),
        nullable=False,
    )
    ip_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        Index("ix_access_log_entries_pack_entry", "proof_pack_id", "entry_id"),
        Index("ix_access_log_entries_share_grant_id", "share_grant_id"),
    )
