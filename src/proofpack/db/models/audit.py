"""Append-only activity log rows."""

from __future__ import annotations

from sqlalchemy import BigInteger, Index, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from proofpack.db.models.base import Base, TimestampTZ, UUIDPrimaryKey


class AuditEvent(Base):
    """One owner, reviewer or admin action.

    record_hash covers the row's content together with prev_record_hash,
    linking every row to the one before it in seq_no order. Rewriting or
    removing a row invalidates every later hash.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("ix_audit_events_seq_no", "seq_no", unique=True),
        Index("ix_audit_events_resource", "resource_type", "resource_id"),
        Index("ix_audit_events_event_type", "event_type"),
    )

    event_id: Mapped[UUIDPrimaryKey]
    seq_no: Mapped[int] = mapped_column(BigInteger)
    event_type: Mapped[str] = mapped_column(String(100))
    actor_id: Mapped[str | None] = mapped_column(String(255))
    resource_type: Mapped[str | None] = mapped_column(String(50))
    resource_id: Mapped[str | None] = mapped_column(String(255))
    details: Mapped[dict | None] = mapped_column(JSONB)

    prev_record_hash: Mapped[str | None] = mapped_column(String(64))
    record_hash: Mapped[str] = mapped_column(String(64))

    created_at: Mapped[TimestampTZ]
