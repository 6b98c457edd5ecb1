"""Hash-chained activity log.

Owner, reviewer and admin actions are appended to one chain: share link
lifecycle, submissions, review decisions, score overrides and
introductions. Each row stores the SHA-256 of its content plus its
predecessor's hash, so verify_chain() detects any row that was edited,
dropped or moved.
"""

from __future__ import annotations

import hashlib
import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select

from proofpack.db.models.audit import AuditEvent

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

# pg_advisory_xact_lock key owned by the audit chain.
AUDIT_CHAIN_LOCK_KEY = 0x50524F4F46415544

# Columns covered by record_hash.
HASHED_FIELDS = (
    "seq_no",
    "event_type",
    "actor_id",
    "resource_type",
    "resource_id",
    "details",
    "prev_record_hash",
    "created_at",
)


class AuditEventType(Enum):
    PACK_CREATED = "pack_created"
    PACK_SUBMITTED = "pack_submitted"
    SUB_SCORES_OVERRIDDEN = "sub_scores_overridden"
    SUB_SCORES_OVERRIDE_CLEARED = "sub_scores_override_cleared"
    REVIEW_CLAIMED = "review_claimed"
    REVIEW_COMPLETED = "review_completed"
    REVIEW_CANCELLED = "review_cancelled"
    SHARE_LINK_CREATED = "share_link_created"
    SHARE_LINK_REVOKED = "share_link_revoked"
    NDA_VERSION_PUBLISHED = "nda_version_published"
    INTRODUCTION_REQUESTED = "introduction_requested"


@dataclass(frozen=True, slots=True)
class AuditLogEntry:
    event_id: uuid.UUID
    seq_no: int
    record_hash: str
    prev_record_hash: str | None
    event_type: str
    actor_id: str | None
    resource_type: str | None
    resource_id: str | None
    details: dict[str, Any] | None
    created_at: datetime

    @classmethod
    def from_record(cls, record: AuditEvent) -> AuditLogEntry:
        return cls(
            event_id=record.event_id,
            record_hash=record.record_hash,
            **{name: getattr(record, name) for name in HASHED_FIELDS},
        )


@dataclass(frozen=True, slots=True)
class ChainVerificationResult:
    """Outcome of verify_chain(); `errors` lists violations in chain order."""

    valid: bool
    checked_records: int
    errors: list[str] = field(default_factory=list)


def compute_record_hash(**content: Any) -> str:
    """SHA-256 of the record's HASHED_FIELDS as compact sorted-key JSON."""
    canonical = {name: content[name] for name in HASHED_FIELDS}
    canonical["created_at"] = canonical["created_at"].isoformat()
    encoded = json.dumps(canonical, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def _hash_of(record: AuditEvent) -> str:
    return compute_record_hash(**{name: getattr(record, name) for name in HASHED_FIELDS})


class AuditLogService:
    """Appends to and verifies the audit chain inside the caller's session.

    Example:
        await AuditLogService(session).append(
            event_type=AuditEventType.SHARE_LINK_REVOKED,
            actor_id=owner_id,
            resource_type="share_grant",
            resource_id=str(grant_id),
        )
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(
        self,
        *,
        event_type: AuditEventType | str,
        actor_id: str | None = None,
        resource_type: str | None = None,
        resource_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> AuditLogEntry:
        """Add a record after the current tail of the chain.

        Appends are serialized by a transaction-scoped advisory lock taken
        before the tail is read. The lock is held until commit, so the next
        appender's tail query sees this record.
        """
        await self._session.execute(select(func.pg_advisory_xact_lock(AUDIT_CHAIN_LOCK_KEY)))
        tail = (
            await self._session.execute(
                select(AuditEvent).order_by(AuditEvent.seq_no.desc()).limit(1)
            )
        ).scalar_one_or_none()

        record = AuditEvent(
            event_id=uuid.uuid4(),
            seq_no=tail.seq_no + 1 if tail else 1,
            prev_record_hash=tail.record_hash if tail else None,
            event_type=event_type.value if isinstance(event_type, AuditEventType) else event_type,
            actor_id=actor_id,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
            created_at=datetime.now(UTC),
        )
        record.record_hash = _hash_of(record)
        self._session.add(record)
        await self._session.flush()
        return AuditLogEntry.from_record(record)

    async def verify_chain(self) -> ChainVerificationResult:
        """Walk the whole chain checking numbering, links and hashes."""
        records = (
            (await self._session.execute(select(AuditEvent).order_by(AuditEvent.seq_no)))
            .scalars()
            .all()
        )

        errors: list[str] = []
        expected_seq, expected_prev = 1, None
        for record in records:
            if record.seq_no != expected_seq:
                errors.append(
                    f"Sequence gap detected: expected {expected_seq}, found {record.seq_no}"
                )
            if record.prev_record_hash != expected_prev:
                errors.append(
                    f"Chain break at seq_no={record.seq_no}: links to "
                    f"{record.prev_record_hash}, previous record is {expected_prev}"
                )
            if _hash_of(record) != record.record_hash:
                errors.append(f"Hash mismatch at seq_no={record.seq_no}")
            expected_seq, expected_prev = record.seq_no + 1, record.record_hash

        return ChainVerificationResult(not errors, len(records), errors)
