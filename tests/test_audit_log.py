"""Tests for the hash-chained audit log.

Tests cover:
- Append computes the record hash and links to the predecessor
- Sequence number continuity and serialized appends
- Tampering detection (modification, deletion, reordering)
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql

from proofpack.db.models.audit import AuditEvent
from proofpack.services.audit_log import (
    AUDIT_CHAIN_LOCK_KEY,
    AuditEventType,
    AuditLogService,
    compute_record_hash,
)
from tests.factories import OWNER_ID, create_mock_session, make_result

T0 = datetime(2026, 3, 15, 9, 30, tzinfo=UTC)


def build_chain(length):
    """A valid chain of `length` audit records."""
    records = []
    prev_hash = None
    for seq_no in range(1, length + 1):
        created_at = T0 + timedelta(minutes=seq_no)
        details = {"step": seq_no}
        record_hash = compute_record_hash(
            seq_no=seq_no,
            event_type="pack_submitted",
            actor_id=OWNER_ID,
            resource_type="proof_pack",
            resource_id="pack-1",
            details=details,
            prev_record_hash=prev_hash,
            created_at=created_at,
        )
        records.append(
            AuditEvent(
                event_id=uuid4(),
                created_at=created_at,
                seq_no=seq_no,
                record_hash=record_hash,
                prev_record_hash=prev_hash,
                event_type="pack_submitted",
                actor_id=OWNER_ID,
                resource_type="proof_pack",
                resource_id="pack-1",
                details=details,
            )
        )
        prev_hash = record_hash
    return records


class TestComputeRecordHash:
    """Tests for the record hash."""

    def test_deterministic(self):
        kwargs = {
            "seq_no": 1,
            "event_type": "pack_created",
            "actor_id": OWNER_ID,
            "resource_type": "proof_pack",
            "resource_id": "pack-1",
            "details": {"b": 2, "a": 1},
            "prev_record_hash": None,
            "created_at": T0,
        }
        assert compute_record_hash(**kwargs) == compute_record_hash(**kwargs)
        assert len(compute_record_hash(**kwargs)) == 64

    def test_key_order_does_not_matter(self):
        common = {
            "seq_no": 1,
            "event_type": "pack_created",
            "actor_id": None,
            "resource_type": None,
            "resource_id": None,
            "prev_record_hash": None,
            "created_at": T0,
        }
        assert compute_record_hash(details={"a": 1, "b": 2}, **common) == compute_record_hash(
            details={"b": 2, "a": 1}, **common
        )

    def test_content_change_changes_hash(self):
        common = {
            "seq_no": 1,
            "event_type": "pack_created",
            "actor_id": OWNER_ID,
            "resource_type": "proof_pack",
            "resource_id": "pack-1",
            "prev_record_hash": None,
            "created_at": T0,
        }
        assert compute_record_hash(details={"score": 70}, **common) != compute_record_hash(
            details={"score": 71}, **common
        )


class TestAppend:
    """Tests for appending records."""

    @pytest.mark.asyncio
    async def test_first_record(self):
        session = create_mock_session(make_result(), make_result(scalar=None))

        entry = await AuditLogService(session).append(
            event_type=AuditEventType.PACK_CREATED,
            actor_id=OWNER_ID,
            resource_type="proof_pack",
            resource_id="pack-1",
        )

        assert entry.seq_no == 1
        assert entry.prev_record_hash is None
        assert entry.event_type == "pack_created"
        stored = session.add.call_args.args[0]
        assert stored.record_hash == entry.record_hash
        session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_links_to_latest_record(self):
        latest = build_chain(3)[-1]
        session = create_mock_session(make_result(), make_result(scalar=latest))

        entry = await AuditLogService(session).append(
            event_type="custom_event", details={"note": "manual"}
        )

        assert entry.seq_no == 4
        assert entry.prev_record_hash == latest.record_hash
        assert entry.event_type == "custom_event"

    @pytest.mark.asyncio
    async def test_chain_lock_taken_before_tail_is_read(self):
        session = create_mock_session(make_result(), make_result(scalar=None))

        await AuditLogService(session).append(event_type=AuditEventType.REVIEW_CLAIMED)

        lock_stmt, tail_stmt = (call.args[0] for call in session.execute.await_args_list)
        lock_sql = str(lock_stmt.compile(dialect=postgresql.dialect()))
        assert "pg_advisory_xact_lock" in lock_sql
        assert list(lock_stmt.compile().params.values()) == [AUDIT_CHAIN_LOCK_KEY]
        assert "audit_events" in str(tail_stmt)

    @pytest.mark.asyncio
    async def test_concurrent_appends_get_consecutive_seq_nos(self):
        """The second appender reads the tail only after the first one's lock is released."""
        chain = build_chain(5)
        first = create_mock_session(make_result(), make_result(scalar=chain[-1]))
        first_entry = await AuditLogService(first).append(event_type="review_claimed")
        stored = first.add.call_args.args[0]

        second = create_mock_session(make_result(), make_result(scalar=stored))
        second_entry = await AuditLogService(second).append(event_type="share_link_created")

        assert (first_entry.seq_no, second_entry.seq_no) == (6, 7)
        assert second_entry.prev_record_hash == first_entry.record_hash


class TestVerifyChain:
    """Tests for chain verification."""

    @pytest.mark.asyncio
    async def test_valid_chain(self):
        session = create_mock_session(make_result(scalars=build_chain(5)))

        result = await AuditLogService(session).verify_chain()

        assert result.valid is True
        assert result.checked_records == 5
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_empty_chain(self):
        session = create_mock_session(make_result(scalars=[]))

        result = await AuditLogService(session).verify_chain()

        assert result.valid is True
        assert result.checked_records == 0

    @pytest.mark.asyncio
    async def test_modified_record(self):
        chain = build_chain(3)
        chain[1].details = {"step": 99}
        session = create_mock_session(make_result(scalars=chain))

        result = await AuditLogService(session).verify_chain()

        assert result.valid is False
        assert result.errors == ["Hash mismatch at seq_no=2"]

    @pytest.mark.asyncio
    async def test_deleted_record(self):
        chain = build_chain(4)
        del chain[2]
        session = create_mock_session(make_result(scalars=chain))

        result = await AuditLogService(session).verify_chain()

        assert result.valid is False
        assert any("Sequence gap" in e for e in result.errors)
        assert any("Chain break at seq_no=4" in e for e in result.errors)

    @pytest.mark.asyncio
    async def test_reordered_records(self):
        chain = build_chain(3)
        chain[0], chain[1] = chain[1], chain[0]
        session = create_mock_session(make_result(scalars=chain))

        result = await AuditLogService(session).verify_chain()

        assert result.valid is False
        assert result.errors
