"""Tests for the Proof Pack service.

Tests cover:
- Recompute with optimistic version checks and bounded retries
- Admin sub-score overrides
- Document edits blocked while a pack is under review
- Submission rules and the lost-race path
"""

import uuid
from datetime import date, timedelta

import pytest

from proofpack.core.errors import (
    AccessDeniedError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from proofpack.db.models.base import (
    REQUIRED_CATEGORIES,
    DocumentCategory,
    GapCategory,
    GapSeverity,
    GapStatus,
    PackStatus,
    ReviewStatus,
)
from proofpack.db.models.packs import Gap
from proofpack.db.models.reviews import QAReview
from proofpack.services.notifications import NotificationKind
from proofpack.services.proof_packs import DocumentInput, ProofPackService
from proofpack.services.scoring import SubScores
from tests.factories import (
    audit_results,
    create_mock_session,
    make_document,
    make_pack,
    make_result,
)


def recompute_results(pack, documents=(), gaps=(), *, updated=None):
    """Results consumed by one successful recompute round."""
    return [
        make_result(scalar=pack),
        make_result(scalars=list(documents)),
        make_result(scalars=list(gaps)),
        make_result(rowcount=1),
        make_result(),
        make_result(scalar=updated or pack),
    ]


def lost_round(pack, documents=()):
    """Results consumed by a recompute round that loses the version check."""
    return [
        make_result(scalar=pack),
        make_result(scalars=list(documents)),
        make_result(scalars=[]),
        make_result(rowcount=0),
    ]


def added_of_type(session, cls):
    return [c.args[0] for c in session.add.call_args_list if isinstance(c.args[0], cls)]


class TestRecompute:
    """Tests for health and gap recompute."""

    @pytest.mark.asyncio
    async def test_empty_pack(self, settings):
        pack = make_pack()
        session = create_mock_session(*recompute_results(pack))
        service = ProofPackService(session, settings)

        result = await service.recompute(pack.proof_pack_id)

        assert result.health.overall_score == 0
        assert {g.gap_key for g in result.gaps} >= {
            f"missing:{c.name.lower()}" for c in REQUIRED_CATEGORIES
        }
        assert len(added_of_type(session, Gap)) == len(result.gaps)
        assert result.events == []

    @pytest.mark.asyncio
    async def test_complete_pack_scores_100(self, settings):
        pack = make_pack()
        documents = [make_document(c) for c in REQUIRED_CATEGORIES]
        session = create_mock_session(*recompute_results(pack, documents))
        service = ProofPackService(session, settings)

        result = await service.recompute(pack.proof_pack_id)

        assert result.health.overall_score == 100
        assert result.gaps == []

    @pytest.mark.asyncio
    async def test_retries_after_lost_version_race(self, settings):
        pack = make_pack(version=3)
        session = create_mock_session(*lost_round(pack), *recompute_results(pack))
        service = ProofPackService(session, settings)

        result = await service.recompute(pack.proof_pack_id)

        assert result.pack is pack
        assert session.execute.await_count == 10

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, settings):
        pack = make_pack(version=7)
        attempts = settings.scoring.max_recompute_attempts
        results = [r for _ in range(attempts) for r in lost_round(pack)]
        session = create_mock_session(*results)
        service = ProofPackService(session, settings)

        with pytest.raises(StateConflictError) as exc_info:
            await service.recompute(pack.proof_pack_id)

        assert exc_info.value.current_state["version"] == 7
        assert session.execute.await_count == attempts * 4

    @pytest.mark.asyncio
    async def test_missing_pack(self, settings):
        session = create_mock_session(make_result(scalar=None))
        service = ProofPackService(session, settings)

        with pytest.raises(NotFoundError):
            await service.recompute(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_new_expiry_warning_emits_event(self, settings):
        pack = make_pack()
        expiring = make_document(expiration_date=date.today() + timedelta(days=10))
        session = create_mock_session(*recompute_results(pack, [expiring]))
        service = ProofPackService(session, settings)

        result = await service.recompute(pack.proof_pack_id)

        assert len(result.events) == 1
        event = result.events[0]
        assert event.kind is NotificationKind.EXPIRING_DOCUMENT
        assert event.recipient == pack.owner_user_id
        assert event.params["document_id"] == str(expiring.document_id)

    @pytest.mark.asyncio
    async def test_known_expiry_warning_is_not_repeated(self, settings):
        pack = make_pack()
        expiring = make_document(expiration_date=date.today() + timedelta(days=10))
        stored = Gap(
            gap_id=uuid.uuid4(),
            proof_pack_id=pack.proof_pack_id,
            gap_key=f"expiring:{expiring.document_id}",
            document_id=expiring.document_id,
            category=GapCategory.EXPIRATION,
            severity=GapSeverity.MEDIUM,
            recommendation="Plan to renew.",
            status=GapStatus.OPEN,
        )
        session = create_mock_session(*recompute_results(pack, [expiring], [stored]))
        service = ProofPackService(session, settings)

        result = await service.recompute(pack.proof_pack_id)

        assert result.events == []

    @pytest.mark.asyncio
    async def test_resolved_gap_carries_over(self, settings):
        pack = make_pack()
        stored = Gap(
            gap_id=uuid.uuid4(),
            proof_pack_id=pack.proof_pack_id,
            gap_key="missing:financial",
            category=GapCategory.COMPLETENESS,
            severity=GapSeverity.HIGH,
            recommendation="Upload at least one Financial document",
            status=GapStatus.RESOLVED,
        )
        session = create_mock_session(*recompute_results(pack, [], [stored]))
        service = ProofPackService(session, settings)

        result = await service.recompute(pack.proof_pack_id)

        by_key = {g.gap_key: g for g in result.gaps}
        assert by_key["missing:financial"].status is GapStatus.RESOLVED
        assert result.health.remediation_score == pytest.approx(14.29)

    @pytest.mark.asyncio
    async def test_active_override_is_kept(self, settings):
        pack = make_pack(
            sub_scores_overridden=True,
            completeness_score=90,
            expiration_score=90,
            quality_score=90,
            remediation_score=90,
        )
        session = create_mock_session(*recompute_results(pack))
        service = ProofPackService(session, settings)

        result = await service.recompute(pack.proof_pack_id)

        assert result.health.overall_score == 90


class TestOverrides:
    """Tests for admin sub-score overrides."""

    @pytest.mark.asyncio
    async def test_non_admin_rejected(self, settings, owner):
        session = create_mock_session()
        service = ProofPackService(session, settings)

        with pytest.raises(AccessDeniedError):
            await service.override_sub_scores(
                uuid.uuid4(), SubScores(85, 85, 85, 80), owner
            )
        session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_scores_rejected(self, settings, admin):
        session = create_mock_session()
        service = ProofPackService(session, settings)

        with pytest.raises(ValidationError) as exc_info:
            await service.override_sub_scores(
                uuid.uuid4(), SubScores(101, 85, 85, 80), admin
            )
        assert "completeness" in exc_info.value.errors

    @pytest.mark.asyncio
    async def test_override_recomputes_overall(self, settings, admin):
        pack = make_pack()
        session = create_mock_session(*recompute_results(pack), *audit_results())
        service = ProofPackService(session, settings)

        result = await service.override_sub_scores(
            pack.proof_pack_id, SubScores(85, 85, 85, 80), admin
        )

        assert result.health.overall_score == 85


class TestDocumentEdits:
    """Tests for document mutations."""

    @pytest.mark.asyncio
    async def test_blocked_while_submitted(self, settings, owner):
        pack = make_pack(status=PackStatus.SUBMITTED)
        session = create_mock_session(make_result(scalar=pack))
        service = ProofPackService(session, settings)
        data = DocumentInput(
            category=DocumentCategory.SAFETY,
            file_name="fire-risk-assessment.pdf",
            storage_key="packs/x/fire-risk-assessment.pdf",
        )

        with pytest.raises(StateConflictError) as exc_info:
            await service.add_document(pack.proof_pack_id, owner, data)

        assert exc_info.value.current_state["status"] == "submitted"
        session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_only_owner_may_edit(self, settings, stranger):
        pack = make_pack()
        session = create_mock_session(make_result(scalar=pack))
        service = ProofPackService(session, settings)

        with pytest.raises(AccessDeniedError):
            await service.remove_document(pack.proof_pack_id, uuid.uuid4(), stranger)

    @pytest.mark.asyncio
    async def test_blank_file_name(self, settings, owner):
        pack = make_pack()
        session = create_mock_session(make_result(scalar=pack))
        service = ProofPackService(session, settings)
        data = DocumentInput(
            category=DocumentCategory.SAFETY, file_name="  ", storage_key="packs/x/y.pdf"
        )

        with pytest.raises(ValidationError) as exc_info:
            await service.add_document(pack.proof_pack_id, owner, data)
        assert "file_name" in exc_info.value.errors

    @pytest.mark.asyncio
    async def test_add_to_approved_pack_recomputes(self, settings, owner):
        pack = make_pack(status=PackStatus.APPROVED, overall_score=82)
        session = create_mock_session(
            make_result(scalar=pack),
            make_result(scalar=None),
            *recompute_results(pack),
        )
        service = ProofPackService(session, settings)
        data = DocumentInput(
            category=DocumentCategory.SAFETY,
            file_name="fire-risk-assessment.pdf",
            storage_key="packs/x/fire-risk-assessment.pdf",
        )

        change = await service.add_document(pack.proof_pack_id, owner, data)

        assert change.document.position == 0
        assert change.document.file_name == "fire-risk-assessment.pdf"
        assert change.recompute.pack is pack

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, settings, owner):
        pack = make_pack()
        session = create_mock_session(make_result(scalar=pack))
        service = ProofPackService(session, settings)

        with pytest.raises(ValidationError) as exc_info:
            await service.update_document(
                pack.proof_pack_id, uuid.uuid4(), owner, {"proof_pack_id": uuid.uuid4()}
            )
        assert exc_info.value.errors == {"proof_pack_id": "not editable"}

    @pytest.mark.asyncio
    async def test_resolve_unknown_gap(self, settings, owner):
        pack = make_pack()
        session = create_mock_session(make_result(scalar=pack), make_result(scalar=None))
        service = ProofPackService(session, settings)

        with pytest.raises(NotFoundError):
            await service.resolve_gap(pack.proof_pack_id, uuid.uuid4(), owner)


class TestSubmit:
    """Tests for submission to QA review."""

    @pytest.mark.asyncio
    async def test_submit_eligible_draft(self, settings, owner):
        pack = make_pack(overall_score=75)
        submitted = make_pack(
            proof_pack_id=pack.proof_pack_id, status=PackStatus.SUBMITTED, overall_score=75
        )
        session = create_mock_session(
            make_result(scalar=pack),
            make_result(scalar=pack),
            make_result(rowcount=1),
            *audit_results(),
            make_result(scalar=submitted),
        )
        service = ProofPackService(session, settings)

        result = await service.submit(pack.proof_pack_id, owner)

        assert result.pack.status is PackStatus.SUBMITTED
        assert result.review.status is ReviewStatus.SCHEDULED
        assert added_of_type(session, QAReview) == [result.review]

    @pytest.mark.asyncio
    async def test_resubmit_after_rejection(self, settings, owner):
        pack = make_pack(status=PackStatus.REJECTED, overall_score=70)
        session = create_mock_session(
            make_result(scalar=pack),
            make_result(scalar=pack),
            make_result(rowcount=1),
            *audit_results(),
            make_result(scalar=pack),
        )
        service = ProofPackService(session, settings)

        result = await service.submit(pack.proof_pack_id, owner)

        assert result.review.proof_pack_id == pack.proof_pack_id

    @pytest.mark.asyncio
    async def test_score_below_threshold(self, settings, owner):
        pack = make_pack(overall_score=69)
        session = create_mock_session(make_result(scalar=pack), make_result(scalar=pack))
        service = ProofPackService(session, settings)

        with pytest.raises(ValidationError) as exc_info:
            await service.submit(pack.proof_pack_id, owner)

        detail = exc_info.value.to_detail()
        assert detail["current_score"] == 69
        assert detail["required_score"] == 70

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [PackStatus.SUBMITTED, PackStatus.APPROVED])
    async def test_wrong_status(self, settings, owner, status):
        pack = make_pack(status=status, overall_score=90)
        session = create_mock_session(make_result(scalar=pack), make_result(scalar=pack))
        service = ProofPackService(session, settings)

        with pytest.raises(StateConflictError):
            await service.submit(pack.proof_pack_id, owner)

    @pytest.mark.asyncio
    async def test_lost_race(self, settings, owner):
        pack = make_pack(overall_score=80, version=2)
        current = make_pack(
            proof_pack_id=pack.proof_pack_id, status=PackStatus.SUBMITTED, version=3
        )
        session = create_mock_session(
            make_result(scalar=pack),
            make_result(scalar=pack),
            make_result(rowcount=0),
            make_result(scalar=current),
        )
        service = ProofPackService(session, settings)

        with pytest.raises(StateConflictError) as exc_info:
            await service.submit(pack.proof_pack_id, owner)

        assert exc_info.value.current_state == {
            "proof_pack_id": str(pack.proof_pack_id),
            "status": "submitted",
            "version": 3,
        }
        session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_stranger_cannot_submit(self, settings, stranger):
        pack = make_pack(overall_score=90)
        session = create_mock_session(make_result(scalar=pack))
        service = ProofPackService(session, settings)

        with pytest.raises(AccessDeniedError):
            await service.submit(pack.proof_pack_id, stranger)
