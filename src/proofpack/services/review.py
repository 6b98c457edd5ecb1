"""QA review state machine.

States and transitions:

    scheduled ──claim──> in_progress ──complete──> completed (approved | rejected)
        │                    │
        └──────cancel────────┴──> cancelled

completed and cancelled are terminal. Every status change is a
compare-and-swap on qa_reviews.status, so of two reviewers racing for the
same review exactly one wins and the other gets a StateConflictError
carrying the review's current state.

Decision rules:
- Rejection requires comments.
- Approval is refused while a critical finding is open.
- Approval of a pack below the eligibility threshold requires comments.

The last two rules are individually switchable under settings.review.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, ClassVar

from sqlalchemy import select, update

from proofpack.core.errors import NotFoundError, StateConflictError, ValidationError
from proofpack.core.settings import get_settings
from proofpack.db.models.base import (
    FindingSeverity,
    FindingStatus,
    PackStatus,
    ReviewDecision,
    ReviewStatus,
)
from proofpack.db.models.packs import ProofPack
from proofpack.db.models.reviews import Finding, QAReview
from proofpack.db.models.smes import SMEProfile
from proofpack.services.audit_log import AuditEventType, AuditLogService
from proofpack.services.notifications import NotificationEvent, NotificationKind
from proofpack.services.scoring import ELIGIBILITY_THRESHOLD, is_eligible

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from proofpack.core.config import Settings

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (ReviewStatus.SCHEDULED, ReviewStatus.IN_PROGRESS)

_SEVERITY_RANK = {
    FindingSeverity.MINOR: 0,
    FindingSeverity.MAJOR: 1,
    FindingSeverity.CRITICAL: 2,
}

DECISION_ACTIONS = {
    "approve": ReviewDecision.APPROVED,
    "reject": ReviewDecision.REJECTED,
}


class OpenCriticalFindingsError(StateConflictError):
    """Approval refused because critical findings are still open."""

    def __init__(self, review: QAReview, finding_ids: list[str]) -> None:
        self.finding_ids = finding_ids
        super().__init__(
            "Cannot approve while critical findings are open; resolve or downgrade them, "
            "or reject the pack",
            current_state={**review_state(review), "open_critical_findings": finding_ids},
        )


@dataclass(frozen=True, slots=True)
class ReviewOutcome:
    """A review after a transition, plus the notifications it triggers."""

    review: QAReview
    pack: ProofPack | None = None
    events: list[NotificationEvent] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class QueueItem:
    review: QAReview
    pack: ProofPack
    company_name: str
    industry: str | None


def review_state(review: QAReview) -> dict[str, Any]:
    """Authoritative state of a review, as returned with conflicts."""
    return {
        "review_id": str(review.review_id),
        "proof_pack_id": str(review.proof_pack_id),
        "status": review.status.value,
        "decision": review.decision.value if review.decision else None,
        "reviewer_id": review.reviewer_id,
    }


def _blank(text: str | None) -> bool:
    return not text or not text.strip()


class ReviewWorkflow:
    """Drives QA reviews through their lifecycle."""

    VALID_TRANSITIONS: ClassVar[dict[ReviewStatus, set[ReviewStatus]]] = {
        ReviewStatus.SCHEDULED: {ReviewStatus.IN_PROGRESS, ReviewStatus.CANCELLED},
        ReviewStatus.IN_PROGRESS: {ReviewStatus.COMPLETED, ReviewStatus.CANCELLED},
        ReviewStatus.COMPLETED: set(),
        ReviewStatus.CANCELLED: set(),
    }

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self._session = session
        self._settings = settings or get_settings()

    @classmethod
    def is_valid_transition(cls, from_status: ReviewStatus, to_status: ReviewStatus) -> bool:
        return to_status in cls.VALID_TRANSITIONS.get(from_status, set())

    @classmethod
    def is_terminal_state(cls, status: ReviewStatus) -> bool:
        return not cls.VALID_TRANSITIONS.get(status)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_review(self, review_id: uuid.UUID) -> QAReview:
        result = await self._session.execute(
            select(QAReview)
            .where(QAReview.review_id == review_id)
            .execution_options(populate_existing=True)
        )
        review = result.scalar_one_or_none()
        if review is None:
            raise NotFoundError("QAReview", review_id)
        return review

    async def list_findings(self, review_id: uuid.UUID) -> list[Finding]:
        result = await self._session.execute(
            select(Finding).where(Finding.review_id == review_id).order_by(Finding.created_at)
        )
        return list(result.scalars().all())

    async def _get_pack(self, proof_pack_id: uuid.UUID) -> ProofPack:
        result = await self._session.execute(
            select(ProofPack)
            .where(ProofPack.proof_pack_id == proof_pack_id)
            .execution_options(populate_existing=True)
        )
        pack = result.scalar_one_or_none()
        if pack is None:
            raise NotFoundError("ProofPack", proof_pack_id)
        return pack

    async def list_queue(
        self,
        *,
        min_score: int | None = None,
        max_score: int | None = None,
        industry: str | None = None,
        limit: int = 100,
    ) -> list[QueueItem]:
        """Open reviews ordered by pack submission time, oldest first."""
        stmt = (
            select(QAReview, ProofPack, SMEProfile)
            .join(ProofPack, ProofPack.proof_pack_id == QAReview.proof_pack_id)
            .join(SMEProfile, SMEProfile.sme_id == ProofPack.sme_id)
            .where(QAReview.status.in_(ACTIVE_STATUSES))
            .order_by(ProofPack.submitted_at, QAReview.created_at)
            .limit(limit)
        )
        if min_score is not None:
            stmt = stmt.where(ProofPack.overall_score >= min_score)
        if max_score is not None:
            stmt = stmt.where(ProofPack.overall_score <= max_score)
        if industry:
            stmt = stmt.where(SMEProfile.industry == industry)

        result = await self._session.execute(stmt)
        return [
            QueueItem(review=review, pack=pack, company_name=sme.company_name, industry=sme.industry)
            for review, pack, sme in result.all()
        ]

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def _swap_status(
        self,
        review: QAReview,
        target: ReviewStatus,
        *,
        expected_reviewer: str | None = None,
        **values: Any,
    ) -> QAReview:
        """Move a review from its loaded status to `target`, or raise with the current state."""
        expected = review.status
        if not self.is_valid_transition(expected, target):
            raise StateConflictError(
                f"Review cannot move from {expected.value} to {target.value}",
                current_state=review_state(review),
            )

        stmt = update(QAReview).where(
            QAReview.review_id == review.review_id,
            QAReview.status == expected,
        )
        if expected_reviewer is not None:
            stmt = stmt.where(QAReview.reviewer_id == expected_reviewer)
        result = await self._session.execute(
            stmt.values(status=target, **values).execution_options(synchronize_session=False)
        )

        current = await self.get_review(review.review_id)
        if result.rowcount != 1:
            logger.info(
                "Review transition lost: review_id=%s, expected=%s, target=%s, current=%s",
                review.review_id,
                expected.value,
                target.value,
                current.status.value,
            )
            raise StateConflictError(
                f"Review is already {current.status.value}",
                current_state=review_state(current),
            )
        return current

    async def claim(self, review_id: uuid.UUID, reviewer_id: str) -> QAReview:
        """Claim a scheduled review for a reviewer.

        Raises:
            StateConflictError: If the review is no longer scheduled.
        """
        review = await self.get_review(review_id)
        if review.status is not ReviewStatus.SCHEDULED:
            raise StateConflictError(
                f"Review is already {review.status.value}",
                current_state=review_state(review),
            )

        claimed = await self._swap_status(
            review,
            ReviewStatus.IN_PROGRESS,
            reviewer_id=reviewer_id,
            claimed_at=datetime.now(UTC),
        )
        await AuditLogService(self._session).append(
            event_type=AuditEventType.REVIEW_CLAIMED,
            actor_id=reviewer_id,
            resource_type="qa_review",
            resource_id=str(review_id),
        )
        logger.info("Review claimed", extra={"review_id": str(review_id), "reviewer_id": reviewer_id})
        return claimed

    async def _open_critical_findings(self, review_id: uuid.UUID) -> list[str]:
        result = await self._session.execute(
            select(Finding.finding_id).where(
                Finding.review_id == review_id,
                Finding.severity == FindingSeverity.CRITICAL,
                Finding.status == FindingStatus.OPEN,
            )
        )
        return [str(finding_id) for finding_id in result.scalars().all()]

    async def _validate_decision(
        self,
        review: QAReview,
        pack: ProofPack,
        decision: ReviewDecision,
        comments: str | None,
    ) -> None:
        policy = self._settings.review
        if decision is ReviewDecision.REJECTED:
            if _blank(comments):
                raise ValidationError(
                    "Comments are required when rejecting a pack",
                    errors={"comments": "required for rejection"},
                )
            return

        if policy.block_approval_on_critical_findings:
            critical = await self._open_critical_findings(review.review_id)
            if critical:
                raise OpenCriticalFindingsError(review, critical)

        if (
            policy.require_low_score_justification
            and not is_eligible(pack.overall_score)
            and _blank(comments)
        ):
            raise ValidationError(
                f"Approving a pack scored below {ELIGIBILITY_THRESHOLD} requires a justification",
                errors={"comments": "required when approving a low-scoring pack"},
                current_score=pack.overall_score,
                required_score=ELIGIBILITY_THRESHOLD,
            )

    async def complete(
        self,
        review_id: uuid.UUID,
        reviewer_id: str,
        decision: ReviewDecision,
        comments: str | None = None,
    ) -> ReviewOutcome:
        """Record the claiming reviewer's decision.

        Raises:
            StateConflictError: If the review is not in progress, was claimed
                by someone else, or critical findings are open.
            ValidationError: If a required comment is missing.
        """
        review = await self.get_review(review_id)
        if review.status is not ReviewStatus.IN_PROGRESS:
            raise StateConflictError(
                f"Review must be in progress to complete, it is {review.status.value}",
                current_state=review_state(review),
            )
        if review.reviewer_id != reviewer_id:
            raise StateConflictError(
                "Review is claimed by another reviewer",
                current_state=review_state(review),
            )

        pack = await self._get_pack(review.proof_pack_id)
        await self._validate_decision(review, pack, decision, comments)

        now = datetime.now(UTC)
        completed = await self._swap_status(
            review,
            ReviewStatus.COMPLETED,
            expected_reviewer=reviewer_id,
            decision=decision,
            comments=comments.strip() if comments else None,
            completed_at=now,
        )

        pack_status = (
            PackStatus.APPROVED if decision is ReviewDecision.APPROVED else PackStatus.REJECTED
        )
        await self._session.execute(
            update(ProofPack)
            .where(ProofPack.proof_pack_id == pack.proof_pack_id)
            .values(status=pack_status, reviewed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        pack = await self._get_pack(pack.proof_pack_id)

        await AuditLogService(self._session).append(
            event_type=AuditEventType.REVIEW_COMPLETED,
            actor_id=reviewer_id,
            resource_type="qa_review",
            resource_id=str(review_id),
            details={
                "proof_pack_id": str(pack.proof_pack_id),
                "decision": decision.value,
                "overall_score": pack.overall_score,
            },
        )
        logger.info(
            "Review completed",
            extra={
                "review_id": str(review_id),
                "decision": decision.value,
                "overall_score": pack.overall_score,
            },
        )

        event = NotificationEvent(
            kind=NotificationKind.REVIEW_COMPLETED,
            recipient=pack.owner_user_id,
            params={
                "proof_pack_id": str(pack.proof_pack_id),
                "pack_title": pack.title,
                "decision": decision.value,
                "comments": completed.comments,
                "overall_score": pack.overall_score,
            },
        )
        return ReviewOutcome(review=completed, pack=pack, events=[event])

    async def decide(
        self,
        proof_pack_id: uuid.UUID,
        reviewer_id: str,
        action: str,
        comments: str | None = None,
    ) -> ReviewOutcome:
        """Approve or reject a pack's open review in one step.

        Claims the review for the caller if it is still scheduled, then
        completes it.

        Args:
            proof_pack_id: Pack under review.
            reviewer_id: Deciding reviewer.
            action: "approve" or "reject".
            comments: Reviewer comments.

        Raises:
            ValidationError: For an unknown action or a missing comment.
            StateConflictError: If the pack has no open review or the review
                belongs to another reviewer.
        """
        decision = DECISION_ACTIONS.get(action)
        if decision is None:
            raise ValidationError(
                "Unknown review action",
                errors={"action": "must be 'approve' or 'reject'"},
            )

        pack = await self._get_pack(proof_pack_id)
        result = await self._session.execute(
            select(QAReview)
            .where(QAReview.proof_pack_id == proof_pack_id, QAReview.status.in_(ACTIVE_STATUSES))
            .order_by(QAReview.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        review = result.scalar_one_or_none()
        if review is None:
            raise StateConflictError(
                "Pack has no open review",
                current_state={"proof_pack_id": str(proof_pack_id), "status": pack.status.value},
            )

        await self._validate_decision(review, pack, decision, comments)
        if review.status is ReviewStatus.SCHEDULED:
            await self.claim(review.review_id, reviewer_id)
        return await self.complete(review.review_id, reviewer_id, decision, comments)

    async def cancel(self, review_id: uuid.UUID, actor_id: str) -> ReviewOutcome:
        """Withdraw an open review; the pack returns to draft."""
        review = await self.get_review(review_id)
        now = datetime.now(UTC)
        cancelled = await self._swap_status(
            review,
            ReviewStatus.CANCELLED,
            cancelled_at=now,
            cancelled_by=actor_id,
        )

        await self._session.execute(
            update(ProofPack)
            .where(
                ProofPack.proof_pack_id == review.proof_pack_id,
                ProofPack.status == PackStatus.SUBMITTED,
            )
            .values(status=PackStatus.DRAFT, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        pack = await self._get_pack(review.proof_pack_id)

        await AuditLogService(self._session).append(
            event_type=AuditEventType.REVIEW_CANCELLED,
            actor_id=actor_id,
            resource_type="qa_review",
            resource_id=str(review_id),
        )
        logger.info("Review cancelled", extra={"review_id": str(review_id), "actor_id": actor_id})
        return ReviewOutcome(review=cancelled, pack=pack)

    # -------------------------------------------------------------------------
    # Findings
    # -------------------------------------------------------------------------

    def _ensure_open(self, review: QAReview) -> None:
        if self.is_terminal_state(review.status):
            raise StateConflictError(
                f"Findings cannot change on a {review.status.value} review",
                current_state=review_state(review),
            )

    async def get_finding(self, finding_id: uuid.UUID) -> Finding:
        result = await self._session.execute(select(Finding).where(Finding.finding_id == finding_id))
        finding = result.scalar_one_or_none()
        if finding is None:
            raise NotFoundError("Finding", finding_id)
        return finding

    async def add_finding(
        self,
        review_id: uuid.UUID,
        actor_id: str,
        severity: FindingSeverity,
        category: str,
        description: str,
    ) -> Finding:
        """Raise a finding on an open review."""
        review = await self.get_review(review_id)
        self._ensure_open(review)

        errors = {}
        if _blank(category):
            errors["category"] = "must not be blank"
        if _blank(description):
            errors["description"] = "must not be blank"
        if errors:
            raise ValidationError("Invalid finding", errors=errors)

        finding = Finding(
            review_id=review_id,
            severity=severity,
            category=category.strip(),
            description=description.strip(),
            status=FindingStatus.OPEN,
            created_by=actor_id,
        )
        self._session.add(finding)
        await self._session.flush()
        logger.info(
            "Finding added",
            extra={"review_id": str(review_id), "severity": severity.value},
        )
        return finding

    async def downgrade_finding(
        self,
        finding_id: uuid.UUID,
        severity: FindingSeverity,
    ) -> Finding:
        """Lower the severity of a finding on an open review.

        Raises:
            ValidationError: If the new severity is not lower.
        """
        finding = await self.get_finding(finding_id)
        self._ensure_open(await self.get_review(finding.review_id))

        if _SEVERITY_RANK[severity] >= _SEVERITY_RANK[finding.severity]:
            raise ValidationError(
                "Severity can only be lowered",
                errors={"severity": f"must be lower than {finding.severity.value}"},
            )
        finding.severity = severity
        await self._session.flush()
        return finding

    async def resolve_finding(self, finding_id: uuid.UUID, actor_id: str) -> Finding:
        """Mark a finding resolved.

        Allowed on completed reviews too; the review's status and decision
        are left untouched.
        """
        finding = await self.get_finding(finding_id)
        if finding.status is FindingStatus.OPEN:
            finding.status = FindingStatus.RESOLVED
            finding.resolved_at = datetime.now(UTC)
            finding.resolved_by = actor_id
            await self._session.flush()
            logger.info("Finding resolved", extra={"finding_id": str(finding_id)})
        return finding
