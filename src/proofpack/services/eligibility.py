"""Buyer directory and introduction requests.

Only approved packs whose current overall score satisfies the eligibility
threshold are listed or may receive introduction requests. Eligibility is
always evaluated against the score as stored at the time of the call.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from proofpack.core.errors import NotFoundError, StateConflictError, ValidationError
from proofpack.db.models.base import IntroductionStatus, PackStatus
from proofpack.db.models.introductions import IntroductionRequest
from proofpack.db.models.packs import ProofPack
from proofpack.db.models.smes import SMEProfile
from proofpack.services.audit_log import AuditEventType, AuditLogService
from proofpack.services.notifications import NotificationEvent, NotificationKind
from proofpack.services.scoring import ELIGIBILITY_THRESHOLD, is_eligible

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
CONTACT_METHODS = frozenset({"email", "phone", "video"})


@dataclass(frozen=True, slots=True)
class DirectoryEntry:
    proof_pack_id: uuid.UUID
    sme_id: uuid.UUID
    title: str
    company_name: str
    industry: str | None
    certifications: list[str]
    overall_score: int


@dataclass(frozen=True, slots=True)
class DirectoryPage:
    items: list[DirectoryEntry]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0


@dataclass(frozen=True, slots=True)
class IntroductionResult:
    introduction: IntroductionRequest
    events: list[NotificationEvent] = field(default_factory=list)


class EligibilityFilter:
    """Directory listing and introduction gating."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_eligible(
        self,
        min_score: int = ELIGIBILITY_THRESHOLD,
        *,
        industry: str | None = None,
        certification: str | None = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> DirectoryPage:
        """List approved, eligible packs sorted by score descending.

        A `min_score` below the eligibility threshold does not widen the
        listing.

        Raises:
            ValidationError: If paging arguments are out of range.
        """
        errors = {}
        if page < 1:
            errors["page"] = "must be at least 1"
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            errors["page_size"] = f"must be between 1 and {MAX_PAGE_SIZE}"
        if not 0 <= min_score <= 100:
            errors["min_score"] = "must be between 0 and 100"
        if errors:
            raise ValidationError("Invalid directory query", errors=errors)

        floor = max(min_score, ELIGIBILITY_THRESHOLD)
        conditions = [
            ProofPack.status == PackStatus.APPROVED,
            ProofPack.overall_score >= floor,
        ]
        if industry:
            conditions.append(func.lower(SMEProfile.industry) == industry.lower())
        if certification:
            conditions.append(SMEProfile.certifications.any(certification))

        base = (
            select(ProofPack, SMEProfile)
            .join(SMEProfile, SMEProfile.sme_id == ProofPack.sme_id)
            .where(*conditions)
        )

        count_result = await self._session.execute(
            select(func.count()).select_from(base.subquery())
        )
        total = count_result.scalar() or 0

        result = await self._session.execute(
            base.order_by(ProofPack.overall_score.desc(), ProofPack.proof_pack_id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        items = [
            DirectoryEntry(
                proof_pack_id=pack.proof_pack_id,
                sme_id=sme.sme_id,
                title=pack.title,
                company_name=sme.company_name,
                industry=sme.industry,
                certifications=list(sme.certifications or []),
                overall_score=pack.overall_score,
            )
            for pack, sme in result.all()
        ]
        return DirectoryPage(items=items, total=total, page=page, page_size=page_size)

    async def request_introduction(
        self,
        buyer_user_id: str,
        proof_pack_id: uuid.UUID,
        project_description: str,
        *,
        timeline: str | None = None,
        budget_range: str | None = None,
        preferred_contact_method: str = "email",
    ) -> IntroductionResult:
        """Record a buyer's introduction request for an eligible pack.

        The pack is re-read from the database, bypassing any cached copy, so
        a score drop committed since the buyer saw the directory is honoured.

        Raises:
            ValidationError: If the request fields are invalid.
            NotFoundError: If the pack does not exist.
            StateConflictError: If the pack is not currently eligible.
        """
        errors = {}
        if not project_description or not project_description.strip():
            errors["project_description"] = "must not be blank"
        if preferred_contact_method not in CONTACT_METHODS:
            errors["preferred_contact_method"] = (
                f"must be one of {', '.join(sorted(CONTACT_METHODS))}"
            )
        if errors:
            raise ValidationError("Invalid introduction request", errors=errors)

        result = await self._session.execute(
            select(ProofPack)
            .where(ProofPack.proof_pack_id == proof_pack_id)
            .execution_options(populate_existing=True)
        )
        pack = result.scalar_one_or_none()
        if pack is None:
            raise NotFoundError("ProofPack", proof_pack_id)

        if pack.status is not PackStatus.APPROVED or not is_eligible(pack.overall_score):
            logger.info(
                "Introduction refused: proof_pack_id=%s, status=%s, score=%d",
                proof_pack_id,
                pack.status.value,
                pack.overall_score,
            )
            raise StateConflictError(
                "Proof pack is not eligible for introductions",
                current_state={
                    "proof_pack_id": str(proof_pack_id),
                    "status": pack.status.value,
                    "overall_score": pack.overall_score,
                    "required_score": ELIGIBILITY_THRESHOLD,
                },
            )

        sme = await self._session.get(SMEProfile, pack.sme_id)

        introduction = IntroductionRequest(
            introduction_id=uuid.uuid4(),
            buyer_user_id=buyer_user_id,
            proof_pack_id=pack.proof_pack_id,
            sme_id=pack.sme_id,
            project_description=project_description.strip(),
            timeline=timeline,
            budget_range=budget_range,
            preferred_contact_method=preferred_contact_method,
            score_at_request=pack.overall_score,
            status=IntroductionStatus.PENDING,
        )
        self._session.add(introduction)
        await self._session.flush()

        await AuditLogService(self._session).append(
            event_type=AuditEventType.INTRODUCTION_REQUESTED,
            actor_id=buyer_user_id,
            resource_type="proof_pack",
            resource_id=str(pack.proof_pack_id),
            details={
                "introduction_id": str(introduction.introduction_id),
                "score_at_request": pack.overall_score,
            },
        )
        logger.info(
            "Introduction requested",
            extra={
                "introduction_id": str(introduction.introduction_id),
                "proof_pack_id": str(pack.proof_pack_id),
            },
        )

        params = {
            "introduction_id": str(introduction.introduction_id),
            "proof_pack_id": str(pack.proof_pack_id),
            "company_name": sme.company_name if sme else None,
            "buyer_user_id": buyer_user_id,
            "preferred_contact_method": preferred_contact_method,
        }
        events = [
            NotificationEvent(
                kind=NotificationKind.INTRODUCTION_REQUESTED,
                recipient=pack.owner_user_id,
                params={**params, "role": "sme"},
            ),
            NotificationEvent(
                kind=NotificationKind.INTRODUCTION_REQUESTED,
                recipient=buyer_user_id,
                params={**params, "role": "buyer"},
            ),
        ]
        return IntroductionResult(introduction=introduction, events=events)
