"""Proof Pack orchestration.

Owns every write that changes what a pack's health depends on: document
mutations, gap resolution, admin sub-score overrides and submission.

Recompute protocol:
    1. Read the pack at version v, its documents and its stored gaps
       (bypassing the identity map).
    2. Derive sub-scores (or take the active admin override), compute
       Pack Health and run the gap analysis.
    3. UPDATE proof_packs ... WHERE version = v, setting version v + 1.
    4. If no row matched, another writer won: start again from 1.
    5. Replace the stored gap set in the same transaction.

The caller commits once, then emits the returned notification events.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, select, update

from proofpack.core.errors import (
    AccessDeniedError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from proofpack.core.settings import get_settings
from proofpack.db.models.base import DocumentCategory, GapStatus, PackStatus, ReviewStatus
from proofpack.db.models.packs import Document, Gap, ProofPack
from proofpack.db.models.reviews import QAReview
from proofpack.db.models.smes import SMEProfile
from proofpack.services.audit_log import AuditEventType, AuditLogService
from proofpack.services.gaps import (
    GapDraft,
    RemediationAction,
    analyze,
    evidence_gaps,
    remediation_actions,
)
from proofpack.services.notifications import NotificationEvent, NotificationKind
from proofpack.services.scoring import (
    ELIGIBILITY_THRESHOLD,
    PackHealth,
    SubScores,
    compute_health,
    derive_sub_scores,
    is_eligible,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from proofpack.core.config import Settings
    from proofpack.services.access import Actor

logger = logging.getLogger(__name__)

EDITABLE_DOCUMENT_FIELDS = frozenset(
    {
        "category",
        "file_name",
        "mime_type",
        "file_size",
        "storage_key",
        "expiration_date",
        "document_type",
        "notes",
        "position",
    }
)


@dataclass(frozen=True, slots=True)
class DocumentInput:
    """Metadata of a document uploaded to the object store."""

    category: DocumentCategory
    file_name: str
    storage_key: str
    mime_type: str | None = None
    file_size: int | None = None
    expiration_date: date | None = None
    document_type: str | None = None
    notes: str | None = None


@dataclass(frozen=True, slots=True)
class RecomputeResult:
    """Outcome of a committed-on-success recompute."""

    pack: ProofPack
    health: PackHealth
    gaps: list[GapDraft]
    events: list[NotificationEvent] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class DocumentChange:
    """A document mutation together with the recompute it triggered."""

    document: Document | None
    recompute: RecomputeResult

    @property
    def events(self) -> list[NotificationEvent]:
        return self.recompute.events


@dataclass(frozen=True, slots=True)
class SubmissionResult:
    pack: ProofPack
    review: QAReview
    events: list[NotificationEvent] = field(default_factory=list)


def pack_health(pack: ProofPack) -> PackHealth:
    """Cached Pack Health stored on a pack row."""
    return PackHealth(
        completeness_score=float(pack.completeness_score),
        expiration_score=float(pack.expiration_score),
        quality_score=float(pack.quality_score),
        remediation_score=float(pack.remediation_score),
        overall_score=pack.overall_score,
    )


def gap_to_draft(gap: Gap) -> GapDraft:
    return GapDraft(
        gap_key=gap.gap_key,
        category=gap.category,
        severity=gap.severity,
        recommendation=gap.recommendation,
        status=gap.status,
        document_id=gap.document_id,
    )


class ProofPackService:
    """Document mutations, recompute, submission and gap tracking."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self._session = session
        self._settings = settings or get_settings()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_pack(self, proof_pack_id: uuid.UUID, *, fresh: bool = False) -> ProofPack:
        """Load a pack.

        Args:
            proof_pack_id: Pack to load.
            fresh: Overwrite any copy already held by the session.

        Raises:
            NotFoundError: If the pack does not exist.
        """
        stmt = select(ProofPack).where(ProofPack.proof_pack_id == proof_pack_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self._session.execute(stmt)
        pack = result.scalar_one_or_none()
        if pack is None:
            raise NotFoundError("ProofPack", proof_pack_id)
        return pack

    async def get_pack_for(self, proof_pack_id: uuid.UUID, actor: Actor) -> ProofPack:
        """Load a pack the actor may read: its owner, an admin or a reviewer."""
        pack = await self.get_pack(proof_pack_id)
        if not (actor.owns(pack.owner_user_id) or actor.is_admin or actor.is_reviewer):
            raise AccessDeniedError(f"user {actor.user_id} may not read pack {proof_pack_id}")
        return pack

    async def get_owned_pack(self, proof_pack_id: uuid.UUID, actor: Actor) -> ProofPack:
        """Load a pack the actor may modify: its owner or an admin."""
        pack = await self.get_pack(proof_pack_id)
        if not (actor.owns(pack.owner_user_id) or actor.is_admin):
            raise AccessDeniedError(f"user {actor.user_id} does not own pack {proof_pack_id}")
        return pack

    async def list_documents(self, proof_pack_id: uuid.UUID) -> list[Document]:
        result = await self._session.execute(
            select(Document)
            .where(Document.proof_pack_id == proof_pack_id)
            .order_by(Document.position, Document.uploaded_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def list_gaps(self, proof_pack_id: uuid.UUID) -> list[Gap]:
        result = await self._session.execute(
            select(Gap)
            .where(Gap.proof_pack_id == proof_pack_id)
            .execution_options(populate_existing=True)
        )
        return sorted(result.scalars().all(), key=lambda g: (g.category.value, g.gap_key))

    async def get_remediation_plan(
        self, proof_pack_id: uuid.UUID, actor: Actor
    ) -> list[RemediationAction]:
        await self.get_pack_for(proof_pack_id, actor)
        documents = await self.list_documents(proof_pack_id)
        gaps = [gap_to_draft(g) for g in await self.list_gaps(proof_pack_id)]
        return remediation_actions(documents, gaps)

    # -------------------------------------------------------------------------
    # Pack and document mutations
    # -------------------------------------------------------------------------

    async def create_pack(
        self,
        sme_id: uuid.UUID,
        actor: Actor,
        title: str,
        description: str | None = None,
    ) -> RecomputeResult:
        """Create an empty draft pack for an SME the actor owns.

        Raises:
            NotFoundError: If the SME profile does not exist.
            AccessDeniedError: If the actor does not own the SME profile.
            ValidationError: If the title is blank.
        """
        if not title or not title.strip():
            raise ValidationError("Title is required", errors={"title": "must not be blank"})

        result = await self._session.execute(select(SMEProfile).where(SMEProfile.sme_id == sme_id))
        sme = result.scalar_one_or_none()
        if sme is None:
            raise NotFoundError("SMEProfile", sme_id)
        if not (actor.owns(sme.owner_user_id) or actor.is_admin):
            raise AccessDeniedError(f"user {actor.user_id} does not own SME {sme_id}")

        pack = ProofPack(
            proof_pack_id=uuid.uuid4(),
            sme_id=sme_id,
            owner_user_id=sme.owner_user_id,
            title=title.strip(),
            description=description,
            status=PackStatus.DRAFT,
            version=0,
            completeness_score=0,
            expiration_score=0,
            quality_score=0,
            remediation_score=0,
            overall_score=0,
            sub_scores_overridden=False,
        )
        self._session.add(pack)
        await self._session.flush()

        await AuditLogService(self._session).append(
            event_type=AuditEventType.PACK_CREATED,
            actor_id=actor.user_id,
            resource_type="proof_pack",
            resource_id=str(pack.proof_pack_id),
            details={"sme_id": str(sme_id), "title": pack.title},
        )
        logger.info(
            "Proof pack created",
            extra={"proof_pack_id": str(pack.proof_pack_id), "sme_id": str(sme_id)},
        )
        return await self.recompute(pack.proof_pack_id)

    def _ensure_editable(self, pack: ProofPack) -> None:
        if pack.status is PackStatus.SUBMITTED:
            raise StateConflictError(
                "Documents cannot change while the pack is under review",
                current_state={"proof_pack_id": str(pack.proof_pack_id), "status": pack.status.value},
            )

    async def _get_document(self, proof_pack_id: uuid.UUID, document_id: uuid.UUID) -> Document:
        result = await self._session.execute(
            select(Document).where(
                Document.document_id == document_id,
                Document.proof_pack_id == proof_pack_id,
            )
        )
        document = result.scalar_one_or_none()
        if document is None:
            raise NotFoundError("Document", document_id)
        return document

    async def add_document(
        self,
        proof_pack_id: uuid.UUID,
        actor: Actor,
        data: DocumentInput,
    ) -> DocumentChange:
        """Attach document metadata to a pack and recompute its health.

        Raises:
            StateConflictError: If the pack is under review.
            ValidationError: If file name or storage key is blank.
        """
        pack = await self.get_owned_pack(proof_pack_id, actor)
        self._ensure_editable(pack)

        errors = {}
        if not data.file_name.strip():
            errors["file_name"] = "must not be blank"
        if not data.storage_key.strip():
            errors["storage_key"] = "must not be blank"
        if data.file_size is not None and data.file_size < 0:
            errors["file_size"] = "must not be negative"
        if errors:
            raise ValidationError("Invalid document", errors=errors)

        result = await self._session.execute(
            select(func.max(Document.position)).where(Document.proof_pack_id == proof_pack_id)
        )
        last_position = result.scalar()
        document = Document(
            document_id=uuid.uuid4(),
            proof_pack_id=proof_pack_id,
            category=data.category,
            file_name=data.file_name.strip(),
            storage_key=data.storage_key,
            mime_type=data.mime_type,
            file_size=data.file_size,
            expiration_date=data.expiration_date,
            document_type=data.document_type,
            notes=data.notes,
            position=0 if last_position is None else last_position + 1,
        )
        self._session.add(document)
        await self._session.flush()

        logger.info(
            "Document added",
            extra={"proof_pack_id": str(proof_pack_id), "document_id": str(document.document_id)},
        )
        return DocumentChange(document=document, recompute=await self.recompute(proof_pack_id))

    async def update_document(
        self,
        proof_pack_id: uuid.UUID,
        document_id: uuid.UUID,
        actor: Actor,
        changes: dict[str, Any],
    ) -> DocumentChange:
        """Edit document metadata and recompute.

        Raises:
            ValidationError: If a field is not editable or a required field is blanked.
        """
        pack = await self.get_owned_pack(proof_pack_id, actor)
        self._ensure_editable(pack)

        unknown = set(changes) - EDITABLE_DOCUMENT_FIELDS
        if unknown:
            raise ValidationError(
                "Unknown document fields",
                errors={name: "not editable" for name in sorted(unknown)},
            )
        for name in ("file_name", "storage_key", "category"):
            if name in changes and not changes[name]:
                raise ValidationError("Invalid document", errors={name: "must not be blank"})

        document = await self._get_document(proof_pack_id, document_id)
        for name, value in changes.items():
            setattr(document, name, value)
        await self._session.flush()

        return DocumentChange(document=document, recompute=await self.recompute(proof_pack_id))

    async def remove_document(
        self,
        proof_pack_id: uuid.UUID,
        document_id: uuid.UUID,
        actor: Actor,
    ) -> DocumentChange:
        pack = await self.get_owned_pack(proof_pack_id, actor)
        self._ensure_editable(pack)

        document = await self._get_document(proof_pack_id, document_id)
        await self._session.delete(document)
        await self._session.flush()

        logger.info(
            "Document removed",
            extra={"proof_pack_id": str(proof_pack_id), "document_id": str(document_id)},
        )
        return DocumentChange(document=None, recompute=await self.recompute(proof_pack_id))

    # -------------------------------------------------------------------------
    # Recompute
    # -------------------------------------------------------------------------

    async def recompute(self, proof_pack_id: uuid.UUID) -> RecomputeResult:
        """Recompute health and gaps from the current documents.

        Raises:
            NotFoundError: If the pack does not exist.
            StateConflictError: If every compare-and-swap attempt was lost.
        """
        return await self._recompute(proof_pack_id)

    async def override_sub_scores(
        self,
        proof_pack_id: uuid.UUID,
        scores: SubScores,
        actor: Actor,
    ) -> RecomputeResult:
        """Replace the derived sub-scores with admin-supplied values.

        The overall score is still computed from them. The override stays
        active until clear_override() is called.

        Raises:
            AccessDeniedError: If the actor is not a platform admin.
            ValidationError: If any score is not a number in [0, 100].
        """
        if not actor.is_admin:
            raise AccessDeniedError(f"user {actor.user_id} may not override sub-scores")
        compute_health(scores.completeness, scores.expiration, scores.quality, scores.remediation)

        result = await self._recompute(proof_pack_id, override=scores)
        await AuditLogService(self._session).append(
            event_type=AuditEventType.SUB_SCORES_OVERRIDDEN,
            actor_id=actor.user_id,
            resource_type="proof_pack",
            resource_id=str(proof_pack_id),
            details={
                "completeness": scores.completeness,
                "expiration": scores.expiration,
                "quality": scores.quality,
                "remediation": scores.remediation,
                "overall_score": result.health.overall_score,
            },
        )
        return result

    async def clear_override(self, proof_pack_id: uuid.UUID, actor: Actor) -> RecomputeResult:
        if not actor.is_admin:
            raise AccessDeniedError(f"user {actor.user_id} may not clear sub-score overrides")
        result = await self._recompute(proof_pack_id, clear_override=True)
        await AuditLogService(self._session).append(
            event_type=AuditEventType.SUB_SCORES_OVERRIDE_CLEARED,
            actor_id=actor.user_id,
            resource_type="proof_pack",
            resource_id=str(proof_pack_id),
        )
        return result

    async def _recompute(
        self,
        proof_pack_id: uuid.UUID,
        *,
        override: SubScores | None = None,
        clear_override: bool = False,
    ) -> RecomputeResult:
        scoring = self._settings.scoring
        warning_days = scoring.expiry_warning_days
        pack: ProofPack | None = None

        for attempt in range(1, scoring.max_recompute_attempts + 1):
            pack = await self.get_pack(proof_pack_id, fresh=True)
            documents = await self.list_documents(proof_pack_id)
            stored = {g.gap_key: g for g in await self.list_gaps(proof_pack_id)}
            previous_status = {key: g.status for key, g in stored.items()}

            now = datetime.now(UTC)
            today = now.date()
            overridden = (pack.sub_scores_overridden or override is not None) and not clear_override

            if override is not None:
                scores = override
            elif overridden:
                scores = SubScores(
                    completeness=float(pack.completeness_score),
                    expiration=float(pack.expiration_score),
                    quality=float(pack.quality_score),
                    remediation=float(pack.remediation_score),
                )
            else:
                evidence = evidence_gaps(
                    documents, today, previous_status, warning_days=warning_days
                )
                scores = derive_sub_scores(documents, evidence, today, warning_days=warning_days)

            health = compute_health(
                scores.completeness, scores.expiration, scores.quality, scores.remediation
            )
            gap_set = analyze(
                documents, health, today, previous_status, warning_days=warning_days
            )

            expected_version = pack.version
            result = await self._session.execute(
                update(ProofPack)
                .where(
                    ProofPack.proof_pack_id == proof_pack_id,
                    ProofPack.version == expected_version,
                )
                .values(
                    version=expected_version + 1,
                    completeness_score=health.completeness_score,
                    expiration_score=health.expiration_score,
                    quality_score=health.quality_score,
                    remediation_score=health.remediation_score,
                    overall_score=health.overall_score,
                    health_computed_at=now,
                    sub_scores_overridden=overridden,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                logger.info(
                    "Recompute lost version race: proof_pack_id=%s, version=%d, attempt=%d",
                    proof_pack_id,
                    expected_version,
                    attempt,
                )
                continue

            await self._replace_gaps(proof_pack_id, gap_set, stored, now)
            pack = await self.get_pack(proof_pack_id, fresh=True)

            events = [
                NotificationEvent(
                    kind=NotificationKind.EXPIRING_DOCUMENT,
                    recipient=pack.owner_user_id,
                    params={
                        "proof_pack_id": str(proof_pack_id),
                        "document_id": str(gap.document_id),
                        "recommendation": gap.recommendation,
                    },
                )
                for gap in gap_set
                if gap.is_expiry_warning and gap.gap_key not in stored
            ]

            logger.info(
                "Pack health recomputed: proof_pack_id=%s, version=%d, overall=%d, gaps=%d",
                proof_pack_id,
                expected_version + 1,
                health.overall_score,
                len(gap_set),
            )
            return RecomputeResult(pack=pack, health=health, gaps=gap_set, events=events)

        raise StateConflictError(
            "Pack changed concurrently; recompute did not converge",
            current_state={
                "proof_pack_id": str(proof_pack_id),
                "version": pack.version if pack is not None else None,
            },
        )

    async def _replace_gaps(
        self,
        proof_pack_id: uuid.UUID,
        gap_set: list[GapDraft],
        stored: dict[str, Gap],
        now: datetime,
    ) -> None:
        await self._session.execute(delete(Gap).where(Gap.proof_pack_id == proof_pack_id))
        for draft in gap_set:
            resolved_at = None
            if draft.status is GapStatus.RESOLVED:
                previous = stored.get(draft.gap_key)
                resolved_at = previous.resolved_at if previous is not None else now
            self._session.add(
                Gap(
                    proof_pack_id=proof_pack_id,
                    gap_key=draft.gap_key,
                    document_id=draft.document_id,
                    category=draft.category,
                    severity=draft.severity,
                    recommendation=draft.recommendation,
                    status=draft.status,
                    resolved_at=resolved_at,
                )
            )
        await self._session.flush()

    # -------------------------------------------------------------------------
    # Remediation tracking
    # -------------------------------------------------------------------------

    async def resolve_gap(
        self,
        proof_pack_id: uuid.UUID,
        gap_id: uuid.UUID,
        actor: Actor,
    ) -> RecomputeResult:
        """Mark a gap resolved and recompute the remediation score.

        Resolving an already resolved gap is a no-op apart from the recompute.
        """
        await self.get_owned_pack(proof_pack_id, actor)

        result = await self._session.execute(
            select(Gap).where(Gap.gap_id == gap_id, Gap.proof_pack_id == proof_pack_id)
        )
        gap = result.scalar_one_or_none()
        if gap is None:
            raise NotFoundError("Gap", gap_id)

        if gap.status is GapStatus.OPEN:
            gap.status = GapStatus.RESOLVED
            gap.resolved_at = datetime.now(UTC)
            await self._session.flush()
            logger.info(
                "Gap resolved",
                extra={"proof_pack_id": str(proof_pack_id), "gap_key": gap.gap_key},
            )

        return await self.recompute(proof_pack_id)

    # -------------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------------

    async def submit(self, proof_pack_id: uuid.UUID, actor: Actor) -> SubmissionResult:
        """Submit a pack for QA review.

        Raises:
            StateConflictError: If the pack is not draft or rejected, or
                changed concurrently.
            ValidationError: If the Pack Health score is below the
                eligibility threshold.
        """
        await self.get_owned_pack(proof_pack_id, actor)
        pack = await self.get_pack(proof_pack_id, fresh=True)

        if pack.status not in (PackStatus.DRAFT, PackStatus.REJECTED):
            raise StateConflictError(
                f"Pack cannot be submitted from status {pack.status.value}",
                current_state={"proof_pack_id": str(proof_pack_id), "status": pack.status.value},
            )
        if not is_eligible(pack.overall_score):
            raise ValidationError(
                f"Pack Health score must be at least {ELIGIBILITY_THRESHOLD} to submit",
                errors={"overall_score": f"{pack.overall_score} < {ELIGIBILITY_THRESHOLD}"},
                current_score=pack.overall_score,
                required_score=ELIGIBILITY_THRESHOLD,
            )

        now = datetime.now(UTC)
        result = await self._session.execute(
            update(ProofPack)
            .where(
                ProofPack.proof_pack_id == proof_pack_id,
                ProofPack.version == pack.version,
                ProofPack.status == pack.status,
            )
            .values(
                status=PackStatus.SUBMITTED,
                submitted_at=now,
                version=pack.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await self.get_pack(proof_pack_id, fresh=True)
            raise StateConflictError(
                "Pack changed while submitting",
                current_state={
                    "proof_pack_id": str(proof_pack_id),
                    "status": current.status.value,
                    "version": current.version,
                },
            )

        review = QAReview(
            review_id=uuid.uuid4(),
            proof_pack_id=proof_pack_id,
            status=ReviewStatus.SCHEDULED,
        )
        self._session.add(review)
        await self._session.flush()

        await AuditLogService(self._session).append(
            event_type=AuditEventType.PACK_SUBMITTED,
            actor_id=actor.user_id,
            resource_type="proof_pack",
            resource_id=str(proof_pack_id),
            details={"review_id": str(review.review_id), "overall_score": pack.overall_score},
        )
        logger.info(
            "Pack submitted for review",
            extra={"proof_pack_id": str(proof_pack_id), "review_id": str(review.review_id)},
        )
        return SubmissionResult(pack=await self.get_pack(proof_pack_id, fresh=True), review=review)
