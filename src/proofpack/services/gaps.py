"""Gap analysis and remediation planning.

Gaps come from two sources:

- Sub-score shortfalls: each Pack Health dimension below its target yields
  one gap whose severity grows with the shortfall.
- Evidence: a missing required category, an expired document, or a
  document expiring within the warning window. Expiry warnings are raised
  regardless of the expiration sub-score.

Every gap has a stable `gap_key` naming the condition it describes, so a
resolution set by the owner is carried over when the gap set is
regenerated. Output order is deterministic: (category, gap_key).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from proofpack.db.models.base import (
    REQUIRED_CATEGORIES,
    DocumentCategory,
    GapCategory,
    GapSeverity,
    GapStatus,
)
from proofpack.services.scoring import EXPIRY_WARNING_DAYS, days_until_expiry

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from datetime import date

    from proofpack.db.models.packs import Document
    from proofpack.services.scoring import PackHealth

TARGETS: dict[GapCategory, int] = {
    GapCategory.COMPLETENESS: 80,
    GapCategory.EXPIRATION: 80,
    GapCategory.QUALITY: 70,
    GapCategory.REMEDIATION: 70,
}

_SHORTFALL_ADVICE: dict[GapCategory, str] = {
    GapCategory.COMPLETENESS: "Upload documents for the missing evidence categories.",
    GapCategory.EXPIRATION: "Renew expired documents and plan renewal of expiring ones.",
    GapCategory.QUALITY: "Add descriptive file names, document types and notes.",
    GapCategory.REMEDIATION: "Resolve the open evidence gaps.",
}

MISSING_PREFIX = "missing:"
EXPIRED_PREFIX = "expired:"
EXPIRING_PREFIX = "expiring:"
SHORTFALL_PREFIX = "shortfall:"


@dataclass(frozen=True, slots=True)
class GapDraft:
    """A gap as produced by the analysis, before it is stored."""

    gap_key: str
    category: GapCategory
    severity: GapSeverity
    recommendation: str
    status: GapStatus = GapStatus.OPEN
    document_id: uuid.UUID | None = None

    @property
    def is_expiry_warning(self) -> bool:
        return self.gap_key.startswith(EXPIRING_PREFIX)


@dataclass(frozen=True, slots=True)
class RemediationAction:
    """One step of a pack's remediation plan."""

    action_id: str
    description: str
    estimated_impact: int
    effort_level: str
    priority: int


def shortfall_severity(shortfall: float) -> GapSeverity:
    """Map a positive shortfall in points to a gap severity."""
    if shortfall > 30:
        return GapSeverity.CRITICAL
    if shortfall > 20:
        return GapSeverity.HIGH
    if shortfall > 10:
        return GapSeverity.MEDIUM
    return GapSeverity.LOW


def _sort_key(gap: GapDraft) -> tuple[str, str]:
    return (gap.category.value, gap.gap_key)


def evidence_gaps(
    documents: Sequence[Document],
    today: date,
    previous_status: Mapping[str, GapStatus] | None = None,
    *,
    warning_days: int = EXPIRY_WARNING_DAYS,
) -> list[GapDraft]:
    """Derive the document-level gaps of a pack.

    Args:
        documents: Current documents of the pack.
        today: Reference date for expiry checks.
        previous_status: Status by gap_key of the currently stored gaps.
        warning_days: Expiry warning window in days.

    Returns:
        Missing-category, expired and expiring gaps, sorted.
    """
    previous_status = previous_status or {}
    gaps: list[GapDraft] = []

    present = {d.category for d in documents}
    for category in REQUIRED_CATEGORIES:
        if category in present:
            continue
        key = f"{MISSING_PREFIX}{category.name.lower()}"
        gaps.append(
            GapDraft(
                gap_key=key,
                category=GapCategory.COMPLETENESS,
                severity=GapSeverity.HIGH,
                recommendation=(
                    f"Upload at least one {category.value} document to improve Pack Health"
                ),
                status=previous_status.get(key, GapStatus.OPEN),
            )
        )

    for document in documents:
        days = days_until_expiry(document, today)
        if days is None or days > warning_days:
            continue
        if days < 0:
            key = f"{EXPIRED_PREFIX}{document.document_id}"
            severity = GapSeverity.HIGH
            recommendation = (
                f'Document "{document.file_name}" has expired. Upload a renewed version.'
            )
        else:
            key = f"{EXPIRING_PREFIX}{document.document_id}"
            severity = GapSeverity.MEDIUM
            recommendation = (
                f'Document "{document.file_name}" expires in {days} days. Plan to renew.'
            )
        gaps.append(
            GapDraft(
                gap_key=key,
                category=GapCategory.EXPIRATION,
                severity=severity,
                recommendation=recommendation,
                status=previous_status.get(key, GapStatus.OPEN),
                document_id=document.document_id,
            )
        )

    return sorted(gaps, key=_sort_key)


def shortfall_gaps(
    health: PackHealth,
    previous_status: Mapping[str, GapStatus] | None = None,
) -> list[GapDraft]:
    """One gap per sub-score below its target."""
    previous_status = previous_status or {}
    scores = {
        GapCategory.COMPLETENESS: health.completeness_score,
        GapCategory.EXPIRATION: health.expiration_score,
        GapCategory.QUALITY: health.quality_score,
        GapCategory.REMEDIATION: health.remediation_score,
    }
    gaps = []
    for category, target in TARGETS.items():
        shortfall = float(Decimal(target) - Decimal(str(scores[category])))
        if shortfall <= 0:
            continue
        key = f"{SHORTFALL_PREFIX}{category.value}"
        gaps.append(
            GapDraft(
                gap_key=key,
                category=category,
                severity=shortfall_severity(shortfall),
                recommendation=(
                    f"{category.value.capitalize()} score is {shortfall:g} points below "
                    f"the target of {target}. {_SHORTFALL_ADVICE[category]}"
                ),
                status=previous_status.get(key, GapStatus.OPEN),
            )
        )
    return gaps


def analyze(
    documents: Sequence[Document],
    health: PackHealth,
    today: date,
    previous_status: Mapping[str, GapStatus] | None = None,
    *,
    warning_days: int = EXPIRY_WARNING_DAYS,
) -> list[GapDraft]:
    """Compute the full gap set of a pack.

    Args:
        documents: Current documents of the pack.
        health: Pack Health computed for the same documents.
        today: Reference date for expiry checks.
        previous_status: Status by gap_key of the currently stored gaps.
        warning_days: Expiry warning window in days.

    Returns:
        Shortfall and evidence gaps sorted by (category, gap_key). Identical
        inputs always produce an equal list.
    """
    gaps = shortfall_gaps(health, previous_status) + evidence_gaps(
        documents, today, previous_status, warning_days=warning_days
    )
    return sorted(gaps, key=_sort_key)


def remediation_actions(
    documents: Sequence[Document],
    gaps: Sequence[GapDraft],
) -> list[RemediationAction]:
    """Build an ordered action plan from the open gaps of a pack.

    Missing categories and expired documents come first, then missing
    metadata, then upcoming renewals. Ties are broken by impact.
    """
    open_gaps = [g for g in gaps if g.status is GapStatus.OPEN]
    actions: list[RemediationAction] = []

    for index, gap in enumerate(g for g in open_gaps if g.gap_key.startswith(MISSING_PREFIX)):
        category = DocumentCategory[gap.gap_key.removeprefix(MISSING_PREFIX).upper()].value
        actions.append(
            RemediationAction(
                action_id=f"action_missing_{index}",
                description=f"Add {category} documents",
                estimated_impact=15,
                effort_level="medium",
                priority=1,
            )
        )

    by_id = {d.document_id: d for d in documents}
    for index, gap in enumerate(g for g in open_gaps if g.gap_key.startswith(EXPIRED_PREFIX)):
        document = by_id.get(gap.document_id)
        name = document.file_name if document is not None else gap.gap_key
        actions.append(
            RemediationAction(
                action_id=f"action_expired_{index}",
                description=f"Renew expired document: {name}",
                estimated_impact=12,
                effort_level="medium",
                priority=1,
            )
        )

    missing_metadata = sum(1 for d in documents if not d.document_type)
    if missing_metadata:
        actions.append(
            RemediationAction(
                action_id="action_metadata",
                description=f"Add document types and notes to {missing_metadata} documents",
                estimated_impact=8,
                effort_level="low",
                priority=2,
            )
        )

    expiring = sum(1 for g in open_gaps if g.is_expiry_warning)
    if expiring:
        actions.append(
            RemediationAction(
                action_id="action_expiring",
                description=f"Plan renewal for {expiring} documents expiring soon",
                estimated_impact=5,
                effort_level="low",
                priority=3,
            )
        )

    return sorted(actions, key=lambda a: (a.priority, -a.estimated_impact))
