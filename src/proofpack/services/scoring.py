"""Pack Health scoring.

The overall Pack Health score is a fixed weighted sum of four sub-scores:

    overall = round(0.4 * completeness + 0.3 * expiration
                    + 0.2 * quality + 0.1 * remediation)

Rounding is half-up on the exact decimal weighted sum, so 84.5 rounds to
85 regardless of binary float representation. A pack is eligible for the
directory, introductions and submission once its overall score reaches
ELIGIBILITY_THRESHOLD.

When no admin override is active, the sub-scores are derived from the
document metadata by derive_sub_scores().
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from numbers import Real
from typing import TYPE_CHECKING, Any

from proofpack.core.errors import ValidationError
from proofpack.db.models.base import REQUIRED_CATEGORIES, DocumentCategory, GapStatus

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import date

    from proofpack.db.models.packs import Document
    from proofpack.services.gaps import GapDraft

ELIGIBILITY_THRESHOLD = 70

WEIGHTS: dict[str, Decimal] = {
    "completeness": Decimal("0.4"),
    "expiration": Decimal("0.3"),
    "quality": Decimal("0.2"),
    "remediation": Decimal("0.1"),
}

EXPIRY_WARNING_DAYS = 30

# Derived sub-score constants
VOLUME_BONUS_PER_DOCUMENT = 5
VOLUME_BONUS_CAP = 20
EXPIRING_PENALTY = Decimal("0.3")
EXPIRED_PENALTY = Decimal("0.7")
QUALITY_CHECKS_PER_DOCUMENT = 4
MIN_DESCRIPTIVE_LENGTH = 10


@dataclass(frozen=True, slots=True)
class SubScores:
    """The four Pack Health inputs, each in [0, 100]."""

    completeness: float
    expiration: float
    quality: float
    remediation: float


@dataclass(frozen=True, slots=True)
class PackHealth:
    """Computed Pack Health of a pack.

    Attributes:
        completeness_score: Coverage of the required evidence categories.
        expiration_score: Freshness of dated documents.
        quality_score: Completeness of document metadata.
        remediation_score: Share of evidence gaps that have been resolved.
        overall_score: Weighted, rounded total in [0, 100].
    """

    completeness_score: float
    expiration_score: float
    quality_score: float
    remediation_score: float
    overall_score: int

    @property
    def is_eligible(self) -> bool:
        return is_eligible(self.overall_score)

    def to_dict(self) -> dict[str, Any]:
        return {
            "completeness_score": self.completeness_score,
            "expiration_score": self.expiration_score,
            "quality_score": self.quality_score,
            "remediation_score": self.remediation_score,
            "overall_score": self.overall_score,
            "is_eligible": self.is_eligible,
        }


def is_eligible(score: float) -> bool:
    """Check a score against the eligibility threshold (inclusive)."""
    return score >= ELIGIBILITY_THRESHOLD


def _check_sub_score(name: str, value: Any, errors: dict[str, str]) -> None:
    if isinstance(value, bool) or not isinstance(value, Real | Decimal):
        errors[name] = "must be a number"
    elif not math.isfinite(float(value)):
        errors[name] = "must be a finite number"
    elif not 0 <= value <= 100:
        errors[name] = "must be between 0 and 100"


def compute_health(
    completeness: float,
    expiration: float,
    quality: float,
    remediation: float,
) -> PackHealth:
    """Compute Pack Health from four sub-scores.

    Args:
        completeness: Completeness sub-score in [0, 100].
        expiration: Expiration sub-score in [0, 100].
        quality: Quality sub-score in [0, 100].
        remediation: Remediation sub-score in [0, 100].

    Returns:
        PackHealth with the weighted overall score.

    Raises:
        ValidationError: If any input is not a number in [0, 100]. Every
            offending field is reported.
    """
    values = {
        "completeness": completeness,
        "expiration": expiration,
        "quality": quality,
        "remediation": remediation,
    }
    errors: dict[str, str] = {}
    for name, value in values.items():
        _check_sub_score(name, value, errors)
    if errors:
        raise ValidationError("Invalid sub-scores", errors=errors)

    weighted = sum(
        (_as_decimal(values[name]) * weight for name, weight in WEIGHTS.items()),
        Decimal(0),
    )
    overall = int(weighted.quantize(Decimal(1), rounding=ROUND_HALF_UP))

    return PackHealth(
        completeness_score=float(completeness),
        expiration_score=float(expiration),
        quality_score=float(quality),
        remediation_score=float(remediation),
        overall_score=max(0, min(100, overall)),
    )


def _as_decimal(value: Real) -> Decimal:
    if isinstance(value, int | Decimal):
        return Decimal(value)
    # float and other Reals (Fraction, numpy scalars) go through their float repr.
    return Decimal(str(float(value)))


def days_until_expiry(document: Document, today: date) -> int | None:
    """Days until a document expires; negative once expired, None if undated."""
    if document.expiration_date is None:
        return None
    return (document.expiration_date - today).days


def _round2(value: Decimal) -> float:
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _completeness(documents: Sequence[Document]) -> Decimal:
    if not documents:
        return Decimal(0)
    present = {d.category for d in documents}
    covered = sum(1 for c in REQUIRED_CATEGORIES if c in present)
    category_score = Decimal(covered) / len(REQUIRED_CATEGORIES) * 100
    volume_bonus = min(
        Decimal(len(documents)) / len(present) * VOLUME_BONUS_PER_DOCUMENT,
        Decimal(VOLUME_BONUS_CAP),
    )
    return min(category_score + volume_bonus, Decimal(100))


def _expiration(documents: Sequence[Document], today: date, warning_days: int) -> Decimal:
    if not documents:
        return Decimal(0)
    expired = expiring = valid = 0
    for document in documents:
        days = days_until_expiry(document, today)
        if days is None or days > warning_days:
            valid += 1
        elif days < 0:
            expired += 1
        else:
            expiring += 1
    total = Decimal(len(documents))
    score = (valid - expiring * EXPIRING_PENALTY - expired * EXPIRED_PENALTY) / total * 100
    return max(score, Decimal(0))


def quality_points(document: Document) -> int:
    """Number of metadata quality checks (out of four) a document passes."""
    points = 0
    name = document.file_name or ""
    if len(name) > MIN_DESCRIPTIVE_LENGTH and "untitled" not in name.lower():
        points += 1
    if document.category is not DocumentCategory.OTHER:
        points += 1
    if document.document_type:
        points += 1
    if document.notes and len(document.notes) > MIN_DESCRIPTIVE_LENGTH:
        points += 1
    return points


def _quality(documents: Sequence[Document]) -> Decimal:
    if not documents:
        return Decimal(0)
    earned = sum(quality_points(d) for d in documents)
    return Decimal(earned) / (len(documents) * QUALITY_CHECKS_PER_DOCUMENT) * 100


def _remediation(evidence_gaps: Sequence[GapDraft]) -> Decimal:
    if not evidence_gaps:
        return Decimal(100)
    resolved = sum(1 for g in evidence_gaps if g.status is GapStatus.RESOLVED)
    return Decimal(resolved) / len(evidence_gaps) * 100


def derive_sub_scores(
    documents: Sequence[Document],
    evidence_gaps: Sequence[GapDraft],
    today: date,
    *,
    warning_days: int = EXPIRY_WARNING_DAYS,
) -> SubScores:
    """Derive the four sub-scores from document metadata.

    Args:
        documents: Current documents of the pack.
        evidence_gaps: Document-derived gaps (missing category, expired,
            expiring) with their carried-over resolution state.
        today: Reference date for expiry checks.
        warning_days: Documents expiring within this many days count as expiring.

    Returns:
        Sub-scores rounded to two decimals.
    """
    return SubScores(
        completeness=_round2(_completeness(documents)),
        expiration=_round2(_expiration(documents, today, warning_days)),
        quality=_round2(_quality(documents)),
        remediation=_round2(_remediation(evidence_gaps)),
    )
