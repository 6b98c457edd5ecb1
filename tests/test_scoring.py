"""Tests for Pack Health scoring.

Tests cover:
- Weighted overall score and half-up rounding
- Input validation of sub-scores
- Eligibility threshold boundary
- Sub-scores derived from document metadata
"""

from datetime import date, timedelta
from fractions import Fraction

import pytest

from proofpack.core.errors import ValidationError
from proofpack.db.models.base import (
    REQUIRED_CATEGORIES,
    DocumentCategory,
    GapCategory,
    GapSeverity,
    GapStatus,
)
from proofpack.services.gaps import GapDraft
from proofpack.services.scoring import (
    ELIGIBILITY_THRESHOLD,
    compute_health,
    days_until_expiry,
    derive_sub_scores,
    is_eligible,
    quality_points,
)
from tests.factories import make_document

TODAY = date(2026, 3, 15)


class TestComputeHealth:
    """Tests for the weighted overall score."""

    def test_all_perfect_scores(self):
        health = compute_health(100, 100, 100, 100)
        assert health.overall_score == 100
        assert health.is_eligible is True

    def test_all_zero_scores(self):
        health = compute_health(0, 0, 0, 0)
        assert health.overall_score == 0
        assert health.is_eligible is False

    def test_weights_are_applied(self):
        """0.4 * 100 + 0.3 * 0 + 0.2 * 0 + 0.1 * 0 = 40."""
        assert compute_health(100, 0, 0, 0).overall_score == 40
        assert compute_health(0, 100, 0, 0).overall_score == 30
        assert compute_health(0, 0, 100, 0).overall_score == 20
        assert compute_health(0, 0, 0, 100).overall_score == 10

    def test_half_rounds_up(self):
        """34 + 25.5 + 17 + 8 = 84.5 rounds to 85."""
        assert compute_health(85, 85, 85, 80).overall_score == 85

    def test_below_half_rounds_down(self):
        """32 + 24 + 16 + 8.4 = 80.4 rounds to 80."""
        assert compute_health(80, 80, 80, 84).overall_score == 80

    def test_sub_scores_are_kept(self):
        health = compute_health(12.5, 40, 60.25, 99)
        assert health.completeness_score == 12.5
        assert health.expiration_score == 40.0
        assert health.quality_score == 60.25
        assert health.remediation_score == 99.0

    def test_same_inputs_same_result(self):
        assert compute_health(73.3, 61.7, 88.1, 50) == compute_health(73.3, 61.7, 88.1, 50)

    def test_to_dict_includes_eligibility(self):
        data = compute_health(70, 70, 70, 70).to_dict()
        assert data["overall_score"] == 70
        assert data["is_eligible"] is True


class TestComputeHealthValidation:
    """Tests for sub-score input validation."""

    @pytest.mark.parametrize("value", [-0.01, 100.01, -5, 250])
    def test_out_of_range_rejected(self, value):
        with pytest.raises(ValidationError) as exc_info:
            compute_health(value, 50, 50, 50)
        assert "completeness" in exc_info.value.errors

    def test_nan_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            compute_health(50, float("nan"), 50, 50)
        assert exc_info.value.errors == {"expiration": "must be a finite number"}

    def test_non_numbers_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            compute_health("80", None, True, 50)
        assert set(exc_info.value.errors) == {"completeness", "expiration", "quality"}

    def test_every_offending_field_reported(self):
        with pytest.raises(ValidationError) as exc_info:
            compute_health(-1, 101, -1, 101)
        assert set(exc_info.value.errors) == {
            "completeness",
            "expiration",
            "quality",
            "remediation",
        }

    def test_bounds_are_inclusive(self):
        assert compute_health(0, 100, 0, 100).overall_score == 40

    def test_rational_sub_scores_accepted(self):
        health = compute_health(Fraction(1, 3), 100, 100, Fraction(199, 2))
        assert health.overall_score == 60
        assert health.completeness_score == pytest.approx(1 / 3)

    def test_rational_out_of_range_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            compute_health(50, Fraction(201, 2), 50, 50)
        assert exc_info.value.errors == {"expiration": "must be between 0 and 100"}


class TestEligibility:
    """Tests for the eligibility threshold."""

    def test_threshold_value(self):
        assert ELIGIBILITY_THRESHOLD == 70

    def test_threshold_is_inclusive(self):
        assert is_eligible(70) is True
        assert is_eligible(69) is False

    def test_rounding_can_reach_threshold(self):
        """69.5 rounds half-up to 70."""
        health = compute_health(69.5, 69.5, 69.5, 69.5)
        assert health.overall_score == 70
        assert health.is_eligible is True


class TestDocumentMetadata:
    """Tests for per-document helpers."""

    def test_days_until_expiry(self):
        document = make_document(expiration_date=TODAY + timedelta(days=12))
        assert days_until_expiry(document, TODAY) == 12

    def test_days_until_expiry_negative_when_expired(self):
        document = make_document(expiration_date=TODAY - timedelta(days=3))
        assert days_until_expiry(document, TODAY) == -3

    def test_days_until_expiry_undated(self):
        assert days_until_expiry(make_document(), TODAY) is None

    def test_quality_points_full(self):
        assert quality_points(make_document()) == 4

    def test_quality_points_none(self):
        document = make_document(
            DocumentCategory.OTHER,
            file_name="Untitled document.pdf",
            document_type=None,
            notes="short",
        )
        assert quality_points(document) == 0

    def test_untitled_check_ignores_case(self):
        document = make_document(file_name="UNTITLED-scan-0001.pdf")
        assert quality_points(document) == 3

    def test_short_file_name_fails(self):
        assert quality_points(make_document(file_name="a.pdf")) == 3


class TestDeriveSubScores:
    """Tests for sub-scores derived from documents and gaps."""

    def test_empty_pack(self):
        scores = derive_sub_scores([], [], TODAY)
        assert scores.completeness == 0
        assert scores.expiration == 0
        assert scores.quality == 0
        assert scores.remediation == 100

    def test_complete_fresh_pack_scores_full_marks(self):
        documents = [make_document(category) for category in REQUIRED_CATEGORIES]
        scores = derive_sub_scores(documents, [], TODAY)

        assert scores.completeness == 100
        assert scores.expiration == 100
        assert scores.quality == 100
        assert scores.remediation == 100
        health = compute_health(
            scores.completeness, scores.expiration, scores.quality, scores.remediation
        )
        assert health.overall_score == 100

    def test_completeness_with_volume_bonus(self):
        """1 of 7 categories (14.29) plus 2 documents / 1 category * 5 = 24.29."""
        documents = [make_document(), make_document()]
        scores = derive_sub_scores(documents, [], TODAY)
        assert scores.completeness == 24.29

    def test_expiration_penalties(self):
        """(2 valid - 0.3 expiring - 0.7 expired) / 4 documents = 25%."""
        documents = [
            make_document(),
            make_document(expiration_date=TODAY + timedelta(days=365)),
            make_document(expiration_date=TODAY + timedelta(days=10)),
            make_document(expiration_date=TODAY - timedelta(days=1)),
        ]
        scores = derive_sub_scores(documents, [], TODAY)
        assert scores.expiration == 25.0

    def test_expiration_never_negative(self):
        documents = [make_document(expiration_date=TODAY - timedelta(days=1))]
        assert derive_sub_scores(documents, [], TODAY).expiration == 0

    def test_expiring_today_counts_as_expiring(self):
        """A document expiring today is not yet expired: (0 - 0.3) clamps to 0 but
        with one valid document (1 - 0.3) / 2 = 35%."""
        documents = [make_document(), make_document(expiration_date=TODAY)]
        assert derive_sub_scores(documents, [], TODAY).expiration == 35.0

    def test_remediation_counts_resolved_gaps(self):
        gaps = [
            GapDraft(
                gap_key=f"missing:{name}",
                category=GapCategory.COMPLETENESS,
                severity=GapSeverity.HIGH,
                recommendation="Upload",
                status=status,
            )
            for name, status in (
                ("financial", GapStatus.RESOLVED),
                ("technical", GapStatus.OPEN),
                ("quality", GapStatus.OPEN),
                ("safety", GapStatus.OPEN),
            )
        ]
        assert derive_sub_scores([make_document()], gaps, TODAY).remediation == 25.0
