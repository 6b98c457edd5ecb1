"""Base model definitions and common types.

This module provides:
- SQLAlchemy declarative base with naming conventions
- Shared annotated column types
- Enum types used across multiple models
"""

import enum
import uuid
from datetime import datetime
from typing import Annotated

from sqlalchemy import DateTime, MetaData, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, mapped_column

# See: https://alembic.sqlalchemy.org/en/latest/naming.html
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=NAMING_CONVENTION)

UUIDPrimaryKey = Annotated[
    uuid.UUID,
    mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
]

TimestampTZ = Annotated[
    datetime,
    mapped_column(DateTime(timezone=True), server_default=text("now()")),
]

OptionalTimestampTZ = Annotated[
    datetime | None,
    mapped_column(DateTime(timezone=True), nullable=True),
]

# Identity provider subject identifiers
UserId = Annotated[str, mapped_column(String(255))]

ShortString = Annotated[str, mapped_column(String(100))]
MediumString = Annotated[str, mapped_column(String(255))]
LongString = Annotated[str, mapped_column(String(1000))]


class Base(DeclarativeBase):
    """Declarative base for all Proof Pack models."""

    metadata = metadata


# =============================================================================
# Common Enums
# =============================================================================


class PackStatus(enum.Enum):
    """Proof Pack lifecycle status.

    Values:
        DRAFT: Being assembled by the owner
        SUBMITTED: Awaiting or under QA review; documents are frozen
        APPROVED: Passed QA review; may be shared and listed
        REJECTED: Failed QA review; may be edited and resubmitted
    """

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class DocumentCategory(enum.Enum):
    """Evidence category of an uploaded document.

    Every category except OTHER is required for a complete pack.
    """

    CERTIFICATIONS = "Certifications"
    FINANCIAL = "Financial"
    PAST_PERFORMANCE = "Past Performance"
    TECHNICAL = "Technical"
    QUALITY = "Quality"
    SAFETY = "Safety"
    SECURITY = "Security"
    OTHER = "Other"


REQUIRED_CATEGORIES: tuple[DocumentCategory, ...] = tuple(
    c for c in DocumentCategory if c is not DocumentCategory.OTHER
)


class GapCategory(enum.Enum):
    """Pack Health dimension a gap belongs to."""

    COMPLETENESS = "completeness"
    EXPIRATION = "expiration"
    QUALITY = "quality"
    REMEDIATION = "remediation"


class GapSeverity(enum.Enum):
    """Severity of a gap, ordered from least to most urgent."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class GapStatus(enum.Enum):
    """Resolution state of a gap."""

    OPEN = "open"
    RESOLVED = "resolved"


class ReviewStatus(enum.Enum):
    """QA review lifecycle states.

    Values:
        SCHEDULED: Created on submission, not yet claimed
        IN_PROGRESS: Claimed by a reviewer
        COMPLETED: Decision recorded (terminal)
        CANCELLED: Withdrawn without a decision (terminal)
    """

    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ReviewDecision(enum.Enum):
    """Outcome of a completed QA review."""

    APPROVED = "approved"
    REJECTED = "rejected"


class FindingSeverity(enum.Enum):
    """Severity of a reviewer finding.

    Values:
        MINOR: Cosmetic or informational
        MAJOR: Should be fixed before the next submission
        CRITICAL: Blocks approval while open
    """

    MINOR = "minor"
    MAJOR = "major"
    CRITICAL = "critical"


class FindingStatus(enum.Enum):
    """Resolution state of a finding."""

    OPEN = "open"
    RESOLVED = "resolved"


class AccessAction(enum.Enum):
    """Disclosure actions recorded in the access log.

    Values:
        INFO_VIEWED: Unauthenticated summary view of a share link
        NDA_ACCEPTED: Viewer accepted the current NDA version
        PACK_VIEWED: Full pack contents viewed
        DOCUMENT_DOWNLOADED: Download handle issued for a document
    """

    INFO_VIEWED = "info_viewed"
    NDA_ACCEPTED = "nda_accepted"
    PACK_VIEWED = "pack_viewed"
    DOCUMENT_DOWNLOADED = "document_downloaded"


class IntroductionStatus(enum.Enum):
    """Status of a buyer introduction request."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class JobStatus(enum.Enum):
    """Status of a background job.

    Values:
        PENDING: Job is waiting to be processed
        RUNNING: Job is currently being executed
        COMPLETED: Job finished successfully
        FAILED: Job failed after max retries
        CANCELLED: Job was manually cancelled
    """

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
