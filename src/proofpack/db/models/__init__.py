"""SQLAlchemy ORM models.

Models are organized by domain:
- base: Common metadata, column types and enums
- smes: SME company profiles
- packs: Proof Packs, documents and gaps
- reviews: QA reviews and findings
- disclosure: Share grants, NDA acceptances and the access log
- introductions: Buyer introduction requests
- audit: Hash-chained activity log
- jobs: PostgreSQL-backed job queue
"""

from proofpack.db.models.audit import AuditEvent
from proofpack.db.models.base import Base, metadata
from proofpack.db.models.disclosure import AccessLogEntry, NDAAcceptance, ShareGrant
from proofpack.db.models.introductions import IntroductionRequest
from proofpack.db.models.jobs import Job
from proofpack.db.models.packs import Document, Gap, ProofPack
from proofpack.db.models.reviews import Finding, QAReview
from proofpack.db.models.smes import SMEProfile

__all__ = [
    "AccessLogEntry",
    "AuditEvent",
    "Base",
    "Document",
    "Finding",
    "Gap",
    "IntroductionRequest",
    "Job",
    "NDAAcceptance",
    "ProofPack",
    "QAReview",
    "SMEProfile",
    "ShareGrant",
    "metadata",
]
